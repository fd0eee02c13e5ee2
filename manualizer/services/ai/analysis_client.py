"""
AI video analysis client (OpenAI-compatible chat completions, multimodal).
"""
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

import requests

from manualizer.core.config import Settings
from manualizer.core.exceptions import AnalysisFailedError

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """You are an agent that writes software operation manuals.
Watch the screen recording and split the workflow it shows into ordered steps.
For every step give a short headline, a description of the operation, and the
moment in the video (MM:SS, minutes and seconds) where a screenshot best shows it.

Reply with JSON only, no prose, in exactly this shape:
[
  {"time": "MM:SS", "headline": "...", "description": "..."}
]"""

THINK_TAG_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL)
CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


class AnalysisClient:
    """Asks a vision model to turn a screen recording into manual steps."""

    service_key = "analysis"

    def __init__(self, settings: Settings):
        """
        Initialize analysis client.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.model_url = settings.analysis_model_url

    def _build_payload(self, video_url: str) -> Dict[str, Any]:
        payload = {
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "video_url", "video_url": {"url": video_url}},
                        {"type": "text", "text": ANALYSIS_PROMPT},
                    ],
                }
            ],
            "temperature": self.settings.analysis_temperature,
            "max_tokens": self.settings.max_tokens,
        }
        if self.settings.analysis_model_id:
            payload["model"] = self.settings.analysis_model_id
        return payload

    def _make_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST the payload and return the decoded response.

        Raises:
            AnalysisFailedError: HTTP error, timeout, connection error or non-JSON body
        """
        headers = {"Content-Type": "application/json"}
        if self.settings.analysis_api_key:
            headers["Authorization"] = f"Bearer {self.settings.analysis_api_key}"

        timeout = self.settings.analysis_timeout
        start_time = time.time()
        try:
            response = requests.post(self.model_url, json=payload, headers=headers, timeout=timeout)
        except requests.exceptions.Timeout:
            raise AnalysisFailedError(self.service_key, f"Request timeout after {timeout}s")
        except requests.exceptions.ConnectionError as e:
            raise AnalysisFailedError(self.service_key, f"Connection error: {str(e)}")
        except requests.exceptions.RequestException as e:
            raise AnalysisFailedError(self.service_key, f"Request error: {str(e)}")

        duration = time.time() - start_time
        logger.info(
            f"{self.service_key} API response: "
            f"status={response.status_code}, duration={duration:.2f}s"
        )

        if response.status_code != 200:
            raise AnalysisFailedError(
                self.service_key, f"HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise AnalysisFailedError(self.service_key, f"Invalid JSON response: {str(e)}")

    @staticmethod
    def _extract_content(response: Dict[str, Any]) -> Optional[str]:
        choices = response.get("choices") or []
        if not choices:
            return None
        message = choices[0].get("message") or {}
        return message.get("content")

    def parse_steps(self, content: Optional[str]) -> List[Any]:
        """
        Decode the model's reply into a list of raw step records.

        Accepts a bare JSON list, a list inside a ```json fence, or an object
        with a "steps" list; <think> blocks are ignored.

        Raises:
            AnalysisFailedError: Empty, non-JSON, or not a list of records
        """
        if not content or not content.strip():
            raise AnalysisFailedError(self.service_key, "Empty content in response")

        json_str = THINK_TAG_PATTERN.sub("", content).strip()
        match = CODE_FENCE_PATTERN.search(json_str)
        if match:
            json_str = match.group(1).strip()

        try:
            parsed = json.loads(json_str)
        except json.JSONDecodeError as e:
            logger.error(f"Unparsable analysis output: {json_str[:1000]}")
            raise AnalysisFailedError(self.service_key, f"Invalid JSON in response: {str(e)}")

        if isinstance(parsed, dict) and isinstance(parsed.get("steps"), list):
            parsed = parsed["steps"]
        if not isinstance(parsed, list):
            raise AnalysisFailedError(self.service_key, "Response is not a list of steps")
        return parsed

    def analyze(self, video_url: str) -> List[Any]:
        """
        Run the analysis for one video.

        Args:
            video_url: URL the model server can fetch the video from

        Returns:
            Raw (unvalidated) step records, in workflow order
        """
        payload = self._build_payload(video_url)
        logger.info(f"Requesting video analysis for {video_url}")
        response = self._make_request(payload)
        return self.parse_steps(self._extract_content(response))
