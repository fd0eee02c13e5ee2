"""
Normalization of AI analysis output into manual steps.

Model output is untrusted: every record goes through the same timestamp
validation as a value typed by a user, and records that fail are dropped
instead of failing the whole upload.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from manualizer.core.exceptions import InvalidTimestampError
from manualizer.core.logging import log_event
from manualizer.models.domain import ManualStep
from manualizer.utils.timestamp import parse_timestamp

logger = logging.getLogger(__name__)


@dataclass
class NormalizedAnalysis:
    """Steps that passed validation plus the records that were dropped."""
    steps: List[ManualStep] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)


def _text_field(record: Dict[str, Any], name: str) -> str:
    value = record.get(name)
    if value is None:
        return ""
    return str(value).strip()


def normalize_analysis_steps(records: List[Any]) -> NormalizedAnalysis:
    """
    Validate raw analysis records.

    A record is kept when it is an object with a valid ``time`` (MM:SS) and a
    non-empty headline or description. Order is preserved.

    Args:
        records: Raw records from the analysis client

    Returns:
        NormalizedAnalysis with accepted steps and rejection reasons
    """
    result = NormalizedAnalysis()

    for index, record in enumerate(records):
        if not isinstance(record, dict):
            result.rejected.append({"index": index, "reason": "not an object", "record": record})
            continue

        raw_time = record.get("time")
        if isinstance(raw_time, str):
            raw_time = raw_time.strip()
        try:
            timestamp = parse_timestamp(raw_time)
        except InvalidTimestampError as e:
            result.rejected.append({"index": index, "reason": e.message, "record": record})
            continue

        headline = _text_field(record, "headline")
        description = _text_field(record, "description")
        if not headline and not description:
            result.rejected.append({"index": index, "reason": "no headline or description", "record": record})
            continue

        result.steps.append(ManualStep(
            timestamp=timestamp,
            headline=headline,
            description=description,
        ))

    if result.rejected:
        log_event(
            level="WARNING",
            logger=__name__,
            function="normalize_analysis_steps",
            operation="video_analysis",
            event="analysis_records_rejected",
            message=f"Dropped {len(result.rejected)} of {len(records)} analysis records",
            context={"rejected": result.rejected[:20]}
        )

    return result


def steps_from_analysis(records: List[Any]) -> List[ManualStep]:
    """Normalize analysis records into steps; an all-invalid reply gives an empty manual."""
    normalized = normalize_analysis_steps(records)
    if records and not normalized.steps:
        logger.warning(f"None of the {len(records)} analysis records were usable")
    logger.info(f"Analysis produced {len(normalized.steps)} steps ({len(normalized.rejected)} rejected)")
    return normalized.steps
