"""
Frame extraction with ffmpeg.

Every frame file name is derived from (video handle, base timestamp, offset),
so re-extracting the same key overwrites one file instead of adding another:

    frames/
    └── {manual_id}/
        ├── {handle_id}-0425+0.jpg
        ├── {handle_id}-0425-2.jpg
        └── ...

ffmpeg writes to a temporary sibling which is renamed onto the final name,
so a reader never sees a half-written JPEG.
"""
import logging
import os
import re
import subprocess
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from manualizer.core.exceptions import ExtractionFailedError, NoFrameProducedError, SourceNotFoundError
from manualizer.core.logging import log_event
from manualizer.models.domain import Frame, VideoHandle
from manualizer.utils.timestamp import MAX_TOTAL_SECONDS, Timestamp, format_timestamp, timestamp_from_seconds

logger = logging.getLogger(__name__)

# Longest stderr excerpt carried in ExtractionFailedError
MAX_DIAGNOSTIC_CHARS = 2000

FRAME_NAME_PATTERN = re.compile(r"(?P<handle>[0-9a-f]+)-(?P<seconds>[0-9]{4})(?P<offset>[+-][0-9]+)\.jpg")


class FrameExtractor:
    """Grabs still frames from a video file, one ffmpeg process per frame."""

    def __init__(
        self,
        frames_dir: Path,
        url_prefix: str = "/frames",
        ffmpeg_binary: str = "ffmpeg",
        frame_size: str = "1280x720",
        jpeg_quality: int = 3,
        timeout: float = 30.0
    ):
        """
        Initialize frame extractor.

        Args:
            frames_dir: Root directory for generated frames
            url_prefix: Public URL prefix the frames directory is served under
            ffmpeg_binary: ffmpeg executable name or path
            frame_size: Output size as WIDTHxHEIGHT
            jpeg_quality: ffmpeg -q:v value (2-31, lower = better quality)
            timeout: Seconds before an ffmpeg call is abandoned
        """
        self.frames_dir = Path(frames_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.ffmpeg_binary = ffmpeg_binary
        self.frame_size = frame_size
        self.jpeg_quality = jpeg_quality
        self.timeout = timeout

    @staticmethod
    def frame_filename(handle: VideoHandle, timestamp: Timestamp, offset: int) -> str:
        return f"{handle.handle_id}-{timestamp.total_seconds:04d}{offset:+d}.jpg"

    def frame_path(self, handle: VideoHandle, timestamp: Timestamp, offset: int = 0) -> Path:
        """Get the output path for a frame key. Pure function of the key."""
        return self.frames_dir / str(handle.manual_id) / self.frame_filename(handle, timestamp, offset)

    def frame_url(self, handle: VideoHandle, timestamp: Timestamp, offset: int = 0) -> str:
        """Get the public URL for a frame key."""
        return f"{self.url_prefix}/{handle.manual_id}/{self.frame_filename(handle, timestamp, offset)}"

    def parse_frame_url(self, handle: VideoHandle, frame_url: str) -> Optional[Tuple[Timestamp, int]]:
        """
        Recover (base timestamp, offset) from a frame URL of this handle.

        Returns None for URLs of another manual or another video handle.
        """
        prefix = f"{self.url_prefix}/{handle.manual_id}/"
        if not frame_url.startswith(prefix):
            return None
        match = FRAME_NAME_PATTERN.fullmatch(frame_url[len(prefix):])
        if not match or match.group("handle") != handle.handle_id:
            return None
        total_seconds = int(match.group("seconds"))
        if total_seconds > MAX_TOTAL_SECONDS:
            return None
        return timestamp_from_seconds(total_seconds), int(match.group("offset"))

    def _build_command(self, video_path: Path, seconds: int, output_path: Path) -> List[str]:
        width, _, height = self.frame_size.lower().partition("x")
        # -ss before -i seeks on keyframes first, then decodes to the exact second
        return [
            self.ffmpeg_binary,
            "-hide_banner",
            "-loglevel", "error",
            "-ss", str(seconds),
            "-i", str(video_path),
            "-frames:v", "1",
            "-vf", f"scale={width}:{height}",
            "-q:v", str(self.jpeg_quality),
            "-y",
            str(output_path),
        ]

    def extract(self, handle: VideoHandle, seconds: int, output_path: Path) -> Path:
        """
        Extract one frame. Blocking; runs exactly one ffmpeg process.

        Args:
            handle: Source video
            seconds: Position in whole seconds; negative values clamp to 0
            output_path: Final JPEG path

        Returns:
            output_path, once the file exists

        Raises:
            SourceNotFoundError: The video file is absent
            ExtractionFailedError: ffmpeg failed, timed out, is missing, or wrote nothing
        """
        video_path = Path(handle.video_path)
        if not video_path.is_file():
            raise SourceNotFoundError(str(video_path))

        seconds = max(0, int(seconds))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = output_path.with_name(f".{output_path.stem}.{uuid.uuid4().hex[:8]}.jpg")

        cmd = self._build_command(video_path, seconds, temp_path)
        logger.debug(f"Running ffmpeg for {video_path.name} at {seconds}s -> {output_path.name}")

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, errors="replace", timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            self._discard(temp_path)
            raise ExtractionFailedError(
                str(video_path), seconds, f"ffmpeg timed out after {self.timeout}s"
            )
        except FileNotFoundError:
            raise ExtractionFailedError(
                str(video_path), seconds,
                f"ffmpeg binary '{self.ffmpeg_binary}' not found, is it installed and in PATH?"
            )

        if result.returncode != 0:
            self._discard(temp_path)
            diagnostic = (result.stderr or "").strip()[-MAX_DIAGNOSTIC_CHARS:]
            log_event(
                level="ERROR",
                logger=__name__,
                function="extract",
                operation="frame_extraction",
                event="ffmpeg_failed",
                message=f"ffmpeg exited with {result.returncode}",
                context={
                    "video": str(video_path),
                    "seconds": seconds,
                    "returncode": result.returncode,
                    "stderr": diagnostic,
                }
            )
            raise ExtractionFailedError(
                str(video_path), seconds,
                diagnostic or f"ffmpeg exited with code {result.returncode}"
            )

        # Seeking past the end of the video exits 0 without writing a frame
        if not temp_path.exists():
            raise NoFrameProducedError(
                str(video_path), seconds,
                (result.stderr or "").strip()[-MAX_DIAGNOSTIC_CHARS:] or "ffmpeg produced no frame (past end of video?)"
            )

        os.replace(temp_path, output_path)
        return output_path

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass

    def extract_single(self, handle: VideoHandle, timestamp: Timestamp) -> Frame:
        """Exact mode: the frame at the timestamp itself."""
        return self._extract_offset(handle, timestamp, 0)

    def extract_candidates(
        self,
        handle: VideoHandle,
        timestamp: Timestamp,
        offsets: Sequence[int]
    ) -> List[Frame]:
        """
        Candidate-set mode: frames at timestamp + each offset, in offset order.

        When several offsets clamp onto the same second (near 00:00), only
        the one closest to the timestamp is extracted. Offsets that produce no
        frame (past the end of the video) are skipped; any other failure
        aborts the set.

        Raises:
            NoFrameProducedError: No offset produced a frame
        """
        closest: Dict[int, int] = {}
        for offset in offsets:
            seconds = max(0, timestamp.total_seconds + offset)
            if seconds not in closest or abs(offset) < abs(closest[seconds]):
                closest[seconds] = offset
        wanted = set(closest.values())

        frames: List[Frame] = []
        last_missing: Optional[NoFrameProducedError] = None
        for offset in offsets:
            if offset not in wanted:
                continue
            wanted.discard(offset)
            try:
                frames.append(self._extract_offset(handle, timestamp, offset))
            except NoFrameProducedError as e:
                logger.info(f"No frame at offset {offset:+d} for {format_timestamp(timestamp)}, skipping")
                last_missing = e

        if not frames and last_missing is not None:
            raise last_missing

        logger.info(
            f"Extracted {len(frames)} candidate frames for manual {handle.manual_id} "
            f"at {format_timestamp(timestamp)}"
        )
        return frames

    def _extract_offset(self, handle: VideoHandle, timestamp: Timestamp, offset: int) -> Frame:
        seconds = max(0, timestamp.total_seconds + offset)
        path = self.extract(handle, seconds, self.frame_path(handle, timestamp, offset))
        return Frame(
            handle_id=handle.handle_id,
            timestamp=timestamp,
            offset=offset,
            seconds=seconds,
            path=path,
            url=self.frame_url(handle, timestamp, offset),
        )
