"""
Helpers for the uploaded-videos directory.
"""
import logging
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

import cv2

from manualizer.core.exceptions import SourceNotFoundError, ValidationException

logger = logging.getLogger(__name__)


def get_video_files(videos_dir: Path, extensions: Iterable[str]) -> List[Path]:
    """
    List video files in a directory, sorted by name.

    Files that cannot be stat'ed are skipped.
    """
    videos_dir = Path(videos_dir)
    if not videos_dir.is_dir():
        return []

    allowed = {ext.lower() for ext in extensions}
    video_files = []
    for file_path in videos_dir.iterdir():
        try:
            if file_path.is_file() and file_path.suffix.lower() in allowed:
                video_files.append(file_path)
        except OSError:
            continue
    return sorted(video_files)


def get_video_duration(video_path: Path) -> float:
    """Get video duration in seconds, 0.0 when OpenCV can't read the file."""
    cap = cv2.VideoCapture(str(video_path))
    try:
        if not cap.isOpened():
            return 0.0
        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = cap.get(cv2.CAP_PROP_FRAME_COUNT)
        return frame_count / fps if fps > 0 else 0.0
    finally:
        cap.release()


def safe_video_filename(filename: Optional[str]) -> str:
    """
    Reduce a client-supplied name to a bare file name.

    Raises:
        ValidationException: Empty name, or one that only names a directory
    """
    name = Path(filename or "").name.strip()
    if not name or name in (".", ".."):
        raise ValidationException(f"invalid video file name {filename!r}")
    return name


def resolve_existing_video(videos_dir: Path, filename: str) -> Path:
    """
    Find a previously uploaded video by file name.

    Raises:
        ValidationException: The name carries path components
        SourceNotFoundError: No such file in the uploads directory
    """
    name = safe_video_filename(filename)
    if name != filename:
        raise ValidationException(f"video name must not contain a path: {filename!r}")
    video_path = Path(videos_dir) / name
    if not video_path.is_file():
        raise SourceNotFoundError(str(video_path))
    return video_path


def unique_upload_path(videos_dir: Path, filename: str) -> Path:
    """Destination for a new upload; never overwrites an existing video."""
    videos_dir = Path(videos_dir)
    videos_dir.mkdir(parents=True, exist_ok=True)
    name = safe_video_filename(filename)
    target = videos_dir / name
    if target.exists():
        target = videos_dir / f"{target.stem}-{uuid.uuid4().hex[:6]}{target.suffix}"
        logger.debug(f"{name} already exists, storing upload as {target.name}")
    return target
