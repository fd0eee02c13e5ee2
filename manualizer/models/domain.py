"""
Domain models for business logic.
These are internal representations separate from API schemas.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List

from manualizer.utils.timestamp import Timestamp, format_timestamp, parse_timestamp


def new_handle_id() -> str:
    """Short random token identifying one attached video."""
    return uuid.uuid4().hex[:8]


def new_step_id() -> str:
    return uuid.uuid4().hex[:12]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BindingState(Enum):
    """Illustration binding state of a manual step."""
    UNBOUND = "unbound"
    PENDING = "pending"
    BOUND = "bound"


class ExtractionMode(Enum):
    """Frame extraction mode."""
    SINGLE = "single"
    CANDIDATES = "candidates"


@dataclass(frozen=True)
class VideoHandle:
    """A source video attached to a manual. Replaced, never mutated."""
    manual_id: int
    video_path: Path
    handle_id: str

    @property
    def filename(self) -> str:
        return Path(self.video_path).name


@dataclass(frozen=True)
class Frame:
    """A still image extracted from a video at base timestamp + offset."""
    handle_id: str
    timestamp: Timestamp
    offset: int
    seconds: int
    path: Path
    url: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "url": self.url,
            "time": format_timestamp(self.timestamp),
            "offset": self.offset,
            "seconds": self.seconds,
        }


@dataclass
class ManualStep:
    """One step of a manual and its illustration binding."""
    headline: str = ""
    description: str = ""
    timestamp: Optional[Timestamp] = None
    bound_frame: Optional[str] = None
    binding: BindingState = BindingState.UNBOUND
    id: str = field(default_factory=new_step_id)

    @property
    def time(self) -> Optional[str]:
        return format_timestamp(self.timestamp) if self.timestamp else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "time": self.time or "",
            "headline": self.headline,
            "description": self.description,
            "frame_url": self.bound_frame,
            "binding": self.binding.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ManualStep':
        """
        Create from a stored dictionary.

        Stored documents are trusted to hold canonical times; an empty time
        means the step was added without one.
        """
        time_text = data.get("time") or ""
        bound_frame = data.get("frame_url")
        binding = BindingState(data.get("binding") or (
            BindingState.BOUND.value if bound_frame else BindingState.UNBOUND.value
        ))
        return cls(
            id=data.get("id") or new_step_id(),
            headline=data.get("headline", ""),
            description=data.get("description", ""),
            timestamp=parse_timestamp(time_text) if time_text else None,
            bound_frame=bound_frame,
            binding=binding,
        )


@dataclass
class Manual:
    """A manual document generated from one video."""
    title: str
    video_path: str
    steps: List[ManualStep] = field(default_factory=list)
    video_handle_id: Optional[str] = None
    markdown_content: Optional[str] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "video_path": self.video_path,
            "video_handle_id": self.video_handle_id,
            "content": [step.to_dict() for step in self.steps],
            "markdown_content": self.markdown_content,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Manual':
        """Create from dictionary."""
        return cls(
            id=data.get("id"),
            title=data["title"],
            video_path=data["video_path"],
            video_handle_id=data.get("video_handle_id"),
            steps=[ManualStep.from_dict(step) for step in data.get("content") or []],
            markdown_content=data.get("markdown_content"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


def _parse_datetime(value: Optional[str]) -> datetime:
    if not value:
        return utc_now()
    return datetime.fromisoformat(value)
