"""
Timestamp codec for manual steps.

Step times are whole-second positions written as zero-padded ``MM:SS``.
Because both fields are fixed width, comparing canonical strings orders
timestamps the same way as comparing their total seconds.
"""
import re
from dataclasses import dataclass

from manualizer.core.exceptions import InvalidTimestampError

TIMESTAMP_PATTERN = re.compile(r"[0-9]{2}:[0-9]{2}")

MAX_TOTAL_SECONDS = 59 * 60 + 59


@dataclass(frozen=True, order=True)
class Timestamp:
    """A normalized (minutes, seconds) position, each field in 0-59."""
    minutes: int
    seconds: int

    def __post_init__(self):
        if not (0 <= self.minutes < 60 and 0 <= self.seconds < 60):
            raise InvalidTimestampError(
                f"{self.minutes}:{self.seconds}",
                reason="minutes and seconds must be between 0 and 59"
            )

    @property
    def total_seconds(self) -> int:
        return self.minutes * 60 + self.seconds

    def __str__(self) -> str:
        return format_timestamp(self)


def parse_timestamp(text) -> Timestamp:
    """
    Parse a ``MM:SS`` string.

    Args:
        text: Candidate timestamp string

    Returns:
        Timestamp

    Raises:
        InvalidTimestampError: Wrong shape, non-string input or a field >= 60
    """
    if not isinstance(text, str) or not TIMESTAMP_PATTERN.fullmatch(text):
        raise InvalidTimestampError(text)

    minutes_text, seconds_text = text.split(":")
    minutes, seconds = int(minutes_text), int(seconds_text)
    if minutes >= 60 or seconds >= 60:
        raise InvalidTimestampError(text)

    return Timestamp(minutes, seconds)


def is_valid_timestamp(text) -> bool:
    """Check a string without raising, for callers that accept partial input."""
    try:
        parse_timestamp(text)
    except InvalidTimestampError:
        return False
    return True


def format_timestamp(timestamp: Timestamp) -> str:
    """Render the canonical ``MM:SS`` form."""
    return f"{timestamp.minutes:02d}:{timestamp.seconds:02d}"


def timestamp_from_seconds(total_seconds: int) -> Timestamp:
    """Build a Timestamp from total seconds, clamped to 00:00..59:59."""
    total = max(0, min(int(total_seconds), MAX_TOTAL_SECONDS))
    minutes, seconds = divmod(total, 60)
    return Timestamp(minutes, seconds)


def shift_timestamp(timestamp: Timestamp, delta_seconds: int) -> Timestamp:
    """
    Move a timestamp by a number of seconds.

    The result never goes below 00:00 or above 59:59, so
    ``shift(shift(t, +1), -1) == t`` holds everywhere except at those bounds.

    Example:
        >>> shift_timestamp(parse_timestamp("00:59"), 1)
        Timestamp(minutes=1, seconds=0)
    """
    return timestamp_from_seconds(timestamp.total_seconds + delta_seconds)


def coerce_timestamp(value) -> Timestamp:
    """Accept a Timestamp or its text form."""
    if isinstance(value, Timestamp):
        return value
    return parse_timestamp(value)
