"""
Custom exception classes for the Video Manual application.
These exceptions provide meaningful error messages and HTTP status codes.
"""
from typing import Optional


class ManualizerException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class InvalidTimestampError(ManualizerException):
    """Raised when a timestamp string is not a valid MM:SS value."""

    def __init__(self, value, reason: str = "expected MM:SS with both fields below 60"):
        super().__init__(
            message=f"Invalid timestamp {value!r}: {reason}",
            status_code=400
        )
        self.value = value
        self.reason = reason


class SourceNotFoundError(ManualizerException):
    """Raised when the source video of an extraction is missing."""

    def __init__(self, video_path: str, detail: Optional[str] = None):
        message = f"Video not found: {video_path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message=message, status_code=404)
        self.video_path = video_path


class ExtractionFailedError(ManualizerException):
    """Raised when the frame-grab tool fails. Carries the tool's diagnostic text."""

    def __init__(self, video_path: str, seconds: float, diagnostic: str):
        super().__init__(
            message=f"Frame extraction failed for {video_path} at {seconds}s: {diagnostic}",
            status_code=502  # Bad Gateway
        )
        self.video_path = video_path
        self.seconds = seconds
        self.diagnostic = diagnostic


class NoFrameProducedError(ExtractionFailedError):
    """Raised when ffmpeg exits cleanly but writes no frame, e.g. a seek past the end."""


class AnalysisFailedError(ManualizerException):
    """Raised when the AI analysis call fails or returns unusable output."""

    def __init__(self, model: str, error: str):
        super().__init__(
            message=f"Video analysis with '{model}' failed: {error}",
            status_code=502
        )
        self.model = model
        self.error = error


class ManualNotFoundException(ManualizerException):
    """Raised when a manual is not found."""

    def __init__(self, manual_id: int):
        super().__init__(
            message=f"Manual not found: {manual_id}",
            status_code=404
        )
        self.manual_id = manual_id


class StepNotFoundException(ManualizerException):
    """Raised when a step id does not exist in a manual."""

    def __init__(self, step_id: str):
        super().__init__(
            message=f"Step not found: {step_id}",
            status_code=404
        )
        self.step_id = step_id


class StaleBindingError(ManualizerException):
    """Raised when a frame is bound to a step whose timestamp no longer matches it."""

    def __init__(self, step_id: str, step_time: Optional[str], frame_time: Optional[str]):
        super().__init__(
            message=(
                f"Frame for {frame_time} cannot illustrate step {step_id} "
                f"at {step_time or 'unset time'}"
            ),
            status_code=409  # Conflict
        )
        self.step_id = step_id
        self.step_time = step_time
        self.frame_time = frame_time


class ValidationException(ManualizerException):
    """Raised when request data validation fails."""

    def __init__(self, message: str):
        super().__init__(
            message=f"Validation error: {message}",
            status_code=400  # Bad Request
        )
