"""
Pydantic models for API request/response validation.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


# Response Models

class VideoResponse(BaseModel):
    """Response model for an uploaded video."""
    filename: str
    title: str
    url: str
    duration: float = 0.0


class StepResponse(BaseModel):
    """Response model for a manual step."""
    id: str
    time: str = ""
    headline: str = ""
    description: str = ""
    frame_url: Optional[str] = None
    binding: str = "unbound"


class ManualResponse(BaseModel):
    """Response model for a manual document."""
    id: int
    title: str
    video_path: str
    video_handle_id: Optional[str] = None
    content: List[StepResponse] = Field(default_factory=list)
    markdown_content: Optional[str] = None
    created_at: str
    updated_at: str


class ManualSummaryResponse(BaseModel):
    """Manual listing entry."""
    id: int
    title: str
    step_count: int
    updated_at: str


class FrameResponse(BaseModel):
    """One extracted frame."""
    url: str
    time: str
    offset: int
    seconds: int


class FramesResponse(BaseModel):
    """Frames extracted for a timestamp, in offset order."""
    time: str
    frames: List[FrameResponse]


class StepFramesResponse(BaseModel):
    """Candidate frames for a step, with the step's binding afterwards."""
    step: StepResponse
    frames: List[FrameResponse]


class MarkdownResponse(BaseModel):
    manual_id: int
    markdown_content: str


class ErrorResponse(BaseModel):
    """Response model for errors."""
    error: str
    detail: Optional[str] = None
    status_code: int


# Request Models

class FrameRequest(BaseModel):
    """Request model for frame generation at a timestamp."""
    time: str = Field(..., description="Timestamp as MM:SS")


class StepTimeRequest(BaseModel):
    time: str = Field(..., description="New timestamp as MM:SS")


class NudgeRequest(BaseModel):
    delta_seconds: int = Field(..., description="Seconds to move the timestamp by, may be negative")


class StepCreateRequest(BaseModel):
    """Request model for inserting a step."""
    index: Optional[int] = Field(None, description="Position to insert at; appended when omitted")
    time: Optional[str] = None
    headline: str = ""
    description: str = ""


class StepTextRequest(BaseModel):
    headline: Optional[str] = None
    description: Optional[str] = None


class StepMoveRequest(BaseModel):
    index: int = Field(..., ge=0)


class FrameSelectRequest(BaseModel):
    frame_url: str


class StepUpdate(BaseModel):
    """One step as sent back by the editor."""
    id: Optional[str] = None
    time: Optional[str] = ""
    headline: str = ""
    description: str = ""


class ManualUpdateRequest(BaseModel):
    """Request model for replacing a manual's steps."""
    content: List[StepUpdate]
    markdown_content: Optional[str] = None

    def steps_as_dicts(self) -> List[Dict[str, Any]]:
        return [step.model_dump() for step in self.content]
