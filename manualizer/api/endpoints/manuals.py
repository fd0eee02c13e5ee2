"""
Manual-related API endpoints.
Handles manual documents, step edits, frame generation and frame binding.
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from manualizer.api.deps import get_manual_service
from manualizer.models.domain import Frame, Manual, ManualStep
from manualizer.models.schemas import (
    FrameRequest,
    FrameResponse,
    FrameSelectRequest,
    FramesResponse,
    ManualResponse,
    ManualSummaryResponse,
    ManualUpdateRequest,
    MarkdownResponse,
    NudgeRequest,
    StepCreateRequest,
    StepFramesResponse,
    StepMoveRequest,
    StepResponse,
    StepTextRequest,
    StepTimeRequest,
)
from manualizer.services.manual_service import ManualService
from manualizer.utils.timestamp import coerce_timestamp, format_timestamp

router = APIRouter()


def _manual_response(manual: Manual) -> ManualResponse:
    return ManualResponse(**manual.to_dict())


def _step_response(step: ManualStep) -> StepResponse:
    return StepResponse(**step.to_dict())


def _frame_responses(frames: List[Frame]) -> List[FrameResponse]:
    return [FrameResponse(**frame.to_dict()) for frame in frames]


# Manual documents

@router.get("/manuals", response_model=list[ManualSummaryResponse])
async def list_manuals(service: ManualService = Depends(get_manual_service)):
    """List stored manuals."""
    return [
        ManualSummaryResponse(
            id=manual.id,
            title=manual.title,
            step_count=len(manual.steps),
            updated_at=manual.updated_at.isoformat(),
        )
        for manual in service.list_manuals()
    ]


@router.get("/manuals/{manual_id}", response_model=ManualResponse)
async def get_manual(manual_id: int, service: ManualService = Depends(get_manual_service)):
    return _manual_response(service.get_manual(manual_id))


@router.put("/manuals/{manual_id}", response_model=ManualResponse)
async def update_manual(
    manual_id: int,
    request: ManualUpdateRequest,
    service: ManualService = Depends(get_manual_service)
):
    """Replace the step list (and optionally the markdown) as edited in the UI."""
    manual = await service.replace_content(manual_id, request.steps_as_dicts(), request.markdown_content)
    return _manual_response(manual)


@router.get("/manuals/{manual_id}/markdown", response_model=MarkdownResponse)
async def get_markdown(manual_id: int, service: ManualService = Depends(get_manual_service)):
    markdown = await service.export_markdown(manual_id)
    return MarkdownResponse(manual_id=manual_id, markdown_content=markdown)


# Frames by timestamp

@router.post("/manuals/{manual_id}/frames", response_model=FramesResponse)
async def generate_frames(
    manual_id: int,
    request: FrameRequest,
    service: ManualService = Depends(get_manual_service)
):
    """Candidate frames around a timestamp of the manual's video."""
    timestamp = coerce_timestamp(request.time)
    frames = await service.generate_frames(manual_id, timestamp)
    return FramesResponse(time=format_timestamp(timestamp), frames=_frame_responses(frames))


@router.get("/manuals/{manual_id}/frame", response_model=FrameResponse)
async def get_frame(
    manual_id: int,
    time: str = Query(..., description="Timestamp as MM:SS"),
    service: ManualService = Depends(get_manual_service)
):
    """The single frame at exactly the timestamp."""
    frame = await service.generate_frame(manual_id, time)
    return FrameResponse(**frame.to_dict())


# Steps

@router.post("/manuals/{manual_id}/steps", response_model=StepResponse, status_code=201)
async def insert_step(
    manual_id: int,
    request: StepCreateRequest,
    service: ManualService = Depends(get_manual_service)
):
    step = await service.insert_step(
        manual_id,
        index=request.index,
        headline=request.headline,
        description=request.description,
        time_text=request.time or None,
    )
    return _step_response(step)


@router.patch("/manuals/{manual_id}/steps/{step_id}", response_model=StepResponse)
async def update_step_text(
    manual_id: int,
    step_id: str,
    request: StepTextRequest,
    service: ManualService = Depends(get_manual_service)
):
    step = await service.update_step_text(manual_id, step_id, request.headline, request.description)
    return _step_response(step)


@router.delete("/manuals/{manual_id}/steps/{step_id}", response_model=ManualResponse)
async def remove_step(manual_id: int, step_id: str, service: ManualService = Depends(get_manual_service)):
    manual = await service.remove_step(manual_id, step_id)
    return _manual_response(manual)


@router.post("/manuals/{manual_id}/steps/{step_id}/move", response_model=ManualResponse)
async def move_step(
    manual_id: int,
    step_id: str,
    request: StepMoveRequest,
    service: ManualService = Depends(get_manual_service)
):
    manual = await service.move_step(manual_id, step_id, request.index)
    return _manual_response(manual)


@router.put("/manuals/{manual_id}/steps/{step_id}/time", response_model=StepResponse)
async def change_step_time(
    manual_id: int,
    step_id: str,
    request: StepTimeRequest,
    service: ManualService = Depends(get_manual_service)
):
    """Set a step's timestamp; the step's frame binding is always cleared."""
    step = await service.change_step_time(manual_id, step_id, request.time)
    return _step_response(step)


@router.post("/manuals/{manual_id}/steps/{step_id}/nudge", response_model=StepResponse)
async def nudge_step(
    manual_id: int,
    step_id: str,
    request: NudgeRequest,
    service: ManualService = Depends(get_manual_service)
):
    step = await service.nudge_step(manual_id, step_id, request.delta_seconds)
    return _step_response(step)


@router.post("/manuals/{manual_id}/steps/{step_id}/frames", response_model=StepFramesResponse)
async def request_step_frames(
    manual_id: int,
    step_id: str,
    service: ManualService = Depends(get_manual_service)
):
    """Candidate frames for the step's current timestamp; auto-binds one if the step is unbound."""
    step, frames = await service.request_step_frames(manual_id, step_id)
    return StepFramesResponse(step=_step_response(step), frames=_frame_responses(frames))


@router.put("/manuals/{manual_id}/steps/{step_id}/frame", response_model=StepResponse)
async def select_frame(
    manual_id: int,
    step_id: str,
    request: FrameSelectRequest,
    service: ManualService = Depends(get_manual_service)
):
    step = await service.select_frame(manual_id, step_id, request.frame_url)
    return _step_response(step)


@router.delete("/manuals/{manual_id}/steps/{step_id}/frame", response_model=StepResponse)
async def unbind_frame(manual_id: int, step_id: str, service: ManualService = Depends(get_manual_service)):
    step = await service.unbind_step(manual_id, step_id)
    return _step_response(step)
