"""
Manual orchestration: upload and analysis, step edits, frame requests.

Every load-modify-save of a manual document runs under that manual's lock.
Frame extractions run outside the lock; when one returns, the manual is
reloaded so an edit made meanwhile (a moved timestamp, a manual pick) wins
over the auto-bind.
"""
import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from manualizer.core.config import Settings
from manualizer.core.exceptions import (
    InvalidTimestampError,
    ManualizerException,
    ManualNotFoundException,
    SourceNotFoundError,
    ValidationException,
)
from manualizer.core.logging import log_event, log_operation_complete, log_operation_start, operation_logger
from manualizer.models.domain import BindingState, Frame, Manual, ManualStep, VideoHandle
from manualizer.repositories.manual_repository import ManualRepository
from manualizer.services.ai.analysis_client import AnalysisClient
from manualizer.services.analysis_service import steps_from_analysis
from manualizer.services.frame_service import FrameService
from manualizer.services.markdown_service import render_markdown
from manualizer.services.timeline import ManualTimeline
from manualizer.services.workspace import WorkspaceManager
from manualizer.utils.timestamp import coerce_timestamp

logger = logging.getLogger(__name__)


class ManualService:
    """Use cases behind the manual endpoints."""

    def __init__(
        self,
        settings: Settings,
        repository: ManualRepository,
        workspace: WorkspaceManager,
        frame_service: FrameService,
        analysis_client: AnalysisClient
    ):
        self.settings = settings
        self.repository = repository
        self.workspace = workspace
        self.frame_service = frame_service
        self.analysis_client = analysis_client
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, manual_id: int) -> asyncio.Lock:
        lock = self._locks.get(manual_id)
        if lock is None:
            lock = self._locks[manual_id] = asyncio.Lock()
        return lock

    def get_manual(self, manual_id: int) -> Manual:
        manual = self.repository.get(manual_id)
        if manual is None:
            raise ManualNotFoundException(manual_id)
        return manual

    def list_manuals(self) -> List[Manual]:
        return self.repository.list_all()

    # Upload

    @operation_logger("manual_upload")
    async def create_from_video(self, video_path: Path, manual_id: Optional[int] = None) -> Manual:
        """
        Analyze a video and store the resulting manual.

        With ``manual_id`` the video replaces the one attached to that manual:
        its frames are purged and its steps replaced. Otherwise a new manual is
        created, titled after the video file.

        Raises:
            SourceNotFoundError: The video file does not exist
            AnalysisFailedError: The analysis call failed; nothing is stored
            ManualNotFoundException: ``manual_id`` names no manual
        """
        video_path = Path(video_path)
        if not video_path.is_file():
            raise SourceNotFoundError(str(video_path))
        if manual_id is not None:
            self.get_manual(manual_id)

        video_url = self.settings.get_video_url(video_path.name)
        records = await asyncio.to_thread(self.analysis_client.analyze, video_url)
        steps = steps_from_analysis(records)

        if manual_id is None:
            manual = self.repository.create(Manual(
                title=video_path.name,
                video_path=str(video_path),
                steps=steps,
            ))
            manual_id = manual.id

        async with self._lock_for(manual_id):
            manual = self.get_manual(manual_id)
            handle = await self.workspace.attach_video(manual_id, video_path)
            manual.video_path = str(video_path)
            manual.video_handle_id = handle.handle_id
            manual.steps = steps
            manual.markdown_content = None
            self.repository.save(manual)

        log_event(
            level="INFO",
            logger=__name__,
            function="create_from_video",
            operation="manual_upload",
            event="manual_ready",
            message=f"Manual {manual.id} ready with {len(manual.steps)} steps",
            context={"manual_id": manual.id, "video": video_path.name, "handle_id": handle.handle_id}
        )
        return manual

    async def get_handle(self, manual_id: int) -> VideoHandle:
        """
        The manual's current video handle.

        After a restart the persisted handle id is re-registered, so frames
        already on disk keep their names. A manual stored without a handle
        gets a fresh one.
        """
        handle = self.workspace.current_handle(manual_id)
        if handle is not None:
            return handle

        manual = self.get_manual(manual_id)
        if manual.video_handle_id:
            return self.workspace.restore_handle(manual_id, Path(manual.video_path), manual.video_handle_id)

        async with self._lock_for(manual_id):
            manual = self.get_manual(manual_id)
            handle = self.workspace.current_handle(manual_id)
            if handle is None:
                handle = await self.workspace.attach_video(manual_id, Path(manual.video_path))
            manual.video_handle_id = handle.handle_id
            self.repository.save(manual)
            return handle

    # Step edits

    async def _edit(self, manual_id: int, edit) -> Tuple[Manual, Any]:
        async with self._lock_for(manual_id):
            manual = self.get_manual(manual_id)
            timeline = ManualTimeline(manual.steps)
            result = edit(timeline)
            manual.steps = timeline.steps
            self.repository.save(manual)
            return manual, result

    async def change_step_time(self, manual_id: int, step_id: str, time_text) -> ManualStep:
        _, step = await self._edit(manual_id, lambda t: t.on_timestamp_changed(step_id, time_text))
        return step

    async def nudge_step(self, manual_id: int, step_id: str, delta_seconds: int) -> ManualStep:
        _, step = await self._edit(manual_id, lambda t: t.nudge(step_id, delta_seconds))
        return step

    async def update_step_text(
        self,
        manual_id: int,
        step_id: str,
        headline: Optional[str] = None,
        description: Optional[str] = None
    ) -> ManualStep:
        _, step = await self._edit(manual_id, lambda t: t.update_text(step_id, headline, description))
        return step

    async def insert_step(
        self,
        manual_id: int,
        index: Optional[int] = None,
        headline: str = "",
        description: str = "",
        time_text: Optional[str] = None
    ) -> ManualStep:
        _, step = await self._edit(
            manual_id,
            lambda t: t.insert_step(index, headline=headline, description=description, timestamp=time_text)
        )
        return step

    async def move_step(self, manual_id: int, step_id: str, new_index: int) -> Manual:
        manual, _ = await self._edit(manual_id, lambda t: t.move_step(step_id, new_index))
        return manual

    async def remove_step(self, manual_id: int, step_id: str) -> Manual:
        manual, _ = await self._edit(manual_id, lambda t: t.remove_step(step_id))
        return manual

    async def unbind_step(self, manual_id: int, step_id: str) -> ManualStep:
        _, step = await self._edit(manual_id, lambda t: t.unbind(step_id))
        return step

    async def replace_content(
        self,
        manual_id: int,
        steps: List[Dict[str, Any]],
        markdown_content: Optional[str] = None
    ) -> Manual:
        """
        Replace the whole step list as sent by the editor.

        Steps are matched by id. A matched step whose time is unchanged keeps
        its binding; any other step comes out unbound.

        Raises:
            InvalidTimestampError: A non-empty time is not MM:SS; nothing is saved
        """
        async with self._lock_for(manual_id):
            manual = self.get_manual(manual_id)
            timeline = ManualTimeline(manual.steps)
            existing = {step.id: step for step in manual.steps}
            updated: List[ManualStep] = []

            for item in steps:
                time_text = (item.get("time") or "").strip()
                timestamp = coerce_timestamp(time_text) if time_text else None
                step = existing.pop(item.get("id"), None) if item.get("id") else None

                if step is None:
                    step = ManualStep(timestamp=timestamp)
                elif timestamp is None:
                    step.timestamp = None
                    timeline.unbind(step.id)
                elif timestamp != step.timestamp:
                    timeline.on_timestamp_changed(step.id, timestamp)

                step.headline = item.get("headline") or ""
                step.description = item.get("description") or ""
                updated.append(step)

            manual.steps = updated
            if markdown_content is not None:
                manual.markdown_content = markdown_content
            self.repository.save(manual)
            return manual

    # Frames

    async def generate_frames(self, manual_id: int, time_text) -> List[Frame]:
        """Candidate frames around a timestamp, not tied to any step."""
        timestamp = coerce_timestamp(time_text)
        handle = await self.get_handle(manual_id)
        return await self.frame_service.generate_candidates(handle, timestamp)

    async def generate_frame(self, manual_id: int, time_text) -> Frame:
        """The single frame at exactly the timestamp."""
        timestamp = coerce_timestamp(time_text)
        handle = await self.get_handle(manual_id)
        return await self.frame_service.generate_frame(handle, timestamp)

    async def request_step_frames(self, manual_id: int, step_id: str) -> Tuple[ManualStep, List[Frame]]:
        """
        Produce candidates for a step's current timestamp and auto-bind one.

        The step goes PENDING while the extraction runs. If the step's
        timestamp changed before the extraction returned, the frames are still
        returned but nothing is bound.

        Raises:
            InvalidTimestampError: The step has no timestamp yet
            SourceNotFoundError, ExtractionFailedError: Extraction failed; the
                step drops back to UNBOUND
        """
        start_time = time.time()
        log_operation_start(
            logger=__name__,
            function="request_step_frames",
            operation="step_frames",
            context={"manual_id": manual_id, "step_id": step_id}
        )

        async with self._lock_for(manual_id):
            manual = self.get_manual(manual_id)
            timeline = ManualTimeline(manual.steps)
            step = timeline.get_step(step_id)
            if step.timestamp is None:
                raise InvalidTimestampError("", reason="step has no timestamp yet")
            timestamp = step.timestamp
            timeline.mark_pending(step_id, timestamp)
            self.repository.save(manual)

        try:
            handle = await self.get_handle(manual_id)
            frames = await self.frame_service.generate_candidates(handle, timestamp)
        except ManualizerException:
            async with self._lock_for(manual_id):
                manual = self.get_manual(manual_id)
                timeline = ManualTimeline(manual.steps)
                timeline.extraction_failed(step_id, timestamp)
                self.repository.save(manual)
            raise

        async with self._lock_for(manual_id):
            manual = self.get_manual(manual_id)
            timeline = ManualTimeline(manual.steps)
            step = timeline.apply_candidates(step_id, timestamp, frames)
            self.repository.save(manual)

        log_operation_complete(
            logger=__name__,
            function="request_step_frames",
            operation="step_frames",
            context={
                "manual_id": manual_id,
                "step_id": step_id,
                "frames": len(frames),
                "bound": step.binding == BindingState.BOUND,
            },
            duration=time.time() - start_time
        )
        return step, frames

    async def select_frame(self, manual_id: int, step_id: str, frame_url: str) -> ManualStep:
        """
        Bind a frame the user picked.

        Raises:
            ValidationException: The URL is not an existing frame of the manual's video
            StaleBindingError: The frame belongs to a different timestamp than the step's
        """
        handle = await self.get_handle(manual_id)
        frame = self.frame_service.resolve_frame(handle, frame_url)
        if frame is None:
            raise ValidationException(f"{frame_url} is not a frame of the current video")

        _, step = await self._edit(manual_id, lambda t: t.bind_frame(step_id, frame))
        return step

    # Export

    async def export_markdown(self, manual_id: int) -> str:
        """Render the manual as Markdown and store it on the document."""
        async with self._lock_for(manual_id):
            manual = self.get_manual(manual_id)
            manual.markdown_content = render_markdown(manual)
            self.repository.save(manual)
            return manual.markdown_content
