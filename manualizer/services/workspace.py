"""
Workspace lifecycle: the per-manual frame directory and its current video.

    frames/{manual_id}/      <- purged whenever a new video is attached

Attaching a video and starting an extraction both take the manual's lock, so
no extraction begins while the previous video's frames are being deleted.
The lock is only held for the purge and for the start check, never for the
length of an ffmpeg call.
"""
import asyncio
import logging
import shutil
from pathlib import Path
from typing import Dict, Optional

from manualizer.core.exceptions import SourceNotFoundError
from manualizer.core.logging import log_event
from manualizer.models.domain import VideoHandle, new_handle_id
from manualizer.services.frame_cache import FrameCache

logger = logging.getLogger(__name__)


class WorkspaceManager:
    """Owns video handles and frame directories, one workspace per manual."""

    def __init__(self, frames_dir: Path, cache: FrameCache):
        self.frames_dir = Path(frames_dir)
        self.cache = cache
        self._handles: Dict[int, VideoHandle] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, manual_id: int) -> asyncio.Lock:
        lock = self._locks.get(manual_id)
        if lock is None:
            lock = self._locks[manual_id] = asyncio.Lock()
        return lock

    def get_workspace_dir(self, manual_id: int) -> Path:
        return self.frames_dir / str(manual_id)

    def current_handle(self, manual_id: int) -> Optional[VideoHandle]:
        return self._handles.get(manual_id)

    async def attach_video(self, manual_id: int, video_path: Path) -> VideoHandle:
        """
        Attach a (new or re-selected) video to a manual.

        Purges the manual's frame directory and the previous handle's cache
        entries before registering the new handle.

        Args:
            manual_id: Manual the video belongs to
            video_path: Source video on disk

        Returns:
            The new VideoHandle
        """
        async with self._lock_for(manual_id):
            previous = self._handles.pop(manual_id, None)
            if previous is not None:
                self.cache.invalidate_handle(previous.handle_id)

            workspace_dir = self.get_workspace_dir(manual_id)
            removed = await asyncio.to_thread(self._purge_directory, workspace_dir)
            workspace_dir.mkdir(parents=True, exist_ok=True)

            handle = VideoHandle(
                manual_id=manual_id,
                video_path=Path(video_path),
                handle_id=new_handle_id(),
            )
            self._handles[manual_id] = handle

            log_event(
                level="INFO",
                logger=__name__,
                function="attach_video",
                operation="workspace_attach",
                event="video_attached",
                message=f"Attached {handle.filename} to manual {manual_id}",
                context={
                    "manual_id": manual_id,
                    "handle_id": handle.handle_id,
                    "previous_handle_id": previous.handle_id if previous else None,
                    "frames_removed": removed,
                }
            )
            return handle

    def restore_handle(self, manual_id: int, video_path: Path, handle_id: str) -> VideoHandle:
        """Re-register a persisted handle (e.g. after restart) without purging."""
        current = self._handles.get(manual_id)
        if current is not None and current.handle_id == handle_id:
            return current
        handle = VideoHandle(manual_id=manual_id, video_path=Path(video_path), handle_id=handle_id)
        self._handles[manual_id] = handle
        logger.info(f"Restored video handle {handle_id} for manual {manual_id}")
        return handle

    async def begin_extraction(self, handle: VideoHandle) -> None:
        """
        Wait until no purge is running for the handle's manual.

        Raises:
            SourceNotFoundError: The handle was superseded by another video
        """
        async with self._lock_for(handle.manual_id):
            current = self._handles.get(handle.manual_id)
            if current is None or current.handle_id != handle.handle_id:
                raise SourceNotFoundError(
                    str(handle.video_path),
                    detail=f"video handle {handle.handle_id} was replaced"
                )

    def _purge_directory(self, workspace_dir: Path) -> int:
        """
        Delete every frame in a workspace directory.

        Failures are logged and swallowed: frame names are keyed by video
        handle, so leftovers can never show up in another video's candidates.

        Returns:
            Number of files removed
        """
        if not workspace_dir.exists():
            return 0

        try:
            entries = list(workspace_dir.iterdir())
        except OSError as e:
            log_event(
                level="WARNING",
                logger=__name__,
                function="_purge_directory",
                operation="workspace_purge",
                event="purge_failed",
                message=f"Could not list {workspace_dir}: {e}",
                context={"path": str(workspace_dir), "error": str(e)}
            )
            return 0

        removed = 0
        for file_path in entries:
            try:
                if file_path.is_dir():
                    shutil.rmtree(file_path)
                else:
                    file_path.unlink()
                removed += 1
            except FileNotFoundError:
                pass
            except OSError as e:
                log_event(
                    level="WARNING",
                    logger=__name__,
                    function="_purge_directory",
                    operation="workspace_purge",
                    event="purge_failed",
                    message=f"Could not delete {file_path}: {e}",
                    context={"path": str(file_path), "error": str(e)}
                )

        logger.info(f"Purged {removed} frames from {workspace_dir}")
        return removed
