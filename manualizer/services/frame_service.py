"""
Frame generation entry points used by the HTTP layer.

Validates the timestamp, checks the workspace, then goes through the
coalescing cache; ffmpeg itself runs in a worker thread.
"""
import asyncio
import logging
from typing import List, Optional, Sequence

from manualizer.models.domain import ExtractionMode, Frame, VideoHandle
from manualizer.services.frame_cache import FrameCache, FrameKey
from manualizer.services.frame_extractor import FrameExtractor
from manualizer.services.workspace import WorkspaceManager
from manualizer.utils.timestamp import coerce_timestamp

logger = logging.getLogger(__name__)


class FrameService:
    """Single-frame and candidate-set generation with coalescing."""

    def __init__(
        self,
        extractor: FrameExtractor,
        cache: FrameCache,
        workspace: WorkspaceManager,
        candidate_offsets: Sequence[int] = (-2, -1, 0, 1, 2)
    ):
        self.extractor = extractor
        self.cache = cache
        self.workspace = workspace
        self.candidate_offsets = list(candidate_offsets)

    async def generate_frame(self, handle: VideoHandle, timestamp) -> Frame:
        """
        Exact mode: one frame at the timestamp.

        Args:
            handle: Source video
            timestamp: Timestamp or MM:SS text

        Raises:
            InvalidTimestampError, SourceNotFoundError, ExtractionFailedError
        """
        ts = coerce_timestamp(timestamp)
        key = FrameKey(handle.handle_id, ts, ExtractionMode.SINGLE)

        async def extract() -> List[Frame]:
            frame = await asyncio.to_thread(self.extractor.extract_single, handle, ts)
            return [frame]

        frames = await self._run(handle, key, extract)
        return frames[0]

    async def generate_candidates(self, handle: VideoHandle, timestamp) -> List[Frame]:
        """
        Candidate-set mode: frames around the timestamp, in offset order.

        Raises:
            InvalidTimestampError, SourceNotFoundError, ExtractionFailedError
        """
        ts = coerce_timestamp(timestamp)
        key = FrameKey(handle.handle_id, ts, ExtractionMode.CANDIDATES)
        offsets = list(self.candidate_offsets)

        async def extract() -> List[Frame]:
            return await asyncio.to_thread(self.extractor.extract_candidates, handle, ts, offsets)

        return await self._run(handle, key, extract)

    async def _run(self, handle: VideoHandle, key: FrameKey, extract) -> List[Frame]:
        cached = self.cache.peek(key)
        if cached is None:
            await self.workspace.begin_extraction(handle)
        return await self.cache.get_or_extract(key, extract)

    def resolve_frame(self, handle: VideoHandle, frame_url: str) -> Optional[Frame]:
        """
        Map a frame URL back to the frame it names.

        Frame names are a pure function of (handle, timestamp, offset), so this
        works even after the cache entry is gone. Returns None for URLs that do
        not name a frame of this handle or whose file is missing.
        """
        parsed = self.extractor.parse_frame_url(handle, frame_url)
        if parsed is None:
            return None
        ts, offset = parsed
        path = self.extractor.frame_path(handle, ts, offset)
        if not path.exists():
            return None
        return Frame(
            handle_id=handle.handle_id,
            timestamp=ts,
            offset=offset,
            seconds=max(0, ts.total_seconds + offset),
            path=path,
            url=self.extractor.frame_url(handle, ts, offset),
        )
