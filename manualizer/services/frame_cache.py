"""
In-process cache and request coalescer for frame extractions.

One shared asyncio task exists per key while an extraction runs; every caller
for that key awaits the same task, so ffmpeg is started at most once per key
no matter how many requests race. Callers await through asyncio.shield: a
caller that goes away never cancels the extraction other callers wait on.

Completed results stay until the video handle is invalidated, cleared, or,
when ``max_entries`` is set, evicted least-recently-used. With the default
``max_entries=None`` the cache grows with the number of distinct timestamps
requested for the current videos.

All state is only touched from the event loop thread.
"""
import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from manualizer.core.logging import log_event
from manualizer.models.domain import ExtractionMode, Frame
from manualizer.utils.timestamp import Timestamp, format_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameKey:
    """Cache key: one video handle, one canonical timestamp, one mode."""
    handle_id: str
    timestamp: Timestamp
    mode: ExtractionMode

    def __str__(self) -> str:
        return f"{self.handle_id}@{format_timestamp(self.timestamp)}/{self.mode.value}"


class FrameCache:
    """Coalescing cache of extraction results keyed by FrameKey."""

    def __init__(self, max_entries: Optional[int] = None):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive or None")
        self.max_entries = max_entries
        self._results: "OrderedDict[FrameKey, List[Frame]]" = OrderedDict()
        self._in_flight: Dict[FrameKey, asyncio.Task] = {}
        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._evictions = 0
        self._stale_handle_ids: set = set()

    def peek(self, key: FrameKey) -> Optional[List[Frame]]:
        """Return a completed result without touching LRU order or stats."""
        result = self._results.get(key)
        return list(result) if result is not None else None

    def is_in_flight(self, key: FrameKey) -> bool:
        return key in self._in_flight

    async def get_or_extract(
        self,
        key: FrameKey,
        extract: Callable[[], Awaitable[List[Frame]]]
    ) -> List[Frame]:
        """
        Serve a cached result, join an in-flight extraction, or start one.

        Args:
            key: Cache key
            extract: Zero-argument coroutine factory doing the real work;
                only called on a miss

        Returns:
            A copy of the frame list for the key

        Raises:
            Whatever the extraction raised; failures are not cached
        """
        cached = self._results.get(key)
        if cached is not None:
            self._results.move_to_end(key)
            self._hits += 1
            log_event(
                level="DEBUG",
                logger=__name__,
                function="get_or_extract",
                operation="frame_cache",
                event="cache_hit",
                message=f"Frame cache hit for {key}",
            )
            return list(cached)

        task = self._in_flight.get(key)
        if task is not None:
            self._coalesced += 1
            log_event(
                level="DEBUG",
                logger=__name__,
                function="get_or_extract",
                operation="frame_cache",
                event="cache_coalesced",
                message=f"Joining in-flight extraction for {key}",
            )
        else:
            self._misses += 1
            log_event(
                level="DEBUG",
                logger=__name__,
                function="get_or_extract",
                operation="frame_cache",
                event="cache_miss",
                message=f"Frame cache miss for {key}, starting extraction",
            )
            task = asyncio.ensure_future(extract())
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._on_done(key, done))

        result = await asyncio.shield(task)
        return list(result)

    def _on_done(self, key: FrameKey, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

        # Handle was invalidated while the task ran
        stale = key.handle_id in self._stale_handle_ids
        if stale and not self._has_in_flight(key.handle_id):
            self._stale_handle_ids.discard(key.handle_id)

        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Extraction for {key} failed, not caching: {error}")
            return
        if stale:
            return

        self._results[key] = list(task.result())
        self._results.move_to_end(key)
        self._evict()

    def _has_in_flight(self, handle_id: str) -> bool:
        return any(key.handle_id == handle_id for key in self._in_flight)

    def _evict(self) -> None:
        if self.max_entries is None:
            return
        while len(self._results) > self.max_entries:
            evicted, _ = self._results.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted {evicted} from frame cache")

    def invalidate_handle(self, handle_id: str) -> int:
        """
        Drop every completed result for a video handle.

        Extractions still running for the handle finish, but their results
        are not stored.

        Returns:
            Number of entries removed
        """
        if self._has_in_flight(handle_id):
            self._stale_handle_ids.add(handle_id)
        stale = [key for key in self._results if key.handle_id == handle_id]
        for key in stale:
            del self._results[key]
        if stale:
            log_event(
                level="INFO",
                logger=__name__,
                function="invalidate_handle",
                operation="frame_cache",
                event="cache_invalidated",
                message=f"Invalidated {len(stale)} cached extractions for handle {handle_id}",
                context={"handle_id": handle_id, "entries": len(stale)}
            )
        return len(stale)

    def clear(self) -> None:
        """Drop all completed results."""
        self._results.clear()

    def stats(self) -> dict:
        return {
            "entries": len(self._results),
            "in_flight": len(self._in_flight),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "coalesced": self._coalesced,
            "evictions": self._evictions,
        }
