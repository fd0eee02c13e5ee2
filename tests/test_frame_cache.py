"""Tests for the coalescing frame cache."""

import asyncio
from pathlib import Path

import pytest

from manualizer.core.exceptions import ExtractionFailedError
from manualizer.models.domain import ExtractionMode, Frame
from manualizer.services.frame_cache import FrameCache, FrameKey
from manualizer.utils.timestamp import parse_timestamp


def _key(handle_id="h1", time_text="07:05", mode=ExtractionMode.CANDIDATES):
    return FrameKey(handle_id, parse_timestamp(time_text), mode)


def _frames(key):
    return [
        Frame(
            handle_id=key.handle_id,
            timestamp=key.timestamp,
            offset=0,
            seconds=key.timestamp.total_seconds,
            path=Path(f"/tmp/{key.handle_id}.jpg"),
            url=f"/frames/1/{key.handle_id}.jpg",
        )
    ]


class CountingExtraction:
    """Extraction double that counts calls and can be held open."""

    def __init__(self, key, error=None):
        self.key = key
        self.error = error
        self.calls = 0
        self.release = asyncio.Event()
        self.release.set()

    async def __call__(self):
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return _frames(self.key)


class TestCoalescing:
    """Test one extraction per key."""

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_extraction(self):
        cache = FrameCache()
        key = _key()
        extraction = CountingExtraction(key)
        extraction.release.clear()

        waiters = [asyncio.ensure_future(cache.get_or_extract(key, extraction)) for _ in range(5)]
        await asyncio.sleep(0)
        assert cache.is_in_flight(key)
        extraction.release.set()
        results = await asyncio.gather(*waiters)

        assert extraction.calls == 1
        assert all(result == results[0] for result in results)
        stats = cache.stats()
        assert stats["misses"] == 1
        assert stats["coalesced"] == 4
        assert stats["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_completed_result_is_served_from_cache(self):
        cache = FrameCache()
        key = _key()
        extraction = CountingExtraction(key)

        first = await cache.get_or_extract(key, extraction)
        second = await cache.get_or_extract(key, extraction)

        assert extraction.calls == 1
        assert first == second
        assert cache.peek(key) == first
        assert cache.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_modes_are_separate_keys(self):
        cache = FrameCache()
        single = _key(mode=ExtractionMode.SINGLE)
        candidates = _key(mode=ExtractionMode.CANDIDATES)

        await cache.get_or_extract(single, CountingExtraction(single))
        assert cache.peek(candidates) is None

    @pytest.mark.asyncio
    async def test_returned_list_is_a_copy(self):
        cache = FrameCache()
        key = _key()
        result = await cache.get_or_extract(key, CountingExtraction(key))
        result.clear()
        assert len(cache.peek(key)) == 1


class TestFailures:
    """Test that failures reach every waiter and are not cached."""

    @pytest.mark.asyncio
    async def test_failure_reaches_all_waiters_and_is_retried(self):
        cache = FrameCache()
        key = _key()
        error = ExtractionFailedError("demo.mov", 425, "boom")
        failing = CountingExtraction(key, error=error)
        failing.release.clear()

        waiters = [asyncio.ensure_future(cache.get_or_extract(key, failing)) for _ in range(3)]
        await asyncio.sleep(0)
        failing.release.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert failing.calls == 1
        assert all(result is error for result in results)
        assert cache.peek(key) is None
        assert not cache.is_in_flight(key)

        retry = CountingExtraction(key)
        assert await cache.get_or_extract(key, retry) == _frames(key)
        assert retry.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_extraction(self):
        cache = FrameCache()
        key = _key()
        extraction = CountingExtraction(key)
        extraction.release.clear()

        first = asyncio.ensure_future(cache.get_or_extract(key, extraction))
        second = asyncio.ensure_future(cache.get_or_extract(key, extraction))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0)
        extraction.release.set()

        assert await second == _frames(key)
        assert first.cancelled()
        assert extraction.calls == 1
        assert cache.peek(key) == _frames(key)


class TestEvictionAndInvalidation:
    """Test bounded size and per-handle invalidation."""

    @pytest.mark.asyncio
    async def test_lru_eviction_when_bounded(self):
        cache = FrameCache(max_entries=2)
        a, b, c = _key(time_text="00:01"), _key(time_text="00:02"), _key(time_text="00:03")

        await cache.get_or_extract(a, CountingExtraction(a))
        await cache.get_or_extract(b, CountingExtraction(b))
        # Touch a so b becomes least recently used
        await cache.get_or_extract(a, CountingExtraction(a))
        await cache.get_or_extract(c, CountingExtraction(c))

        assert cache.peek(a) is not None
        assert cache.peek(b) is None
        assert cache.peek(c) is not None
        assert cache.stats()["evictions"] == 1

    def test_max_entries_must_be_positive(self):
        with pytest.raises(ValueError):
            FrameCache(max_entries=0)

    @pytest.mark.asyncio
    async def test_invalidate_handle_drops_only_that_handle(self):
        cache = FrameCache()
        old, other = _key(handle_id="old"), _key(handle_id="other")
        await cache.get_or_extract(old, CountingExtraction(old))
        await cache.get_or_extract(other, CountingExtraction(other))

        assert cache.invalidate_handle("old") == 1
        assert cache.peek(old) is None
        assert cache.peek(other) is not None

    @pytest.mark.asyncio
    async def test_result_of_invalidated_handle_is_not_stored(self):
        cache = FrameCache()
        key = _key(handle_id="old")
        extraction = CountingExtraction(key)
        extraction.release.clear()

        waiter = asyncio.ensure_future(cache.get_or_extract(key, extraction))
        await asyncio.sleep(0)
        cache.invalidate_handle("old")
        extraction.release.set()

        assert await waiter == _frames(key)
        assert cache.peek(key) is None

    @pytest.mark.asyncio
    async def test_stale_handle_forgotten_after_last_in_flight_task(self):
        cache = FrameCache()
        first, second = _key(handle_id="old", time_text="00:01"), _key(handle_id="old", time_text="00:02")
        first_extraction, second_extraction = CountingExtraction(first), CountingExtraction(second)
        first_extraction.release.clear()
        second_extraction.release.clear()

        first_waiter = asyncio.ensure_future(cache.get_or_extract(first, first_extraction))
        second_waiter = asyncio.ensure_future(cache.get_or_extract(second, second_extraction))
        await asyncio.sleep(0)
        cache.invalidate_handle("old")

        first_extraction.release.set()
        await first_waiter
        assert cache._stale_handle_ids == {"old"}

        second_extraction.release.set()
        await second_waiter
        assert cache._stale_handle_ids == set()
        assert cache.peek(first) is None
        assert cache.peek(second) is None

    def test_invalidate_idle_handle_keeps_no_marker(self):
        cache = FrameCache()
        cache.invalidate_handle("old")
        assert cache._stale_handle_ids == set()

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = FrameCache()
        key = _key()
        await cache.get_or_extract(key, CountingExtraction(key))
        cache.clear()
        assert cache.stats()["entries"] == 0
