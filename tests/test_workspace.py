"""Tests for workspace lifecycle: attach, purge, handle supersession."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from manualizer.core.exceptions import SourceNotFoundError
from manualizer.models.domain import ExtractionMode
from manualizer.services.frame_cache import FrameKey
from manualizer.utils.timestamp import parse_timestamp


class TestAttachVideo:
    """Test attaching videos to a manual."""

    @pytest.mark.asyncio
    async def test_attach_creates_workspace_and_handle(self, workspace, video_file):
        handle = await workspace.attach_video(1, video_file)

        assert handle.manual_id == 1
        assert handle.video_path == video_file
        assert workspace.get_workspace_dir(1).is_dir()
        assert workspace.current_handle(1) == handle

    @pytest.mark.asyncio
    async def test_reattach_purges_previous_frames(self, workspace, video_file):
        await workspace.attach_video(1, video_file)
        workspace_dir = workspace.get_workspace_dir(1)
        (workspace_dir / "old-0001+0.jpg").write_bytes(b"x")
        (workspace_dir / "old-0002+0.jpg").write_bytes(b"x")

        await workspace.attach_video(1, video_file)

        assert list(workspace_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_reattach_leaves_other_manuals_alone(self, workspace, video_file):
        await workspace.attach_video(1, video_file)
        await workspace.attach_video(2, video_file)
        keep = workspace.get_workspace_dir(2) / "keep-0001+0.jpg"
        keep.write_bytes(b"x")

        await workspace.attach_video(1, video_file)

        assert keep.exists()

    @pytest.mark.asyncio
    async def test_reattach_issues_new_handle_and_invalidates_cache(self, workspace, frame_cache, video_file):
        first = await workspace.attach_video(1, video_file)
        key = FrameKey(first.handle_id, parse_timestamp("00:05"), ExtractionMode.SINGLE)

        async def extract():
            return []

        await frame_cache.get_or_extract(key, extract)
        assert frame_cache.peek(key) == []

        second = await workspace.attach_video(1, video_file)

        assert second.handle_id != first.handle_id
        assert frame_cache.peek(key) is None

    @pytest.mark.asyncio
    async def test_purge_failure_is_not_fatal(self, workspace, video_file):
        await workspace.attach_video(1, video_file)
        (workspace.get_workspace_dir(1) / "locked.jpg").write_bytes(b"x")

        with patch.object(Path, "unlink", side_effect=PermissionError("read-only")):
            handle = await workspace.attach_video(1, video_file)

        assert workspace.current_handle(1) == handle

    @pytest.mark.asyncio
    async def test_purge_of_missing_directory(self, workspace, video_file):
        handle = await workspace.attach_video(7, video_file)
        assert handle.manual_id == 7


class TestBeginExtraction:
    """Test the extraction start check."""

    @pytest.mark.asyncio
    async def test_current_handle_may_extract(self, workspace, video_file):
        handle = await workspace.attach_video(1, video_file)
        await workspace.begin_extraction(handle)

    @pytest.mark.asyncio
    async def test_superseded_handle_is_refused(self, workspace, video_file):
        old = await workspace.attach_video(1, video_file)
        await workspace.attach_video(1, video_file)

        with pytest.raises(SourceNotFoundError):
            await workspace.begin_extraction(old)

    @pytest.mark.asyncio
    async def test_extraction_waits_for_running_purge(self, workspace, video_file):
        handle = await workspace.attach_video(1, video_file)
        lock = workspace._lock_for(1)

        await lock.acquire()
        waiter = asyncio.ensure_future(workspace.begin_extraction(handle))
        await asyncio.sleep(0)
        assert not waiter.done()

        lock.release()
        await waiter

    def test_restore_handle_keeps_id_without_purge(self, workspace, video_file):
        workspace_dir = workspace.get_workspace_dir(3)
        workspace_dir.mkdir(parents=True)
        existing = workspace_dir / "abcd1234-0005+0.jpg"
        existing.write_bytes(b"x")

        handle = workspace.restore_handle(3, video_file, "abcd1234")

        assert handle.handle_id == "abcd1234"
        assert workspace.current_handle(3) == handle
        assert existing.exists()
