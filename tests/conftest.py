"""Shared fixtures: temp directories, a fake ffmpeg-free extractor, wired services."""

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from manualizer.core.config import Settings
from manualizer.core.exceptions import SourceNotFoundError
from manualizer.repositories.manual_repository import ManualRepository
from manualizer.services.frame_cache import FrameCache
from manualizer.services.frame_extractor import FrameExtractor
from manualizer.services.frame_service import FrameService
from manualizer.services.manual_service import ManualService
from manualizer.services.workspace import WorkspaceManager

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9"


class FakeFrameExtractor(FrameExtractor):
    """FrameExtractor that writes a small file instead of running ffmpeg."""

    def __init__(self, frames_dir, **kwargs):
        super().__init__(frames_dir, **kwargs)
        self.calls = []
        self.fail_with = None
        self.delay = 0.0
        self._lock = threading.Lock()

    def extract(self, handle, seconds, output_path):
        with self._lock:
            self.calls.append((handle.handle_id, seconds))
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if not Path(handle.video_path).is_file():
            raise SourceNotFoundError(str(handle.video_path))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(JPEG_BYTES)
        return output_path

    @property
    def seconds_requested(self):
        return [seconds for _, seconds in self.calls]


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every directory into a temp dir."""
    return Settings(
        _env_file=None,
        uploads_dir=tmp_path / "uploads",
        frames_dir=tmp_path / "frames",
        manuals_dir=tmp_path / "manuals",
        public_base_url="http://testserver",
        log_to_console=False,
    )


@pytest.fixture
def video_file(settings):
    """A stand-in video file in the uploads directory."""
    settings.uploads_dir.mkdir(parents=True, exist_ok=True)
    path = settings.uploads_dir / "demo.mov"
    path.write_bytes(b"not really a video")
    return path


@pytest.fixture
def frame_cache():
    return FrameCache()


@pytest.fixture
def workspace(settings, frame_cache):
    return WorkspaceManager(settings.frames_dir, frame_cache)


@pytest.fixture
def extractor(settings):
    return FakeFrameExtractor(settings.frames_dir, url_prefix=settings.frames_url_prefix)


@pytest.fixture
def frame_service(extractor, frame_cache, workspace, settings):
    return FrameService(
        extractor=extractor,
        cache=frame_cache,
        workspace=workspace,
        candidate_offsets=settings.candidate_offsets,
    )


@pytest.fixture
def repository(settings):
    return ManualRepository(settings.manuals_dir)


@pytest.fixture
def analysis_client():
    """Analysis client double returning a fixed step list."""
    client = MagicMock()
    client.analyze.return_value = [
        {"time": "00:03", "headline": "Open settings", "description": "Click the gear icon."},
        {"time": "07:05", "headline": "Save", "description": "Press Save."},
        {"time": "99:99", "headline": "Broken", "description": "Out of range time."},
    ]
    return client


@pytest.fixture
def manual_service(settings, repository, workspace, frame_service, analysis_client):
    return ManualService(
        settings=settings,
        repository=repository,
        workspace=workspace,
        frame_service=frame_service,
        analysis_client=analysis_client,
    )
