"""
Dependency injection for FastAPI endpoints.
Provides singleton instances and factory functions for services.
"""
from functools import lru_cache
from typing import Optional

from manualizer.core.config import Settings, get_settings
from manualizer.repositories.manual_repository import ManualRepository
from manualizer.services.ai.analysis_client import AnalysisClient
from manualizer.services.frame_cache import FrameCache
from manualizer.services.frame_extractor import FrameExtractor
from manualizer.services.frame_service import FrameService
from manualizer.services.manual_service import ManualService
from manualizer.services.workspace import WorkspaceManager

# Global singleton instances
_frame_cache: Optional[FrameCache] = None
_workspace: Optional[WorkspaceManager] = None
_manual_service: Optional[ManualService] = None


@lru_cache()
def get_app_settings() -> Settings:
    """
    Get application settings (cached).

    Returns:
        Settings instance
    """
    return get_settings()


def get_frame_cache() -> FrameCache:
    """
    Get the frame cache singleton.

    Returns:
        FrameCache instance shared by every request
    """
    global _frame_cache
    if _frame_cache is None:
        settings = get_app_settings()
        _frame_cache = FrameCache(max_entries=settings.frame_cache_max_entries)
    return _frame_cache


def get_workspace_manager() -> WorkspaceManager:
    global _workspace
    if _workspace is None:
        settings = get_app_settings()
        _workspace = WorkspaceManager(settings.frames_dir, get_frame_cache())
    return _workspace


def get_frame_extractor(settings: Settings = None) -> FrameExtractor:
    """
    Get a frame extractor configured from settings.

    Args:
        settings: Application settings (optional, will get default if not provided)
    """
    if settings is None:
        settings = get_app_settings()
    return FrameExtractor(
        frames_dir=settings.frames_dir,
        url_prefix=settings.frames_url_prefix,
        ffmpeg_binary=settings.ffmpeg_binary,
        frame_size=settings.frame_size,
        jpeg_quality=settings.jpeg_quality,
        timeout=settings.ffmpeg_timeout,
    )


def get_manual_repository(settings: Settings = None) -> ManualRepository:
    if settings is None:
        settings = get_app_settings()
    return ManualRepository(settings.manuals_dir)


def get_analysis_client() -> AnalysisClient:
    return AnalysisClient(get_app_settings())


def get_manual_service() -> ManualService:
    """
    Get manual service singleton.

    The service holds the per-manual locks, so it must not be rebuilt per request.

    Returns:
        ManualService instance
    """
    global _manual_service
    if _manual_service is None:
        settings = get_app_settings()
        frame_service = FrameService(
            extractor=get_frame_extractor(settings),
            cache=get_frame_cache(),
            workspace=get_workspace_manager(),
            candidate_offsets=settings.candidate_offsets,
        )
        _manual_service = ManualService(
            settings=settings,
            repository=get_manual_repository(settings),
            workspace=get_workspace_manager(),
            frame_service=frame_service,
            analysis_client=get_analysis_client(),
        )
    return _manual_service


def cleanup_resources():
    """Drop cached frames and singletons on application shutdown."""
    global _frame_cache, _workspace, _manual_service
    if _frame_cache is not None:
        _frame_cache.clear()
    _frame_cache = None
    _workspace = None
    _manual_service = None
