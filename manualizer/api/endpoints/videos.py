"""
Video-related API endpoints.
Handles listing uploaded videos and creating manuals from them.
"""
import asyncio
import shutil
import time
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from manualizer.api.deps import get_app_settings, get_manual_service
from manualizer.core.config import Settings
from manualizer.core.exceptions import ValidationException
from manualizer.core.logging import get_request_id, log_operation_complete, log_operation_start
from manualizer.models.schemas import ManualResponse, VideoResponse
from manualizer.services.manual_service import ManualService
from manualizer.utils.video import get_video_duration, get_video_files, resolve_existing_video, unique_upload_path

router = APIRouter()


@router.get("/videos", response_model=list[VideoResponse])
async def list_videos(settings: Settings = Depends(get_app_settings)):
    """List previously uploaded videos."""
    start_time = time.time()
    log_operation_start(
        logger="manualizer.api.endpoints.videos",
        function="list_videos",
        operation="list_videos",
        message="Listing uploaded videos",
        context={"request_id": get_request_id()}
    )

    video_files = get_video_files(settings.uploads_dir, settings.video_extensions)
    videos = []
    for video_file in video_files:
        duration = await asyncio.to_thread(get_video_duration, video_file)
        videos.append(VideoResponse(
            filename=video_file.name,
            title=video_file.stem.replace("-", " ").replace("_", " "),
            url=f"{settings.videos_url_prefix.rstrip('/')}/{video_file.name}",
            duration=duration,
        ))

    log_operation_complete(
        logger="manualizer.api.endpoints.videos",
        function="list_videos",
        operation="list_videos",
        message="Successfully listed videos",
        context={"video_count": len(videos)},
        duration=time.time() - start_time
    )
    return videos


def _store_upload(upload: UploadFile, target: Path) -> None:
    with open(target, "wb") as f:
        shutil.copyfileobj(upload.file, f)


@router.post("/upload", response_model=ManualResponse, status_code=201)
async def upload_video(
    video: Optional[UploadFile] = File(None),
    existing_video: Optional[str] = Form(None),
    manual_id: Optional[int] = Form(None),
    settings: Settings = Depends(get_app_settings),
    service: ManualService = Depends(get_manual_service),
):
    """
    Create a manual from a new upload or a previously uploaded video.

    Passing ``manual_id`` attaches the video to that manual instead, replacing
    its frames and steps.
    """
    if video is not None and video.filename:
        target = unique_upload_path(settings.uploads_dir, video.filename)
        await asyncio.to_thread(_store_upload, video, target)
        video_path = target
    elif existing_video:
        video_path = resolve_existing_video(settings.uploads_dir, existing_video)
    else:
        raise ValidationException("send a video file or the name of an existing video")

    manual = await service.create_from_video(video_path, manual_id=manual_id)
    return ManualResponse(**manual.to_dict())
