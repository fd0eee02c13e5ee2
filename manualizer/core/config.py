"""
Application configuration using Pydantic Settings.
All configuration values can be overridden via environment variables or .env file.
"""
from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    app_name: str = "Video Manual API"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    log_to_console: bool = True

    # Paths (relative to backend root)
    uploads_dir: Path = Path("uploads")
    frames_dir: Path = Path("uploads/frames")
    manuals_dir: Path = Path("data/manuals")

    # Public URL layout
    public_base_url: str = "http://localhost:8000"
    frames_url_prefix: str = "/frames"
    videos_url_prefix: str = "/videos"
    video_extensions: List[str] = [".mov", ".mp4", ".webm", ".mkv", ".avi"]

    # Frame extraction
    ffmpeg_binary: str = "ffmpeg"
    ffmpeg_timeout: float = 30.0
    frame_size: str = "1280x720"
    jpeg_quality: int = 3  # ffmpeg -q:v scale, 2-31, lower is better
    candidate_offsets: List[int] = [-2, -1, 0, 1, 2]

    # None keeps every completed extraction until the video is replaced
    frame_cache_max_entries: Optional[int] = None

    # AI analysis model (OpenAI-compatible chat completions endpoint)
    analysis_model_url: str = "http://localhost:6010/v1/chat/completions"
    analysis_model_id: Optional[str] = None
    analysis_api_key: Optional[str] = None
    analysis_timeout: int = 600
    analysis_temperature: float = 0.2
    max_tokens: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def get_video_url(self, video_filename: str) -> str:
        """Get the public URL the analysis model uses to fetch an uploaded video."""
        prefix = self.videos_url_prefix.rstrip("/")
        return f"{self.public_base_url.rstrip('/')}{prefix}/{Path(video_filename).name}"


# Global settings instance (lazily initialized)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
