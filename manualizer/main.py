from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from manualizer.core.config import get_settings
from manualizer.core.logging import setup_logging
from manualizer.middleware.logging import RequestLoggingMiddleware
from manualizer.middleware.error_handling import ErrorHandlingMiddleware
from manualizer.api.endpoints import videos, manuals
from manualizer.api.deps import cleanup_resources, get_frame_cache

settings = get_settings()

# Initialize logging system
setup_logging(log_level=settings.log_level, log_dir=settings.log_dir, console=settings.log_to_console)

app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)

# Add middleware (order matters - last added runs first)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(ErrorHandlingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(videos.router, prefix="/api", tags=["videos"])
app.include_router(manuals.router, prefix="/api", tags=["manuals"])

# Mount static files
settings.frames_dir.mkdir(parents=True, exist_ok=True)
app.mount(settings.frames_url_prefix, StaticFiles(directory=str(settings.frames_dir)), name="frames")

settings.uploads_dir.mkdir(parents=True, exist_ok=True)
app.mount(settings.videos_url_prefix, StaticFiles(directory=str(settings.uploads_dir)), name="videos")


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": settings.app_name, "version": settings.app_version}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "frame_cache": get_frame_cache().stats()}


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup resources on shutdown."""
    cleanup_resources()
