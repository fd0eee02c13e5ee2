"""
Error handling middleware that converts exceptions to HTTP responses.
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from manualizer.core.exceptions import ManualizerException
from manualizer.models.schemas import ErrorResponse
import logging

logger = logging.getLogger(__name__)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware to convert exceptions to appropriate HTTP responses."""

    async def dispatch(self, request: Request, call_next):
        """Process each request and handle exceptions."""
        try:
            response = await call_next(request)
            return response

        except ManualizerException as e:
            # Client errors log at WARNING
            log = logger.error if e.status_code >= 500 else logger.warning
            log(
                f"Application error: {e.message}",
                extra={
                    "context": {
                        "status_code": e.status_code,
                        "error_type": type(e).__name__,
                        "path": request.url.path,
                        "method": request.method,
                    }
                }
            )

            return JSONResponse(
                status_code=e.status_code,
                content=ErrorResponse(
                    error=e.message,
                    status_code=e.status_code
                ).model_dump(exclude_none=True)
            )

        except Exception as e:
            logger.error(
                f"Unexpected error: {str(e)}",
                exc_info=True,
                extra={
                    "context": {
                        "path": request.url.path,
                        "method": request.method,
                    }
                }
            )

            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    error="Internal server error",
                    detail=str(e),
                    status_code=500
                ).model_dump()
            )
