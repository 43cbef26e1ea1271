"""
Exception handlers for the FastAPI app.

Register these on a FastAPI app instance via `register_exception_handlers(app)`.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from .config import settings
from .core.exceptions import IngestionError

logger = logging.getLogger("betlink")


async def ingestion_error_handler(request: Request, exc: IngestionError):
    """Postback-style body for ingestion errors raised outside the webhook router."""
    content = {"success": False, "error": str(exc)}
    if exc.log_id is not None:
        content["logId"] = exc.log_id
    return JSONResponse(status_code=exc.http_status, content=content)


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)

    # In production, don't leak internal error details to clients
    if settings.is_local():
        error = f"Internal server error: {exc}"
    else:
        error = "Internal server error"

    return JSONResponse(status_code=500, content={"success": False, "error": error})


def register_exception_handlers(app):
    """Register all exception handlers on the given FastAPI app."""
    app.add_exception_handler(IngestionError, ingestion_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
