"""
LocalRepo API Main Application.

FastAPI application serving the current directory archive.
Requires Python 3.11+.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from publisher.state import ArchiveCell
from utils.config import get_settings
from utils.logger import get_logger


logger = get_logger("api")


def create_app(cell: ArchiveCell | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        cell: Archive cell to serve from; a fresh empty one if omitted

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    application = FastAPI(
        title=settings.app_name,
        description="Serves a live directory as a hash-addressed zip archive",
        version=settings.app_version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
    )
    application.state.archive_cell = cell if cell is not None else ArchiveCell()

    # Global exception handler
    @application.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if settings.is_development else "An unexpected error occurred",
            },
        )

    # Health check endpoint
    @application.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        archive = application.state.archive_cell.get()
        return {
            "status": "healthy" if archive else "not_ready",
            "version": settings.app_version,
            "sha256": archive.content_hash if archive else None,
            "files": archive.file_count if archive else 0,
        }

    # Import and include routers here to avoid circular imports
    from api.routes import archive

    application.include_router(archive.router, tags=["Archive"])

    return application
