"""
LocalRepo API Dependencies.

Shared dependencies for FastAPI routes.
Requires Python 3.11+.
"""

from fastapi import HTTPException, Request

from archive.builder import Archive
from publisher.state import ArchiveCell


def get_archive_cell(request: Request) -> ArchiveCell:
    """Get the archive cell the application was created with."""
    return request.app.state.archive_cell


def require_archive(request: Request) -> Archive:
    """
    Dependency that requires a built archive.

    Raises HTTPException if nothing has been built yet.
    """
    archive = get_archive_cell(request).get()
    if archive is None:
        raise HTTPException(
            status_code=503,
            detail="zip file for directory is not available",
        )
    return archive
