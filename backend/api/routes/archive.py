"""
LocalRepo Archive Routes.

Serves the current directory archive.
Requires Python 3.11+.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.dependencies import require_archive
from archive.builder import Archive
from utils.logger import get_logger

router = APIRouter()
logger = get_logger("api.archive")


def _archive_response(archive: Archive, wanted: str | None) -> Response:
    """Serve archive bytes, or 410 if a different hash was requested."""
    if wanted and wanted != archive.content_hash:
        logger.info("stale_archive_requested", wanted=wanted, current=archive.content_hash)
        raise HTTPException(
            status_code=410,
            detail=f"zip hash is {archive.content_hash!r} but wanted {wanted!r}",
        )

    logger.debug("archive_served", sha256=archive.content_hash, size=archive.size)
    return Response(
        content=archive.data,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'inline; filename="{archive.filename}"',
        },
    )


@router.get("/")
async def get_archive(
    sha256: str | None = Query(default=None, description="Expected content hash"),
    archive: Archive = Depends(require_archive),
) -> Response:
    """Serve the current archive, optionally checking its hash."""
    return _archive_response(archive, sha256)


@router.get("/by-sha256/{sha256}.zip")
async def get_archive_by_hash(
    sha256: str,
    archive: Archive = Depends(require_archive),
) -> Response:
    """Serve the current archive if it still has the requested hash."""
    return _archive_response(archive, sha256)
