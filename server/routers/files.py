"""
Files Router
============

API endpoints for artifact content retrieval.

Implements:
- GET /public/file/:id/download - Stream a file as an attachment
- GET /public/file/:id/view - Stream a file inline (browser display)

``id`` is either the numeric File id or its uid.
"""

import logging
import mimetypes
from pathlib import PurePosixPath
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from api.artifact_store import ArtifactStore
from api.database import get_db
from api.tracker import get_file

from ..dependencies import get_artifact_store
from ..exceptions import NotFoundError

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public/file", tags=["files"])

# Report types test runs produce; registered here so the answer does not
# depend on the host's mime.types
REPORT_CONTENT_TYPES = {
    ".log": "text/plain",
    ".txt": "text/plain",
    ".out": "text/plain",
    ".csv": "text/csv",
    ".md": "text/markdown",
    ".html": "text/html",
    ".htm": "text/html",
    ".xml": "application/xml",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".webm": "video/webm",
    ".zip": "application/zip",
}
for _ext, _type in REPORT_CONTENT_TYPES.items():
    mimetypes.add_type(_type, _ext)


def _guess_content_type(filename: str) -> str:
    """
    Guess the content type from the original filename.

    Returns:
        MIME type string (defaults to application/octet-stream)
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type:
        if mime_type.startswith("text/"):
            return f"{mime_type}; charset=utf-8"
        return mime_type
    return "application/octet-stream"


def _content_disposition(disposition: str, filename: str) -> str:
    """Build a Content-Disposition value, RFC 5987-encoding non-ASCII names."""
    quoted = quote(filename)
    if quoted == filename:
        return f'{disposition}; filename="{filename}"'
    return f"{disposition}; filename*=utf-8''{quoted}"


def _stream_file(file_id: str, disposition: str, db: Session, store: ArtifactStore) -> StreamingResponse:
    record = get_file(db, file_id)
    if record is None:
        raise NotFoundError("file", file_id)

    file_path = store.resolve(record.path)
    if file_path is None:
        raise NotFoundError("file", file_id, message=f"File {file_id} content not found on disk")

    display_name = PurePosixPath(record.original_name.replace("\\", "/")).name or file_path.name
    file_size = file_path.stat().st_size

    _logger.debug("Serving file %s (%s, %d bytes)", record.uid, disposition, file_size)
    return StreamingResponse(
        store.iter_chunks(file_path),
        media_type=_guess_content_type(display_name),
        headers={
            "Content-Disposition": _content_disposition(disposition, display_name),
            "Content-Length": str(file_size),
            "X-File-Uid": record.uid,
        }
    )


@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    db: Session = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store),
):
    """
    Download a stored artifact.

    Raises:
        404: If the File is not found or its content is gone from disk
    """
    return _stream_file(file_id, "attachment", db, store)


@router.get("/{file_id}/view")
async def view_file(
    file_id: str,
    db: Session = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store),
):
    """
    Display a stored artifact inline.

    Raises:
        404: If the File is not found or its content is gone from disk
    """
    return _stream_file(file_id, "inline", db, store)
