"""Interactive screenshot capture and local thumbnail serving."""

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException
from fastapi.responses import FileResponse

from ..core.blob_store import BlobStoreError
from ..core.bookmark_manager import BookmarkAccessError, BookmarkNotFoundError
from ..core.document_store import DocumentNotFoundError, StorageError
from ..models.capture import CaptureOutcome
from .auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter()

# Mounted without the API prefix so issued URLs keep the storage URL shape
blob_router = APIRouter()


@router.post("/bookmarks/{bookmark_id}/screenshot", response_model=CaptureOutcome)
async def capture_screenshot(
    bookmark_id: str,
    authorization: Optional[str] = Header(default=None),
):
    """Capture the bookmark's thumbnail now and wait for the outcome.

    Capture failures are part of a successful response (``success: false``).
    """
    try:
        from . import bookmark_manager, capture_orchestrator, runtime_config

        user_id = require_user(authorization)
        bookmark = await bookmark_manager.get_bookmark(bookmark_id, user_id)

        if runtime_config is not None and not runtime_config.enable_screenshots:
            raise HTTPException(status_code=503, detail="Screenshot capture is disabled")

        logger.info(f"Interactive capture requested for bookmark {bookmark_id}")
        return await capture_orchestrator.capture(bookmark.id, bookmark.url, user_id)

    except (BookmarkNotFoundError, DocumentNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BookmarkAccessError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to capture screenshot for {bookmark_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal error: {e}")


@blob_router.get("/v0/b/{bucket}/o/{path:path}")
async def serve_blob(bucket: str, path: str):
    """Serve a stored thumbnail (public, like the issued URLs)."""
    from . import blob_store

    if bucket != blob_store.bucket:
        raise HTTPException(status_code=404, detail="Bucket not found")

    try:
        target = blob_store.resolve(path)
    except BlobStoreError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not target.is_file():
        raise HTTPException(status_code=404, detail=f"Blob not found: {path}")

    return FileResponse(target, media_type=blob_store.content_type(path))
