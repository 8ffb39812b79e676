"""Bookmark CRUD endpoints."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException, Query
from pydantic import BaseModel, ValidationError

from ..core.bookmark_manager import (
    UNSET,
    BookmarkAccessError,
    BookmarkNotFoundError,
    InvalidScreenshotURLError,
)
from ..core.document_store import StorageError
from ..models.bookmark import Bookmark
from .auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter()


# Request/Response Models
class CreateBookmarkRequest(BaseModel):
    """Request model for creating a bookmark."""

    url: str
    title: str
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    folder_id: Optional[str] = None


class UpdateBookmarkRequest(BaseModel):
    """Request model for updating a bookmark.

    ``folder_id`` and ``screenshot_url`` may be sent as null; omitting them
    leaves them unchanged.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    folder_id: Optional[str] = None
    screenshot_url: Optional[str] = None


# Endpoints
@router.post("/bookmarks", response_model=Bookmark, status_code=201)
async def create_bookmark(
    request: CreateBookmarkRequest,
    authorization: Optional[str] = Header(default=None),
):
    """Create a new bookmark; its thumbnail is captured in the background."""
    try:
        from . import bookmark_manager

        user_id = require_user(authorization)
        bookmark = await bookmark_manager.create_bookmark(
            user_id=user_id,
            url=request.url,
            title=request.title,
            description=request.description,
            tags=request.tags,
            folder_id=request.folder_id,
        )
        return bookmark

    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to create bookmark: {e}")
        raise HTTPException(status_code=500, detail=f"Internal error: {e}")


@router.get("/bookmarks", response_model=dict)
async def list_bookmarks(
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    last_doc_id: Optional[str] = Query(None, description="Cursor from the previous page"),
    tags: Optional[List[str]] = Query(None, description="Match any of these tags (max 10)"),
    search: Optional[str] = Query(None, description="Text search over the page"),
    date_from: Optional[datetime] = Query(None, description="Created at or after"),
    date_to: Optional[datetime] = Query(None, description="Created at or before"),
    folder_id: Optional[str] = Query(None, description="Folder id; empty for unfiled"),
    authorization: Optional[str] = Header(default=None),
):
    """List the caller's bookmarks, newest first."""
    try:
        from . import bookmark_manager

        user_id = require_user(authorization)
        return await bookmark_manager.list_bookmarks(
            user_id=user_id,
            limit=limit,
            last_doc_id=last_doc_id,
            tags=tags,
            search=search,
            date_from=date_from,
            date_to=date_to,
            folder_id=folder_id,
        )

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list bookmarks: {e}")
        raise HTTPException(status_code=500, detail=f"Internal error: {e}")


@router.get("/bookmarks/count", response_model=dict)
async def count_bookmarks(
    tags: Optional[List[str]] = Query(None),
    search: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    folder_id: Optional[str] = Query(None),
    authorization: Optional[str] = Header(default=None),
):
    """Count the caller's bookmarks matching the list filters."""
    try:
        from . import bookmark_manager

        user_id = require_user(authorization)
        count = await bookmark_manager.count_bookmarks(
            user_id=user_id,
            tags=tags,
            search=search,
            date_from=date_from,
            date_to=date_to,
            folder_id=folder_id,
        )
        return {"count": count}

    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to count bookmarks: {e}")
        raise HTTPException(status_code=500, detail=f"Internal error: {e}")


@router.get("/bookmarks/{bookmark_id}", response_model=Bookmark)
async def get_bookmark(
    bookmark_id: str,
    authorization: Optional[str] = Header(default=None),
):
    """Get a specific bookmark by ID."""
    try:
        from . import bookmark_manager

        user_id = require_user(authorization)
        return await bookmark_manager.get_bookmark(bookmark_id, user_id)

    except BookmarkNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BookmarkAccessError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get bookmark {bookmark_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal error: {e}")


@router.put("/bookmarks/{bookmark_id}", response_model=Bookmark)
async def update_bookmark(
    bookmark_id: str,
    request: UpdateBookmarkRequest,
    authorization: Optional[str] = Header(default=None),
):
    """Update a bookmark."""
    try:
        from . import bookmark_manager

        user_id = require_user(authorization)
        sent = request.model_fields_set
        bookmark = await bookmark_manager.update_bookmark(
            bookmark_id=bookmark_id,
            user_id=user_id,
            title=request.title,
            description=request.description,
            tags=request.tags,
            folder_id=request.folder_id if "folder_id" in sent else UNSET,
            screenshot_url=request.screenshot_url if "screenshot_url" in sent else UNSET,
        )
        return bookmark

    except BookmarkNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BookmarkAccessError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidScreenshotURLError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update bookmark {bookmark_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal error: {e}")


@router.delete("/bookmarks/{bookmark_id}", response_model=dict)
async def delete_bookmark(
    bookmark_id: str,
    authorization: Optional[str] = Header(default=None),
):
    """Delete a bookmark and its thumbnail."""
    try:
        from . import bookmark_manager

        user_id = require_user(authorization)
        await bookmark_manager.delete_bookmark(bookmark_id, user_id)
        return {"success": True, "message": "Bookmark deleted"}

    except BookmarkNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BookmarkAccessError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete bookmark {bookmark_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal error: {e}")
