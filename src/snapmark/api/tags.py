"""Tag listing endpoint."""

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException

from ..core.document_store import StorageError
from .auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/tags", response_model=dict)
async def list_tags(authorization: Optional[str] = Header(default=None)):
    """Most used tags, highest count first."""
    try:
        from . import tag_service

        require_user(authorization)
        tags = tag_service.list_tags()
        return {"tags": tags, "total": len(tags)}

    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list tags: {e}")
        raise HTTPException(status_code=500, detail=f"Internal error: {e}")
