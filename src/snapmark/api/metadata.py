"""Page metadata endpoint for pre-filling new bookmarks."""

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from ..core.page_metadata import MetadataFetchError, MetadataTimeoutError
from ..utils.url_utils import URLValidationError
from .auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter()


class MetadataRequest(BaseModel):
    """Request model for a metadata lookup."""

    url: str


@router.post("/metadata", response_model=dict)
async def get_page_metadata(
    request: MetadataRequest,
    authorization: Optional[str] = Header(default=None),
):
    """Fetch a page and return its title and description."""
    try:
        from . import metadata_fetcher

        require_user(authorization)
        return await metadata_fetcher.fetch(request.url)

    except URLValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except MetadataTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except MetadataFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch metadata for {request.url}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch metadata: {e}")
