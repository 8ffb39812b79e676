"""Drives one bookmark through a screenshot attempt and records the outcome."""

import asyncio
import logging

from ..models.bookmark import ScreenshotStatus
from ..models.capture import CaptureError, CaptureFailure, CaptureOutcome
from ..utils.timestamps import utc_now
from .blob_store import BlobStore, BlobStoreError
from .capture_engine import CaptureEngine
from .document_store import BOOKMARKS, DocumentStore

logger = logging.getLogger(__name__)


class CaptureOrchestrator:
    """Moves a bookmark ``processing -> completed | failed``.

    Capture-domain failures are recorded on the bookmark and returned as an
    unsuccessful ``CaptureOutcome``; document store errors propagate.
    """

    def __init__(self, store: DocumentStore, blob_store: BlobStore, engine: CaptureEngine):
        self.store = store
        self.blob_store = blob_store
        self.engine = engine

    async def capture(self, bookmark_id: str, url: str, user_id: str) -> CaptureOutcome:
        """Capture, upload and record a thumbnail for one bookmark.

        Args:
            bookmark_id: Bookmark document id
            url: Page to render
            user_id: Owner; namespaces the blob key

        Returns:
            CaptureOutcome with the thumbnail URL or the failure message

        Raises:
            StorageError: If a bookmark state write fails
        """
        logger.info(f"Starting capture for bookmark {bookmark_id}: {url}")

        await self.store.update(BOOKMARKS, bookmark_id, {
            "screenshot_status": ScreenshotStatus.PROCESSING,
            "screenshot_url": None,
            "updated_at": utc_now(),
        })

        # The upload gets whatever the engine left of the capture budget
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.engine.config.capture_budget_seconds

        try:
            image = await self.engine.capture(url)

            path = self.blob_store.screenshot_path(user_id, image.extension)
            upload = self.blob_store.write(
                path,
                image.data,
                content_type=image.content_type,
                metadata={
                    "bookmark_id": bookmark_id,
                    "user_id": user_id,
                    "captured_at": utc_now(),
                },
            )
            try:
                await asyncio.wait_for(upload, timeout=max(deadline - loop.time(), 0))
            except asyncio.TimeoutError as e:
                raise CaptureError(
                    CaptureFailure.UPLOAD_FAILED, "upload exceeded the capture budget"
                ) from e
            except BlobStoreError as e:
                raise CaptureError(CaptureFailure.UPLOAD_FAILED, str(e)) from e

        except CaptureError as e:
            logger.warning(f"Capture failed for bookmark {bookmark_id} ({e.kind.value}): {e.detail}")
            await self.store.update(BOOKMARKS, bookmark_id, {
                "screenshot_status": ScreenshotStatus.FAILED,
                "screenshot_url": None,
                "screenshot_error": e.message,
                "updated_at": utc_now(),
            })
            return CaptureOutcome(success=False, error=e.message)

        screenshot_url = self.blob_store.public_url(path)
        await self.store.update(BOOKMARKS, bookmark_id, {
            "screenshot_status": ScreenshotStatus.COMPLETED,
            "screenshot_url": screenshot_url,
            "screenshot_path": path,
            "screenshot_error": None,
            "updated_at": utc_now(),
        })

        logger.info(f"Capture completed for bookmark {bookmark_id}")
        return CaptureOutcome(success=True, screenshot_url=screenshot_url)
