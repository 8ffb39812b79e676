"""One-off data maintenance jobs."""

import logging
from typing import Dict

from .blob_store import BlobStore
from .document_store import BOOKMARKS, DocumentStore

logger = logging.getLogger(__name__)

REPAIR_BATCH_SIZE = 500


async def repair_screenshot_urls(
    store: DocumentStore, blob_store: BlobStore, dry_run: bool = False
) -> Dict[str, int]:
    """Re-issue stored thumbnail URLs from their blob paths.

    Needed after changing the blob URL mode or base URLs: every bookmark
    with both a ``screenshot_url`` and a ``screenshot_path`` gets the URL
    the blob store would issue today.

    Returns:
        {"total": n, "updated": n, "skipped": n}
    """
    docs = store.query(BOOKMARKS)
    updated = 0
    skipped = 0

    batch = store.batch()
    for doc in docs:
        url = doc.get("screenshot_url")
        path = doc.get("screenshot_path")
        if not url or not path:
            skipped += 1
            continue

        expected = blob_store.public_url(path)
        if url == expected:
            skipped += 1
            continue

        updated += 1
        if not dry_run:
            batch.update(BOOKMARKS, doc["id"], {"screenshot_url": expected})
            if len(batch) >= REPAIR_BATCH_SIZE:
                await batch.commit()
                logger.info(f"Repair batch committed ({REPAIR_BATCH_SIZE} bookmarks)")
                batch = store.batch()

    if len(batch):
        await batch.commit()

    result = {"total": len(docs), "updated": updated, "skipped": skipped}
    logger.info(f"Screenshot URL repair completed: {result}")
    return result
