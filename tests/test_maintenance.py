"""Tests for the screenshot URL repair job."""

import pytest

from snapmark.core.blob_store import BlobStore
from snapmark.core.document_store import BOOKMARKS
from snapmark.core.maintenance import repair_screenshot_urls


@pytest.fixture
async def seeded(document_store, blob_store):
    path = "screenshots/alice/a.jpg"
    await document_store.set(BOOKMARKS, "current", {
        "screenshot_url": blob_store.public_url(path),
        "screenshot_path": path,
    })
    await document_store.set(BOOKMARKS, "no-thumbnail", {"screenshot_url": None})
    public = BlobStore(blob_store.root, bucket=blob_store.bucket, url_mode="public")
    await document_store.set(BOOKMARKS, "stale", {
        "screenshot_url": public.public_url("screenshots/alice/b.jpg"),
        "screenshot_path": "screenshots/alice/b.jpg",
    })
    return document_store


@pytest.mark.asyncio
async def test_repair_rewrites_stale_urls(seeded, blob_store):
    result = await repair_screenshot_urls(seeded, blob_store)

    assert result == {"total": 3, "updated": 1, "skipped": 2}
    assert seeded.get(BOOKMARKS, "stale")["screenshot_url"] == blob_store.public_url(
        "screenshots/alice/b.jpg"
    )


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(seeded, blob_store):
    before = seeded.get(BOOKMARKS, "stale")["screenshot_url"]

    result = await repair_screenshot_urls(seeded, blob_store, dry_run=True)

    assert result["updated"] == 1
    assert seeded.get(BOOKMARKS, "stale")["screenshot_url"] == before
