"""Tests for CaptureOrchestrator state transitions."""

import asyncio
import re
import time
from unittest.mock import AsyncMock

import pytest

from snapmark.core.blob_store import BlobStoreError
from snapmark.core.capture_engine import CaptureEngine
from snapmark.core.capture_orchestrator import CaptureOrchestrator
from snapmark.core.document_store import BOOKMARKS, DocumentNotFoundError
from snapmark.core.image_processor import ThumbnailProcessor
from snapmark.models.bookmark import Bookmark
from snapmark.models.capture import BrowserLaunchConfig


async def seed_bookmark(store, user_id="alice", url="https://example.com"):
    bookmark = Bookmark(url=url, title="Example", user_id=user_id)
    await store.set(BOOKMARKS, bookmark.id, bookmark.model_dump())
    return bookmark


class TestCaptureOrchestrator:
    """Test one capture attempt end to end."""

    @pytest.mark.asyncio
    async def test_successful_capture(self, document_store, blob_store, make_orchestrator, stub_factory):
        bookmark = await seed_bookmark(document_store)
        orchestrator = make_orchestrator(stub_factory())

        outcome = await orchestrator.capture(bookmark.id, bookmark.url, "alice")

        assert outcome.success is True
        assert outcome.error is None

        doc = document_store.get(BOOKMARKS, bookmark.id)
        assert doc["screenshot_status"] == "completed"
        assert doc["screenshot_url"] == outcome.screenshot_url
        assert doc["screenshot_error"] is None
        assert re.fullmatch(r"screenshots/alice/[0-9a-f-]{36}\.jpg", doc["screenshot_path"])
        assert blob_store.path_from_url(doc["screenshot_url"]) == doc["screenshot_path"]
        assert blob_store.exists(doc["screenshot_path"])

    @pytest.mark.asyncio
    async def test_failed_capture_records_message(self, document_store, make_orchestrator, stub_factory):
        bookmark = await seed_bookmark(document_store)
        orchestrator = make_orchestrator(stub_factory(error=Exception("net::ERR_NAME_NOT_RESOLVED")))

        outcome = await orchestrator.capture(bookmark.id, bookmark.url, "alice")

        assert outcome.success is False
        assert outcome.screenshot_url is None
        assert outcome.error == "The site could not be reached"

        doc = document_store.get(BOOKMARKS, bookmark.id)
        assert doc["screenshot_status"] == "failed"
        assert doc["screenshot_url"] is None
        assert doc["screenshot_error"] == "The site could not be reached"

    @pytest.mark.asyncio
    async def test_upload_failure(self, document_store, blob_store, make_orchestrator, stub_factory):
        bookmark = await seed_bookmark(document_store)
        orchestrator = make_orchestrator(stub_factory())
        blob_store.write = AsyncMock(side_effect=BlobStoreError("disk full"))

        outcome = await orchestrator.capture(bookmark.id, bookmark.url, "alice")

        assert outcome.success is False
        assert outcome.error == "The thumbnail could not be stored"
        assert document_store.get(BOOKMARKS, bookmark.id)["screenshot_status"] == "failed"

    @pytest.mark.asyncio
    async def test_slow_post_processing_fails_capture(self, document_store, blob_store, stub_factory):
        class SlowProcessor(ThumbnailProcessor):
            def process(self, raw):
                time.sleep(0.5)
                return super().process(raw)

        bookmark = await seed_bookmark(document_store)
        engine = CaptureEngine(
            config=BrowserLaunchConfig(capture_budget_seconds=0.1, settle_delay_seconds=0),
            browser_factory=stub_factory(),
            processor=SlowProcessor(),
        )
        orchestrator = CaptureOrchestrator(document_store, blob_store, engine)

        outcome = await orchestrator.capture(bookmark.id, bookmark.url, "alice")

        assert outcome.success is False
        assert outcome.error == "The page took too long to load"
        assert document_store.get(BOOKMARKS, bookmark.id)["screenshot_status"] == "failed"

    @pytest.mark.asyncio
    async def test_upload_bounded_by_remaining_budget(self, document_store, blob_store, make_orchestrator, stub_factory):
        """Test an upload that outlives the capture budget is recorded as an upload failure."""

        async def hanging_write(*args, **kwargs):
            await asyncio.sleep(5)

        bookmark = await seed_bookmark(document_store)
        orchestrator = make_orchestrator(stub_factory(), budget=1.0)
        blob_store.write = hanging_write

        outcome = await orchestrator.capture(bookmark.id, bookmark.url, "alice")

        assert outcome.success is False
        assert outcome.error == "The thumbnail could not be stored"
        doc = document_store.get(BOOKMARKS, bookmark.id)
        assert doc["screenshot_status"] == "failed"
        assert doc["screenshot_url"] is None

    @pytest.mark.asyncio
    async def test_retry_after_failure_clears_error(self, document_store, make_orchestrator, stub_factory):
        bookmark = await seed_bookmark(document_store)
        await make_orchestrator(stub_factory(error=RuntimeError("crash"))).capture(
            bookmark.id, bookmark.url, "alice"
        )

        outcome = await make_orchestrator(stub_factory()).capture(bookmark.id, bookmark.url, "alice")

        doc = document_store.get(BOOKMARKS, bookmark.id)
        assert outcome.success is True
        assert doc["screenshot_status"] == "completed"
        assert doc["screenshot_error"] is None

    @pytest.mark.asyncio
    async def test_missing_bookmark_propagates(self, make_orchestrator, stub_factory):
        factory = stub_factory()
        orchestrator = make_orchestrator(factory)

        with pytest.raises(DocumentNotFoundError):
            await orchestrator.capture("missing", "https://example.com", "alice")

        assert factory.browsers == []
