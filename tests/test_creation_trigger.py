"""Tests for capture dispatch on bookmark creation."""

from unittest.mock import AsyncMock

import pytest

from snapmark.core.creation_trigger import BookmarkCreated, CreationTrigger
from snapmark.core.document_store import BOOKMARKS
from snapmark.models.bookmark import Bookmark
from snapmark.models.capture import CaptureOutcome


def snapshot(**overrides):
    data = {
        "url": "https://example.com",
        "user_id": "alice",
        "screenshot_status": "pending",
    }
    data.update(overrides)
    return data


class TestShouldCapture:
    """Test the dispatch predicate."""

    def test_pending_with_url_and_owner(self):
        assert CreationTrigger.should_capture(snapshot())

    @pytest.mark.parametrize(
        "overrides",
        [
            {"screenshot_status": "completed"},
            {"screenshot_status": "processing"},
            {"url": ""},
            {"user_id": None},
        ],
    )
    def test_not_dispatched(self, overrides):
        assert not CreationTrigger.should_capture(snapshot(**overrides))


class TestPublish:
    """Test background dispatch."""

    @pytest.mark.asyncio
    async def test_dispatches_capture(self, document_store, make_orchestrator, stub_factory):
        bookmark = Bookmark(url="https://example.com", title="Example", user_id="alice")
        await document_store.set(BOOKMARKS, bookmark.id, bookmark.model_dump())
        trigger = CreationTrigger(make_orchestrator(stub_factory()))

        task = trigger.publish(
            BookmarkCreated(bookmark.id, document_store.get(BOOKMARKS, bookmark.id))
        )
        outcome = await task

        assert outcome.success is True
        assert document_store.get(BOOKMARKS, bookmark.id)["screenshot_status"] == "completed"
        assert trigger.pending == 0

    @pytest.mark.asyncio
    async def test_disabled_trigger_does_nothing(self):
        orchestrator = AsyncMock()
        trigger = CreationTrigger(orchestrator, enabled=False)

        assert trigger.publish(BookmarkCreated("b1", snapshot())) is None
        orchestrator.capture.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_pending_snapshot_ignored(self):
        orchestrator = AsyncMock()
        trigger = CreationTrigger(orchestrator)

        assert trigger.publish(BookmarkCreated("b1", snapshot(screenshot_status="completed"))) is None
        orchestrator.capture.assert_not_called()

    @pytest.mark.asyncio
    async def test_drain_waits_and_absorbs_errors(self):
        orchestrator = AsyncMock()
        orchestrator.capture.side_effect = [
            CaptureOutcome(success=False, error="The page took too long to load"),
            RuntimeError("store offline"),
        ]
        trigger = CreationTrigger(orchestrator)

        trigger.publish(BookmarkCreated("b1", snapshot()))
        trigger.publish(BookmarkCreated("b2", snapshot()))
        assert trigger.pending == 2

        await trigger.drain()

        assert trigger.pending == 0
        assert orchestrator.capture.await_count == 2
