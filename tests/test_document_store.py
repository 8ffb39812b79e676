"""Tests for DocumentStore and file locking."""

import asyncio
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from snapmark.core.document_store import (
    BOOKMARKS,
    TAGS,
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    Increment,
    StorageError,
)
from snapmark.utils.file_lock import FileLocker, FileLockError


class TestFileLocker:
    """Test file locking functionality."""

    def test_file_lock_acquire_release(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            file_path = Path(temp_dir) / "doc.yaml"

            with FileLocker(file_path) as locker:
                assert locker.acquired
                assert locker.lock_path.exists()

            assert not locker.lock_path.exists()

    @pytest.mark.asyncio
    async def test_async_file_lock(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            file_path = Path(temp_dir) / "doc.yaml"

            async with FileLocker(file_path) as locker:
                assert locker.lock_path.exists()

            assert not locker.lock_path.exists()

    def test_concurrent_lock_times_out(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            file_path = Path(temp_dir) / "doc.yaml"

            with FileLocker(file_path, timeout=1.0):
                with pytest.raises(FileLockError, match="Could not acquire lock"):
                    with FileLocker(file_path, timeout=0.3):
                        pass


class TestDocumentStore:
    """Test DocumentStore reads and writes."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, document_store):
        doc = await document_store.add(BOOKMARKS, {"title": "Hello", "tags": ["a"]})

        fetched = document_store.get(BOOKMARKS, doc["id"])
        assert fetched["title"] == "Hello"
        assert fetched["id"] == doc["id"]
        assert (document_store.root / BOOKMARKS / f"{doc['id']}.yaml").exists()

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, document_store):
        doc = await document_store.add(BOOKMARKS, {"tags": ["a"]})

        fetched = document_store.get(BOOKMARKS, doc["id"])
        fetched["tags"].append("b")

        assert document_store.get(BOOKMARKS, doc["id"])["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_update_missing_document_raises(self, document_store):
        with pytest.raises(DocumentNotFoundError):
            await document_store.update(BOOKMARKS, "missing", {"title": "x"})

    @pytest.mark.asyncio
    async def test_increment_treats_missing_field_as_zero(self, document_store):
        doc = await document_store.add(BOOKMARKS, {"title": "x"})

        await document_store.update(BOOKMARKS, doc["id"], {"screenshot_retries": Increment(1)})
        await document_store.update(BOOKMARKS, doc["id"], {"screenshot_retries": Increment(1)})

        assert document_store.get(BOOKMARKS, doc["id"])["screenshot_retries"] == 2

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, document_store):
        doc = await document_store.add(BOOKMARKS, {"count": 0})

        await asyncio.gather(*[
            document_store.update(BOOKMARKS, doc["id"], {"count": Increment(1)})
            for _ in range(10)
        ])

        assert document_store.get(BOOKMARKS, doc["id"])["count"] == 10

    @pytest.mark.asyncio
    async def test_datetimes_stored_as_utc_strings(self, document_store):
        when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        doc = await document_store.add(BOOKMARKS, {"created_at": when})

        stored = document_store.get(BOOKMARKS, doc["id"])["created_at"]
        assert stored == "2026-01-02T03:04:05+00:00"

    @pytest.mark.asyncio
    async def test_merge_set_creates_and_merges(self, document_store):
        await document_store.set(TAGS, "python", {"count": Increment(-1)}, merge=True)
        await document_store.set(TAGS, "python", {"name": "Python", "count": Increment(1)}, merge=True)

        tag = document_store.get(TAGS, "python")
        assert tag["name"] == "Python"
        assert tag["count"] == 0

    @pytest.mark.asyncio
    async def test_batch_with_missing_update_writes_nothing(self, document_store):
        batch = document_store.batch()
        batch.set(BOOKMARKS, "new-doc", {"title": "new"})
        batch.update(BOOKMARKS, "missing", {"title": "x"})

        with pytest.raises(DocumentNotFoundError):
            await batch.commit()

        assert document_store.get(BOOKMARKS, "new-doc") is None
        assert not (document_store.root / BOOKMARKS / "new-doc.yaml").exists()

    @pytest.mark.asyncio
    async def test_delete_removes_file(self, document_store):
        doc = await document_store.add(BOOKMARKS, {"title": "x"})

        await document_store.delete(BOOKMARKS, doc["id"])

        assert document_store.get(BOOKMARKS, doc["id"]) is None
        assert not (document_store.root / BOOKMARKS / f"{doc['id']}.yaml").exists()

    @pytest.mark.asyncio
    async def test_invalid_document_id_rejected(self, document_store):
        with pytest.raises(StorageError, match="Invalid document id"):
            await document_store.set(BOOKMARKS, "../escape", {"title": "x"})

    @pytest.mark.asyncio
    async def test_reload_skips_corrupted_files(self, document_store):
        doc = await document_store.add(BOOKMARKS, {"title": "ok"})
        (document_store.root / BOOKMARKS / "broken.yaml").write_text("- just\n- a list\n")

        reloaded = DocumentStore(document_store.root)
        await reloaded.initialize()

        assert reloaded.get(BOOKMARKS, doc["id"])["title"] == "ok"
        assert reloaded.get(BOOKMARKS, "broken") is None
        assert len(reloaded.load_errors[BOOKMARKS]) == 1


class TestDocumentQueries:
    """Test filtering, ordering and cursors."""

    @pytest.fixture
    async def seeded(self, document_store):
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for i in range(5):
            await document_store.set(BOOKMARKS, f"b{i}", {
                "user_id": "alice" if i < 4 else "bob",
                "tags": ["even"] if i % 2 == 0 else ["odd"],
                "screenshot_url": None,
                "created_at": base + timedelta(days=i),
            })
        return document_store

    @pytest.mark.asyncio
    async def test_equality_and_ordering(self, seeded):
        docs = seeded.query(
            BOOKMARKS,
            filters=[FieldFilter("user_id", "==", "alice")],
            order_by="created_at",
            descending=True,
        )
        assert [d["id"] for d in docs] == ["b3", "b2", "b1", "b0"]

    @pytest.mark.asyncio
    async def test_none_matches_missing_or_null(self, seeded):
        await seeded.set(BOOKMARKS, "no-url-field", {"user_id": "carol"})

        docs = seeded.query(BOOKMARKS, filters=[FieldFilter("screenshot_url", "==", None)])
        assert len(docs) == 6

    @pytest.mark.asyncio
    async def test_array_contains_any(self, seeded):
        docs = seeded.query(BOOKMARKS, filters=[FieldFilter("tags", "array-contains-any", ["odd"])])
        assert sorted(d["id"] for d in docs) == ["b1", "b3"]

    @pytest.mark.asyncio
    async def test_datetime_range(self, seeded):
        docs = seeded.query(
            BOOKMARKS,
            filters=[
                FieldFilter("created_at", ">=", datetime(2026, 1, 2, tzinfo=timezone.utc)),
                FieldFilter("created_at", "<=", datetime(2026, 1, 3, tzinfo=timezone.utc)),
            ],
        )
        assert sorted(d["id"] for d in docs) == ["b1", "b2"]

    @pytest.mark.asyncio
    async def test_cursor_and_limit(self, seeded):
        first = seeded.query(BOOKMARKS, order_by="created_at", descending=True, limit=2)
        second = seeded.query(
            BOOKMARKS,
            order_by="created_at",
            descending=True,
            start_after=first[-1]["id"],
            limit=2,
        )

        assert [d["id"] for d in first] == ["b4", "b3"]
        assert [d["id"] for d in second] == ["b2", "b1"]

    @pytest.mark.asyncio
    async def test_count(self, seeded):
        assert seeded.count(BOOKMARKS, [FieldFilter("user_id", "==", "bob")]) == 1
