"""Bookmark manager for CRUD operations."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..models.bookmark import Bookmark, ScreenshotStatus
from ..utils.timestamps import utc_now
from .blob_store import BlobStore, BlobStoreError
from .creation_trigger import BookmarkCreated
from .document_store import BOOKMARKS, DocumentStore, FieldFilter, StorageError
from .tag_service import TagService

logger = logging.getLogger(__name__)

MAX_TAG_FILTERS = 10
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Distinguishes "leave unchanged" from an explicit None in updates
UNSET: Any = object()


class BookmarkNotFoundError(Exception):
    """Bookmark not found error."""

    pass


class BookmarkAccessError(Exception):
    """Bookmark belongs to another user."""

    pass


class InvalidScreenshotURLError(ValueError):
    """Screenshot URL was not issued by this system's blob store."""

    pass


def _matches_search(bookmark: Bookmark, search: str) -> bool:
    needle = search.lower()
    return (
        needle in bookmark.title.lower()
        or needle in bookmark.description.lower()
        or needle in bookmark.url.lower()
        or any(needle in tag.lower() for tag in bookmark.tags)
    )


class BookmarkManager:
    """Manages bookmark CRUD operations and business logic."""

    def __init__(
        self,
        store: DocumentStore,
        tag_service: TagService,
        blob_store: BlobStore,
        on_created: Optional[Callable[[BookmarkCreated], Any]] = None,
    ):
        """Initialize bookmark manager.

        Args:
            store: Document store holding bookmarks
            tag_service: Maintains tag counters
            blob_store: Thumbnail storage (for deletion and URL checks)
            on_created: Receives a BookmarkCreated message after each create
        """
        self.store = store
        self.tag_service = tag_service
        self.blob_store = blob_store
        self.on_created = on_created

    async def create_bookmark(
        self,
        user_id: str,
        url: str,
        title: str,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        folder_id: Optional[str] = None,
    ) -> Bookmark:
        """Create a new bookmark with a pending screenshot.

        Raises:
            ValidationError: If bookmark data is invalid
            StorageError: If storage operation fails
        """
        now = utc_now()
        bookmark = Bookmark(
            url=url,
            title=title,
            description=description,
            tags=tags or [],
            folder_id=folder_id or None,
            user_id=user_id,
            screenshot_status=ScreenshotStatus.PENDING,
            screenshot_retries=0,
            created_at=now,
            updated_at=now,
        )

        batch = self.store.batch().set(BOOKMARKS, bookmark.id, bookmark.model_dump())
        self.tag_service.stage_counts(batch, tags_to_add=bookmark.tags)
        await batch.commit()

        logger.info(f"Created bookmark {bookmark.id} for user {user_id}: {bookmark.title}")

        if self.on_created is not None:
            snapshot = self.store.get(BOOKMARKS, bookmark.id) or {}
            try:
                self.on_created(BookmarkCreated(bookmark_id=bookmark.id, snapshot=snapshot))
            except Exception as e:
                # Capture is best effort; the bookmark already exists
                logger.error(f"Failed to publish creation of {bookmark.id}: {e}")

        return bookmark

    async def get_bookmark(self, bookmark_id: str, user_id: str) -> Bookmark:
        """Get a bookmark owned by ``user_id``.

        Raises:
            BookmarkNotFoundError: If bookmark doesn't exist
            BookmarkAccessError: If another user owns it
        """
        return self._to_bookmark(self._get_owned(bookmark_id, user_id))

    async def list_bookmarks(
        self,
        user_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        last_doc_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        folder_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """List a user's bookmarks, newest first.

        Args:
            user_id: Owner
            limit: Page size (1-100)
            last_doc_id: Cursor from the previous page
            tags: Match bookmarks carrying any of these (first 10 used)
            search: Case-insensitive substring over title, description,
                URL and tags, applied to the fetched page
            date_from: Inclusive lower bound on created_at
            date_to: Inclusive upper bound on created_at
            folder_id: Restrict to a folder; "" means unfiled

        Returns:
            {"data": [Bookmark], "last_doc_id": str | None, "has_more": bool}
        """
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        docs = self.store.query(
            BOOKMARKS,
            filters=self._filters(user_id, tags, date_from, date_to, folder_id),
            order_by="created_at",
            descending=True,
            start_after=last_doc_id or None,
            limit=limit + 1,
        )

        has_more = len(docs) > limit
        page = docs[:limit]
        bookmarks = [b for b in (self._to_bookmark(d, strict=False) for d in page) if b]

        if search and search.strip():
            bookmarks = [b for b in bookmarks if _matches_search(b, search.strip())]

        return {
            "data": bookmarks,
            "last_doc_id": page[-1]["id"] if page else None,
            "has_more": has_more,
        }

    async def count_bookmarks(
        self,
        user_id: str,
        tags: Optional[List[str]] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        folder_id: Optional[str] = None,
    ) -> int:
        """Count a user's bookmarks matching the list filters."""
        filters = self._filters(user_id, tags, date_from, date_to, folder_id)

        if not (search and search.strip()):
            return self.store.count(BOOKMARKS, filters)

        docs = self.store.query(BOOKMARKS, filters=filters)
        bookmarks = [b for b in (self._to_bookmark(d, strict=False) for d in docs) if b]
        return sum(1 for b in bookmarks if _matches_search(b, search.strip()))

    async def update_bookmark(
        self,
        bookmark_id: str,
        user_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        folder_id: Optional[str] = UNSET,
        screenshot_url: Optional[str] = UNSET,
    ) -> Bookmark:
        """Update bookmark fields.

        ``folder_id`` and ``screenshot_url`` accept None as a value, so they
        default to ``UNSET``. A screenshot URL must be one issued by the blob
        store for this user's thumbnails and marks the screenshot completed;
        None resets the screenshot to pending.

        Raises:
            BookmarkNotFoundError: If bookmark doesn't exist
            BookmarkAccessError: If another user owns it
            InvalidScreenshotURLError: If the screenshot URL is not ours
            ValidationError: If updated data is invalid
            StorageError: If storage operation fails
        """
        current = self._get_owned(bookmark_id, user_id)

        update_data: Dict[str, Any] = {}
        if title is not None:
            update_data["title"] = title
        if description is not None:
            update_data["description"] = description
        if tags is not None:
            update_data["tags"] = tags
        if folder_id is not UNSET:
            update_data["folder_id"] = folder_id

        if screenshot_url is not UNSET:
            if screenshot_url is None:
                update_data["screenshot_url"] = None
                update_data["screenshot_status"] = ScreenshotStatus.PENDING
            else:
                path = self.blob_store.path_from_url(screenshot_url)
                if path is None or not self.blob_store.is_screenshot_of(path, user_id):
                    raise InvalidScreenshotURLError(
                        "Screenshot URL must be a thumbnail issued by this server"
                    )
                update_data["screenshot_url"] = screenshot_url
                update_data["screenshot_path"] = path
                update_data["screenshot_status"] = ScreenshotStatus.COMPLETED
                update_data["screenshot_error"] = None

        update_data["updated_at"] = utc_now()

        # Validate the merged record; only the changed fields are written
        merged = Bookmark.model_validate({**current, **update_data})
        fields = {key: getattr(merged, key) for key in update_data}

        batch = self.store.batch().update(BOOKMARKS, bookmark_id, fields)
        if "tags" in fields:
            old_tags = current.get("tags") or []
            added = [t for t in merged.tags if t not in old_tags]
            removed = [t for t in old_tags if t not in merged.tags]
            self.tag_service.stage_counts(batch, added, removed)
        await batch.commit()

        logger.info(f"Updated bookmark {bookmark_id}: {sorted(fields)}")

        return self._to_bookmark(self.store.get(BOOKMARKS, bookmark_id))

    async def delete_bookmark(self, bookmark_id: str, user_id: str) -> None:
        """Delete a bookmark, its thumbnail and its tag references.

        Thumbnail removal is best effort: a blob store error is logged and
        the bookmark is deleted regardless.

        Raises:
            BookmarkNotFoundError: If bookmark doesn't exist
            BookmarkAccessError: If another user owns it
            StorageError: If storage operation fails
        """
        current = self._get_owned(bookmark_id, user_id)

        screenshot_path = current.get("screenshot_path")
        if screenshot_path:
            try:
                await self.blob_store.delete(screenshot_path)
            except BlobStoreError as e:
                logger.error(f"Failed to delete thumbnail {screenshot_path}: {e}")

        batch = self.store.batch().delete(BOOKMARKS, bookmark_id)
        self.tag_service.stage_counts(batch, tags_to_remove=current.get("tags") or [])
        await batch.commit()

        logger.info(f"Deleted bookmark {bookmark_id}")

    def _get_owned(self, bookmark_id: str, user_id: str) -> Dict[str, Any]:
        doc = self.store.get(BOOKMARKS, bookmark_id)
        if doc is None:
            raise BookmarkNotFoundError(f"Bookmark not found: {bookmark_id}")
        if doc.get("user_id") != user_id:
            raise BookmarkAccessError(f"Bookmark {bookmark_id} belongs to another user")
        return doc

    @staticmethod
    def _filters(
        user_id: str,
        tags: Optional[List[str]],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
        folder_id: Optional[str],
    ) -> List[FieldFilter]:
        filters = [FieldFilter("user_id", "==", user_id)]
        if folder_id is not None:
            filters.append(FieldFilter("folder_id", "==", folder_id or None))
        if tags:
            filters.append(FieldFilter("tags", "array-contains-any", list(tags)[:MAX_TAG_FILTERS]))
        if date_from is not None:
            filters.append(FieldFilter("created_at", ">=", date_from))
        if date_to is not None:
            filters.append(FieldFilter("created_at", "<=", date_to))
        return filters

    @staticmethod
    def _to_bookmark(doc: Dict[str, Any], strict: bool = True) -> Optional[Bookmark]:
        try:
            return Bookmark.model_validate(doc)
        except ValidationError as e:
            if strict:
                raise StorageError(f"Stored bookmark {doc.get('id')} is invalid: {e}") from e
            logger.warning(f"Skipping invalid stored bookmark {doc.get('id')}: {e}")
            return None
