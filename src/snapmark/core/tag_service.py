"""Denormalized tag popularity counters."""

import logging
from typing import Iterable, List

from ..models.tag import Tag, normalize_tag_id
from ..utils.timestamps import parse_timestamp, utc_now
from .document_store import TAGS, DocumentStore, Increment, WriteBatch

logger = logging.getLogger(__name__)

MAX_POPULAR_TAGS = 100


class TagService:
    """Maintains one counter document per tag slug."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def update_counts(
        self, tags_to_add: Iterable[str] = (), tags_to_remove: Iterable[str] = ()
    ) -> None:
        """Increment attached tags and decrement detached ones in one batch."""
        batch = self.stage_counts(self.store.batch(), tags_to_add, tags_to_remove)
        if len(batch):
            await batch.commit()

    def stage_counts(
        self,
        batch: WriteBatch,
        tags_to_add: Iterable[str] = (),
        tags_to_remove: Iterable[str] = (),
    ) -> WriteBatch:
        """Add counter writes to an existing batch.

        Attaching also records the tag's display casing. Counters are never
        deleted, even when they reach zero.
        """
        now = utc_now()

        for tag in tags_to_add:
            tag_id = self._tag_id(tag)
            if tag_id:
                batch.set(TAGS, tag_id, {
                    "name": tag.strip(),
                    "count": Increment(1),
                    "updated_at": now,
                }, merge=True)

        for tag in tags_to_remove:
            tag_id = self._tag_id(tag)
            if tag_id:
                batch.set(TAGS, tag_id, {
                    "count": Increment(-1),
                    "updated_at": now,
                }, merge=True)

        return batch

    def list_tags(self, limit: int = MAX_POPULAR_TAGS) -> List[Tag]:
        """Most used tags first; counters below 1 are hidden."""
        docs = self.store.query(TAGS, order_by="count", descending=True, limit=limit)
        return [
            Tag(
                name=doc.get("name") or doc["id"],
                count=doc.get("count") or 0,
                updated_at=parse_timestamp(doc.get("updated_at")),
            )
            for doc in docs
            if (doc.get("count") or 0) > 0
        ]

    @staticmethod
    def _tag_id(tag: str) -> str:
        if not isinstance(tag, str) or not tag.strip():
            return ""
        tag_id = normalize_tag_id(tag)
        if not tag_id:
            logger.warning(f"Tag {tag!r} has no usable characters; counter not updated")
        return tag_id
