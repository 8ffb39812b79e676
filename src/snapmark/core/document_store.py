"""File-backed document store with an in-memory index.

Each collection is a directory of ``<doc_id>.yaml`` files. Reads are served
from the index; every write re-reads the document from disk under its file
lock, applies the change and writes it back, so a single-document update is
atomic even when another process (e.g. the sweep cron job) shares the
directory.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from ..utils.file_lock import FileLocker, FileLockError
from ..utils.timestamps import parse_timestamp
from ..utils.yaml_handler import (
    YAMLError,
    load_document_from_file,
    save_document_to_file,
    to_storable,
)

logger = logging.getLogger(__name__)

BOOKMARKS = "bookmarks"
TAGS = "tags"

_MISSING = object()


class StorageError(Exception):
    """Storage-related error."""

    pass


class DocumentNotFoundError(StorageError):
    """Update or delete addressed a document that does not exist."""

    pass


@dataclass(frozen=True)
class Increment:
    """Field value that adds ``amount`` to the stored number (missing = 0)."""

    amount: int = 1


@dataclass(frozen=True)
class FieldFilter:
    """One query predicate.

    Supported ops: ``==``, ``!=``, ``<``, ``<=``, ``>``, ``>=``,
    ``in`` and ``array-contains-any``. A missing field compares equal to None.
    """

    field: str
    op: str
    value: Any


def _field_value(doc: Dict[str, Any], field: str) -> Any:
    value = doc.get(field)
    if field.endswith("_at"):
        parsed = parse_timestamp(value)
        if parsed is not None:
            return parsed
    return value


def _compare_value(doc_value: Any, filter_value: Any) -> Tuple[Any, Any]:
    if isinstance(filter_value, datetime):
        return parse_timestamp(doc_value), parse_timestamp(filter_value)
    return doc_value, filter_value


def _matches(doc: Dict[str, Any], flt: FieldFilter) -> bool:
    doc_value, value = _compare_value(_field_value(doc, flt.field), flt.value)

    if flt.op == "==":
        return doc_value == value
    if flt.op == "!=":
        return doc_value != value
    if flt.op == "in":
        return doc_value in value
    if flt.op == "array-contains-any":
        return isinstance(doc_value, list) and any(v in doc_value for v in value)

    if doc_value is None or value is None:
        return False
    try:
        if flt.op == "<":
            return doc_value < value
        if flt.op == "<=":
            return doc_value <= value
        if flt.op == ">":
            return doc_value > value
        if flt.op == ">=":
            return doc_value >= value
    except TypeError:
        return False

    raise StorageError(f"Unsupported filter operator: {flt.op}")


def _apply_fields(current: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``fields`` into a copy of ``current``, resolving Increment values."""
    updated = dict(current)
    for key, value in fields.items():
        if isinstance(value, Increment):
            base = updated.get(key) or 0
            if not isinstance(base, (int, float)):
                raise StorageError(f"Cannot increment non-numeric field {key!r}")
            updated[key] = base + value.amount
        else:
            updated[key] = to_storable(value)
    return updated


class WriteBatch:
    """Collects writes and applies them together on ``commit``.

    All target documents are resolved before anything is written; a batch
    that references a missing document for ``update`` writes nothing.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: List[Tuple[str, str, str, Dict[str, Any], bool]] = []

    def __len__(self) -> int:
        return len(self._ops)

    def set(
        self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False
    ) -> "WriteBatch":
        self._ops.append(("set", collection, doc_id, data, merge))
        return self

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> "WriteBatch":
        self._ops.append(("update", collection, doc_id, fields, False))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(("delete", collection, doc_id, {}, False))
        return self

    async def commit(self) -> None:
        if not self._ops:
            return
        await self._store._commit(self._ops)
        self._ops = []


class DocumentStore:
    """Manages document files, the in-memory index, and batched writes."""

    def __init__(self, root: Path, collections: Sequence[str] = (BOOKMARKS, TAGS)):
        """Initialize document store.

        Args:
            root: Directory holding one sub-directory per collection
            collections: Collection names to manage
        """
        self.root = Path(root)
        self.collections = tuple(collections)
        self.index: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.load_errors: Dict[str, List[str]] = {}
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create collection directories and load every document.

        Raises:
            StorageError: If the root is not usable
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            for name in self.collections:
                (self.root / name).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot access document store at {self.root}: {e}") from e

        for name in self.collections:
            await self.load_collection(name)

    async def load_collection(self, collection: str) -> None:
        """(Re)load all documents of a collection into memory.

        Corrupted files are logged and skipped.
        """
        directory = self._collection_dir(collection)
        self.index[collection] = {}
        self.load_errors[collection] = []

        yaml_files = sorted(directory.glob("*.yaml"))
        for yaml_file in yaml_files:
            try:
                data = await asyncio.to_thread(load_document_from_file, yaml_file)
            except YAMLError as e:
                error_msg = f"Corrupted document {yaml_file.name}: {e}"
                logger.warning(error_msg)
                self.load_errors[collection].append(error_msg)
                continue

            doc_id = str(data.get("id") or yaml_file.stem)
            data["id"] = doc_id
            self.index[collection][doc_id] = data

        logger.info(
            f"Loaded {len(self.index[collection])} documents from {collection} "
            f"({len(self.load_errors[collection])} errors)"
        )

    # Reads

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of a document, or None if it does not exist."""
        doc = self._docs(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Filter, order and page through a collection.

        Args:
            collection: Collection name
            filters: Predicates that must all hold
            order_by: Field to sort on; documents missing it sort last
            descending: Reverse the sort
            start_after: Cursor; results begin after this document id.
                An unknown cursor is ignored.
            limit: Maximum number of documents returned

        Returns:
            Copies of the matching documents
        """
        filters = list(filters)
        docs = [d for d in self._docs(collection).values() if all(_matches(d, f) for f in filters)]

        if order_by:
            present = [d for d in docs if _field_value(d, order_by) is not None]
            missing = [d for d in docs if _field_value(d, order_by) is None]
            present.sort(key=lambda d: d["id"], reverse=descending)
            try:
                present.sort(key=lambda d: _field_value(d, order_by), reverse=descending)
            except TypeError as e:
                raise StorageError(f"Cannot order {collection} by {order_by}: {e}") from e
            docs = present + sorted(missing, key=lambda d: d["id"])
        else:
            docs.sort(key=lambda d: d["id"])

        if start_after is not None:
            ids = [d["id"] for d in docs]
            if start_after in ids:
                docs = docs[ids.index(start_after) + 1:]

        if limit is not None:
            docs = docs[:limit]

        return copy.deepcopy(docs)

    def count(self, collection: str, filters: Iterable[FieldFilter] = ()) -> int:
        filters = list(filters)
        return sum(1 for d in self._docs(collection).values() if all(_matches(d, f) for f in filters))

    # Writes

    async def add(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a document with a fresh id (or ``data['id']`` if given)."""
        doc_id = str(data.get("id") or uuid4())
        return await self.set(collection, doc_id, {**data, "id": doc_id})

    async def set(
        self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False
    ) -> Dict[str, Any]:
        """Write a whole document, or merge fields into it when ``merge`` is set."""
        batch = self.batch().set(collection, doc_id, data, merge=merge)
        await batch.commit()
        return self.get(collection, doc_id)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Atomically merge fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist
            StorageError: If the write fails
        """
        batch = self.batch().update(collection, doc_id, fields)
        await batch.commit()
        return self.get(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""
        await self.batch().delete(collection, doc_id).commit()

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def _commit(self, ops: List[Tuple[str, str, str, Dict[str, Any], bool]]) -> None:
        async with self._write_lock:
            paths = []
            for _, collection, doc_id, _, _ in ops:
                path = self._document_path(collection, doc_id)
                if path not in paths:
                    paths.append(path)

            lockers = [FileLocker(p) for p in sorted(paths)]
            try:
                for locker in lockers:
                    await locker.__aenter__()

                planned = await self._plan(ops)

                for (collection, doc_id), data in planned.items():
                    path = self._document_path(collection, doc_id)
                    if data is None:
                        if path.exists():
                            await asyncio.to_thread(path.unlink)
                        self._docs(collection).pop(doc_id, None)
                    else:
                        await asyncio.to_thread(save_document_to_file, data, path)
                        self._docs(collection)[doc_id] = data

            except FileLockError as e:
                raise StorageError(f"Could not lock documents for write: {e}") from e
            except YAMLError as e:
                raise StorageError(f"Failed to write document: {e}") from e
            except OSError as e:
                raise StorageError(f"Unexpected error writing documents: {e}") from e
            finally:
                for locker in reversed(lockers):
                    await locker.__aexit__(None, None, None)

    async def _plan(
        self, ops: List[Tuple[str, str, str, Dict[str, Any], bool]]
    ) -> Dict[Tuple[str, str], Optional[Dict[str, Any]]]:
        """Resolve every op against the on-disk state; nothing is written here."""
        planned: Dict[Tuple[str, str], Optional[Dict[str, Any]]] = {}

        for kind, collection, doc_id, data, merge in ops:
            key = (collection, doc_id)
            current = planned.get(key, _MISSING)
            if current is _MISSING:
                current = await self._read_from_disk(collection, doc_id)

            if kind == "delete":
                planned[key] = None
            elif kind == "update":
                if current is None:
                    raise DocumentNotFoundError(f"Document not found: {collection}/{doc_id}")
                planned[key] = _apply_fields(current, data)
            elif merge and current is not None:
                planned[key] = _apply_fields(current, data)
            else:
                planned[key] = _apply_fields({}, data)

            if planned[key] is not None:
                planned[key]["id"] = doc_id

        return planned

    async def _read_from_disk(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        path = self._document_path(collection, doc_id)
        if not path.exists():
            return None
        try:
            return await asyncio.to_thread(load_document_from_file, path)
        except YAMLError as e:
            raise StorageError(f"Failed to read {collection}/{doc_id}: {e}") from e

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        if collection not in self.collections:
            raise StorageError(f"Unknown collection: {collection}")
        return self.index.setdefault(collection, {})

    def _collection_dir(self, collection: str) -> Path:
        if collection not in self.collections:
            raise StorageError(f"Unknown collection: {collection}")
        return self.root / collection

    def _document_path(self, collection: str, doc_id: str) -> Path:
        if not doc_id or "/" in doc_id or "\\" in doc_id or doc_id in (".", ".."):
            raise StorageError(f"Invalid document id: {doc_id!r}")
        return self._collection_dir(collection) / f"{doc_id}.yaml"
