"""Path-addressed blob storage on the local filesystem."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote, urlparse
from uuid import uuid4

from ..utils.timestamps import utc_now
from ..utils.yaml_handler import (
    YAMLError,
    load_document_from_file,
    save_document_to_file,
)

logger = logging.getLogger(__name__)

SCREENSHOT_PREFIX = "screenshots"
_META_SUFFIX = ".meta.yaml"


class BlobStoreError(Exception):
    """Blob storage error."""

    pass


class BlobStore:
    """Stores blobs under ``<root>/<bucket>/<path>`` and issues their URLs.

    URLs follow the ``/v0/b/<bucket>/o/<url-encoded path>?alt=media`` shape.
    In ``local`` mode they point at this application's blob route, in
    ``public`` mode at the public base URL.
    """

    def __init__(
        self,
        root: Path,
        bucket: str,
        url_mode: str = "local",
        local_base_url: str = "http://127.0.0.1:8000",
        public_base_url: str = "https://firebasestorage.googleapis.com",
    ):
        if url_mode not in ("local", "public"):
            raise BlobStoreError(f"Unknown URL mode: {url_mode}")

        self.root = Path(root)
        self.bucket = bucket
        self.url_mode = url_mode
        self.local_base_url = local_base_url.rstrip("/")
        self.public_base_url = public_base_url.rstrip("/")

    @property
    def bucket_dir(self) -> Path:
        return self.root / self.bucket

    @property
    def base_url(self) -> str:
        return self.local_base_url if self.url_mode == "local" else self.public_base_url

    def initialize(self) -> None:
        try:
            self.bucket_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BlobStoreError(f"Cannot access blob store at {self.bucket_dir}: {e}") from e

    @staticmethod
    def screenshot_path(user_id: str, extension: str = "jpg") -> str:
        """New random blob key for a user's thumbnail."""
        return f"{SCREENSHOT_PREFIX}/{user_id}/{uuid4()}.{extension}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/v0/b/{self.bucket}/o/{quote(path, safe='')}?alt=media"

    def path_from_url(self, url: str) -> Optional[str]:
        """Blob key encoded in a URL issued by this store, or None.

        URLs issued under either base are recognized so records survive a
        switch of URL mode.
        """
        if not isinstance(url, str):
            return None

        for base in (self.local_base_url, self.public_base_url):
            prefix = f"{base}/v0/b/{self.bucket}/o/"
            if url.startswith(prefix):
                encoded = urlparse(url[len(prefix) - 1:]).path.lstrip("/")
                path = unquote(encoded)
                segments = path.split("/")
                if "\\" in path or any(s in ("", ".", "..") for s in segments):
                    return None
                return path
        return None

    def is_issued_url(self, url: str) -> bool:
        return self.path_from_url(url) is not None

    def is_screenshot_of(self, path: str, user_id: str) -> bool:
        """Whether a blob key resolves inside ``user_id``'s screenshot folder."""
        try:
            target = self.resolve(path)
        except BlobStoreError:
            return False
        owner_dir = (self.bucket_dir / SCREENSHOT_PREFIX / user_id).resolve()
        return owner_dir in target.parents

    def resolve(self, path: str) -> Path:
        """Filesystem location of a blob key.

        Raises:
            BlobStoreError: If the key escapes the bucket directory
        """
        if not path or path.startswith("/"):
            raise BlobStoreError(f"Invalid blob path: {path!r}")

        bucket_dir = self.bucket_dir.resolve()
        target = (bucket_dir / path).resolve()
        if target == bucket_dir or bucket_dir not in target.parents:
            raise BlobStoreError(f"Invalid blob path: {path!r}")
        if target.name.endswith(_META_SUFFIX):
            raise BlobStoreError(f"Invalid blob path: {path!r}")
        return target

    async def write(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Write a blob and its metadata sidecar, returning its URL."""
        target = self.resolve(path)
        sidecar = target.with_name(target.name + _META_SUFFIX)
        meta = {
            "content_type": content_type,
            "size": len(data),
            "created_at": utc_now(),
            "metadata": dict(metadata or {}),
        }

        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, data)
            await asyncio.to_thread(save_document_to_file, meta, sidecar)
        except (OSError, YAMLError) as e:
            raise BlobStoreError(f"Failed to write blob {path}: {e}") from e

        logger.info(f"Stored blob {path} ({len(data)} bytes)")
        return self.public_url(path)

    def exists(self, path: str) -> bool:
        try:
            return self.resolve(path).is_file()
        except BlobStoreError:
            return False

    async def read(self, path: str) -> bytes:
        target = self.resolve(path)
        if not target.is_file():
            raise BlobStoreError(f"Blob not found: {path}")
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise BlobStoreError(f"Failed to read blob {path}: {e}") from e

    def content_type(self, path: str) -> str:
        sidecar = self.resolve(path)
        sidecar = sidecar.with_name(sidecar.name + _META_SUFFIX)
        try:
            return load_document_from_file(sidecar).get("content_type") or "application/octet-stream"
        except YAMLError:
            return "application/octet-stream"

    async def delete(self, path: str) -> bool:
        """Delete a blob and its sidecar.

        Returns:
            True if the blob existed
        """
        target = self.resolve(path)
        sidecar = target.with_name(target.name + _META_SUFFIX)
        existed = target.is_file()
        try:
            if existed:
                await asyncio.to_thread(target.unlink)
            if sidecar.exists():
                await asyncio.to_thread(sidecar.unlink)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete blob {path}: {e}") from e

        if existed:
            logger.info(f"Deleted blob {path}")
        return existed
