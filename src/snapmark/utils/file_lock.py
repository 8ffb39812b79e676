"""File locking for document files shared between processes."""

import asyncio
import time
from pathlib import Path


class FileLockError(Exception):
    """File locking error."""

    pass


class FileLocker:
    """Context manager guarding a document file with a sibling ``.lock`` file.

    The API server and the ``snapmark sweep`` cron job may touch the same
    document directory, so every write goes through one of these.
    """

    def __init__(self, file_path: Path, timeout: float = 5.0):
        """Initialize file locker.

        Args:
            file_path: Path to the file to lock
            timeout: Maximum time to wait for lock acquisition (seconds)
        """
        self.file_path = file_path
        self.lock_path = Path(str(file_path) + ".lock")
        self.timeout = timeout
        self.acquired = False

    def __enter__(self) -> "FileLocker":
        self._acquire_lock()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._release_lock()
        return False

    async def __aenter__(self) -> "FileLocker":
        await self._acquire_lock_async()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._release_lock()
        return False

    def _try_create(self) -> bool:
        """Create the lock file exclusively; clear it first if it went stale."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        if self.lock_path.exists():
            if time.time() - self.lock_path.stat().st_mtime <= self.timeout * 2:
                return False
            self.lock_path.unlink(missing_ok=True)
        try:
            with open(self.lock_path, "x"):
                pass
        except FileExistsError:
            return False
        return True

    def _acquire_lock(self) -> None:
        start_time = time.time()

        while True:
            try:
                if self._try_create():
                    self.acquired = True
                    return
            except OSError as e:
                if time.time() - start_time > self.timeout:
                    raise FileLockError(
                        f"Could not acquire lock on {self.file_path}: {e}"
                    ) from e

            if time.time() - start_time > self.timeout:
                raise FileLockError(
                    f"Could not acquire lock on {self.file_path} after {self.timeout}s"
                )
            time.sleep(0.1)

    async def _acquire_lock_async(self) -> None:
        start_time = time.time()

        while True:
            try:
                if await asyncio.to_thread(self._try_create):
                    self.acquired = True
                    return
            except OSError as e:
                if time.time() - start_time > self.timeout:
                    raise FileLockError(
                        f"Could not acquire lock on {self.file_path}: {e}"
                    ) from e

            if time.time() - start_time > self.timeout:
                raise FileLockError(
                    f"Could not acquire lock on {self.file_path} after {self.timeout}s"
                )
            await asyncio.sleep(0.1)

    def _release_lock(self) -> None:
        if self.acquired:
            try:
                self.lock_path.unlink(missing_ok=True)
                self.acquired = False
            except OSError:
                # Best effort; a leftover lock goes stale after 2x timeout
                pass
