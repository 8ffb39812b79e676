"""Starts a capture when a bookmark is created."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from ..models.bookmark import ScreenshotStatus
from .capture_orchestrator import CaptureOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookmarkCreated:
    """Published once a new bookmark document has been written."""

    bookmark_id: str
    snapshot: Dict[str, Any] = field(default_factory=dict)


class CreationTrigger:
    """Dispatches one background capture per freshly created bookmark.

    Dispatch is fire-and-forget: the creator never sees the capture outcome,
    which is only logged here and recorded on the bookmark by the
    orchestrator.
    """

    def __init__(self, orchestrator: CaptureOrchestrator, enabled: bool = True):
        self.orchestrator = orchestrator
        self.enabled = enabled
        self._tasks: Set[asyncio.Task] = set()

    @staticmethod
    def should_capture(snapshot: Dict[str, Any]) -> bool:
        status = snapshot.get("screenshot_status")
        if isinstance(status, ScreenshotStatus):
            status = status.value
        return (
            status == ScreenshotStatus.PENDING.value
            and bool(snapshot.get("url"))
            and bool(snapshot.get("user_id"))
        )

    def publish(self, event: BookmarkCreated) -> Optional[asyncio.Task]:
        """Handle a creation event.

        Returns:
            The dispatched capture task, or None when nothing was started
        """
        if not self.enabled:
            logger.debug(f"Screenshots disabled; not capturing {event.bookmark_id}")
            return None

        if not self.should_capture(event.snapshot):
            logger.info(
                f"No capture for {event.bookmark_id}; "
                f"status {event.snapshot.get('screenshot_status')!r}"
            )
            return None

        logger.info(f"Dispatching capture for new bookmark {event.bookmark_id}")
        task = asyncio.create_task(
            self.orchestrator.capture(
                event.bookmark_id, event.snapshot["url"], event.snapshot["user_id"]
            ),
            name=f"capture-{event.bookmark_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"Capture task {task.get_name()} was cancelled")
            return

        exc = task.exception()
        if exc is not None:
            logger.error(f"Capture task {task.get_name()} failed: {exc}")
            return

        outcome = task.result()
        if outcome.success:
            logger.info(f"Capture task {task.get_name()} completed")
        else:
            logger.warning(f"Capture task {task.get_name()} failed: {outcome.error}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight capture to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
