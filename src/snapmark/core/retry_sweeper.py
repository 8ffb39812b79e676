"""Scheduled retry of failed screenshot captures.

Designed to run on a fixed schedule, either inside the API process
(``SweepScheduler``) or as a cron job:

    snapmark sweep

Each run picks up to ``batch_size`` bookmarks whose capture failed, plus
bookmarks stuck in ``processing`` past the stale threshold, and retries
each once. Bookmarks that already used ``retry_ceiling`` retries are left
``failed`` for good.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..models.bookmark import ScreenshotStatus
from ..models.capture import FAILURE_MESSAGES, CaptureFailure, SweepStats
from ..utils.timestamps import utc_now
from .capture_orchestrator import CaptureOrchestrator
from .document_store import (
    BOOKMARKS,
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    Increment,
)

logger = logging.getLogger(__name__)

RETRY_CEILING = 3
SWEEP_BATCH_SIZE = 50


class RetrySweeper:
    """Re-runs the capture orchestrator for recoverable failures."""

    def __init__(
        self,
        store: DocumentStore,
        orchestrator: CaptureOrchestrator,
        retry_ceiling: int = RETRY_CEILING,
        batch_size: int = SWEEP_BATCH_SIZE,
        pacing_seconds: float = 1.0,
        stale_processing_minutes: Optional[int] = 30,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize retry sweeper.

        Args:
            store: Document store holding bookmarks
            orchestrator: Runs one capture attempt
            retry_ceiling: Retries allowed before a bookmark is abandoned
            batch_size: Maximum candidates per run
            pacing_seconds: Pause between attempts
            stale_processing_minutes: Age after which a ``processing``
                bookmark is treated as crashed; None disables
            sleep: Awaitable sleep, injectable for tests
        """
        self.store = store
        self.orchestrator = orchestrator
        self.retry_ceiling = retry_ceiling
        self.batch_size = batch_size
        self.pacing_seconds = pacing_seconds
        self.stale_processing_minutes = stale_processing_minutes
        self._sleep = sleep

    def select_candidates(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Bookmarks eligible for this run, oldest update first.

        Failed bookmarks without a thumbnail come first; stale ``processing``
        bookmarks fill the remaining slots.
        """
        candidates = self.store.query(
            BOOKMARKS,
            filters=[
                FieldFilter("screenshot_url", "==", None),
                FieldFilter("screenshot_status", "==", ScreenshotStatus.FAILED.value),
            ],
            order_by="updated_at",
            limit=self.batch_size,
        )

        remaining = self.batch_size - len(candidates)
        if self.stale_processing_minutes is not None and remaining > 0:
            if now is None:
                now = utc_now()
            cutoff = now - timedelta(minutes=self.stale_processing_minutes)
            candidates += self.store.query(
                BOOKMARKS,
                filters=[
                    FieldFilter("screenshot_status", "==", ScreenshotStatus.PROCESSING.value),
                    FieldFilter("updated_at", "<", cutoff),
                ],
                order_by="updated_at",
                limit=remaining,
            )

        return candidates

    async def sweep(self, now: Optional[datetime] = None) -> SweepStats:
        """Run one sweep.

        Returns:
            SweepStats for the run

        Raises:
            StorageError: If the document store fails; the run stops there
        """
        candidates = self.select_candidates(now)
        stats = SweepStats(total=len(candidates))
        logger.info(f"Retry sweep found {stats.total} candidate bookmarks")

        attempted = 0
        for doc in candidates:
            bookmark_id = doc["id"]
            retries = doc.get("screenshot_retries") or 0

            if retries >= self.retry_ceiling:
                logger.warning(
                    f"Bookmark {bookmark_id} reached the retry limit ({retries}); not retrying"
                )
                if doc.get("screenshot_status") == ScreenshotStatus.PROCESSING.value:
                    await self._abandon_stuck(bookmark_id)
                stats.skipped += 1
                continue

            if attempted and self.pacing_seconds > 0:
                await self._sleep(self.pacing_seconds)
            attempted += 1

            logger.info(
                f"Retrying capture for bookmark {bookmark_id} ({retries + 1}/{self.retry_ceiling})"
            )

            try:
                await self.store.update(BOOKMARKS, bookmark_id, {
                    "screenshot_retries": Increment(1),
                    "updated_at": utc_now(),
                })
                outcome = await self.orchestrator.capture(
                    bookmark_id, doc.get("url"), doc.get("user_id")
                )
            except DocumentNotFoundError:
                logger.info(f"Bookmark {bookmark_id} was deleted during the sweep")
                stats.skipped += 1
                continue

            if outcome.success:
                stats.succeeded += 1
            else:
                logger.warning(f"Retry failed for bookmark {bookmark_id}: {outcome.error}")
                stats.failed += 1

        logger.info(f"Retry sweep completed: {stats.to_dict()}")
        return stats

    async def _abandon_stuck(self, bookmark_id: str) -> None:
        """Settle a crashed ``processing`` bookmark as ``failed``."""
        try:
            await self.store.update(BOOKMARKS, bookmark_id, {
                "screenshot_status": ScreenshotStatus.FAILED,
                "screenshot_url": None,
                "screenshot_error": FAILURE_MESSAGES[CaptureFailure.NAVIGATION_TIMEOUT],
                "updated_at": utc_now(),
            })
        except DocumentNotFoundError:
            return
        logger.warning(f"Bookmark {bookmark_id} was stuck in processing; marked failed")


class SweepScheduler:
    """Runs a sweeper every ``interval_seconds`` in a background task."""

    def __init__(self, sweeper: RetrySweeper, interval_seconds: float):
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self.last_stats: Optional[SweepStats] = None
        self.last_run_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="snapmark-retry-sweeper")
        logger.info(f"Retry sweeper scheduled every {self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.last_stats = await self.sweeper.sweep()
            except Exception as e:
                logger.error(f"Retry sweep aborted: {e}")
            self.last_run_at = utc_now()
