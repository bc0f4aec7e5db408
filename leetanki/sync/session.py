"""
Sync session lifecycle.

Drives one sync run from the producer's signals:

- started(total_expected)  -> resume or reset the cursor
- progress(batch, cursor)  -> queue the batch; persist the cursor once merged
- complete()               -> wait for the queue to drain, stamp the sync time
- error(reason)            -> record the failure, keep the cursor for resumption
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from leetanki.sync.batch_processor import SequentialBatchProcessor
from leetanki.sync.merger import IngestionMerger, IngestResult
from leetanki.sync.schemas import SyncCursor
from leetanki.timeutils import ensure_utc, utcnow

if TYPE_CHECKING:
    from leetanki.review.state_store import ReviewRecordStore


class SyncStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class SyncReport:
    """Progress and result of a sync run."""

    status: SyncStatus = SyncStatus.IDLE
    total_expected: int = 0
    processed: int = 0
    batches: int = 0
    newly_initialized: int = 0
    skipped: int = 0
    failed_batches: int = 0
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def progress_line(self) -> str:
        if self.total_expected:
            return f"{self.processed}/{self.total_expected}"
        return str(self.processed)


class SyncSession:
    """Coordinates merger, batch processor and cursor for one sync run."""

    def __init__(
        self,
        store: ReviewRecordStore,
        merger: IngestionMerger | None = None,
        poll_interval: float = 0.2,
        sync_interval_hours: int = 24,
        on_progress: Callable[[SyncReport], None] | None = None,
    ):
        """
        Initialize the session.

        Args:
            store: Review store the batches are merged into
            merger: IngestionMerger (created for `store` if None)
            poll_interval: Drain-wait poll interval in seconds
            sync_interval_hours: Age after which is_sync_needed() turns true
            on_progress: Called with the report after every merged batch
        """
        self.store = store
        self.merger = merger or IngestionMerger(store)
        self.processor = SequentialBatchProcessor(self._apply, poll_interval=poll_interval)
        self.sync_interval = timedelta(hours=sync_interval_hours)
        self.on_progress = on_progress
        self.report = SyncReport()

    async def started(self, total_expected: int = 0, fresh: bool = False) -> SyncCursor:
        """
        Begin a run.

        Args:
            total_expected: Number of events the producer expects to send
            fresh: Discard any saved cursor and start from the beginning

        Returns:
            The cursor to resume from (empty when starting over)
        """
        self.report = SyncReport(
            status=SyncStatus.RUNNING,
            total_expected=total_expected,
            started_at=utcnow(),
        )

        cursor = None if fresh else await self.resume_cursor()
        if cursor is None:
            cursor = await self.store.reset_sync_cursor()
            logger.info("Sync started from the beginning (expecting {} events)", total_expected)
        else:
            logger.info("Sync resuming at offset {} (expecting {} events)", cursor.offset, total_expected)
        return cursor

    def progress(self, batch: Iterable[Any], cursor: SyncCursor | None = None) -> int:
        """Queue a batch; returns its sequence number."""
        if self.report.status is not SyncStatus.RUNNING:
            logger.warning("Batch received while sync is {}", self.report.status.value)
        return self.processor.enqueue((list(batch), cursor))

    async def _apply(self, payload: tuple[list[Any], SyncCursor | None]) -> IngestResult:
        events, cursor = payload
        result = await self.merger.merge(events)

        self.report.batches += 1
        self.report.processed += result.received
        self.report.skipped += result.skipped
        self.report.newly_initialized += result.new_count

        if cursor is not None:
            await self.store.save_sync_cursor(cursor)

        if self.on_progress:
            try:
                self.on_progress(self.report)
            except Exception as exc:
                logger.warning("Progress callback failed: {}", exc)

        return result

    async def complete(self, timeout: float | None = None) -> SyncReport:
        """
        Finish the run once every queued batch is merged.

        Raises:
            TimeoutError: the queue did not drain within `timeout` seconds
        """
        status = await self.processor.wait_until_drained(timeout=timeout)
        self.report.failed_batches = status.failed

        cursor = await self.store.get_sync_cursor() or SyncCursor()
        await self.store.save_sync_cursor(cursor.model_copy(update={"is_complete": True}))

        now = utcnow()
        await self.store.mark_synced(now)
        self.report.status = SyncStatus.COMPLETE
        self.report.completed_at = now

        logger.info(
            "Sync complete: {} events, {} new items, {} skipped, {} failed batches",
            self.report.progress_line,
            self.report.newly_initialized,
            self.report.skipped,
            self.report.failed_batches,
        )
        return self.report

    async def error(self, reason: str) -> SyncReport:
        """Mark the run failed; the saved cursor stays so the next run resumes."""
        self.report.status = SyncStatus.FAILED
        self.report.error = reason
        self.report.failed_batches = self.processor.status.failed
        logger.error("Sync failed after {} events: {}", self.report.progress_line, reason)
        return self.report

    async def resume_cursor(self) -> SyncCursor | None:
        """Saved cursor of an unfinished run, if any."""
        cursor = await self.store.get_sync_cursor()
        if cursor is None or cursor.is_complete:
            return None
        return cursor

    async def is_sync_needed(self, now: datetime | None = None) -> bool:
        last = await self.store.get_last_synced_at()
        if last is None:
            return True
        return ensure_utc(now or utcnow()) - last >= self.sync_interval
