"""
Ingestion Merger.

Folds a batch of completion events into the review store in one transaction:
metadata is merged for every event, and a default review state is created for
items seen for the first time. Re-ingesting a batch changes nothing.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from leetanki.exceptions import MalformedEvent
from leetanki.sync.schemas import CompletionEvent, parse_event

if TYPE_CHECKING:
    from leetanki.review.state_store import ReviewRecordStore


@dataclass
class IngestResult:
    """Outcome of merging one batch."""

    received: int = 0
    applied: int = 0
    skipped: int = 0
    newly_initialized: list[str] = field(default_factory=list)

    @property
    def new_count(self) -> int:
        return len(self.newly_initialized)


class IngestionMerger:
    """Merges completion-event batches into a ReviewRecordStore."""

    def __init__(self, store: ReviewRecordStore):
        self.store = store

    async def merge(self, batch: Iterable[CompletionEvent | dict[str, Any]]) -> IngestResult:
        """
        Merge one batch.

        Malformed events are logged and skipped. When an item appears more
        than once, its earliest `accepted_at` is used as the first-seen time;
        metadata from every sighting is merged in input order.

        Args:
            batch: Completion events (models or raw dicts)

        Returns:
            IngestResult with counts and the ids that were newly initialized
        """
        result = IngestResult()
        events: list[CompletionEvent] = []

        for raw in batch:
            result.received += 1
            try:
                events.append(parse_event(raw))
            except MalformedEvent as exc:
                result.skipped += 1
                logger.warning("Skipping malformed event: {}", exc)

        if not events:
            logger.debug("Batch had no valid events ({} skipped)", result.skipped)
            return result

        first_seen: dict[str, datetime] = {}
        for event in events:
            seen = first_seen.get(event.item_id)
            if seen is None or event.accepted_at < seen:
                first_seen[event.item_id] = event.accepted_at

        async with self.store.transaction() as snap:
            for event in events:
                snap.upsert_item(event.item_id, event.metadata.as_patch(), updated_at=event.accepted_at)
            for item_id, accepted_at in first_seen.items():
                if snap.init_review_state_if_absent(item_id, accepted_at):
                    result.newly_initialized.append(item_id)

        result.applied = len(events)
        logger.info(
            "Merged batch: {} events, {} new items, {} skipped",
            result.applied,
            result.new_count,
            result.skipped,
        )
        return result
