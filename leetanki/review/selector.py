"""
Due-Set Selector.

Turns the store contents into "what should be reviewed now": a due count, a
ranked due list (most overdue first), and the summary numbers shown next to it.
"""

from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from leetanki.exceptions import StorageUnavailable
from leetanki.review.models import DueEntry, Item, ReviewState
from leetanki.timeutils import ensure_utc, utcnow

if TYPE_CHECKING:
    from leetanki.review.state_store import ReviewRecordStore, StoreSnapshot


@dataclass
class DueQuery:
    """UI-safe due query result; `error` is set instead of raising."""

    entries: list[DueEntry] = field(default_factory=list)
    due_count: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ReviewStats:
    """Aggregate numbers for a status display."""

    total_tracked: int = 0
    due: int = 0
    reviewed: int = 0
    by_difficulty: dict[str, int] = field(default_factory=dict)
    last_synced_at: datetime | None = None


class DueSetSelector:
    """Selects and ranks due items from a ReviewRecordStore."""

    def __init__(self, store: ReviewRecordStore, default_limit: int = 20):
        self.store = store
        self.default_limit = default_limit

    async def due_count(self, now: datetime | None = None) -> int:
        """Count review states with next_review_at <= now."""
        snap = await self.store.snapshot()
        return len(_due_states(snap, ensure_utc(now or utcnow())))

    async def due_list(self, now: datetime | None = None, limit: int | None = None) -> list[DueEntry]:
        """
        Get due items, most overdue first.

        Args:
            now: Reference time (defaults to current UTC time)
            limit: Maximum entries (defaults to the selector's default_limit)

        Returns:
            DueEntry list sorted by (next_review_at, item_id)
        """
        snap = await self.store.snapshot()
        return self._rank(snap, ensure_utc(now or utcnow()), limit)

    async def query(self, limit: int | None = None, now: datetime | None = None) -> DueQuery:
        """Due list plus count from one snapshot; storage failures come back as `error`."""
        now = ensure_utc(now or utcnow())
        try:
            snap = await self.store.snapshot()
        except StorageUnavailable as exc:
            logger.error("Due query failed: {}", exc)
            return DueQuery(error=f"storage unavailable: {exc}")
        return DueQuery(entries=self._rank(snap, now, limit), due_count=len(_due_states(snap, now)))

    def _rank(self, snap: StoreSnapshot, now: datetime, limit: int | None) -> list[DueEntry]:
        limit = self.default_limit if limit is None else limit
        due = sorted(_due_states(snap, now), key=lambda pair: (pair[1].next_review_at, pair[0]))

        missing = [item_id for item_id, _ in due if item_id not in snap.items]
        if missing:
            logger.warning("{} due item(s) have no metadata and were left out: {}", len(missing), missing)

        entries = [DueEntry.from_parts(snap.items[item_id], state) for item_id, state in due if item_id in snap.items]
        return entries[: max(limit, 0)]

    async def stats(self, now: datetime | None = None) -> ReviewStats:
        now = ensure_utc(now or utcnow())
        snap = await self.store.snapshot()

        difficulties = Counter((item.difficulty or "Unknown") for item in snap.items.values())

        return ReviewStats(
            total_tracked=len(snap.states),
            due=len(_due_states(snap, now)),
            reviewed=sum(1 for s in snap.states.values() if s.has_been_reviewed),
            by_difficulty=dict(difficulties),
            last_synced_at=await self.store.get_last_synced_at(),
        )

    async def recommend(self, limit: int = 5, rng: random.Random | None = None) -> list[Item]:
        """Pick up to `limit` random items that have never been reviewed."""
        rng = rng or random.Random()
        snap = await self.store.snapshot()

        candidates = sorted(
            (item for item_id, item in snap.items.items()
             if item_id not in snap.states or not snap.states[item_id].has_been_reviewed),
            key=lambda item: item.item_id,
        )
        return rng.sample(candidates, min(max(limit, 0), len(candidates)))


def _due_states(snap: StoreSnapshot, now: datetime) -> list[tuple[str, ReviewState]]:
    return [(item_id, state) for item_id, state in snap.states.items() if state.next_review_at <= now]
