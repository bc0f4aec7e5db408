"""
Review Record Store.

Owns every Item and ReviewState. Persisted layout in the key-value backend:

- items:          {item_id: item dict}
- review_states:  {item_id: review state dict}
- sync_cursor:    SyncCursor dict
- last_synced_at: ISO timestamp of the last completed sync

Items and states are always read together and written together, so readers
never see metadata without its paired review state (or the reverse). All
mutations run under one asyncio lock: a recorded outcome waits for an
in-flight ingestion batch instead of racing it.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError

from leetanki.db.backends import KeyValueBackend
from leetanki.review.models import Item, Outcome, ReviewRecord, ReviewState
from leetanki.review.scheduler import SM2Scheduler
from leetanki.sync.schemas import SyncCursor
from leetanki.timeutils import ensure_utc, format_timestamp, parse_timestamp, utcnow

ITEMS_KEY = "items"
STATES_KEY = "review_states"
CURSOR_KEY = "sync_cursor"
LAST_SYNC_KEY = "last_synced_at"

# =============================================================================
# Snapshot
# =============================================================================


@dataclass
class StoreSnapshot:
    """
    In-memory copy of the items and review state tables.

    Mutated inside `ReviewRecordStore.transaction()` and written back in a
    single backend call when the transaction exits cleanly.
    """

    scheduler: SM2Scheduler
    items: dict[str, Item] = field(default_factory=dict)
    states: dict[str, ReviewState] = field(default_factory=dict)
    dirty: bool = False
    # Records that failed to parse are written back untouched.
    _raw_items: dict[str, Any] = field(default_factory=dict, repr=False)
    _raw_states: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_storage(cls, raw: Mapping[str, Any], scheduler: SM2Scheduler) -> StoreSnapshot:
        snap = cls(scheduler=scheduler)

        for item_id, data in (raw.get(ITEMS_KEY) or {}).items():
            try:
                snap.items[item_id] = Item.from_dict(item_id, data)
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning("Unreadable item record {}: {}", item_id, exc)
                snap._raw_items[item_id] = data

        for item_id, data in (raw.get(STATES_KEY) or {}).items():
            try:
                snap.states[item_id] = ReviewState.from_dict(data)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Unreadable review state {}: {}", item_id, exc)
                snap._raw_states[item_id] = data

        return snap

    def to_storage(self) -> dict[str, Any]:
        items = dict(self._raw_items)
        items.update({item_id: item.to_dict() for item_id, item in self.items.items()})
        states = dict(self._raw_states)
        states.update({item_id: state.to_dict() for item_id, state in self.states.items()})
        return {ITEMS_KEY: items, STATES_KEY: states}

    def record(self, item_id: str) -> ReviewRecord | None:
        item = self.items.get(item_id)
        state = self.states.get(item_id)
        if item is None and state is None:
            return None
        return ReviewRecord(item_id=item_id, item=item, state=state)

    def records(self) -> list[ReviewRecord]:
        ids = self.items.keys() | self.states.keys()
        return [ReviewRecord(i, self.items.get(i), self.states.get(i)) for i in ids]

    def upsert_item(
        self,
        item_id: str,
        patch: Mapping[str, Any] | None = None,
        updated_at: datetime | None = None,
    ) -> Item:
        """Merge a metadata patch into the item, creating it if absent."""
        patch = patch or {}
        item = self.items.get(item_id)
        if item is None:
            item = Item(item_id=item_id)
            self.items[item_id] = item
            self._raw_items.pop(item_id, None)
        item.merge(
            title=patch.get("title"),
            difficulty=patch.get("difficulty"),
            tags=patch.get("tags"),
            updated_at=updated_at or utcnow(),
        )
        self.dirty = True
        return item

    def init_review_state_if_absent(self, item_id: str, first_seen_at: datetime) -> bool:
        """Create the default review state; never touches an existing one."""
        if item_id in self.states or item_id in self._raw_states:
            return False
        self.states[item_id] = self.scheduler.initial_state(first_seen_at)
        self.dirty = True
        return True


# =============================================================================
# Store
# =============================================================================


class ReviewRecordStore:
    """
    Durable mapping of item id to (Item, ReviewState).

    Raises StorageUnavailable (from the backend) when persistence cannot be
    reached; a failed transaction commits nothing.
    """

    def __init__(self, backend: KeyValueBackend, scheduler: SM2Scheduler | None = None):
        """
        Initialize the store.

        Args:
            backend: Key-value persistence engine
            scheduler: SM2Scheduler used for defaults and outcome updates
        """
        self.backend = backend
        self.scheduler = scheduler or SM2Scheduler()
        self._write_lock = asyncio.Lock()

    @property
    def is_writing(self) -> bool:
        return self._write_lock.locked()

    async def snapshot(self) -> StoreSnapshot:
        """Read items and review states in one backend call."""
        raw = await self.backend.get_many([ITEMS_KEY, STATES_KEY])
        return StoreSnapshot.from_storage(raw, self.scheduler)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSnapshot]:
        """
        Serialized read-modify-write.

        Yields a snapshot; if the block exits without error and changed
        anything, the snapshot is persisted with one `set_many`.
        """
        async with self._write_lock:
            snap = await self.snapshot()
            yield snap
            if snap.dirty:
                await self.backend.set_many(snap.to_storage())

    # =========================================================================
    # Item / Review State Operations
    # =========================================================================

    async def get(self, item_id: str) -> ReviewRecord | None:
        return (await self.snapshot()).record(item_id)

    async def all(self) -> list[ReviewRecord]:
        return (await self.snapshot()).records()

    async def upsert_item(self, item_id: str, patch: Mapping[str, Any] | None = None) -> Item:
        async with self.transaction() as snap:
            return snap.upsert_item(item_id, patch)

    async def init_review_state_if_absent(self, item_id: str, first_seen_at: datetime) -> bool:
        """
        Create the default review state for a first-seen item.

        Returns:
            True if a state was created, False if one already existed
        """
        async with self.transaction() as snap:
            return snap.init_review_state_if_absent(item_id, first_seen_at)

    async def record_outcome(
        self,
        item_id: str,
        outcome: Outcome | str,
        now: datetime | None = None,
    ) -> ReviewState:
        """
        Apply a review outcome and persist the new schedule.

        Args:
            item_id: The reviewed item
            outcome: again/hard/good/easy (anything else leaves the schedule as is)
            now: Review time (defaults to current UTC time)

        Returns:
            Updated ReviewState
        """
        now = ensure_utc(now or utcnow())

        async with self.transaction() as snap:
            current = snap.states.get(item_id)
            if current is None:
                logger.warning("No review state for {} - starting from defaults", item_id)
                current = self.scheduler.initial_state(now)

            updated = self.scheduler.apply(current, outcome, now)
            snap.states[item_id] = updated
            snap.dirty = True

        logger.debug(
            "Recorded {} for {}: ease={}, interval={}d, next_review={}",
            outcome,
            item_id,
            updated.ease_factor,
            updated.interval,
            updated.next_review_at.date(),
        )
        return updated

    # =========================================================================
    # Sync Bookkeeping
    # =========================================================================

    async def get_sync_cursor(self) -> SyncCursor | None:
        """Load the saved cursor; a corrupt one is cleared and reported as absent."""
        raw = await self.backend.get(CURSOR_KEY)
        if raw is None:
            return None
        try:
            return SyncCursor.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding corrupt sync cursor: {}", exc.errors()[0]["msg"])
            await self.clear_sync_cursor()
            return None

    async def save_sync_cursor(self, cursor: SyncCursor) -> None:
        async with self._write_lock:
            await self.backend.set(CURSOR_KEY, cursor.model_dump())

    async def reset_sync_cursor(self) -> SyncCursor:
        """Start pagination over from the beginning."""
        cursor = SyncCursor()
        await self.save_sync_cursor(cursor)
        return cursor

    async def clear_sync_cursor(self) -> None:
        async with self._write_lock:
            await self.backend.delete(CURSOR_KEY)

    async def get_last_synced_at(self) -> datetime | None:
        raw = await self.backend.get(LAST_SYNC_KEY)
        if not raw:
            return None
        try:
            return parse_timestamp(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring unreadable last sync time: {!r}", raw)
            return None

    async def mark_synced(self, at: datetime | None = None) -> None:
        async with self._write_lock:
            await self.backend.set(LAST_SYNC_KEY, format_timestamp(at or utcnow()))
