"""
Unit tests for the review record store.
"""
import asyncio
from datetime import timedelta

import pytest

from leetanki.exceptions import StorageUnavailable
from leetanki.review.selector import DueSetSelector
from leetanki.review.state_store import CURSOR_KEY, ITEMS_KEY, STATES_KEY, ReviewRecordStore
from leetanki.sync.schemas import SyncCursor


class TestItemsAndStates:
    """upsert / init / get / all."""

    @pytest.mark.asyncio
    async def test_get_unknown(self, store):
        assert await store.get("two-sum") is None

    @pytest.mark.asyncio
    async def test_upsert_creates_and_merges(self, store):
        await store.upsert_item("two-sum", {"title": "Two Sum", "tags": {"array"}})
        await store.upsert_item("two-sum", {"difficulty": "Easy", "tags": {"hash-table"}})

        record = await store.get("two-sum")

        assert record.item.title == "Two Sum"
        assert record.item.difficulty == "Easy"
        assert record.item.tags == {"array", "hash-table"}
        assert record.state is None

    @pytest.mark.asyncio
    async def test_init_review_state_if_absent(self, store, now):
        assert await store.init_review_state_if_absent("two-sum", now) is True
        assert await store.init_review_state_if_absent("two-sum", now + timedelta(days=3)) is False

        state = (await store.get("two-sum")).state
        assert state.next_review_at == now + timedelta(days=1)
        assert state.last_reviewed_at == now

    @pytest.mark.asyncio
    async def test_init_never_overwrites_reviewed_state(self, store, now):
        await store.init_review_state_if_absent("two-sum", now)
        reviewed = await store.record_outcome("two-sum", "good", now + timedelta(days=1))

        await store.init_review_state_if_absent("two-sum", now + timedelta(days=5))

        assert (await store.get("two-sum")).state == reviewed

    @pytest.mark.asyncio
    async def test_all(self, store, now):
        await store.upsert_item("a", {"title": "A"})
        await store.init_review_state_if_absent("b", now)

        records = {r.item_id: r for r in await store.all()}

        assert set(records) == {"a", "b"}
        assert records["a"].state is None
        assert records["b"].item is None


class TestRecordOutcome:
    @pytest.mark.asyncio
    async def test_updates_and_persists(self, store, backend, now):
        await store.init_review_state_if_absent("two-sum", now)

        updated = await store.record_outcome("two-sum", "good", now + timedelta(days=1))

        assert updated.consecutive_correct == 1
        assert updated.next_review_at == now + timedelta(days=2)
        stored = (await backend.get(STATES_KEY))["two-sum"]
        assert stored["consecutive_correct"] == 1
        assert stored["history"][-1]["outcome"] == "good"

    @pytest.mark.asyncio
    async def test_unknown_item_starts_from_defaults(self, store, now):
        updated = await store.record_outcome("ghost", "good", now)

        assert updated.consecutive_correct == 1
        assert [h.outcome for h in updated.history] == ["initial", "good"]

    @pytest.mark.asyncio
    async def test_history_bounded_fifo(self, store, now):
        await store.init_review_state_if_absent("two-sum", now)
        outcomes = ["good", "again", "easy", "hard"] * 5

        for i, outcome in enumerate(outcomes):
            state = await store.record_outcome("two-sum", outcome, now + timedelta(hours=i + 1))
            assert len(state.history) <= 10

        history = (await store.get("two-sum")).state.history
        assert [h.outcome for h in history] == outcomes[-10:]
        assert history[0].timestamp == now + timedelta(hours=len(outcomes) - 9)

    @pytest.mark.asyncio
    async def test_storage_unavailable_propagates(self, store, backend, now):
        await store.init_review_state_if_absent("two-sum", now)
        backend.available = False

        with pytest.raises(StorageUnavailable):
            await store.record_outcome("two-sum", "good", now)

        backend.available = True
        assert (await store.get("two-sum")).state.consecutive_correct == 0

    @pytest.mark.asyncio
    async def test_concurrent_outcomes_are_not_lost(self, scheduler, now):
        from leetanki.db.backends import MemoryBackend

        store = ReviewRecordStore(MemoryBackend(latency=0.005), scheduler)
        await store.init_review_state_if_absent("two-sum", now)

        await asyncio.gather(*(store.record_outcome("two-sum", "good", now) for _ in range(5)))

        state = (await store.get("two-sum")).state
        assert state.consecutive_correct == 5
        assert len(state.history) == 6


class TestCorruptRecords:
    @pytest.mark.asyncio
    async def test_unreadable_state_is_preserved(self, store, backend, now):
        await backend.set_many({ITEMS_KEY: {}, STATES_KEY: {"broken": {"interval": "x"}}})

        await store.init_review_state_if_absent("two-sum", now)
        assert await store.init_review_state_if_absent("broken", now) is False

        states = await backend.get(STATES_KEY)
        assert states["broken"] == {"interval": "x"}
        assert "two-sum" in states

    @pytest.mark.asyncio
    async def test_numeric_timestamp_does_not_break_reads(self, store, backend, scheduler, now):
        good = scheduler.initial_state(now - timedelta(days=3)).to_dict()
        broken = {**good, "next_review_at": 1700000000}
        await backend.set_many(
            {
                ITEMS_KEY: {"two-sum": {"title": "Two Sum"}, "broken": {"title": "Broken"}},
                STATES_KEY: {"two-sum": good, "broken": broken},
            }
        )

        result = await DueSetSelector(store).query(now=now)

        assert result.ok
        assert [e.item_id for e in result.entries] == ["two-sum"]
        assert (await store.get("broken")).state is None

        await store.record_outcome("two-sum", "good", now)
        assert (await backend.get(STATES_KEY))["broken"] == broken


class TestSyncBookkeeping:
    @pytest.mark.asyncio
    async def test_cursor_round_trip(self, store):
        assert await store.get_sync_cursor() is None

        await store.save_sync_cursor(SyncCursor(offset=100, page_token="abc"))

        assert await store.get_sync_cursor() == SyncCursor(offset=100, page_token="abc")

    @pytest.mark.asyncio
    async def test_reset_cursor(self, store):
        await store.save_sync_cursor(SyncCursor(offset=100, is_complete=True))

        cursor = await store.reset_sync_cursor()

        assert cursor == SyncCursor()
        assert await store.get_sync_cursor() == SyncCursor()

    @pytest.mark.asyncio
    async def test_corrupt_cursor_is_cleared(self, store, backend):
        await backend.set(CURSOR_KEY, {"offset": -5})

        assert await store.get_sync_cursor() is None
        assert await backend.get(CURSOR_KEY) is None

    @pytest.mark.asyncio
    async def test_last_synced_at(self, store, now):
        assert await store.get_last_synced_at() is None

        await store.mark_synced(now)

        assert await store.get_last_synced_at() == now
