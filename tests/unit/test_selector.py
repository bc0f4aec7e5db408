"""
Unit tests for the due-set selector.
"""
import random
from datetime import timedelta

import pytest

from leetanki.sync.merger import IngestionMerger


async def seed(store, make_event, days):
    """Ingest one problem per (item_id, days_ago) pair."""
    await IngestionMerger(store).merge([make_event(item_id, days_ago=d) for item_id, d in days.items()])


class TestDueList:
    @pytest.mark.asyncio
    async def test_orders_most_overdue_first(self, store, selector, make_event, now):
        await seed(store, make_event, {"b": 5, "a": 5, "c": 9, "d": 2, "fresh": 0})

        entries = await selector.due_list(now)

        assert [e.item_id for e in entries] == ["c", "a", "b", "d"]
        assert all(e.next_review_at <= now for e in entries)

    @pytest.mark.asyncio
    async def test_respects_limit(self, store, selector, make_event, now):
        await seed(store, make_event, {f"p{i}": i + 2 for i in range(8)})

        assert len(await selector.due_list(now, limit=3)) == 3
        assert await selector.due_list(now, limit=0) == []
        assert len(await selector.due_list(now)) == 8

    @pytest.mark.asyncio
    async def test_entries_join_metadata(self, store, selector, make_event, now):
        await IngestionMerger(store).merge([make_event("two-sum", title="Two Sum", difficulty="Easy", days_ago=3)])

        [entry] = await selector.due_list(now)

        assert entry.title == "Two Sum"
        assert entry.difficulty == "Easy"
        assert entry.tags == ["array"]
        assert entry.ease_factor == 2.5
        assert entry.interval == 1

    @pytest.mark.asyncio
    async def test_state_without_metadata_excluded(self, store, selector, now):
        await store.init_review_state_if_absent("orphan", now - timedelta(days=3))

        assert await selector.due_list(now) == []
        assert await selector.due_count(now) == 1

    @pytest.mark.asyncio
    async def test_due_boundary_is_inclusive(self, store, selector, make_event, now):
        await seed(store, make_event, {"edge": 1})

        assert [e.item_id for e in await selector.due_list(now)] == ["edge"]
        assert await selector.due_list(now - timedelta(seconds=1)) == []


class TestQuery:
    @pytest.mark.asyncio
    async def test_ok(self, store, selector, make_event, now):
        await seed(store, make_event, {"a": 3, "b": 4, "c": 0})

        result = await selector.query(limit=1, now=now)

        assert result.ok
        assert result.due_count == 2
        assert [e.item_id for e in result.entries] == ["b"]

    @pytest.mark.asyncio
    async def test_storage_error_signalled(self, selector, backend, now):
        backend.available = False

        result = await selector.query(now=now)

        assert not result.ok
        assert result.entries == []
        assert "storage unavailable" in result.error


class TestStatsAndRecommend:
    @pytest.mark.asyncio
    async def test_stats(self, store, selector, make_event, now):
        await IngestionMerger(store).merge(
            [
                make_event("a", difficulty="Easy", days_ago=3),
                make_event("b", difficulty="Hard", days_ago=0),
                make_event("c", difficulty="Hard", days_ago=4),
            ]
        )
        await store.record_outcome("c", "good", now)
        await store.mark_synced(now)

        summary = await selector.stats(now)

        assert summary.total_tracked == 3
        assert summary.due == 1
        assert summary.reviewed == 1
        assert summary.by_difficulty == {"Easy": 1, "Hard": 2}
        assert summary.last_synced_at == now

    @pytest.mark.asyncio
    async def test_recommend_only_unreviewed(self, store, selector, make_event, now):
        await seed(store, make_event, {"a": 1, "b": 1, "c": 1})
        await store.record_outcome("b", "good", now)

        picks = await selector.recommend(limit=5, rng=random.Random(7))

        assert sorted(item.item_id for item in picks) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_recommend_limit(self, store, selector, make_event):
        await seed(store, make_event, {f"p{i}": 1 for i in range(6)})

        picks = await selector.recommend(limit=2, rng=random.Random(1))

        assert len(picks) == 2
        assert len({item.item_id for item in picks}) == 2

    @pytest.mark.asyncio
    async def test_recommend_negative_limit(self, store, selector, make_event):
        await seed(store, make_event, {"a": 1})

        assert await selector.recommend(limit=-1) == []
