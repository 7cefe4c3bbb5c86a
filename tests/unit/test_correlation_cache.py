"""
Unit tests for the SQL-backed correlation cache.
"""

import pytest

from correlator.models import CorrelationCacheEntry
from correlator.services.correlation_cache import (
    SqlCorrelationCache,
    combinations_from_entry,
    combinations_key,
    combinations_tag,
    correlation_key,
    correlation_tag,
    result_from_entry,
)
from correlator.services.schemas import CauseKind, CombinationEffect, CombinationOptions
from tests.factories import create_cache_entry, make_correlation_result
from tests.fixtures.mocks import DAY, FakeClock

NOW = 100 * DAY
TTL = DAY


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def cache(db, clock):
    return SqlCorrelationCache(db, ttl_ms=TTL, clock=clock)


def rice_key(user_id="user-1", tag="30d"):
    return correlation_key(user_id, CauseKind.FOOD, "rice", "bloating", tag)


# =============================================================================
# get / set
# =============================================================================


class TestGetSet:
    """Tests for storing and reading back results."""

    @pytest.mark.asyncio
    async def test_round_trip(self, cache):
        result = make_correlation_result(computed_at=NOW)

        entry = await cache.set(result, "user-1", "30d")
        loaded = await cache.get(rice_key())

        assert entry.expires_at == NOW + TTL
        assert loaded is not None
        assert result_from_entry(loaded) == result

    @pytest.mark.asyncio
    async def test_miss_for_unknown_key(self, cache):
        assert await cache.get(rice_key()) is None

    @pytest.mark.asyncio
    async def test_key_includes_time_range_tag(self, cache):
        await cache.set(make_correlation_result(computed_at=NOW), "user-1", "30d")

        assert await cache.get(rice_key(tag="7d")) is None

    @pytest.mark.asyncio
    async def test_key_includes_cause_kind(self, cache):
        await cache.set(make_correlation_result(computed_at=NOW), "user-1", "30d")

        key = correlation_key("user-1", CauseKind.TRIGGER, "rice", "bloating", "30d")
        assert await cache.get(key) is None

    @pytest.mark.asyncio
    async def test_key_includes_min_sample_size(self, cache):
        tag = correlation_tag("30d", 3)
        await cache.set(make_correlation_result(computed_at=NOW), "user-1", tag)

        assert await cache.get(rice_key(tag=tag)) is not None
        assert await cache.get(rice_key(tag=correlation_tag("30d", 5))) is None

    def test_combinations_tag_covers_every_option(self):
        base = CombinationOptions()
        variants = [
            base,
            CombinationOptions(min_sample_size=base.min_sample_size + 1),
            CombinationOptions(synergy_threshold=0.9),
            CombinationOptions(max_pairs=base.max_pairs + 1),
            CombinationOptions(max_combination_size=3),
        ]

        tags = {combinations_tag("30d", options) for options in variants}

        assert len(tags) == len(variants)
        assert combinations_tag("30d", CombinationOptions()) == combinations_tag("30d", base)

    @pytest.mark.asyncio
    async def test_set_replaces_existing_entry(self, cache, db):
        await cache.set(make_correlation_result(computed_at=NOW, score=0.1), "user-1", "30d")
        await cache.set(make_correlation_result(computed_at=NOW, score=0.7), "user-1", "30d")

        loaded = await cache.get(rice_key())

        assert result_from_entry(loaded).best_window.score == 0.7
        assert db.query(CorrelationCacheEntry).filter_by(user_id="user-1").count() == 1

    @pytest.mark.asyncio
    async def test_combinations_round_trip(self, cache):
        combo = CombinationEffect(
            cause_ids=("beans", "onion"),
            effect_id="bloating",
            synergy_score=0.5,
            individual_scores=(0.4, 0.45),
            joint_score=0.95,
            best_window=make_correlation_result().best_window,
            sample_size=4,
        )

        await cache.set_combinations([combo], "user-1", "bloating", "30d", NOW)
        entry = await cache.get(combinations_key("user-1", "bloating", "30d"))

        assert entry.kind == "combinations"
        assert combinations_from_entry(entry) == [combo]


# =============================================================================
# Expiry
# =============================================================================


class TestExpiry:
    """Tests for TTL measured from computed_at."""

    @pytest.mark.asyncio
    async def test_entry_past_ttl_is_a_miss(self, cache):
        await cache.set(make_correlation_result(computed_at=NOW - TTL - 1), "user-1", "30d")

        assert await cache.get(rice_key()) is None

    @pytest.mark.asyncio
    async def test_entry_at_exact_expiry_still_served(self, cache):
        await cache.set(make_correlation_result(computed_at=NOW - TTL), "user-1", "30d")

        assert await cache.get(rice_key()) is not None

    @pytest.mark.asyncio
    async def test_reads_do_not_extend_life(self, cache, clock):
        await cache.set(make_correlation_result(computed_at=NOW), "user-1", "30d")

        clock.advance(TTL // 2)
        first = await cache.get(rice_key())
        clock.advance(TTL // 2 + 1)

        assert first.expires_at == NOW + TTL
        assert await cache.get(rice_key()) is None

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired(self, cache, db):
        create_cache_entry(db, "user-1", cause_id="food:old", computed_at=0, expires_at=NOW - 1)
        create_cache_entry(db, "user-1", cause_id="food:new", computed_at=NOW, expires_at=NOW + TTL)
        create_cache_entry(db, "user-2", cause_id="food:old", computed_at=0, expires_at=NOW - 1)

        removed = await cache.cleanup_expired("user-1")

        assert removed == 1
        remaining = {(e.user_id, e.cause_id) for e in db.query(CorrelationCacheEntry).all()}
        assert remaining == {("user-1", "food:new"), ("user-2", "food:old")}

    @pytest.mark.asyncio
    async def test_cleanup_after_expired_get(self, cache, db):
        await cache.set(make_correlation_result(computed_at=NOW - TTL - 1), "user-1", "30d")

        assert await cache.get(rice_key()) is None
        assert await cache.cleanup_expired("user-1") == 1
        assert db.query(CorrelationCacheEntry).count() == 0


# =============================================================================
# Invalidation and stats
# =============================================================================


class TestInvalidate:
    """Tests for targeted invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_by_cause_also_drops_combinations(self, cache, db):
        create_cache_entry(db, "user-1", cause_id="food:rice")
        create_cache_entry(db, "user-1", cause_id="food:bread")
        create_cache_entry(db, "user-1", cause_id="combinations", kind="combinations")

        removed = await cache.invalidate("user-1", cause_id="food:rice")

        assert removed == 2
        assert [e.cause_id for e in db.query(CorrelationCacheEntry).all()] == ["food:bread"]

    @pytest.mark.asyncio
    async def test_invalidate_by_effect(self, cache, db):
        create_cache_entry(db, "user-1", effect_id="bloating")
        create_cache_entry(db, "user-1", effect_id="nausea")

        removed = await cache.invalidate("user-1", effect_id="nausea")

        assert removed == 1
        assert [e.effect_id for e in db.query(CorrelationCacheEntry).all()] == ["bloating"]

    @pytest.mark.asyncio
    async def test_invalidate_whole_user(self, cache, db):
        create_cache_entry(db, "user-1", cause_id="food:rice")
        create_cache_entry(db, "user-1", cause_id="food:bread")
        create_cache_entry(db, "user-2", cause_id="food:rice")

        assert await cache.invalidate("user-1") == 2
        assert db.query(CorrelationCacheEntry).count() == 1

    @pytest.mark.asyncio
    async def test_stats(self, cache, db):
        create_cache_entry(db, "user-1", cause_id="food:a", expires_at=NOW - 1)
        create_cache_entry(db, "user-1", cause_id="food:b", expires_at=NOW + 1)
        create_cache_entry(db, "user-1", cause_id="food:c", expires_at=NOW + 1)

        assert await cache.stats("user-1") == {"total": 3, "expired": 1, "active": 2}
