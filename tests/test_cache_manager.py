"""Tests for the quota-aware odds cache and its storage backends."""

import json
from datetime import timedelta

import pytest

from prop_edge.data.cache import (
    CacheRecord,
    InMemoryCache,
    QuotaAwareCache,
    SQLiteCache,
)

SAMPLE_DATA = [{"id": "evt-1", "home": "Lakers", "away": "Warriors", "bookmakers": {}}]


@pytest.fixture
def backend():
    return InMemoryCache()


@pytest.fixture
def cache(backend, clock):
    return QuotaAwareCache(backend, ttl_seconds=300, quota_limit=5000, now=clock)


@pytest.mark.asyncio
class TestInMemoryCache:
    """Test the in-memory backend."""

    async def test_set_get_delete(self, backend):
        await backend.set("k", "v")
        assert await backend.get("k") == "v"

        await backend.delete("k")
        assert await backend.get("k") is None

    async def test_prefix_operations(self, backend):
        await backend.set("@odds_cache:NBA", "1")
        await backend.set("@odds_cache:NFL", "2")
        await backend.set("other", "3")

        assert sorted(await backend.keys("@odds_cache:")) == ["@odds_cache:NBA", "@odds_cache:NFL"]
        assert await backend.clear_prefix("@odds_cache:") == 2
        assert await backend.keys() == ["other"]


@pytest.mark.asyncio
class TestSQLiteCache:
    """Test the SQLite backend."""

    async def test_persists_across_instances(self, tmp_path):
        db_path = tmp_path / "cache.db"

        first = SQLiteCache(db_path)
        await first.set("@odds_cache:NBA_player_props", '{"data": 1}')
        await first.close()

        second = SQLiteCache(db_path)
        assert await second.get("@odds_cache:NBA_player_props") == '{"data": 1}'
        await second.close()

    async def test_prefix_operations(self, tmp_path):
        backend = SQLiteCache(tmp_path / "cache.db")
        await backend.set("@odds_cache:NBA", "1")
        await backend.set("@odds_cache:NFL", "2")
        await backend.set("other_%", "3")

        assert sorted(await backend.keys("@odds_cache:")) == ["@odds_cache:NBA", "@odds_cache:NFL"]
        assert await backend.clear_prefix("@odds_cache:") == 2
        assert await backend.keys("") == ["other_%"]

        await backend.delete("other_%")
        assert await backend.get("other_%") is None
        await backend.close()

    async def test_quota_cache_over_sqlite(self, tmp_path, clock):
        cache = QuotaAwareCache(SQLiteCache(tmp_path / "cache.db"), now=clock)
        await cache.set("NBA", "player_props", SAMPLE_DATA, 4900)

        assert await cache.get("NBA", "player_props") == SAMPLE_DATA
        await cache.close()


@pytest.mark.asyncio
class TestQuotaAwareCacheTTL:
    """Test record freshness."""

    async def test_round_trip(self, cache):
        await cache.set("NBA", "player_props", SAMPLE_DATA)
        assert await cache.get("NBA", "player_props") == SAMPLE_DATA

    async def test_missing_entry(self, cache):
        assert await cache.get("NFL", "player_props") is None

    async def test_valid_until_expiry(self, cache, clock):
        await cache.set("NBA", "player_props", SAMPLE_DATA)

        clock.advance(seconds=299)
        assert await cache.get("NBA", "player_props") == SAMPLE_DATA

    async def test_expired_at_exactly_ttl(self, cache, backend, clock):
        await cache.set("NBA", "player_props", SAMPLE_DATA)

        clock.advance(seconds=300)
        assert await cache.get("NBA", "player_props") is None
        # removed on read
        assert await backend.keys() == []

    async def test_record_format(self, cache, backend, clock):
        await cache.set("NBA", "player_props", SAMPLE_DATA, 4990)

        raw = await backend.get("@odds_cache:NBA_player_props")
        payload = json.loads(raw)
        stored_ms = int(clock().timestamp() * 1000)

        assert payload["data"] == SAMPLE_DATA
        assert payload["timestamp"] == stored_ms
        assert payload["expiresAt"] == stored_ms + 300_000
        assert payload["requestsRemaining"] == 4990

    async def test_corrupted_record_removed(self, cache, backend):
        key = QuotaAwareCache.make_key("NBA", "player_props")
        await backend.set(key, "not json")

        assert await cache.get("NBA", "player_props") is None
        assert await backend.get(key) is None

    async def test_record_missing_fields_rejected(self):
        with pytest.raises(ValueError):
            CacheRecord.from_json(json.dumps({"data": []}))


@pytest.mark.asyncio
class TestShouldFetchFresh:
    """Test the refresh decision."""

    async def test_empty_cache_fetches(self, cache):
        assert await cache.should_fetch_fresh("NBA", "player_props")

    async def test_fresh_entry_skips_fetch(self, cache):
        await cache.set("NBA", "player_props", SAMPLE_DATA)
        assert not await cache.should_fetch_fresh("NBA", "player_props")

    async def test_force_refresh(self, cache):
        await cache.set("NBA", "player_props", SAMPLE_DATA)
        assert await cache.should_fetch_fresh("NBA", "player_props", force_refresh=True)

    async def test_expired_entry_fetches(self, cache, clock):
        await cache.set("NBA", "player_props", SAMPLE_DATA)
        clock.advance(minutes=5)
        assert await cache.should_fetch_fresh("NBA", "player_props")

    async def test_low_quota_never_blocks(self, cache):
        cache.update_quota(3)
        assert await cache.should_fetch_fresh("NBA", "player_props")

        cache.update_quota(0)
        assert await cache.should_fetch_fresh("NBA", "player_props")

    async def test_keys_are_per_sport(self, cache):
        await cache.set("NBA", "player_props", SAMPLE_DATA)
        assert await cache.should_fetch_fresh("NFL", "player_props")


@pytest.mark.asyncio
class TestQuotaTracking:
    """Test quota bookkeeping and stats."""

    async def test_set_updates_quota(self, cache, clock):
        await cache.set("NBA", "player_props", SAMPLE_DATA, 4990)

        quota = cache.quota
        assert quota.requests_remaining == 4990
        assert quota.requests_used == 10
        assert quota.last_updated == clock()
        assert quota.reset_at == clock() + timedelta(hours=1)

    async def test_set_without_quota_leaves_it_unknown(self, cache):
        await cache.set("NBA", "player_props", SAMPLE_DATA)
        assert cache.quota.requests_remaining is None

    async def test_reset_window_rolls_over(self, cache, clock):
        cache.update_quota(4990)
        first_reset = cache.quota.reset_at

        clock.advance(minutes=30)
        cache.update_quota(4980)
        assert cache.quota.reset_at == first_reset

        clock.advance(minutes=30)
        cache.update_quota(4970)
        assert cache.quota.reset_at == clock() + timedelta(hours=1)

    async def test_used_never_negative(self, cache):
        assert cache.update_quota(6000).requests_used == 0

    async def test_reset_quota(self, cache):
        cache.update_quota(100)
        cache.reset_quota()
        assert cache.quota.requests_remaining is None
        assert cache.quota.requests_used == 0

    async def test_stats(self, cache, clock):
        await cache.set("NBA", "player_props", SAMPLE_DATA, 4990)
        await cache.get("NBA", "player_props")
        await cache.get("NFL", "player_props")

        clock.advance(seconds=200)
        await cache.set("NHL", "player_props", SAMPLE_DATA)
        clock.advance(seconds=150)

        stats = await cache.get_stats()
        assert stats.total_entries == 2
        assert stats.valid_entries == 1
        assert stats.expired_entries == 1
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(0.5)
        assert stats.api_calls == 1
        assert stats.quota.requests_remaining == 4990

    async def test_cleanup_expired(self, cache, backend, clock):
        await cache.set("NBA", "player_props", SAMPLE_DATA)
        await backend.set(QuotaAwareCache.make_key("MLB", "player_props"), "garbage")
        clock.advance(seconds=100)
        await cache.set("NFL", "player_props", SAMPLE_DATA)
        clock.advance(seconds=250)

        assert await cache.cleanup_expired() == 2
        assert await cache.get("NFL", "player_props") == SAMPLE_DATA

        stats = await cache.get_stats()
        assert stats.total_entries == 1
        assert stats.last_cleanup == clock()

    async def test_clear_all(self, cache, backend):
        await cache.set("NBA", "player_props", SAMPLE_DATA)
        await cache.set("NFL", "player_props", SAMPLE_DATA)
        await backend.set("unrelated", "x")

        assert await cache.clear_all() == 2
        assert await backend.keys() == ["unrelated"]
