"""Tests for the Redis cache service and the two-tier result cache."""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pricetrail.services.cache_service import CacheService, cache_key_for_search
from pricetrail.services.result_cache import ResultCache


@pytest.fixture
def result_cache(fake_cache):
    return ResultCache(fake_cache, primary_ttl=300, stale_ttl=3600)


class TestCacheKeys:

    def test_primary_and_stale_keys(self):
        assert cache_key_for_search("Sandals") == "search:sandals"
        assert cache_key_for_search("  Flip   Flops ", stale=True) == "search:flip flops:stale"


class TestResultCache:

    async def test_fetch_populates_both_tiers(self, result_cache, fake_cache):
        fetcher = AsyncMock(return_value=[{"id": 1, "name": "Granada Sandal"}])

        results = await result_cache.get_or_fetch("sandals", fetcher)

        assert results == [{"id": 1, "name": "Granada Sandal"}]
        assert fake_cache.ttls == {"search:sandals": 300, "search:sandals:stale": 3600}
        assert json.loads(fake_cache.store["search:sandals:stale"]) == results

    async def test_primary_hit_skips_fetcher(self, result_cache):
        await result_cache.put("sandals", [{"id": 1}])
        fetcher = AsyncMock()

        assert await result_cache.get_or_fetch("Sandals ", fetcher) == [{"id": 1}]
        fetcher.assert_not_called()

    async def test_failed_fetch_serves_stale(self, result_cache, fake_cache):
        await result_cache.put("sandals", [{"id": 1}])
        # primary tier expired
        del fake_cache.store["search:sandals"]
        fetcher = AsyncMock(side_effect=RuntimeError("database unavailable"))

        assert await result_cache.get_or_fetch("sandals", fetcher) == [{"id": 1}]
        fetcher.assert_awaited_once()

    async def test_failed_fetch_without_stale_returns_empty(self, result_cache):
        fetcher = AsyncMock(side_effect=RuntimeError("database unavailable"))

        assert await result_cache.get_or_fetch("sandals", fetcher) == []

    async def test_invalidate_keeps_stale_entry(self, result_cache, fake_cache):
        await result_cache.put("sandals", [{"id": 1}])

        assert await result_cache.invalidate("sandals") is True

        assert await result_cache.get("sandals") is None
        assert await result_cache.get_stale("sandals") == [{"id": 1}]

    async def test_decimals_serialized_as_strings(self, result_cache):
        from decimal import Decimal

        await result_cache.put("sandals", [{"price": Decimal("19.95")}])

        assert await result_cache.get("sandals") == [{"price": "19.95"}]

    async def test_corrupt_entry_is_a_miss(self, result_cache, fake_cache):
        fake_cache.store["search:sandals"] = "{not json"

        assert await result_cache.get("sandals") is None


class TestCacheService:

    async def test_redis_errors_degrade(self):
        redis = AsyncMock()
        redis.get.side_effect = RedisConnectionError("refused")
        redis.set.side_effect = RedisConnectionError("refused")
        redis.delete.side_effect = RedisConnectionError("refused")
        redis.ping.side_effect = RedisConnectionError("refused")
        cache = CacheService("redis://localhost:6379/0")
        cache._redis = redis

        assert await cache.get("k") is None
        assert await cache.set("k", "v") is False
        assert await cache.delete("k") is False
        assert await cache.health_check() is False

    async def test_set_passes_ttl(self):
        redis = AsyncMock()
        cache = CacheService("redis://localhost:6379/0")
        cache._redis = redis

        assert await cache.set("k", "v", ttl=42) is True
        redis.set.assert_awaited_once_with("k", "v", ex=42)

    async def test_close(self):
        redis = AsyncMock()
        cache = CacheService("redis://localhost:6379/0")
        cache._redis = redis

        await cache.close()

        redis.aclose.assert_awaited_once()
        assert cache._redis is None
