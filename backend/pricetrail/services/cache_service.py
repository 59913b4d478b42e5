"""Redis key-value store behind the search result cache.

Redis is optional at runtime: every operation that hits a RedisError is
logged and reported as a miss (reads) or ``False`` (writes), so search
keeps working against the database when Redis is down.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from pricetrail.config import settings
from pricetrail.scrapers.utils.normalizer import normalize_query

logger = structlog.get_logger(__name__)

SEARCH_KEY_PREFIX = "search"
STALE_SUFFIX = "stale"

R = TypeVar("R")


class CacheService:
    """Lazily connected async Redis client with TTL writes."""

    def __init__(self, redis_url: str, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self._redis: Optional[Redis] = None
        self.logger = logger.bind(service="cache_service")

    def _client(self) -> Redis:
        if self._redis is None:
            self._redis = from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
            )
            self.logger.info("redis_client_created", url=self.redis_url)
        return self._redis

    async def _guarded(
        self,
        operation: str,
        key: str,
        call: Callable[[Redis], Awaitable[R]],
        fallback: Any,
    ) -> Any:
        """Run one Redis call, degrading to ``fallback`` on RedisError."""
        try:
            return await call(self._client())
        except RedisError as e:
            self.logger.warning("cache_unavailable", operation=operation, key=key, error=str(e))
            return fallback

    async def get(self, key: str) -> Optional[str]:
        """Stored string for ``key``, or None on a miss or Redis error."""
        value = await self._guarded("get", key, lambda r: r.get(key), None)
        self.logger.debug("cache_read", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        """Store ``value`` for ``ttl`` seconds. Returns False if Redis failed."""

        async def _set(r: Redis) -> bool:
            await r.set(key, value, ex=ttl)
            return True

        stored = await self._guarded("set", key, _set, False)
        if stored:
            self.logger.debug("cache_written", key=key, ttl=ttl, size=len(value))
        return stored

    async def delete(self, key: str) -> bool:
        removed = await self._guarded("delete", key, lambda r: r.delete(key), 0)
        return bool(removed)

    async def health_check(self) -> bool:
        """PING Redis. Never raises."""
        try:
            return bool(await self._client().ping())
        except Exception as e:
            self.logger.error("redis_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("redis_client_closed")


_cache_instance: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    """Process-wide CacheService built from settings.REDIS_URL."""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = CacheService(settings.REDIS_URL)
    return _cache_instance


def cache_key_for_search(query: str, stale: bool = False) -> str:
    """``search:<normalized query>``, with a ``:stale`` suffix for the fallback tier."""
    parts = [SEARCH_KEY_PREFIX, normalize_query(query)]
    if stale:
        parts.append(STALE_SUFFIX)
    return ":".join(parts)
