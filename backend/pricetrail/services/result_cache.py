"""Two-tier search result cache with stale fallback.

Every successful fetch writes a short-lived primary entry and a
long-lived stale entry. When the live fetch fails, the stale entry (or an
empty list) is served instead of an error.
"""

import json
from typing import Any, Awaitable, Callable, List, Optional

import structlog

from pricetrail.config import settings
from pricetrail.services.cache_service import CacheService, cache_key_for_search

logger = structlog.get_logger(__name__)

Results = List[Any]


class ResultCache:
    """Primary/stale cache for search results, stored as JSON."""

    def __init__(
        self,
        cache: CacheService,
        primary_ttl: int = settings.CACHE_PRIMARY_TTL_SECONDS,
        stale_ttl: int = settings.CACHE_STALE_TTL_SECONDS,
    ):
        self.cache = cache
        self.primary_ttl = primary_ttl
        self.stale_ttl = stale_ttl
        self.logger = logger.bind(service="result_cache")

    async def get(self, query: str) -> Optional[Results]:
        """Primary-tier results, or None on a miss."""
        return await self._read(cache_key_for_search(query))

    async def get_stale(self, query: str) -> Optional[Results]:
        return await self._read(cache_key_for_search(query, stale=True))

    async def put(self, query: str, results: Results) -> None:
        """Write both tiers."""
        payload = json.dumps(results, default=str)
        await self.cache.set(cache_key_for_search(query), payload, ttl=self.primary_ttl)
        await self.cache.set(
            cache_key_for_search(query, stale=True), payload, ttl=self.stale_ttl
        )

    async def invalidate(self, query: str) -> bool:
        """Drop the primary entry; the stale entry stays as a fallback."""
        return await self.cache.delete(cache_key_for_search(query))

    async def get_or_fetch(
        self,
        query: str,
        fetcher: Callable[[], Awaitable[Results]],
    ) -> Results:
        """Serve from the primary tier, else fetch live, else fall back to stale.

        Args:
            query: Search query (normalized for the key)
            fetcher: Zero-argument coroutine factory performing the live read

        Returns:
            Results from cache or the live fetch; never raises for fetch errors
        """
        cached = await self.get(query)
        if cached is not None:
            self.logger.debug("result_cache_hit", query=query)
            return cached

        try:
            results = await fetcher()
        except Exception as e:
            stale = await self.get_stale(query)
            self.logger.warning(
                "live_fetch_failed_serving_stale",
                query=query,
                error=str(e),
                stale_available=stale is not None,
            )
            return stale if stale is not None else []

        await self.put(query, results)
        return results

    async def _read(self, key: str) -> Optional[Results]:
        raw = await self.cache.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            self.logger.warning("cache_entry_corrupt", key=key)
            return None
