"""Source registry: the set of adapters available to one orchestrator run."""

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from pricetrail.scrapers.base import BaseSourceAdapter

logger = structlog.get_logger(__name__)

STATUS_HEALTHY = "healthy"
STATUS_DEGRADED = "degraded"
STATUS_UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class SourceDescriptor:
    name: str
    adapter: BaseSourceAdapter


class SourceRegistry:
    """Resolves adapters by name and filters them by health.

    Names are matched case-insensitively. When two adapters share a name
    the first one registered wins.
    """

    def __init__(self, adapters: Iterable[BaseSourceAdapter]):
        self._sources: List[SourceDescriptor] = []
        seen = set()
        for adapter in adapters:
            key = adapter.name.lower()
            if key in seen:
                logger.warning("duplicate_source_ignored", source=adapter.name)
                continue
            seen.add(key)
            self._sources.append(SourceDescriptor(name=adapter.name, adapter=adapter))

    def __len__(self) -> int:
        return len(self._sources)

    def all_sources(self) -> List[BaseSourceAdapter]:
        return [s.adapter for s in self._sources]

    def names(self) -> List[str]:
        return [s.name for s in self._sources]

    def by_name(self, name: str) -> Optional[BaseSourceAdapter]:
        """Find a source by name, ignoring case. Returns None on a miss."""
        wanted = (name or "").lower()
        for source in self._sources:
            if source.name.lower() == wanted:
                return source.adapter
        return None

    async def healthy_sources(self) -> List[BaseSourceAdapter]:
        """Run every health check concurrently and keep the passing sources.

        Never raises; a check that raises counts as unhealthy.
        """
        results = await self._check_all()
        return [adapter for adapter, healthy in results if healthy]

    async def health_report(self) -> Dict:
        """Aggregate health of all sources.

        Returns:
            Dict with status ('healthy', 'degraded' or 'unhealthy'),
            per-source results and counts
        """
        results = await self._check_all()
        healthy = [a.name for a, ok in results if ok]
        unhealthy = [a.name for a, ok in results if not ok]

        if results and not unhealthy:
            status = STATUS_HEALTHY
        elif healthy:
            status = STATUS_DEGRADED
        else:
            status = STATUS_UNHEALTHY

        return {
            "status": status,
            "sources": {a.name: ok for a, ok in results},
            "healthy_count": len(healthy),
            "unhealthy_count": len(unhealthy),
            "total": len(results),
        }

    async def _check_all(self) -> List[Tuple[BaseSourceAdapter, bool]]:
        adapters = self.all_sources()
        outcomes = await asyncio.gather(*(self._safe_check(a) for a in adapters))
        return list(zip(adapters, outcomes))

    @staticmethod
    async def _safe_check(adapter: BaseSourceAdapter) -> bool:
        try:
            healthy = bool(await adapter.health_check())
        except Exception as e:
            logger.warning("health_check_raised", source=adapter.name, error=str(e))
            return False
        if not healthy:
            logger.warning("source_unhealthy", source=adapter.name)
        return healthy
