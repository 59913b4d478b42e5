"""FastAPI dependency injection providers."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from pricetrail.db.session import async_session_factory
from pricetrail.scrapers.orchestrator import IngestionOrchestrator
from pricetrail.services.cache_service import CacheService, get_cache_service
from pricetrail.services.result_cache import ResultCache


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped usage.

    The session is committed on success or rolled back on error, and
    always closed after the request completes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_cache() -> CacheService:
    return get_cache_service()


async def get_result_cache() -> ResultCache:
    return ResultCache(get_cache_service())


_orchestrator: IngestionOrchestrator | None = None


def get_orchestrator() -> IngestionOrchestrator:
    """Shared orchestrator, so ``state`` and ``last_report`` survive requests."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = IngestionOrchestrator(async_session_factory)
    return _orchestrator
