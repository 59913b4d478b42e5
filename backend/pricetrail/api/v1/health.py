"""Service and source health endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from pricetrail.dependencies import get_cache, get_db, get_orchestrator
from pricetrail.schemas import HealthCheckResponse, SourcesHealthResponse
from pricetrail.scrapers.orchestrator import IngestionOrchestrator
from pricetrail.services.cache_service import CacheService

router = APIRouter()

OK = "ok"


async def _check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        return f"error: {e}"
    return OK


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
):
    """Database and Redis connectivity. Redis down means degraded, not failed."""
    database = await _check_database(db)
    redis = OK if await cache.health_check() else "error: ping failed"
    services = {"database": database, "redis": redis}

    return HealthCheckResponse(
        status=OK if all(s == OK for s in services.values()) else "degraded",
        database=database,
        redis=redis,
        services=services,
    )


@router.get("/health/sources", response_model=SourcesHealthResponse)
async def sources_health(
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Check every registered source and report aggregate reachability."""
    report = await orchestrator.build_registry().health_report()
    return SourcesHealthResponse(**report)
