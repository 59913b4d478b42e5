"""PriceTrail Backend -- FastAPI Application Entry Point."""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pricetrail.api.v1.router import api_v1_router
from pricetrail.config import settings
from pricetrail.core.exceptions import NotFoundError
from pricetrail.core.logging import configure_logging
from pricetrail.db.session import engine
from pricetrail.dependencies import get_orchestrator
from pricetrail.models import Base
from pricetrail.schemas import ErrorDetail, ErrorResponse
from pricetrail.scrapers.factory import get_adapter_factory
from pricetrail.scrapers.register_adapters import register_all_adapters
from pricetrail.scrapers.scheduler import IngestionScheduler
from pricetrail.services.cache_service import get_cache_service

logger = structlog.get_logger(__name__)

# Global scheduler instance
scheduler: Optional[IngestionScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    global scheduler

    configure_logging()
    logger.info(
        "api_starting",
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
    )

    # Auto-create tables on startup (safe for fresh deployments)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_ready")
    except Exception as e:
        logger.error("database_init_failed", error=str(e), exc_info=True)

    register_all_adapters()

    # Start ingestion scheduler (only in non-test environments)
    if settings.ENVIRONMENT != "test":
        scheduler = IngestionScheduler(get_orchestrator())
        scheduler.start()
    else:
        logger.info("scheduler_disabled", reason="test_environment")

    cache = get_cache_service()
    if await cache.health_check():
        logger.info("redis_connected")
    else:
        logger.warning("redis_unavailable", detail="search results will not be cached")

    yield

    logger.info("api_stopping")

    if scheduler:
        scheduler.stop()

    try:
        await get_adapter_factory().close()
    except Exception as e:
        logger.warning("adapter_resources_close_failed", error=str(e))

    await cache.close()


app = FastAPI(
    title="PriceTrail API",
    description="Multi-retailer price ingestion and price history API",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code="not_found", message=exc.message))
    return JSONResponse(status_code=404, content=body.model_dump())


# Register API v1 router
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "PriceTrail API",
        "version": "0.1.0",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
    }
