"""API v1 router -- aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from pricetrail.api.v1 import health, items, price_history, scraper

api_v1_router = APIRouter()

api_v1_router.include_router(health.router, tags=["health"])
api_v1_router.include_router(items.router, prefix="/items", tags=["items"])
api_v1_router.include_router(price_history.router, prefix="/price-history", tags=["price-history"])
api_v1_router.include_router(scraper.router, prefix="/scraper", tags=["scraper"])
