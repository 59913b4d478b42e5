"""Pydantic schemas for the PriceTrail API.

All request/response models are defined here for easy import.
"""

from pricetrail.schemas.common import ApiResponse, ErrorDetail, ErrorResponse
from pricetrail.schemas.health import HealthCheckResponse, SourcesHealthResponse
from pricetrail.schemas.item import ItemResponse
from pricetrail.schemas.price_history import PriceHistoryResponse, PriceSampleResponse
from pricetrail.schemas.scraper import ScrapeRunResponse

__all__ = [
    # Common
    "ApiResponse",
    "ErrorDetail",
    "ErrorResponse",
    # Health
    "HealthCheckResponse",
    "SourcesHealthResponse",
    # Item
    "ItemResponse",
    # Price history
    "PriceHistoryResponse",
    "PriceSampleResponse",
    # Scraper
    "ScrapeRunResponse",
]
