"""Services module for business logic and data operations.

Services handle persistence, price history analytics, caching, execution
monitoring and alerting for the ingestion pipeline and the read API.
"""

from pricetrail.services.item_service import ItemService
from pricetrail.services.monitor import ExecutionMonitor
from pricetrail.services.persistence_gateway import PersistenceGateway
from pricetrail.services.price_history import PriceHistoryEngine
from pricetrail.services.result_cache import ResultCache

__all__ = [
    "ExecutionMonitor",
    "ItemService",
    "PersistenceGateway",
    "PriceHistoryEngine",
    "ResultCache",
]
