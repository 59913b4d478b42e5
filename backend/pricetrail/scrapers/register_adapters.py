"""Register all source adapters with the factory.

This module is imported during application startup (and by the CLI) to
register every available adapter. Registration order is run order.
"""

from typing import Optional

import structlog

from pricetrail.scrapers.adapters import (
    AmazonAuAdapter,
    BirdsNestAdapter,
    TheIconicAdapter,
)
from pricetrail.scrapers.factory import AdapterFactory, get_adapter_factory

logger = structlog.get_logger(__name__)

ADAPTERS = [
    ("the_iconic", TheIconicAdapter),
    ("amazon_au", AmazonAuAdapter),
    ("birds_nest", BirdsNestAdapter),
]


def register_all_adapters(factory: Optional[AdapterFactory] = None) -> AdapterFactory:
    """Register all available adapters with the factory.

    Args:
        factory: Factory to populate, defaults to the global one

    Returns:
        The populated factory
    """
    factory = factory or get_adapter_factory()

    for key, adapter_class in ADAPTERS:
        if factory.has_adapter(key):
            continue
        factory.register_adapter(key, adapter_class)

    logger.info(
        "all_adapters_registered",
        count=len(factory.get_registered_keys()),
        sources=factory.get_registered_keys(),
    )
    return factory
