"""Retailer-specific adapter implementations.

Each adapter module implements a class that inherits from
HttpSourceAdapter (plain HTML) or RenderedSourceAdapter (Playwright).
"""

from .the_iconic import TheIconicAdapter
from .amazon_au import AmazonAuAdapter
from .birds_nest import BirdsNestAdapter

__all__ = [
    "TheIconicAdapter",
    "AmazonAuAdapter",
    "BirdsNestAdapter",
]
