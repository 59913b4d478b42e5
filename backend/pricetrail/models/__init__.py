"""SQLAlchemy models for PriceTrail.

All models are imported here so Base.metadata knows every table.
"""

from pricetrail.models.base import Base
from pricetrail.models.item import Item
from pricetrail.models.price_sample import PriceSample

__all__ = [
    "Base",
    "Item",
    "PriceSample",
]
