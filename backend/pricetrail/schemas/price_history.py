"""Price history Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class PriceSampleResponse(BaseModel):
    """Single price history data point."""

    model_config = ConfigDict(from_attributes=True)

    price: Decimal
    recorded_at: datetime
    source: Optional[str] = None


class PriceHistoryResponse(BaseModel):
    """An item's samples plus aggregate statistics."""

    item_id: int
    history: List[PriceSampleResponse]
    lowest: Optional[Decimal] = None
    highest: Optional[Decimal] = None
    average: Optional[Decimal] = None
    count: int = 0
