"""Item Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ItemResponse(BaseModel):
    """Item response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    product_url: str
    price: Decimal
    source_name: str
    brand: Optional[str] = None
    image_url: Optional[str] = None
    last_updated: datetime
