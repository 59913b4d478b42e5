"""Price history API endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pricetrail.core.exceptions import NotFoundError
from pricetrail.dependencies import get_db
from pricetrail.schemas import ApiResponse, ItemResponse, PriceHistoryResponse, PriceSampleResponse
from pricetrail.services.item_service import ItemService
from pricetrail.services.price_history import PriceHistoryEngine

router = APIRouter()


@router.get("/drops", response_model=ApiResponse)
async def get_price_drops(
    threshold_percent: Decimal = Query(Decimal("10"), gt=0, le=100),
    days_back: int = Query(7, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    """Items updated recently whose latest price fell by at least the threshold."""
    items = await PriceHistoryEngine(db).items_with_drops(threshold_percent, days_back)
    return ApiResponse(
        status="success",
        data=[ItemResponse.model_validate(i) for i in items],
    )


@router.get("/{item_id}", response_model=ApiResponse)
async def get_price_history(
    item_id: int,
    start: Optional[datetime] = Query(None, description="Inclusive lower bound"),
    end: Optional[datetime] = Query(None, description="Inclusive upper bound"),
    db: AsyncSession = Depends(get_db),
):
    """Price samples for an item, oldest first, with lowest/highest/average."""
    if not await ItemService(db).get_item(item_id):
        raise NotFoundError("Item", str(item_id))

    stats = await PriceHistoryEngine(db).statistics(item_id, start=start, end=end)

    return ApiResponse(
        status="success",
        data=PriceHistoryResponse(
            item_id=item_id,
            history=[PriceSampleResponse.model_validate(s) for s in stats["history"]],
            lowest=stats["lowest"],
            highest=stats["highest"],
            average=stats["average"],
            count=stats["count"],
        ),
    )
