"""Items API endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pricetrail.core.exceptions import NotFoundError
from pricetrail.dependencies import get_db, get_result_cache
from pricetrail.scrapers.utils.normalizer import normalize_query
from pricetrail.schemas import ApiResponse, ItemResponse
from pricetrail.services.item_service import ItemService
from pricetrail.services.result_cache import ResultCache

router = APIRouter()


@router.get("/search", response_model=ApiResponse)
async def search_items(
    q: str = Query(..., min_length=1, description="Search query"),
    db: AsyncSession = Depends(get_db),
    result_cache: ResultCache = Depends(get_result_cache),
):
    """Search items by name or brand, cheapest first.

    Results are cached; if the database is unavailable the last known
    results for the query are served instead.
    """
    service = ItemService(db)
    query = normalize_query(q)

    async def fetch_live():
        items = await service.search(query)
        return [ItemResponse.model_validate(i).model_dump(mode="json") for i in items]

    results = await result_cache.get_or_fetch(query, fetch_live)
    return ApiResponse(status="success", data=results)


@router.get("/{item_id}", response_model=ApiResponse)
async def get_item(item_id: int, db: AsyncSession = Depends(get_db)):
    item = await ItemService(db).get_item(item_id)
    if not item:
        raise NotFoundError("Item", str(item_id))

    return ApiResponse(status="success", data=ItemResponse.model_validate(item))


@router.delete("/{item_id}", response_model=ApiResponse)
async def delete_item(item_id: int, db: AsyncSession = Depends(get_db)):
    """Delete an item together with its price history."""
    deleted = await ItemService(db).delete_item(item_id)
    if not deleted:
        raise NotFoundError("Item", str(item_id))

    return ApiResponse(status="success", data={"deleted": item_id})
