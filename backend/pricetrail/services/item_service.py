"""Item service for reading, searching and deleting stored items."""

from typing import List, Optional

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pricetrail.models.item import Item
from pricetrail.scrapers.utils.normalizer import normalize_query

logger = structlog.get_logger(__name__)

SEARCH_LIMIT = 50


class ItemService:
    """Service for the item catalogue.

    Items are created by the ingestion pipeline only; this service covers
    the read and delete side.
    """

    def __init__(self, db: AsyncSession):
        """Initialize item service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="item_service")

    async def get_item(self, item_id: int) -> Optional[Item]:
        result = await self.db.execute(select(Item).where(Item.id == item_id))
        return result.scalar_one_or_none()

    async def delete_item(self, item_id: int) -> bool:
        """Delete an item; its price samples go with it (ON DELETE CASCADE).

        Returns:
            True if an item was deleted, False if it did not exist
        """
        result = await self.db.execute(delete(Item).where(Item.id == item_id))
        await self.db.commit()

        deleted = result.rowcount > 0
        self.logger.info("item_deleted" if deleted else "item_delete_missing", item_id=item_id)
        return deleted

    async def search(self, query: str, limit: int = SEARCH_LIMIT) -> List[Item]:
        """Case-insensitive match on name or brand, cheapest first.

        Args:
            query: Free-text query, normalized like the cache key; blank
                queries return nothing
            limit: Maximum number of items

        Returns:
            Matching items ordered by price ascending
        """
        query = normalize_query(query)
        if not query:
            return []

        pattern = f"%{query}%"
        result = await self.db.execute(
            select(Item)
            .where(or_(Item.name.ilike(pattern), Item.brand.ilike(pattern)))
            .order_by(Item.price.asc(), Item.id.asc())
            .limit(limit)
        )
        items = list(result.scalars().all())

        self.logger.info("items_searched", query=query, count=len(items))
        return items
