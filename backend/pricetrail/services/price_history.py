"""Price history engine: sparse sample recording and drop detection.

A new PriceSample is only appended when an item's observed price differs
from its most recent sample, so the history is a change log rather than
an observation log. Aggregates and drop detection read from that log.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pricetrail.models.item import Item
from pricetrail.models.price_sample import PriceSample

logger = structlog.get_logger(__name__)

TWO_PLACES = Decimal("0.01")

DEFAULT_DROP_THRESHOLD_PERCENT = Decimal("10")
DEFAULT_DROP_DAYS_BACK = 7


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Normalize an aggregate result (float on SQLite, Decimal on Postgres)."""
    if value is None:
        return None
    return Decimal(str(value)).quantize(TWO_PLACES)


def drop_percentage(previous: Decimal, current: Decimal) -> Decimal:
    """(previous - current) / previous * 100; negative for a price increase."""
    return (previous - current) / previous * 100


class PriceHistoryEngine:
    """Records and analyses item price samples."""

    def __init__(self, db: AsyncSession):
        """Initialize price history engine.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="price_history")

    async def record_if_changed(
        self,
        item_id: int,
        new_price: Decimal,
        source_tag: Optional[str] = "scraper",
    ) -> bool:
        """Append a sample unless the latest one already has ``new_price``.

        Args:
            item_id: Item primary key
            new_price: Observed price
            source_tag: Optional tag stored on the sample

        Returns:
            True if a sample was appended, False if the price was unchanged
        """
        new_price = Decimal(new_price).quantize(TWO_PLACES)

        latest = await self._latest_prices(item_id, limit=1)
        previous = latest[0] if latest else None

        if previous is not None and previous == new_price:
            return False

        self.db.add(
            PriceSample(
                item_id=item_id,
                price=new_price,
                recorded_at=datetime.now(timezone.utc),
                source=source_tag,
            )
        )
        await self.db.commit()

        self.logger.info(
            "price_sample_recorded",
            item_id=item_id,
            old_price=float(previous) if previous is not None else None,
            new_price=float(new_price),
            source=source_tag,
        )
        return True

    async def history(
        self,
        item_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[PriceSample]:
        """Get samples for an item in chronological order.

        Args:
            item_id: Item primary key
            start: Optional inclusive lower bound on recorded_at
            end: Optional inclusive upper bound on recorded_at

        Returns:
            List of PriceSample, oldest first
        """
        query = select(PriceSample).where(PriceSample.item_id == item_id)
        if start is not None:
            query = query.where(PriceSample.recorded_at >= start)
        if end is not None:
            query = query.where(PriceSample.recorded_at <= end)
        query = query.order_by(PriceSample.recorded_at.asc(), PriceSample.id.asc())

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def lowest(self, item_id: int) -> Optional[Decimal]:
        return await self._aggregate(func.min(PriceSample.price), item_id)

    async def highest(self, item_id: int) -> Optional[Decimal]:
        return await self._aggregate(func.max(PriceSample.price), item_id)

    async def average(self, item_id: int) -> Optional[Decimal]:
        return await self._aggregate(func.avg(PriceSample.price), item_id)

    async def statistics(
        self,
        item_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict:
        """Samples plus lowest/highest/average/count for the read API.

        Aggregates cover the item's whole history; ``count`` is the number
        of samples inside the requested window.
        """
        samples = await self.history(item_id, start=start, end=end)
        return {
            "item_id": item_id,
            "history": samples,
            "lowest": await self.lowest(item_id),
            "highest": await self.highest(item_id),
            "average": await self.average(item_id),
            "count": len(samples),
        }

    async def is_price_drop(
        self,
        item_id: int,
        threshold_percent: Decimal = DEFAULT_DROP_THRESHOLD_PERCENT,
    ) -> bool:
        """Check whether the latest sample dropped by at least ``threshold_percent``.

        Compares the two most recent samples only. Fewer than two samples,
        or a price increase, is never a drop.
        """
        recent = await self._latest_prices(item_id, limit=2)
        if len(recent) < 2:
            return False

        current, previous = recent[0], recent[1]
        if previous <= 0:
            return False

        return drop_percentage(previous, current) >= Decimal(str(threshold_percent))

    async def items_with_drops(
        self,
        threshold_percent: Decimal = DEFAULT_DROP_THRESHOLD_PERCENT,
        days_back: int = DEFAULT_DROP_DAYS_BACK,
    ) -> List[Item]:
        """Items updated in the last ``days_back`` days whose price dropped.

        Runs one history lookup per candidate item. Result order is not
        significant.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_back)

        result = await self.db.execute(
            select(Item).where(Item.last_updated > cutoff)
        )
        candidates = list(result.scalars().all())

        dropped = []
        for item in candidates:
            if await self.is_price_drop(item.id, threshold_percent):
                dropped.append(item)

        self.logger.info(
            "price_drops_evaluated",
            candidates=len(candidates),
            dropped=len(dropped),
            threshold_percent=float(threshold_percent),
            days_back=days_back,
        )
        return dropped

    async def _latest_prices(self, item_id: int, limit: int) -> List[Decimal]:
        result = await self.db.execute(
            select(PriceSample.price)
            .where(PriceSample.item_id == item_id)
            .order_by(PriceSample.recorded_at.desc(), PriceSample.id.desc())
            .limit(limit)
        )
        return [Decimal(p).quantize(TWO_PLACES) for p in result.scalars().all()]

    async def _aggregate(self, expression, item_id: int) -> Optional[Decimal]:
        result = await self.db.execute(
            select(expression).where(PriceSample.item_id == item_id)
        )
        return _to_decimal(result.scalar())
