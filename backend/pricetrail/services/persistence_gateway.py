"""Deduplication and bulk persistence of scraped candidates.

Items are keyed by canonical product URL. The unique constraint on
``items.product_url`` is authoritative: a URL inserted concurrently by
another writer between our existence check and our insert is skipped,
not reported as an error.
"""

from datetime import datetime, timezone
from typing import Dict, List, Sequence

import structlog
from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pricetrail.core.exceptions import PersistenceError
from pricetrail.models.item import Item
from pricetrail.scrapers.base import CandidateItem
from pricetrail.services.price_history import PriceHistoryEngine

logger = structlog.get_logger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class PersistenceGateway:
    """Writes new items and their observed prices for one unit of work."""

    def __init__(self, db: AsyncSession):
        """Initialize persistence gateway.

        Args:
            db: Async database session, owned by the caller's unit of work
        """
        self.db = db
        self.price_history = PriceHistoryEngine(db)
        self.logger = logger.bind(service="persistence_gateway")

    async def persist_new(self, candidates: Sequence[CandidateItem]) -> int:
        """Insert candidates whose product URL is not stored yet.

        The whole batch is written in one transaction.

        Args:
            candidates: Parsed candidates from one adapter run

        Returns:
            Number of items actually inserted

        Raises:
            PersistenceError: On any database error other than a uniqueness
                violation; the batch is rolled back
        """
        unique = self._dedupe_batch(candidates)
        if not unique:
            return 0

        try:
            existing = await self._existing_urls([c.product_url for c in unique])
            fresh = [c for c in unique if c.product_url not in existing]

            if not fresh:
                self.logger.info(
                    "no_new_items",
                    candidates=len(candidates),
                    already_stored=len(existing),
                )
                return 0

            inserted = await self._bulk_insert(fresh)
            await self.db.commit()
        except IntegrityError as e:
            # Only reachable on dialects without ON CONFLICT support
            await self.db.rollback()
            self.logger.warning("batch_conflict_skipped", error=str(e.orig))
            return 0
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("batch_persist_failed", error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to persist batch: {e}") from e

        self.logger.info(
            "items_persisted",
            candidates=len(candidates),
            skipped_existing=len(existing),
            inserted=inserted,
        )
        return inserted

    async def record_observed_prices(
        self,
        candidates: Sequence[CandidateItem],
        source_tag: str = "scraper",
    ) -> int:
        """Record each candidate's observed price against its stored item.

        A sample is only appended when the price changed since the item's
        latest sample.

        Returns:
            Number of samples appended
        """
        unique = self._dedupe_batch(candidates)
        if not unique:
            return 0

        try:
            ids = await self._ids_by_url([c.product_url for c in unique])
            appended = 0
            for candidate in unique:
                item_id = ids.get(candidate.product_url)
                if item_id is None:
                    continue
                if await self.price_history.record_if_changed(
                    item_id, candidate.price, source_tag=source_tag
                ):
                    appended += 1
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("price_recording_failed", error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to record prices: {e}") from e

        self.logger.info("observed_prices_recorded", items=len(ids), appended=appended)
        return appended

    @staticmethod
    def _dedupe_batch(candidates: Sequence[CandidateItem]) -> List[CandidateItem]:
        """Keep the first candidate for each product URL."""
        seen = set()
        unique = []
        for candidate in candidates:
            if candidate.product_url in seen:
                continue
            seen.add(candidate.product_url)
            unique.append(candidate)
        return unique

    async def _existing_urls(self, urls: List[str]) -> set:
        result = await self.db.execute(
            select(Item.product_url).where(Item.product_url.in_(urls))
        )
        return set(result.scalars().all())

    async def _ids_by_url(self, urls: List[str]) -> Dict[str, int]:
        result = await self.db.execute(
            select(Item.product_url, Item.id).where(Item.product_url.in_(urls))
        )
        return {url: item_id for url, item_id in result.all()}

    async def _bulk_insert(self, fresh: List[CandidateItem]) -> int:
        now = datetime.now(timezone.utc)
        rows = [
            {
                "name": c.name,
                "product_url": c.product_url,
                "price": c.price,
                "source_name": c.source_name,
                "brand": c.brand,
                "image_url": c.image_url,
                "last_updated": now,
            }
            for c in fresh
        ]

        dialect = self.db.get_bind().dialect.name
        dialect_insert = _UPSERT_INSERTS.get(dialect)

        if dialect_insert is None:
            await self.db.execute(insert(Item), rows)
            return len(rows)

        stmt = (
            dialect_insert(Item)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["product_url"])
            .returning(Item.id)
        )
        result = await self.db.execute(stmt)
        return len(result.scalars().all())
