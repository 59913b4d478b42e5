"""Tests for deduplication and bulk persistence."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from pricetrail.core.exceptions import PersistenceError
from pricetrail.models import Item, PriceSample
from pricetrail.services.persistence_gateway import PersistenceGateway

from conftest import make_candidate


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


class TestPersistNew:
    """Tests for PersistenceGateway.persist_new."""

    async def test_inserts_new_candidates(self, test_db: AsyncSession):
        gateway = PersistenceGateway(test_db)
        candidates = [
            make_candidate(url="https://shop.test/p/1", price="19.95", brand="Havaianas"),
            make_candidate(url="https://shop.test/p/2", price="29.95"),
        ]

        inserted = await gateway.persist_new(candidates)

        assert inserted == 2
        item = (
            await test_db.execute(select(Item).where(Item.product_url == "https://shop.test/p/1"))
        ).scalar_one()
        assert item.price == Decimal("19.95")
        assert item.brand == "Havaianas"
        assert item.source_name == "Shop A"
        assert item.last_updated is not None

    async def test_same_url_across_calls_stored_once(self, session_factory):
        async with session_factory() as session:
            first = await PersistenceGateway(session).persist_new(
                [make_candidate(url="https://shop.test/p/1")]
            )
        async with session_factory() as session:
            second = await PersistenceGateway(session).persist_new(
                [make_candidate(url="https://shop.test/p/1", source="Shop B")]
            )

        async with session_factory() as session:
            assert await _count(session, Item) == 1

        assert first == 1
        assert second == 0

    async def test_duplicates_within_batch_collapsed(self, test_db: AsyncSession):
        gateway = PersistenceGateway(test_db)
        candidates = [
            make_candidate(url="https://shop.test/p/1", price="10.00"),
            make_candidate(url="https://shop.test/p/1", price="12.00"),
            make_candidate(url="https://shop.test/p/2"),
        ]

        inserted = await gateway.persist_new(candidates)

        assert inserted == 2
        item = (
            await test_db.execute(select(Item).where(Item.product_url == "https://shop.test/p/1"))
        ).scalar_one()
        assert item.price == Decimal("10.00")

    async def test_only_unknown_urls_inserted(self, test_db: AsyncSession):
        gateway = PersistenceGateway(test_db)
        await gateway.persist_new([make_candidate(url="https://shop.test/p/1")])

        inserted = await gateway.persist_new([
            make_candidate(url="https://shop.test/p/1"),
            make_candidate(url="https://shop.test/p/3"),
        ])

        assert inserted == 1
        assert await _count(test_db, Item) == 2

    async def test_empty_batch(self, test_db: AsyncSession):
        assert await PersistenceGateway(test_db).persist_new([]) == 0

    async def test_database_error_raises_persistence_error(self, test_db: AsyncSession):
        gateway = PersistenceGateway(test_db)
        gateway._existing_urls = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("database is locked"))
        )

        with pytest.raises(PersistenceError):
            await gateway.persist_new([make_candidate()])

        assert await _count(test_db, Item) == 0


class TestRecordObservedPrices:
    """Tests for PersistenceGateway.record_observed_prices."""

    async def test_new_items_get_first_sample(self, test_db: AsyncSession):
        gateway = PersistenceGateway(test_db)
        candidates = [
            make_candidate(url="https://shop.test/p/1", price="10.00"),
            make_candidate(url="https://shop.test/p/2", price="20.00"),
        ]
        await gateway.persist_new(candidates)

        appended = await gateway.record_observed_prices(candidates, source_tag="Shop A")

        assert appended == 2
        samples = (await test_db.execute(select(PriceSample))).scalars().all()
        assert {s.price for s in samples} == {Decimal("10.00"), Decimal("20.00")}
        assert {s.source for s in samples} == {"Shop A"}

    async def test_unchanged_price_not_recorded_again(self, test_db: AsyncSession):
        gateway = PersistenceGateway(test_db)
        candidates = [make_candidate(price="10.00")]
        await gateway.persist_new(candidates)

        await gateway.record_observed_prices(candidates)
        appended = await gateway.record_observed_prices(candidates)

        assert appended == 0
        assert await _count(test_db, PriceSample) == 1

    async def test_rescrape_records_sample_but_keeps_item_price(self, test_db: AsyncSession):
        gateway = PersistenceGateway(test_db)
        first = [make_candidate(price="100.00")]
        await gateway.persist_new(first)
        await gateway.record_observed_prices(first)

        second = [make_candidate(price="80.00")]
        assert await gateway.persist_new(second) == 0
        assert await gateway.record_observed_prices(second) == 1

        item = (await test_db.execute(select(Item))).scalar_one()
        await test_db.refresh(item)
        assert item.price == Decimal("100.00")

        prices = (
            await test_db.execute(select(PriceSample.price).order_by(PriceSample.id))
        ).scalars().all()
        assert prices == [Decimal("100.00"), Decimal("80.00")]

    async def test_unknown_urls_ignored(self, test_db: AsyncSession):
        gateway = PersistenceGateway(test_db)

        appended = await gateway.record_observed_prices([make_candidate()])

        assert appended == 0
