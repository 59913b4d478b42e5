"""Pytest configuration and shared fixtures."""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from bs4 import BeautifulSoup
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from pricetrail.db.session import create_engine_from_url, create_session_factory
from pricetrail.models import Base
from pricetrail.scrapers.base import CandidateItem, HttpSourceAdapter
from pricetrail.scrapers.utils.fetch_policy import FetchPolicy
from pricetrail.scrapers.utils.normalizer import absolute_url, parse_price
from pricetrail.services.persistence_gateway import PersistenceGateway


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine with foreign keys enforced."""
    engine = create_engine_from_url(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncSession:
    """Create a session on the in-memory database."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def unit_of_work(session_factory):
    """Unit-of-work factory yielding a gateway on a fresh session."""

    @asynccontextmanager
    async def _uow():
        async with session_factory() as session:
            yield PersistenceGateway(session)

    return _uow


# ============================================================================
# DOUBLES
# ============================================================================

class FakeCacheService:
    """Dict-backed stand-in for CacheService."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.healthy = True

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def health_check(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        pass


@pytest.fixture
def fake_cache() -> FakeCacheService:
    return FakeCacheService()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Awaitable sleep replacement that returns immediately."""
    return AsyncMock(return_value=None)


def make_policy(handler, sleep=None, clock=None, **kwargs) -> FetchPolicy:
    """FetchPolicy whose HTTP client is served by an httpx.MockTransport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    extra = {}
    if clock is not None:
        extra["clock"] = clock
    return FetchPolicy(
        client=client,
        sleep=sleep or AsyncMock(return_value=None),
        **extra,
        **kwargs,
    )


def make_candidate(
    url: str = "https://shop.test/p/1",
    price: str = "25.00",
    name: str = "Slide Sandal",
    source: str = "Shop A",
    brand: Optional[str] = None,
) -> CandidateItem:
    return CandidateItem(
        name=name,
        product_url=url,
        price=Decimal(price),
        source_name=source,
        brand=brand,
    )


# ============================================================================
# STUB ADAPTERS
# ============================================================================

class ListingAdapter(HttpSourceAdapter):
    """Minimal HTML adapter: one ``li.item`` per listing, data in attributes."""

    source_name = "Shop A"
    base_url = "https://shop-a.test"

    def search_url(self, search_term: str) -> str:
        return f"{self.base_url}/search?q={search_term}"

    def select_nodes(self, raw: str):
        return BeautifulSoup(raw, "html.parser").select("li.item")

    def extract_candidate(self, node) -> Optional[CandidateItem]:
        return CandidateItem(
            name=node.get("data-name"),
            product_url=absolute_url(self.base_url, node.get("data-href")),
            price=parse_price(node.get("data-price")),
            source_name=self.name,
        )


class OtherListingAdapter(ListingAdapter):
    source_name = "Shop B"
    base_url = "https://shop-b.test"


def listing_html(items: List[tuple]) -> str:
    """Render (name, href, price) tuples as a ListingAdapter page."""
    rows = "".join(
        f'<li class="item" data-name="{name}" data-href="{href}" data-price="{price}"></li>'
        for name, href, price in items
    )
    return f"<html><body><ul>{rows}</ul></body></html>"
