"""Base source adapter interface.

Every retailer integration inherits from HttpSourceAdapter or
RenderedSourceAdapter and implements ``search_url``, ``select_nodes`` and
``extract_candidate``. Fetching, parsing and persistence are driven by
``BaseSourceAdapter.scrape``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncContextManager,
    Callable,
    Iterable,
    List,
    Optional,
)
from urllib.parse import urlparse

import structlog

from pricetrail.core.exceptions import ParseFailure

if TYPE_CHECKING:
    from pricetrail.scrapers.utils.browser_manager import BrowserManager
    from pricetrail.scrapers.utils.fetch_policy import FetchPolicy
    from pricetrail.services.persistence_gateway import PersistenceGateway

    UnitOfWork = Callable[[], AsyncContextManager[PersistenceGateway]]

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ITEMS = 50


@dataclass
class CandidateItem:
    """Normalized item data returned by every adapter's parser."""

    name: str
    product_url: str
    price: Decimal
    source_name: str
    brand: Optional[str] = None
    image_url: Optional[str] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.name:
            raise ValueError("name is required")
        if not self.product_url:
            raise ValueError("product_url is required")
        if self.price is None or self.price <= 0:
            raise ValueError("price must be a positive Decimal")
        if not self.source_name:
            raise ValueError("source_name is required")


class BaseSourceAdapter(ABC):
    """Abstract base class for all retailer adapters.

    Collaborators are injected by the AdapterFactory:
    - fetch_policy: shared FetchPolicy (retry and circuit breaking)
    - unit_of_work: zero-argument factory returning an async context
      manager that yields a PersistenceGateway on a fresh session
    - browser_manager: shared BrowserManager, rendered adapters only
    """

    source_name: str = ""  # Must be overridden in subclass (e.g., "The Iconic")
    base_url: str = ""  # Retailer home page, also the health check target
    fetch_mode: str = ""  # 'http' or 'rendered'

    def __init__(
        self,
        fetch_policy: Optional["FetchPolicy"] = None,
        unit_of_work: Optional["UnitOfWork"] = None,
        browser_manager: Optional["BrowserManager"] = None,
    ):
        self.fetch_policy = fetch_policy
        self.unit_of_work = unit_of_work
        self.browser_manager = browser_manager
        self.logger = logger.bind(adapter=self.source_name)

    @property
    def name(self) -> str:
        if not self.source_name:
            raise ValueError(f"{type(self).__name__} must define source_name")
        return self.source_name

    @property
    def endpoint(self) -> str:
        """Circuit breaker key for this source (its host)."""
        return urlparse(self.base_url).netloc or self.name

    @abstractmethod
    def search_url(self, search_term: str) -> str:
        """Build the retailer's search results URL for a term."""

    @abstractmethod
    async def fetch_raw(self, search_term: str) -> str:
        """Fetch the raw search results page.

        Raises:
            FetchError: If the fetch fails after the policy's retries
        """

    @abstractmethod
    def select_nodes(self, raw: str) -> Iterable[Any]:
        """Locate one node per product listing in the raw page."""

    @abstractmethod
    def extract_candidate(self, node: Any) -> Optional[CandidateItem]:
        """Extract a CandidateItem from a node, or None if it is incomplete."""

    def parse(self, raw: str, max_items: int = DEFAULT_MAX_ITEMS) -> List[CandidateItem]:
        """Extract up to ``max_items`` candidates, skipping malformed nodes.

        Raises:
            ParseFailure: If the page as a whole cannot be processed
        """
        try:
            nodes = list(self.select_nodes(raw))
        except ParseFailure:
            raise
        except Exception as e:
            raise ParseFailure(f"{self.name}: could not select nodes: {e}") from e

        candidates: List[CandidateItem] = []
        for node in nodes:
            if len(candidates) >= max_items:
                break
            try:
                candidate = self.extract_candidate(node)
            except Exception as e:
                self.logger.warning("node_skipped", error=str(e), exc_info=True)
                continue
            if candidate is None:
                self.logger.debug("node_incomplete")
                continue
            candidates.append(candidate)

        self.logger.info("page_parsed", nodes=len(nodes), candidates=len(candidates))
        return candidates

    async def scrape(self, search_term: str, max_items: int = DEFAULT_MAX_ITEMS) -> int:
        """Fetch, parse and persist one search term.

        Args:
            search_term: Free-text query
            max_items: Maximum number of candidates to keep from the page

        Returns:
            Number of newly inserted items

        Raises:
            FetchError: On network or rendering failure
            PersistenceError: If the batch could not be stored
        """
        self.logger.info("scrape_started", search_term=search_term, max_items=max_items)

        raw = await self.fetch_raw(search_term)
        if not raw:
            self.logger.warning("empty_response", search_term=search_term)
            return 0

        try:
            candidates = self.parse(raw, max_items)
        except ParseFailure as e:
            self.logger.warning("parse_failed", search_term=search_term, error=str(e))
            return 0

        if not candidates:
            self.logger.info("no_candidates", search_term=search_term)
            return 0

        async with self.unit_of_work() as gateway:
            inserted = await gateway.persist_new(candidates)
            await gateway.record_observed_prices(candidates, source_tag=self.name)

        self.logger.info(
            "scrape_completed",
            search_term=search_term,
            candidates=len(candidates),
            inserted=inserted,
        )
        return inserted

    async def health_check(self) -> bool:
        """Check if this source is reachable. Never raises.

        Makes a single request; transient failures are not retried.

        Returns:
            True if healthy, False otherwise
        """
        try:
            await self.fetch_policy.get_text(self.base_url, max_retries=0)
            return True
        except Exception as e:
            self.logger.warning("health_check_failed", error=str(e))
            return False


class HttpSourceAdapter(BaseSourceAdapter):
    """Adapter for sources whose search results are served as plain HTML."""

    fetch_mode = "http"

    async def fetch_raw(self, search_term: str) -> str:
        return await self.fetch_policy.get_text(self.search_url(search_term))


class RenderedSourceAdapter(BaseSourceAdapter):
    """Adapter for JavaScript-rendered sources, fetched with Playwright.

    Rendering goes through the same FetchPolicy as HTTP fetches, keyed by
    the source's host, so a broken site trips its circuit either way.
    """

    fetch_mode = "rendered"
    wait_until: str = "networkidle"

    def render_headers(self) -> dict:
        return {"origin": self.base_url, "referer": self.base_url + "/"}

    async def fetch_raw(self, search_term: str) -> str:
        url = self.search_url(search_term)
        return await self.fetch_policy.execute(
            lambda: self.browser_manager.fetch_page_content(
                url,
                wait_until=self.wait_until,
                extra_headers=self.render_headers(),
            ),
            endpoint=self.endpoint,
        )
