"""Birds Nest scraper adapter.

The search page builds its product grid client-side, so the page is
rendered with the shared Playwright browser before parsing.
"""

from typing import Any, Iterable, Optional
from urllib.parse import quote, urlparse

from bs4 import BeautifulSoup

from pricetrail.scrapers.base import CandidateItem, RenderedSourceAdapter
from pricetrail.scrapers.utils.normalizer import (
    absolute_url,
    normalize_url,
    parse_price,
    text_of,
)


def brand_from_url(product_url: Optional[str]) -> Optional[str]:
    """Parse the brand from URLs like ``/brands/los-cabos/granada-sandal``.

    Returns:
        Title-cased brand ("Los Cabos"), or None if the path has no brand
    """
    if not product_url:
        return None
    segments = [s for s in urlparse(product_url).path.split("/") if s]
    if len(segments) >= 2 and segments[0].lower() == "brands":
        return segments[1].replace("-", " ").title()
    return None


class BirdsNestAdapter(RenderedSourceAdapter):
    """Birds Nest search adapter (rendered)."""

    source_name = "Birds Nest"
    base_url = "https://www.birdsnest.com.au"

    def search_url(self, search_term: str) -> str:
        return (
            f"{self.base_url}/search.php"
            f"?search_query={quote(search_term, safe='')}&section=content"
        )

    def select_nodes(self, raw: str) -> Iterable[Any]:
        soup = BeautifulSoup(raw, "html.parser")
        return soup.select("div[class*='product-card-container']")

    def extract_candidate(self, node: Any) -> Optional[CandidateItem]:
        card = node.select_one("div[class*='product-card'][data-producturl]")
        relative_url = card.get("data-producturl") if card else None
        product_url = absolute_url(self.base_url, relative_url)
        if not product_url:
            self.logger.debug("listing_missing_url")
            return None

        # Image alt text is the most complete product name
        name = None
        img_alt = node.select_one("img[alt]")
        if img_alt is not None:
            name = img_alt.get("alt", "").strip()
        if not name:
            img_title = node.select_one("img[title]")
            name = img_title.get("title", "").strip() if img_title else None
        if not name:
            self.logger.debug("listing_missing_name", url=product_url)
            return None

        price = parse_price(text_of(node.select_one("span[class*='globalPrices-defaultPrice']")))
        if price is None:
            self.logger.debug("listing_invalid_price", name=name)
            return None

        image = node.select_one("img.lazyloaded[src]") or node.select_one("img[src]")

        return CandidateItem(
            name=name,
            product_url=normalize_url(product_url),
            price=price,
            source_name=self.name,
            brand=brand_from_url(relative_url),
            image_url=absolute_url(self.base_url, image.get("src")) if image else None,
        )
