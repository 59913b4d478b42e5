"""Amazon Australia search results scraper adapter."""

from typing import Any, Iterable, Optional
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from pricetrail.scrapers.base import CandidateItem, HttpSourceAdapter
from pricetrail.scrapers.utils.normalizer import (
    absolute_url,
    normalize_url,
    parse_price,
    text_of,
)

# Listing link, tried in order; the image link is the most stable
_LINK_SELECTORS = [
    "div[class*='s-product-image-container'] a[href]",
    "h2 a[href]",
    "a.a-link-normal[href]",
]


class AmazonAuAdapter(HttpSourceAdapter):
    """Amazon.com.au search adapter.

    Listings are ``div[role=listitem]`` wrappers around an
    ``s-search-result`` component. Sponsored and placeholder list items
    without that component are skipped.
    """

    source_name = "Amazon Au"
    base_url = "https://www.amazon.com.au"

    def search_url(self, search_term: str) -> str:
        return f"{self.base_url}/s?k={quote_plus(search_term)}"

    def select_nodes(self, raw: str) -> Iterable[Any]:
        soup = BeautifulSoup(raw, "html.parser")
        return soup.select("div[role='listitem']")

    def extract_candidate(self, node: Any) -> Optional[CandidateItem]:
        result = node.select_one("div[data-component-type='s-search-result']")
        if result is None:
            return None

        name = text_of(result.select_one("h2 span"))
        brand = text_of(
            result.select_one("div[data-cy='title-recipe'] span.a-size-base-plus.a-color-base")
        )

        price_tag = result.select_one(
            "div[data-cy='price-recipe'] span.a-price > span.a-offscreen"
        ) or result.select_one("span.a-price span.a-offscreen")
        price = parse_price(text_of(price_tag))

        href = None
        for selector in _LINK_SELECTORS:
            link = result.select_one(selector)
            if link is not None:
                href = link.get("href")
                break
        product_url = absolute_url(self.base_url, href)

        if not name or price is None or not product_url:
            self.logger.debug("listing_incomplete", name=name, url=product_url)
            return None

        image = result.select_one("img.s-image")

        return CandidateItem(
            name=name,
            product_url=normalize_url(product_url),
            price=price,
            source_name=self.name,
            brand=brand,
            image_url=image.get("src") if image else None,
        )
