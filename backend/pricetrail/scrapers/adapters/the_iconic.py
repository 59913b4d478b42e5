"""THE ICONIC scraper adapter.

Search results are server-rendered, so a plain HTTP fetch is enough.
Each listing is a product div whose ``a.product-details`` link carries
brand, name and price spans.
"""

from typing import Any, Iterable, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup

from pricetrail.scrapers.base import CandidateItem, HttpSourceAdapter
from pricetrail.scrapers.utils.normalizer import (
    absolute_url,
    normalize_url,
    parse_price,
    text_of,
)


class TheIconicAdapter(HttpSourceAdapter):
    """THE ICONIC catalogue search adapter."""

    source_name = "The Iconic"
    base_url = "https://www.theiconic.com.au"

    def search_url(self, search_term: str) -> str:
        return f"{self.base_url}/catalog/?q={quote(search_term, safe='')}"

    def select_nodes(self, raw: str) -> Iterable[Any]:
        soup = BeautifulSoup(raw, "html.parser")
        return soup.select("div[class*='product']")

    def extract_candidate(self, node: Any) -> Optional[CandidateItem]:
        details = node.select_one("a[class*='product-details']")
        if details is None:
            return None

        name = text_of(details.select_one("span[class*='name']"))
        brand = text_of(details.select_one("span[class*='brand']"))
        price = parse_price(text_of(details.select_one("span[class*='price']")))
        product_url = absolute_url(self.base_url, details.get("href"))

        if not name or price is None or not product_url:
            self.logger.debug("listing_incomplete", name=name, url=product_url)
            return None

        image = node.select_one("img[src]")

        return CandidateItem(
            name=name,
            product_url=normalize_url(product_url),
            price=price,
            source_name=self.name,
            brand=brand,
            image_url=absolute_url(self.base_url, image.get("src")) if image else None,
        )
