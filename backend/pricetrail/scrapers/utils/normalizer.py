"""Data normalization utilities for price parsing, URLs and queries."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse

TWO_PLACES = Decimal("0.01")

# Tracking parameters stripped from canonical product URLs
TRACKING_PARAMS = frozenset({
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
})


class PriceNormalizer:
    """Parses retailer price strings into fixed-point decimals."""

    @staticmethod
    def clean_price_string(raw: Optional[str]) -> Optional[Decimal]:
        """Parse a price string and extract a 2-decimal-place value.

        Handles formats such as "$25.88", "AUD 1,299.00" and "25.88 AUD".
        Ranges ("$20.00 - $30.00") resolve to the first price.

        Args:
            raw: Raw price string

        Returns:
            Decimal price, or None if parsing fails or the price is not positive
        """
        if not raw:
            return None

        cleaned = raw.replace("AUD", "").replace("$", "").replace(",", "").strip()

        match = re.search(r"\d+(?:\.\d+)?", cleaned)
        if not match:
            return None

        try:
            price = Decimal(match.group(0)).quantize(TWO_PLACES)
        except InvalidOperation:
            return None

        if price <= 0:
            return None
        return price


def parse_price(raw: Optional[str]) -> Optional[Decimal]:
    """Shortcut for PriceNormalizer.clean_price_string."""
    return PriceNormalizer.clean_price_string(raw)


def absolute_url(base_url: str, href: Optional[str]) -> Optional[str]:
    """Resolve a possibly relative href against the retailer's base URL."""
    if not href:
        return None
    href = href.strip()
    if href.startswith("//"):
        return f"https:{href}"
    return urljoin(base_url.rstrip("/") + "/", href)


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters and fragments.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    if not url:
        return url

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query, keep_blank_values=True)
    kept = {k: v for k, v in query_params.items() if k not in TRACKING_PARAMS}
    new_query = urlencode(kept, doseq=True)

    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        parsed.params,
        new_query,
        "",
    ))


def normalize_query(query: str) -> str:
    """Normalize a search query for cache keys: trimmed, lowercase, single spaces."""
    return " ".join((query or "").lower().split())


def text_of(tag) -> Optional[str]:
    """Stripped text of a BeautifulSoup tag, or None for a missing/empty tag."""
    if tag is None:
        return None
    text = tag.get_text(" ", strip=True)
    return text or None
