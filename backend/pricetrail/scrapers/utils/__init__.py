"""Scraper utilities for fetch resilience and data normalization."""

from .fetch_policy import CircuitBreaker, FetchPolicy, is_transient_status
from .normalizer import (
    PriceNormalizer,
    absolute_url,
    normalize_query,
    normalize_url,
    parse_price,
    text_of,
)


__all__ = [
    # Fetch policy
    "CircuitBreaker",
    "FetchPolicy",
    "is_transient_status",
    # Normalization
    "PriceNormalizer",
    "absolute_url",
    "normalize_query",
    "normalize_url",
    "parse_price",
    "text_of",
]
