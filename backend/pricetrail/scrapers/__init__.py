"""Ingestion system for fetching items from retailer websites.

This package provides:
- Base adapter classes for building retailer-specific scrapers
- Fetch policy (retry and circuit breaking) and parsing utilities
- Factory, registry and orchestrator for multi-source runs
- Scheduler for recurring ingestion jobs
"""

from .base import (
    BaseSourceAdapter,
    CandidateItem,
    HttpSourceAdapter,
    RenderedSourceAdapter,
)
from .factory import AdapterFactory, get_adapter_factory

__all__ = [
    # Base classes
    "BaseSourceAdapter",
    "HttpSourceAdapter",
    "RenderedSourceAdapter",
    # Data structures
    "CandidateItem",
    # Factory
    "AdapterFactory",
    "get_adapter_factory",
]
