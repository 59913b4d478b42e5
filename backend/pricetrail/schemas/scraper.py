"""Scraper run schemas."""

from typing import Dict

from pydantic import BaseModel


class ScrapeRunResponse(BaseModel):
    """Result of a manually triggered ingestion run."""

    search_term: str
    results: Dict[str, int]
    total: int
    failed_sources: list[str] = []
    state: str
    duration_seconds: float
