"""Health check schemas."""

from typing import Dict, Optional

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    """Health check response schema."""

    status: str
    database: str
    redis: Optional[str] = None
    services: Dict[str, str] = {}


class SourcesHealthResponse(BaseModel):
    """Aggregate reachability of the registered sources."""

    status: str
    sources: Dict[str, bool] = {}
    healthy_count: int = 0
    unhealthy_count: int = 0
    total: int = 0
