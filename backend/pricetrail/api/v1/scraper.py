"""Manual ingestion trigger endpoint."""

from fastapi import APIRouter, Depends, HTTPException, Query

from pricetrail.dependencies import get_orchestrator
from pricetrail.schemas import ApiResponse, ScrapeRunResponse
from pricetrail.scrapers.orchestrator import IngestionOrchestrator

router = APIRouter()


@router.post("/run", response_model=ApiResponse)
async def run_scraper(
    search_term: str = Query("", description="Term to search every source for"),
    healthy_only: bool = Query(False, description="Skip sources failing their health check"),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Run every source for one search term and report per-source counts."""
    if not search_term.strip():
        raise HTTPException(status_code=400, detail="search_term is required")

    results = await orchestrator.run_all_sources(search_term.strip(), healthy_only=healthy_only)
    report = orchestrator.last_report

    return ApiResponse(
        status="success",
        data=ScrapeRunResponse(
            search_term=report.search_term,
            results=results,
            total=report.total,
            failed_sources=report.failed_sources,
            state=report.state.value,
            duration_seconds=report.duration_seconds,
        ),
    )
