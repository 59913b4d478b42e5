"""Multi-source ingestion orchestrator.

Runs every registered source for a search term, one after another, with a
politeness delay between sources. A failing source is logged, counted as
zero and never stops the rest of the run.
"""

import asyncio
import enum
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricetrail.config import settings
from pricetrail.db.session import session_scope
from pricetrail.scrapers.factory import AdapterFactory, get_adapter_factory
from pricetrail.scrapers.registry import SourceRegistry
from pricetrail.services.monitor import ExecutionMonitor
from pricetrail.services.persistence_gateway import PersistenceGateway

logger = structlog.get_logger(__name__)


class RunState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"


@dataclass
class RunReport:
    """Outcome of one ``run_all_sources`` call."""

    search_term: str
    results: Dict[str, int] = field(default_factory=dict)
    failed_sources: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    state: RunState = RunState.RUNNING

    @property
    def total(self) -> int:
        return sum(self.results.values())


class IngestionOrchestrator:
    """Drives sequential, failure-isolated scraping runs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        adapter_factory: Optional[AdapterFactory] = None,
        monitor: Optional[ExecutionMonitor] = None,
        inter_source_delay: float = settings.INTER_SOURCE_DELAY_SECONDS,
        batch_limit: int = settings.SCRAPE_BATCH_LIMIT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            session_factory: Async session factory; one session per source
            adapter_factory: Builds fresh adapters per run (global by default)
            monitor: Execution monitor wrapping each source
            inter_source_delay: Seconds to wait after each source
            batch_limit: Default max items per source
            sleep: Delay function, injectable for tests
        """
        self.session_factory = session_factory
        self.adapter_factory = adapter_factory or get_adapter_factory()
        self.monitor = monitor or ExecutionMonitor()
        self.inter_source_delay = inter_source_delay
        self.batch_limit = batch_limit
        self._sleep = sleep

        self.state = RunState.IDLE
        self.last_report: Optional[RunReport] = None
        self.logger = logger.bind(service="ingestion_orchestrator")

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[PersistenceGateway]:
        """Yield a PersistenceGateway bound to a fresh, always-closed session."""
        async with session_scope(self.session_factory) as session:
            yield PersistenceGateway(session)

    def build_registry(self) -> SourceRegistry:
        """Build this run's registry from freshly created adapters."""
        return SourceRegistry(self.adapter_factory.create_all(self.unit_of_work))

    async def run_all_sources(
        self,
        search_term: str,
        healthy_only: bool = False,
        max_items: Optional[int] = None,
    ) -> Dict[str, int]:
        """Scrape ``search_term`` from every source, one at a time.

        Args:
            search_term: Free-text query
            healthy_only: Skip sources whose health check fails
            max_items: Per-source item limit (defaults to batch_limit)

        Returns:
            Mapping of source name to inserted count; failed sources map to 0
        """
        limit = max_items if max_items is not None else self.batch_limit
        registry = self.build_registry()
        sources = (
            await registry.healthy_sources() if healthy_only else registry.all_sources()
        )

        self.state = RunState.RUNNING
        report = RunReport(search_term=search_term)
        self.last_report = report
        started = time.perf_counter()

        self.logger.info(
            "ingestion_run_started",
            search_term=search_term,
            sources=[s.name for s in sources],
            healthy_only=healthy_only,
            max_items=limit,
        )

        for source in sources:
            source_started = time.perf_counter()
            try:
                count = await self.monitor.monitor(
                    source.name,
                    lambda: source.scrape(search_term, limit),
                    search_term=search_term,
                )
                report.results[source.name] = count
            except Exception as e:
                report.results[source.name] = 0
                report.failed_sources.append(source.name)
                self.logger.error(
                    "source_run_failed",
                    source=source.name,
                    search_term=search_term,
                    duration_seconds=round(time.perf_counter() - source_started, 2),
                    error=str(e),
                )

            await self._sleep(self.inter_source_delay)

        report.duration_seconds = round(time.perf_counter() - started, 2)
        report.state = (
            RunState.PARTIALLY_FAILED if report.failed_sources else RunState.COMPLETED
        )
        self.state = report.state

        self.logger.info(
            "ingestion_run_completed",
            search_term=search_term,
            total_inserted=report.total,
            results=report.results,
            failed_sources=report.failed_sources,
            duration_seconds=report.duration_seconds,
            state=report.state.value,
        )
        return report.results

    async def run_healthy_sources(
        self,
        search_term: str,
        max_items: Optional[int] = None,
    ) -> Dict[str, int]:
        """Run only healthy sources.

        ``max_items`` defaults to the smaller healthy batch limit.
        """
        if max_items is None:
            max_items = settings.HEALTHY_BATCH_LIMIT
        return await self.run_all_sources(search_term, healthy_only=True, max_items=max_items)

    async def run_popular_terms(
        self,
        terms: Optional[List[str]] = None,
    ) -> Dict[str, Dict[str, int]]:
        """Run every popular search term across all sources.

        Returns:
            Mapping of term to that term's per-source results
        """
        terms = terms if terms is not None else settings.get_popular_terms()
        results: Dict[str, Dict[str, int]] = {}

        for index, term in enumerate(terms):
            if index > 0:
                await self._sleep(self.inter_source_delay)
            results[term] = await self.run_all_sources(term)

        self.logger.info(
            "popular_terms_completed",
            terms=terms,
            total_inserted=sum(sum(r.values()) for r in results.values()),
        )
        return results

    async def run_source(
        self,
        source_name: str,
        search_term: str,
        max_items: Optional[int] = None,
    ) -> int:
        """Run a single source by name.

        Raises:
            ValueError: If no source with that name is registered
        """
        source = self.build_registry().by_name(source_name)
        if source is None:
            raise ValueError(f"No source registered with name: {source_name}")

        limit = max_items if max_items is not None else self.batch_limit
        return await self.monitor.monitor(
            source.name,
            lambda: source.scrape(search_term, limit),
            search_term=search_term,
        )
