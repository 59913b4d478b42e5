"""APScheduler-based ingestion scheduler.

Two recurring jobs drive the orchestrator: a daily run of the default
search term and an interval run over the popular terms. A failed job is
retried a bounded number of times through one-off date-triggered jobs.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from pricetrail.config import settings
from pricetrail.scrapers.orchestrator import IngestionOrchestrator

logger = structlog.get_logger(__name__)

DAILY_JOB_ID = "daily_ingest"
POPULAR_JOB_ID = "popular_terms_ingest"
RETRY_SUFFIX = "__retry"


class IngestionScheduler:
    """Manages recurring ingestion jobs using APScheduler.

    This scheduler:
    - Registers the daily and popular-terms jobs (max_instances=1)
    - Lets job exceptions reach APScheduler so they are observable
    - Retries failed jobs up to JOB_MAX_RETRIES times
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        scheduler: Optional[AsyncIOScheduler] = None,
        max_retries: int = settings.JOB_MAX_RETRIES,
        retry_delay_seconds: int = settings.JOB_RETRY_DELAY_SECONDS,
    ):
        """Initialize ingestion scheduler.

        Args:
            orchestrator: Orchestrator the jobs delegate to
            scheduler: APScheduler instance (a UTC AsyncIOScheduler by default)
            max_retries: One-off retries allowed per failing job
            retry_delay_seconds: Delay before each retry
        """
        self.orchestrator = orchestrator
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._retry_counts: Dict[str, int] = {}
        self.logger = logger.bind(service="ingestion_scheduler")

        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_EXECUTED)

    def start(self) -> None:
        """Register the recurring jobs and start the scheduler."""
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return

        self.add_recurring_jobs()
        self.scheduler.start()
        self.logger.info("scheduler_started", jobs=[j.id for j in self.scheduler.get_jobs()])

    def stop(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    def add_recurring_jobs(self) -> None:
        self.scheduler.add_job(
            func=self.run_daily_ingest,
            trigger=CronTrigger(hour=settings.DAILY_SCRAPE_HOUR_UTC, minute=0, timezone="UTC"),
            id=DAILY_JOB_ID,
            name="Daily ingest",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            func=self.run_popular_terms_ingest,
            trigger=IntervalTrigger(
                minutes=settings.POPULAR_SCRAPE_INTERVAL_MINUTES,
                timezone="UTC",
            ),
            id=POPULAR_JOB_ID,
            name="Popular terms ingest",
            replace_existing=True,
            max_instances=1,
        )
        self.logger.info(
            "recurring_jobs_added",
            daily_hour_utc=settings.DAILY_SCRAPE_HOUR_UTC,
            popular_interval_minutes=settings.POPULAR_SCRAPE_INTERVAL_MINUTES,
        )

    async def run_daily_ingest(self) -> Dict[str, int]:
        return await self.orchestrator.run_all_sources(settings.DAILY_SEARCH_TERM)

    async def run_popular_terms_ingest(self) -> Dict[str, Dict[str, int]]:
        return await self.orchestrator.run_popular_terms()

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        base_id = event.job_id.split(RETRY_SUFFIX)[0]

        if not event.exception:
            self._retry_counts.pop(base_id, None)
            return

        self.logger.error(
            "ingestion_job_failed",
            job_id=event.job_id,
            error=str(event.exception),
        )
        self.schedule_retry(base_id)

    def schedule_retry(self, base_id: str) -> Optional[Job]:
        """Schedule a one-off retry of a failed job, if retries remain.

        Returns:
            The retry Job, or None when the retry budget is spent
        """
        attempts = self._retry_counts.get(base_id, 0)
        if attempts >= self.max_retries:
            self.logger.error("ingestion_job_retries_exhausted", job_id=base_id, attempts=attempts)
            self._retry_counts.pop(base_id, None)
            return None

        func = {
            DAILY_JOB_ID: self.run_daily_ingest,
            POPULAR_JOB_ID: self.run_popular_terms_ingest,
        }.get(base_id)
        if func is None:
            self.logger.warning("unknown_job_not_retried", job_id=base_id)
            return None

        self._retry_counts[base_id] = attempts + 1
        run_at = datetime.now(timezone.utc) + timedelta(seconds=self.retry_delay_seconds)
        job = self.scheduler.add_job(
            func=func,
            trigger=DateTrigger(run_date=run_at, timezone="UTC"),
            id=f"{base_id}{RETRY_SUFFIX}",
            name=f"Retry {base_id}",
            replace_existing=True,
            max_instances=1,
        )

        self.logger.warning(
            "ingestion_job_retry_scheduled",
            job_id=base_id,
            attempt=attempts + 1,
            max_retries=self.max_retries,
            run_at=run_at.isoformat(),
        )
        return job

    def get_jobs_status(self) -> dict:
        """Get status of all scheduled jobs, keyed by job id."""
        jobs = {}
        for job in self.scheduler.get_jobs():
            # Jobs added before start() have no next_run_time yet
            next_run = getattr(job, "next_run_time", None)
            jobs[job.id] = {
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            }
        return jobs

    def is_running(self) -> bool:
        return self.scheduler.running
