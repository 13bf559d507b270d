"""APScheduler-based background jobs.

Periodic work that runs independently of request traffic:

- exchange-rate refresh (RATE_REFRESH_MINUTES)
- price alert evaluation (ALERT_CHECK_MINUTES)
- back-in-stock notification processing (STOCK_CHECK_MINUTES)
- listing re-scrape per active store (Store.scrape_interval_minutes)

Every job opens its own session and runs through a wrapper that logs and
swallows failures, so one bad cycle is skipped without stopping the
scheduler.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricehunter.config import settings
from pricehunter.models.store import Store
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.scraper_service import TrackingService
from pricehunter.services.alert_service import AlertService
from pricehunter.services.currency_service import CurrencyService
from pricehunter.services.notification_service import NotificationDispatcher
from pricehunter.services.stock_service import StockMonitor

logger = structlog.get_logger(__name__)

RATES_JOB_ID = "refresh_rates"
ALERTS_JOB_ID = "evaluate_alerts"
STOCK_JOB_ID = "stock_notifications"
STORE_STAGGER_SECONDS = 30


class PriceHunterScheduler:
    """Owns the AsyncIOScheduler and the job bodies it runs."""

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        registry: AdapterRegistry,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        """Initialize the scheduler.

        Args:
            db_session_factory: Async session factory; each job run gets its own session
            registry: Adapter registry used by store refresh jobs
            dispatcher: Shared notification dispatcher for alert and stock jobs
        """
        self.db_session_factory = db_session_factory
        self.registry = registry
        self.dispatcher = dispatcher
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="scheduler")
        self._store_jobs: Dict[str, str] = {}

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info("scheduler_started")
        else:
            self.logger.warning("scheduler_already_running")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")

    def add_core_jobs(self) -> None:
        """Register the rate, alert and stock jobs."""
        self._add_interval_job(RATES_JOB_ID, "Refresh exchange rates", self.refresh_rates, settings.RATE_REFRESH_MINUTES)
        self._add_interval_job(ALERTS_JOB_ID, "Evaluate price alerts", self.evaluate_alerts, settings.ALERT_CHECK_MINUTES)
        self._add_interval_job(STOCK_JOB_ID, "Process stock notifications", self.process_stock, settings.STOCK_CHECK_MINUTES)

    async def load_store_jobs(self) -> int:
        """Schedule a refresh job for every active store with an adapter.

        First runs are staggered so stores are not all scraped at once.

        Returns:
            Number of jobs scheduled
        """
        async with self.db_session_factory() as db:
            result = await db.execute(select(Store).where(Store.is_active.is_(True)).order_by(Store.slug))
            stores = [(store.slug, store.scrape_interval_minutes) for store in result.scalars().all()]

        added = 0
        for idx, (slug, interval) in enumerate(stores):
            if not self.registry.has_adapter(slug):
                continue
            if self.add_store_job(slug, interval, offset_seconds=(idx + 1) * STORE_STAGGER_SECONDS):
                added += 1

        self.logger.info("store_jobs_loaded", count=added)
        return added

    def add_store_job(self, slug: str, interval_minutes: int, offset_seconds: int = 0) -> Optional[Job]:
        """Add a periodic refresh job for one store (None if already scheduled)."""
        if slug in self._store_jobs:
            self.logger.warning("job_already_exists", store=slug)
            return None

        job = self._add_interval_job(
            f"refresh_{slug}",
            f"Refresh {slug}",
            self.refresh_store,
            interval_minutes,
            args=[slug],
            first_run=datetime.now(timezone.utc) + timedelta(seconds=offset_seconds),
        )
        self._store_jobs[slug] = job.id
        return job

    def remove_store_job(self, slug: str) -> bool:
        job_id = self._store_jobs.pop(slug, None)
        if job_id is None:
            return False
        self.scheduler.remove_job(job_id)
        self.logger.info("store_job_removed", store=slug)
        return True

    # ------------------------------------------------------------------
    # Job bodies (also callable directly, e.g. from the jobs API)
    # ------------------------------------------------------------------

    async def refresh_rates(self) -> Dict[str, Any]:
        async with self.db_session_factory() as db:
            return await CurrencyService(db).refresh_rates()

    async def evaluate_alerts(self) -> Dict[str, int]:
        async with self.db_session_factory() as db:
            return await AlertService(db, dispatcher=self.dispatcher).evaluate_alerts()

    async def process_stock(self) -> Dict[str, int]:
        async with self.db_session_factory() as db:
            return await StockMonitor(db, dispatcher=self.dispatcher).process_stock_notifications()

    async def refresh_store(self, slug: str) -> Dict[str, int]:
        async with self.db_session_factory() as db:
            return await TrackingService(db, self.registry).refresh_store(slug)

    # ------------------------------------------------------------------

    def _add_interval_job(
        self,
        job_id: str,
        name: str,
        func: Callable[..., Awaitable[Any]],
        minutes: int,
        args: Optional[list] = None,
        first_run: Optional[datetime] = None,
    ) -> Job:
        extra = {"next_run_time": first_run} if first_run is not None else {}
        job = self.scheduler.add_job(
            self._run_safely,
            trigger=IntervalTrigger(minutes=minutes, timezone="UTC"),
            args=[job_id, func, *(args or [])],
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **extra,
        )
        self.logger.info("job_added", job_id=job_id, interval_minutes=minutes)
        return job

    async def _run_safely(self, job_id: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Run one job cycle; failures are logged and the cycle is skipped."""
        try:
            outcome = await func(*args)
            self.logger.info("job_completed", job_id=job_id, outcome=outcome)
        except Exception as e:
            self.logger.error("job_failed", job_id=job_id, error=str(e), exc_info=True)
