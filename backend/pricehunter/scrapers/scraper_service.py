"""Scraper orchestration service.

Connects the adapter registry with the history store: tracks a product
URL end to end (resolve store, scrape, record) and re-scrapes the
listings already tracked for a store.
"""

import time
import uuid
from decimal import Decimal
from typing import Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.core.dates import utc_now
from pricehunter.core.exceptions import InvalidInputError, NotFoundError, ParseFailure, PriceHunterException
from pricehunter.models.scrape_job import ScrapeJob
from pricehunter.models.store import Store
from pricehunter.models.store_product import StoreProduct
from pricehunter.scrapers.base import StoreConfig
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.services.price_history_service import PriceHistoryStore, TrackResult

logger = structlog.get_logger(__name__)


class TrackingService:
    """Runs adapters and writes what they return."""

    def __init__(self, db: AsyncSession, registry: AdapterRegistry):
        """Initialize tracking service.

        Args:
            db: Async database session
            registry: Adapter registry
        """
        self.db = db
        self.registry = registry
        self.history = PriceHistoryStore(db)
        self.logger = logger.bind(service="tracking_service")

    async def sync_stores(self) -> int:
        """Create a Store row for every registered config that lacks one.

        Returns:
            Number of stores created
        """
        created = 0
        for slug in self.registry.registered_slugs:
            config = self.registry.get_config(slug)
            if config is None:
                continue
            existing = await self._get_store(slug)
            if existing is None:
                self.db.add(self._store_from_config(config))
                created += 1

        await self.db.commit()
        self.logger.info("stores_synced", created=created, total=len(self.registry.registered_slugs))
        return created

    async def ensure_store(self, slug: str) -> Store:
        """Return the Store row for a slug, creating it from its config.

        Raises:
            NotFoundError: If the slug has no row and no registered config
        """
        store = await self._get_store(slug)
        if store is not None:
            return store

        config = self.registry.get_config(slug)
        if config is None:
            raise NotFoundError("Store", slug)

        store = self._store_from_config(config)
        self.db.add(store)
        await self.db.commit()
        self.logger.info("store_created", store=slug)
        return store

    async def track_url(self, url: str) -> TrackResult:
        """Scrape a product URL and record it.

        Args:
            url: Product page on a supported storefront

        Returns:
            TrackResult for the recorded listing

        Raises:
            InvalidInputError: If no adapter handles the URL
            ParseFailure: If the page yielded no product
        """
        slug = self.registry.resolve_store(url)
        if slug is None or not self.registry.has_adapter(slug):
            raise InvalidInputError("url", "no supported store for this URL")

        store = await self.ensure_store(slug)
        if not store.is_active:
            raise InvalidInputError("url", f"store '{slug}' is not active")

        _, scraped = await self.registry.scrape_url(url)
        if scraped is None:
            raise ParseFailure(slug, url, "product")

        return await self.history.track_scraped_product(store, scraped)

    async def refresh_listing(self, listing: StoreProduct, slug: str) -> bool:
        """Re-scrape one listing. Returns False when nothing could be read."""
        adapter = self.registry.get(slug)
        if adapter is None:
            return False

        scraped = await adapter.scrape_product(listing.url)
        if scraped is None:
            return False

        await self.history.record_observation(listing, scraped)
        return True

    async def refresh_store(self, slug: str) -> Dict[str, int]:
        """Re-scrape every tracked listing of a store and log a ScrapeJob.

        Individual listing failures are counted, never raised.

        Args:
            slug: Store slug

        Returns:
            Dict with found, updated and errors counts

        Raises:
            NotFoundError: If the store does not exist
        """
        store = await self._get_store(slug)
        if store is None:
            raise NotFoundError("Store", slug)

        started = time.monotonic()
        job = ScrapeJob(id=uuid.uuid4(), store_id=store.id, status="running", started_at=utc_now())
        self.db.add(job)
        await self.db.commit()
        job_id = job.id

        listings = (await self.db.execute(
            select(StoreProduct).where(StoreProduct.store_id == store.id).order_by(StoreProduct.last_scraped)
        )).scalars().all()

        stats = {"found": len(listings), "updated": 0, "errors": 0}
        last_error: Optional[str] = None
        pending = [(listing.id, listing.url) for listing in listings]

        for listing_id, url in pending:
            try:
                listing = await self.db.get(StoreProduct, listing_id)
                if listing is not None and await self.refresh_listing(listing, slug):
                    stats["updated"] += 1
                else:
                    stats["errors"] += 1
            except PriceHunterException as e:
                await self.db.rollback()
                stats["errors"] += 1
                last_error = str(e)
                self.logger.warning("listing_refresh_failed", store=slug, url=url, error=str(e))
            except Exception as e:
                await self.db.rollback()
                stats["errors"] += 1
                last_error = str(e)
                self.logger.error("listing_refresh_failed", store=slug, url=url, error=str(e), exc_info=True)

        job = await self.db.get(ScrapeJob, job_id)
        job.status = "completed" if not stats["found"] or stats["updated"] else "failed"
        job.completed_at = utc_now()
        job.duration_seconds = Decimal(str(round(time.monotonic() - started, 2)))
        job.items_found = stats["found"]
        job.items_updated = stats["updated"]
        job.errors = stats["errors"]
        job.error_message = last_error
        await self.db.commit()

        self.logger.info("store_refresh_completed", store=slug, job_id=str(job_id), **stats)
        return stats

    # ------------------------------------------------------------------

    async def _get_store(self, slug: str) -> Optional[Store]:
        result = await self.db.execute(select(Store).where(Store.slug == slug))
        return result.scalar_one_or_none()

    @staticmethod
    def _store_from_config(config: StoreConfig) -> Store:
        return Store(
            id=uuid.uuid4(),
            name=config.name,
            slug=config.slug,
            domain=config.domain,
            country=config.country,
            currency=config.currency,
            is_active=True,
        )
