"""Listing state and price/stock history writes.

Every observation of a listing overwrites its current state and appends
one PriceHistory sample and one StockHistory observation in the same
transaction.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricehunter.core.dates import utc_now
from pricehunter.core.exceptions import InvalidInputError, NotFoundError
from pricehunter.models.price_history import PriceHistory
from pricehunter.models.product import Product
from pricehunter.models.stock_history import StockHistory
from pricehunter.models.store import Store
from pricehunter.models.store_product import StoreProduct
from pricehunter.scrapers.base import ScrapedProduct
from pricehunter.scrapers.utils.normalizer import normalize_url
from pricehunter.services.currency_service import CurrencyService, normalize_currency

logger = structlog.get_logger(__name__)


@dataclass
class TrackResult:
    store_product: StoreProduct
    product_created: bool
    listing_created: bool


def validate_observation(scraped: ScrapedProduct) -> str:
    """Check a scraped record before anything is written.

    Returns:
        Normalized currency code

    Raises:
        InvalidInputError: On an unsupported currency or out-of-range value
    """
    currency = normalize_currency(scraped.currency)

    if scraped.price is None or scraped.price <= 0:
        raise InvalidInputError("price", "must be positive")
    if scraped.original_price is not None and scraped.original_price < scraped.price:
        raise InvalidInputError("original_price", "must be >= price")
    if scraped.rating is not None and not (0 <= scraped.rating <= 5):
        raise InvalidInputError("rating", "must be between 0 and 5")
    if scraped.review_count is not None and scraped.review_count < 0:
        raise InvalidInputError("review_count", "must not be negative")
    if not 0 <= scraped.discount <= 100:
        raise InvalidInputError("discount", "must be between 0 and 100")

    return currency


class PriceHistoryStore:
    """Writes listing observations and reads price history."""

    def __init__(self, db: AsyncSession, currency_service: Optional[CurrencyService] = None):
        """Initialize the history store.

        Args:
            db: Async database session
            currency_service: Converter used for the USD price (shares ``db``)
        """
        self.db = db
        self.currency = currency_service or CurrencyService(db)
        self.logger = logger.bind(service="price_history")

    async def record_observation(self, store_product: StoreProduct, scraped: ScrapedProduct) -> StoreProduct:
        """Apply a fresh scrape to an existing listing.

        Args:
            store_product: Listing being observed
            scraped: Newly scraped values

        Returns:
            The updated listing

        Raises:
            InvalidInputError: If the observation is invalid (nothing written)
        """
        currency = validate_observation(scraped)
        price_usd = await self.currency.to_usd(scraped.price, currency)

        self._apply(store_product, scraped, currency, price_usd, utc_now())
        await self.db.commit()

        self.logger.info(
            "observation_recorded",
            store_product_id=str(store_product.id),
            price=str(scraped.price),
            currency=currency,
            in_stock=scraped.in_stock,
        )
        return store_product

    async def track_scraped_product(self, store: Store, scraped: ScrapedProduct) -> TrackResult:
        """Find or create the catalog product and listing, then record.

        Listings are matched by URL first; catalog products by barcode, then
        by case-insensitive name.

        Args:
            store: Store the product was scraped from
            scraped: Scraped record

        Returns:
            TrackResult with the listing and what was created
        """
        currency = validate_observation(scraped)
        price_usd = await self.currency.to_usd(scraped.price, currency)
        url = normalize_url(scraped.url)

        listing = await self._find_listing(store.id, url)
        product_created = listing_created = False

        if listing is None:
            product = await self._match_product(scraped)
            if product is None:
                product = Product(
                    id=uuid.uuid4(),
                    name=scraped.name,
                    brand=scraped.brand,
                    category=scraped.category,
                    description=scraped.description,
                    image_url=scraped.image_url,
                    barcode=scraped.barcode,
                )
                self.db.add(product)
                product_created = True
            else:
                self._fill_product_gaps(product, scraped)

            listing = await self._find_pair(store.id, product.id)
            if listing is None:
                listing = StoreProduct(id=uuid.uuid4(), store_id=store.id, product_id=product.id, url=url)
                listing_created = True
            else:
                listing.url = url

        self._apply(listing, scraped, currency, price_usd, utc_now())
        await self.db.commit()

        self.logger.info(
            "product_tracked",
            store=store.slug,
            store_product_id=str(listing.id),
            product_created=product_created,
            listing_created=listing_created,
            price=str(scraped.price),
        )
        return TrackResult(listing, product_created, listing_created)

    async def get_store_product(self, store_product_id: UUID) -> StoreProduct:
        """Load a listing with its store and product.

        Raises:
            NotFoundError: If the listing does not exist
        """
        result = await self.db.execute(
            select(StoreProduct)
            .options(selectinload(StoreProduct.store), selectinload(StoreProduct.product))
            .where(StoreProduct.id == store_product_id)
        )
        listing = result.scalar_one_or_none()
        if listing is None:
            raise NotFoundError("StoreProduct", str(store_product_id))
        return listing

    async def get_price_history(
        self,
        store_product_id: UUID,
        days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[PriceHistory]:
        """Price samples for a listing, newest first.

        Args:
            store_product_id: Listing UUID
            days: Only samples recorded in the last N days
            limit: Maximum number of samples
        """
        query = select(PriceHistory).where(PriceHistory.store_product_id == store_product_id)
        if days is not None:
            query = query.where(PriceHistory.recorded_at >= utc_now() - timedelta(days=days))
        query = query.order_by(PriceHistory.recorded_at.desc(), PriceHistory.id)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_samples(self, store_product_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(PriceHistory.id)).where(PriceHistory.store_product_id == store_product_id)
        )
        return result.scalar_one()

    # ------------------------------------------------------------------

    def _apply(
        self,
        listing: StoreProduct,
        scraped: ScrapedProduct,
        currency: str,
        price_usd: Decimal,
        now: datetime,
    ) -> None:
        listing.price = scraped.price
        listing.currency = currency
        listing.price_usd = price_usd
        listing.original_price = scraped.original_price
        listing.discount = scraped.discount
        listing.in_stock = scraped.in_stock
        listing.rating = scraped.rating
        listing.review_count = scraped.review_count
        listing.last_scraped = now
        self.db.add(listing)

        self.db.add(PriceHistory(
            store_product_id=listing.id,
            price=scraped.price,
            currency=currency,
            price_usd=price_usd,
            recorded_at=now,
        ))
        self.db.add(StockHistory(store_product_id=listing.id, in_stock=scraped.in_stock, checked_at=now))

    async def _find_listing(self, store_id: UUID, url: str) -> Optional[StoreProduct]:
        result = await self.db.execute(
            select(StoreProduct).where(StoreProduct.store_id == store_id, StoreProduct.url == url)
        )
        return result.scalar_one_or_none()

    async def _find_pair(self, store_id: UUID, product_id: UUID) -> Optional[StoreProduct]:
        result = await self.db.execute(
            select(StoreProduct).where(StoreProduct.store_id == store_id, StoreProduct.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def _match_product(self, scraped: ScrapedProduct) -> Optional[Product]:
        if scraped.barcode:
            result = await self.db.execute(
                select(Product).where(Product.barcode == scraped.barcode).limit(1)
            )
            product = result.scalar_one_or_none()
            if product is not None:
                return product

        result = await self.db.execute(
            select(Product).where(func.lower(Product.name) == scraped.name.lower()).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _fill_product_gaps(product: Product, scraped: ScrapedProduct) -> None:
        for field in ("brand", "category", "description", "image_url", "barcode"):
            if getattr(product, field) is None and getattr(scraped, field) is not None:
                setattr(product, field, getattr(scraped, field))

