"""Deal views over current listings.

A deal is a read-time projection of an in-stock listing on an active
store. Its type is derived from the discount whenever it is read and is
never stored.
"""

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import and_, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import Select

from pricehunter.core.dates import utc_now
from pricehunter.core.exceptions import InvalidInputError, NotFoundError
from pricehunter.models.activity import ProductClick, SearchHistory
from pricehunter.models.price_history import PriceHistory
from pricehunter.models.product import Product
from pricehunter.models.store import Store
from pricehunter.models.store_product import StoreProduct
from pricehunter.services.price_analysis import PriceAnalyzer

logger = structlog.get_logger(__name__)

CLEARANCE = "clearance"
FLASH_SALE = "flash_sale"
PRICE_DROP = "price_drop"
DAILY_DEAL = "daily_deal"
NEW_LOW = "new_low"

DEAL_TYPES = (FLASH_SALE, CLEARANCE, PRICE_DROP, NEW_LOW, DAILY_DEAL)

# Discount bands per derived type: [low, high)
DISCOUNT_BANDS = {
    CLEARANCE: (50, None),
    FLASH_SALE: (30, 50),
    PRICE_DROP: (15, 30),
    DAILY_DEAL: (None, 15),
}

CLICK_WEIGHT = 3
SEARCH_WEIGHT = 1
PREFERENCE_WEIGHT = 2

CENT = Decimal("0.01")


def categorize_deal(discount: int, is_new_low: bool = False) -> str:
    """Deal type for a discount percentage; a new all-time low wins."""
    if is_new_low:
        return NEW_LOW
    if discount >= 50:
        return CLEARANCE
    if discount >= 30:
        return FLASH_SALE
    if discount >= 15:
        return PRICE_DROP
    return DAILY_DEAL


def derive_original_price(price: Decimal, original_price: Optional[Decimal], discount: int) -> Decimal:
    """List price, reconstructed from the discount when not scraped."""
    if original_price is not None:
        return Decimal(original_price)
    if 0 < discount < 100:
        return (Decimal(price) / (1 - Decimal(discount) / 100)).quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(price)


@dataclass
class Deal:
    store_product_id: UUID
    product_id: UUID
    product_name: str
    store_slug: str
    store_name: str
    price: Decimal
    original_price: Decimal
    discount: int
    currency: str
    url: str
    in_stock: bool
    deal_type: str
    updated_at: datetime
    price_usd: Optional[Decimal] = None
    image_url: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    rating: Optional[Decimal] = None
    review_count: Optional[int] = None
    previous_price: Optional[Decimal] = None
    score: int = 0

    @property
    def savings(self) -> Decimal:
        return self.original_price - self.price


@dataclass
class DealFilter:
    deal_types: Sequence[str] = ()
    store_slugs: Sequence[str] = ()
    category: Optional[str] = None
    min_discount: Optional[int] = None
    max_price: Optional[Decimal] = None
    currency: Optional[str] = None
    in_stock_only: bool = True

    def __post_init__(self):
        unknown = [t for t in self.deal_types if t not in DEAL_TYPES]
        if unknown:
            raise InvalidInputError("deal_types", f"unknown deal type(s): {', '.join(unknown)}")
        if self.min_discount is not None and not 0 <= self.min_discount <= 100:
            raise InvalidInputError("min_discount", "must be between 0 and 100")
        if self.max_price is not None and self.max_price <= 0:
            raise InvalidInputError("max_price", "must be positive")


@dataclass
class DealSummary:
    total_deals: int
    by_type: Dict[str, int]
    by_store: List[Dict[str, object]] = field(default_factory=list)
    top_categories: List[Dict[str, object]] = field(default_factory=list)
    average_discount: int = 0
    max_discount: int = 0


def deal_from_listing(listing: StoreProduct, deal_type: Optional[str] = None) -> Deal:
    """Project a listing (with store and product loaded) into a Deal."""
    discount = listing.discount or 0
    return Deal(
        store_product_id=listing.id,
        product_id=listing.product_id,
        product_name=listing.product.name,
        store_slug=listing.store.slug,
        store_name=listing.store.name,
        price=listing.price,
        original_price=derive_original_price(listing.price, listing.original_price, discount),
        discount=discount,
        currency=listing.currency,
        url=listing.url,
        in_stock=listing.in_stock,
        deal_type=deal_type or categorize_deal(discount),
        updated_at=listing.updated_at,
        price_usd=listing.price_usd,
        image_url=listing.product.image_url,
        brand=listing.product.brand,
        category=listing.product.category,
        rating=listing.rating,
        review_count=listing.review_count,
    )


class DealService:
    """Read-only deal views.

    Every view is limited to listings on active stores, and by default to
    listings currently in stock.
    """

    def __init__(self, db: AsyncSession):
        """Initialize deal service.

        Args:
            db: Async database session
        """
        self.db = db
        self.analyzer = PriceAnalyzer(db)
        self.logger = logger.bind(service="deal_service")

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    def _base_query(self, in_stock_only: bool = True) -> Select:
        query = (
            select(StoreProduct)
            .join(Store, StoreProduct.store_id == Store.id)
            .join(Product, StoreProduct.product_id == Product.id)
            .options(selectinload(StoreProduct.store), selectinload(StoreProduct.product))
            .where(Store.is_active.is_(True))
        )
        if in_stock_only:
            query = query.where(StoreProduct.in_stock.is_(True))
        return query

    @staticmethod
    def _apply_filter(query: Select, deal_filter: DealFilter) -> Select:
        if deal_filter.min_discount:
            query = query.where(StoreProduct.discount >= deal_filter.min_discount)
        else:
            query = query.where(StoreProduct.discount > 0)

        bands = []
        for deal_type in deal_filter.deal_types:
            if deal_type not in DISCOUNT_BANDS:
                # new_low needs history; it has no discount band
                continue
            low, high = DISCOUNT_BANDS[deal_type]
            conditions = []
            if low is not None:
                conditions.append(StoreProduct.discount >= low)
            if high is not None:
                conditions.append(StoreProduct.discount < high)
            bands.append(and_(*conditions))
        if deal_filter.deal_types:
            if not bands:
                return query.where(false())
            query = query.where(or_(*bands))

        if deal_filter.store_slugs:
            query = query.where(Store.slug.in_(deal_filter.store_slugs))
        if deal_filter.category:
            query = query.where(Product.category.ilike(f"%{deal_filter.category}%"))
        if deal_filter.max_price is not None:
            query = query.where(StoreProduct.price <= deal_filter.max_price)
        if deal_filter.currency:
            query = query.where(StoreProduct.currency == deal_filter.currency.upper())
        return query

    async def _fetch(self, query: Select) -> List[StoreProduct]:
        return list((await self.db.execute(query)).scalars().all())

    # ------------------------------------------------------------------
    # Filtered views
    # ------------------------------------------------------------------

    async def get_deals(
        self,
        deal_filter: Optional[DealFilter] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Deal]:
        """Discounted listings, biggest discount first then most recently updated.

        Args:
            deal_filter: Optional filters
            limit: Page size
            offset: Rows to skip
        """
        deal_filter = deal_filter or DealFilter()
        query = self._apply_filter(self._base_query(deal_filter.in_stock_only), deal_filter)
        query = (
            query.order_by(StoreProduct.discount.desc(), StoreProduct.updated_at.desc())
            .offset(offset)
            .limit(limit)
        )
        deals = [deal_from_listing(listing) for listing in await self._fetch(query)]
        self.logger.debug("deals_fetched", count=len(deals), limit=limit, offset=offset)
        return deals

    async def get_flash_sales(self, limit: int = 20) -> List[Deal]:
        return await self.get_deals(DealFilter(min_discount=30), limit)

    async def get_clearance_deals(self, limit: int = 20) -> List[Deal]:
        return await self.get_deals(DealFilter(min_discount=50), limit)

    async def get_deals_by_store(self, store_slug: str, limit: int = 50) -> List[Deal]:
        return await self.get_deals(DealFilter(store_slugs=[store_slug]), limit)

    async def get_deals_by_category(self, category: str, limit: int = 50) -> List[Deal]:
        return await self.get_deals(DealFilter(category=category), limit)

    async def search_deals(
        self,
        query_text: str,
        deal_filter: Optional[DealFilter] = None,
        limit: int = 50,
    ) -> List[Deal]:
        """Deals whose product name, brand or category contains the query."""
        query_text = (query_text or "").strip()
        if not query_text:
            raise InvalidInputError("query", "must not be empty")

        deal_filter = deal_filter or DealFilter()
        pattern = f"%{query_text}%"
        query = self._apply_filter(self._base_query(deal_filter.in_stock_only), deal_filter).where(
            or_(Product.name.ilike(pattern), Product.brand.ilike(pattern), Product.category.ilike(pattern))
        )
        query = query.order_by(StoreProduct.discount.desc(), StoreProduct.updated_at.desc()).limit(limit)
        return [deal_from_listing(listing) for listing in await self._fetch(query)]

    async def get_best_deals(self, currency: str = "SAR", limit: int = 20) -> List[Deal]:
        """Deals in one currency ranked by absolute savings."""
        deals = await self.get_deals(DealFilter(currency=currency), limit=200)
        deals.sort(key=lambda deal: deal.savings, reverse=True)
        return deals[:limit]

    # ------------------------------------------------------------------
    # History-based views
    # ------------------------------------------------------------------

    async def get_price_drops(self, days: int = 1, min_drop: int = 0, limit: int = 50) -> List[Deal]:
        """Listings whose newest sample is below the one before it.

        Only listings sampled within the last ``days`` days are considered.
        The deal's discount is the drop percentage.
        """
        if days < 1:
            raise InvalidInputError("days", "must be at least 1")

        cutoff = utc_now() - timedelta(days=days)
        recent = select(PriceHistory.store_product_id).where(PriceHistory.recorded_at >= cutoff).distinct()
        listings = await self._fetch(self._base_query().where(StoreProduct.id.in_(recent)))
        if not listings:
            return []

        samples = (await self.db.execute(
            select(PriceHistory)
            .where(PriceHistory.store_product_id.in_([listing.id for listing in listings]))
            .order_by(PriceHistory.store_product_id, PriceHistory.recorded_at.desc())
        )).scalars().all()

        latest: Dict[UUID, List[PriceHistory]] = {}
        for sample in samples:
            pair = latest.setdefault(sample.store_product_id, [])
            if len(pair) < 2:
                pair.append(sample)

        drops: List[Deal] = []
        for listing in listings:
            pair = latest.get(listing.id, [])
            if len(pair) < 2:
                continue
            newest, previous = Decimal(pair[0].price), Decimal(pair[1].price)
            if newest >= previous:
                continue
            drop = int(((previous - newest) / previous * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
            if drop < min_drop:
                continue

            deal = deal_from_listing(listing, deal_type=PRICE_DROP)
            deal.previous_price = previous
            deal.original_price = previous
            deal.discount = drop
            drops.append(deal)

        drops.sort(key=lambda deal: deal.discount, reverse=True)
        return drops[:limit]

    async def get_new_lowest_prices(self, limit: int = 30, country: Optional[str] = None) -> List[Deal]:
        """Listings at a new all-time low, tagged ``new_low``."""
        lows = await self.analyzer.find_products_at_lowest_price(limit=limit, country=country)
        if not lows:
            return []

        listings = {
            listing.id: listing
            for listing in await self._fetch(
                self._base_query().where(StoreProduct.id.in_([low.store_product_id for low in lows]))
            )
        }

        deals = []
        for low in lows:
            listing = listings.get(low.store_product_id)
            if listing is None:
                continue
            deal = deal_from_listing(listing, deal_type=categorize_deal(listing.discount or 0, is_new_low=True))
            deal.original_price = low.historical_high
            deal.previous_price = low.previous_lowest
            deal.discount = int(low.savings_percentage.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
            deals.append(deal)
        return deals

    async def compare_across_stores(self, product_id: UUID) -> List[Deal]:
        """Every listing of a product, cheapest in USD first.

        Raises:
            NotFoundError: If the product does not exist
        """
        if await self.db.get(Product, product_id) is None:
            raise NotFoundError("Product", str(product_id))

        listings = await self._fetch(self._base_query(in_stock_only=False).where(StoreProduct.product_id == product_id))
        deals = [deal_from_listing(listing) for listing in listings]
        # Listings without a USD price go last
        deals.sort(key=lambda deal: (deal.price_usd is None, deal.price_usd or Decimal("0")))
        return deals

    async def get_deal_summary(self) -> DealSummary:
        """Totals over current deals: by type, by store, top categories."""
        deals = await self.get_deals(limit=1000)

        by_type = {deal_type: 0 for deal_type in DEAL_TYPES}
        stores: Dict[str, Dict[str, object]] = {}
        categories: Counter = Counter()

        for deal in deals:
            by_type[deal.deal_type] += 1
            entry = stores.setdefault(deal.store_slug, {"store_slug": deal.store_slug, "store_name": deal.store_name, "count": 0})
            entry["count"] += 1
            if deal.category:
                categories[deal.category] += 1

        discounts = [deal.discount for deal in deals]
        return DealSummary(
            total_deals=len(deals),
            by_type=by_type,
            by_store=sorted(stores.values(), key=lambda entry: entry["count"], reverse=True),
            top_categories=[{"category": name, "count": count} for name, count in categories.most_common(10)],
            average_discount=round(sum(discounts) / len(discounts)) if discounts else 0,
            max_discount=max(discounts, default=0),
        )

    # ------------------------------------------------------------------
    # Behavior-weighted views
    # ------------------------------------------------------------------

    async def get_trending_deals(self, days: int = 7, limit: int = 20) -> List[Deal]:
        """Listings ranked by recent clicks and matching searches.

        Falls back to the most recently updated in-stock listings when the
        window has no signal.
        """
        since = utc_now() - timedelta(days=days)
        clicks = await self._click_counts(since)
        searches = await self._search_counts(since)

        candidates = await self._signal_candidates(clicks.keys(), searches.keys())
        scored = []
        for listing in candidates:
            score = clicks.get(listing.id, 0) * CLICK_WEIGHT
            score += sum(count for term, count in searches.items() if _matches(listing.product, term)) * SEARCH_WEIGHT
            if score > 0:
                deal = deal_from_listing(listing)
                deal.score = score
                scored.append(deal)

        if not scored:
            self.logger.debug("trending_fallback", days=days)
            return await self._recently_updated(limit)

        scored.sort(key=lambda deal: (deal.score, deal.discount), reverse=True)
        return scored[:limit]

    async def get_personalized_deals(self, user_id: UUID, days: int = 7, limit: int = 30) -> List[Deal]:
        """Discounted listings weighted by one user's own clicks and searches.

        Clicked listings contribute their product's category and brand;
        searches contribute their query text. Same fallback as trending.
        """
        since = utc_now() - timedelta(days=days)

        clicked = (await self.db.execute(
            select(Product.category, Product.brand)
            .select_from(ProductClick)
            .join(StoreProduct, ProductClick.store_product_id == StoreProduct.id)
            .join(Product, StoreProduct.product_id == Product.id)
            .where(ProductClick.user_id == user_id, ProductClick.created_at >= since)
        )).all()
        categories = Counter(category for category, _ in clicked if category)
        brands = Counter(brand for _, brand in clicked if brand)
        searches = await self._search_counts(since, user_id=user_id)

        if not (categories or brands or searches):
            return await self._recently_updated(limit)

        conditions = []
        if categories:
            conditions.append(Product.category.in_(list(categories)))
        if brands:
            conditions.append(Product.brand.in_(list(brands)))
        for term in searches:
            conditions.append(Product.name.ilike(f"%{term}%"))

        query = self._base_query().where(StoreProduct.discount > 0, or_(*conditions))
        scored = []
        for listing in await self._fetch(query):
            product = listing.product
            score = categories.get(product.category, 0) * PREFERENCE_WEIGHT
            score += brands.get(product.brand, 0) * PREFERENCE_WEIGHT
            score += sum(count for term, count in searches.items() if _matches(product, term)) * SEARCH_WEIGHT
            deal = deal_from_listing(listing)
            deal.score = score
            scored.append(deal)

        if not scored:
            return await self._recently_updated(limit)

        scored.sort(key=lambda deal: (deal.score, deal.discount), reverse=True)
        return scored[:limit]

    async def record_click(self, store_product_id: UUID, user_id: Optional[UUID] = None) -> None:
        """Log an outbound click on a listing (feeds trending and personalized views).

        Raises:
            NotFoundError: If the listing does not exist
        """
        if await self.db.get(StoreProduct, store_product_id) is None:
            raise NotFoundError("StoreProduct", str(store_product_id))
        self.db.add(ProductClick(
            id=uuid.uuid4(),
            user_id=user_id,
            store_product_id=store_product_id,
            created_at=utc_now(),
        ))
        await self.db.commit()

    async def _recently_updated(self, limit: int) -> List[Deal]:
        query = self._base_query().order_by(StoreProduct.updated_at.desc()).limit(limit)
        return [deal_from_listing(listing) for listing in await self._fetch(query)]

    async def _click_counts(self, since: datetime) -> Dict[UUID, int]:
        rows = (await self.db.execute(
            select(ProductClick.store_product_id, func.count(ProductClick.id))
            .where(ProductClick.created_at >= since)
            .group_by(ProductClick.store_product_id)
        )).all()
        return {store_product_id: count for store_product_id, count in rows}

    async def _search_counts(self, since: datetime, user_id: Optional[UUID] = None, top: int = 20) -> Dict[str, int]:
        query = (
            select(func.lower(SearchHistory.query), func.count(SearchHistory.id))
            .where(SearchHistory.created_at >= since)
            .group_by(func.lower(SearchHistory.query))
            .order_by(func.count(SearchHistory.id).desc())
            .limit(top)
        )
        if user_id is not None:
            query = query.where(SearchHistory.user_id == user_id)
        rows = (await self.db.execute(query)).all()
        return {term.strip(): count for term, count in rows if term and term.strip()}

    async def _signal_candidates(self, clicked_ids: Iterable[UUID], terms: Iterable[str]) -> List[StoreProduct]:
        conditions = []
        clicked_ids = list(clicked_ids)
        if clicked_ids:
            conditions.append(StoreProduct.id.in_(clicked_ids))
        for term in terms:
            pattern = f"%{term}%"
            conditions.append(or_(Product.name.ilike(pattern), Product.brand.ilike(pattern), Product.category.ilike(pattern)))
        if not conditions:
            return []
        return await self._fetch(self._base_query().where(or_(*conditions)))


def _matches(product: Product, term: str) -> bool:
    term = term.lower()
    return any(term in (value or "").lower() for value in (product.name, product.brand, product.category))
