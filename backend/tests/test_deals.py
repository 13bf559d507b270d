"""Tests for DealService views."""

import uuid
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.core.dates import utc_now
from pricehunter.core.exceptions import InvalidInputError, NotFoundError
from pricehunter.models import Product, SearchHistory, Store, StoreProduct, User
from pricehunter.services.deal_service import (
    CLEARANCE,
    DAILY_DEAL,
    FLASH_SALE,
    NEW_LOW,
    PRICE_DROP,
    DealFilter,
    DealService,
    categorize_deal,
    derive_original_price,
)

from conftest import make_listing


async def make_product(db: AsyncSession, name: str, category: str = None, brand: str = None) -> Product:
    product = Product(id=uuid.uuid4(), name=name, category=category, brand=brand)
    db.add(product)
    await db.commit()
    return product


@pytest_asyncio.fixture
async def catalog(test_db: AsyncSession, sample_store: Store, second_store: Store):
    """Listings spread over every discount band, plus ones that must never show."""
    closed = Store(
        id=uuid.uuid4(),
        name="Closed Store",
        slug="closed",
        domain="closed.example",
        country="SA",
        currency="SAR",
        is_active=False,
    )
    test_db.add(closed)
    await test_db.commit()

    listings = {}
    specs = [
        ("clearance", sample_store, "TV 55 inch", "electronics", "Samsung", "2000.00", 60),
        ("flash", second_store, "Air Fryer XL", "kitchen", "Philips", "350.00", 35),
        ("drop", sample_store, "Running Shoes", "sports", "Nike", "400.00", 20),
        ("daily", second_store, "Phone Case", "electronics", "Spigen", "50.00", 5),
        ("full_price", sample_store, "Kettle", "kitchen", "Tefal", "120.00", 0),
        ("sold_out", sample_store, "Game Console", "electronics", "Sony", "1800.00", 40),
        ("closed", closed, "Blender", "kitchen", "Moulinex", "200.00", 45),
    ]
    for key, store, name, category, brand, price, discount in specs:
        product = await make_product(test_db, name, category, brand)
        listings[key] = await make_listing(
            test_db,
            store,
            product,
            price,
            discount=discount,
            in_stock=key != "sold_out",
        )
    return listings


# ============================================================================
# TESTS: PURE HELPERS
# ============================================================================

class TestCategorizeDeal:
    @pytest.mark.parametrize(
        "discount,expected",
        [(75, CLEARANCE), (50, CLEARANCE), (49, FLASH_SALE), (30, FLASH_SALE), (15, PRICE_DROP), (14, DAILY_DEAL), (0, DAILY_DEAL)],
    )
    def test_bands(self, discount, expected):
        assert categorize_deal(discount) == expected

    def test_new_low_wins(self):
        assert categorize_deal(60, is_new_low=True) == NEW_LOW

    def test_derive_original_price(self):
        assert derive_original_price(Decimal("75"), None, 25) == Decimal("100.00")
        assert derive_original_price(Decimal("75"), Decimal("90"), 25) == Decimal("90")
        assert derive_original_price(Decimal("75"), None, 0) == Decimal("75")


class TestDealFilter:
    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidInputError) as exc:
            DealFilter(deal_types=["mega_sale"])
        assert exc.value.field == "deal_types"

    def test_discount_range(self):
        with pytest.raises(InvalidInputError):
            DealFilter(min_discount=120)


# ============================================================================
# TESTS: FILTERED VIEWS
# ============================================================================

class TestDealViews:
    """Tests for DealService listing-based views."""

    async def test_get_deals_excludes_sold_out_and_inactive(self, test_db: AsyncSession, catalog):
        deals = await DealService(test_db).get_deals()

        assert [d.discount for d in deals] == [60, 35, 20, 5]
        assert [d.deal_type for d in deals] == [CLEARANCE, FLASH_SALE, PRICE_DROP, DAILY_DEAL]
        assert all(d.store_slug != "closed" for d in deals)

    async def test_include_out_of_stock(self, test_db: AsyncSession, catalog):
        deals = await DealService(test_db).get_deals(DealFilter(in_stock_only=False))
        assert 40 in [d.discount for d in deals]

    async def test_filter_by_type(self, test_db: AsyncSession, catalog):
        service = DealService(test_db)

        flash = await service.get_deals(DealFilter(deal_types=[FLASH_SALE]))
        assert [d.product_name for d in flash] == ["Air Fryer XL"]

        mixed = await service.get_deals(DealFilter(deal_types=[CLEARANCE, DAILY_DEAL]))
        assert [d.discount for d in mixed] == [60, 5]

        assert await service.get_deals(DealFilter(deal_types=[NEW_LOW])) == []

    async def test_flash_sales_and_clearance(self, test_db: AsyncSession, catalog):
        service = DealService(test_db)
        assert [d.discount for d in await service.get_flash_sales()] == [60, 35]
        assert [d.discount for d in await service.get_clearance_deals()] == [60]

    async def test_by_store_and_category(self, test_db: AsyncSession, catalog):
        service = DealService(test_db)

        noon = await service.get_deals_by_store("noon-sa")
        assert {d.product_name for d in noon} == {"Air Fryer XL", "Phone Case"}

        electronics = await service.get_deals_by_category("electro")
        assert [d.product_name for d in electronics] == ["TV 55 inch", "Phone Case"]

    async def test_max_price_and_pagination(self, test_db: AsyncSession, catalog):
        service = DealService(test_db)

        cheap = await service.get_deals(DealFilter(max_price=Decimal("400")))
        assert [d.discount for d in cheap] == [35, 20, 5]

        page = await service.get_deals(limit=2, offset=1)
        assert [d.discount for d in page] == [35, 20]

    async def test_search_deals(self, test_db: AsyncSession, catalog):
        service = DealService(test_db)

        assert [d.product_name for d in await service.search_deals("philips")] == ["Air Fryer XL"]
        with pytest.raises(InvalidInputError):
            await service.search_deals("   ")

    async def test_best_deals_by_savings(self, test_db: AsyncSession, catalog):
        deals = await DealService(test_db).get_best_deals(currency="SAR", limit=2)

        # 2000 at 60% off saves 3000; 350 at 35% off saves 188.46
        assert [d.product_name for d in deals] == ["TV 55 inch", "Air Fryer XL"]
        assert deals[0].savings == Decimal("3000.00")

    async def test_summary(self, test_db: AsyncSession, catalog):
        summary = await DealService(test_db).get_deal_summary()

        assert summary.total_deals == 4
        assert summary.by_type[CLEARANCE] == 1
        assert summary.by_type[NEW_LOW] == 0
        assert summary.max_discount == 60
        assert summary.average_discount == 30
        assert summary.top_categories[0] == {"category": "electronics", "count": 2}


# ============================================================================
# TESTS: HISTORY-BASED VIEWS
# ============================================================================

class TestHistoryViews:
    async def test_price_drops(self, test_db: AsyncSession, sample_store: Store, sample_listing: StoreProduct):
        rising = await make_product(test_db, "Rising Widget")
        await make_listing(test_db, sample_store, rising, "120.00", history=["100.00", "120.00"])

        drops = await DealService(test_db).get_price_drops(days=1)

        assert [d.store_product_id for d in drops] == [sample_listing.id]
        assert drops[0].deal_type == PRICE_DROP
        assert drops[0].previous_price == Decimal("1499.00")
        assert drops[0].discount == 13

    async def test_price_drops_min_drop(self, test_db: AsyncSession, sample_listing: StoreProduct):
        assert await DealService(test_db).get_price_drops(days=1, min_drop=20) == []

    async def test_new_lowest_prices(self, test_db: AsyncSession, sample_listing: StoreProduct):
        deals = await DealService(test_db).get_new_lowest_prices()

        assert len(deals) == 1
        assert deals[0].deal_type == NEW_LOW
        assert deals[0].original_price == Decimal("1599.00")
        assert deals[0].discount == 19

    async def test_compare_across_stores(
        self,
        test_db: AsyncSession,
        second_store: Store,
        sample_product: Product,
        sample_listing: StoreProduct,
    ):
        cheaper = await make_listing(test_db, second_store, sample_product, "1199.00", in_stock=False)

        deals = await DealService(test_db).compare_across_stores(sample_product.id)

        assert [d.store_product_id for d in deals] == [cheaper.id, sample_listing.id]

    async def test_compare_unknown_product(self, test_db: AsyncSession):
        with pytest.raises(NotFoundError):
            await DealService(test_db).compare_across_stores(uuid4())


# ============================================================================
# TESTS: BEHAVIOR-WEIGHTED VIEWS
# ============================================================================

class TestBehaviorViews:
    async def test_trending_ranks_clicked_listing_first(self, test_db: AsyncSession, catalog):
        service = DealService(test_db)
        await service.record_click(catalog["daily"].id)
        await service.record_click(catalog["daily"].id)
        test_db.add(SearchHistory(id=uuid4(), query="air fryer", results_count=3, created_at=utc_now()))
        await test_db.commit()

        trending = await service.get_trending_deals()

        assert trending[0].product_name == "Phone Case"
        assert trending[0].score == 6
        assert trending[1].product_name == "Air Fryer XL"
        assert trending[1].score == 1

    async def test_trending_falls_back_without_signal(self, test_db: AsyncSession, catalog):
        trending = await DealService(test_db).get_trending_deals()
        assert len(trending) == 5
        assert all(d.score == 0 for d in trending)

    async def test_personalized_uses_click_category(self, test_db: AsyncSession, catalog, sample_user: User):
        service = DealService(test_db)
        await service.record_click(catalog["full_price"].id, user_id=sample_user.id)

        deals = await service.get_personalized_deals(sample_user.id)

        # Kettle is in kitchen but has no discount; the kitchen deal is the air fryer
        assert [d.product_name for d in deals] == ["Air Fryer XL"]
        assert deals[0].score == 2

    async def test_record_click_unknown_listing(self, test_db: AsyncSession):
        with pytest.raises(NotFoundError):
            await DealService(test_db).record_click(uuid4())
