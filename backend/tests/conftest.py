"""Pytest configuration and shared fixtures."""

import fnmatch
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Union

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pricehunter.core.dates import utc_now
from pricehunter.models import (
    Base,
    PriceHistory,
    Product,
    StockHistory,
    Store,
    StoreProduct,
    User,
)
from pricehunter.scrapers.base import ScrapedProduct
from pricehunter.services.currency_service import DEFAULT_RATES
from pricehunter.services.notification_service import NotificationPayload, NotificationTarget


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncSession:
    """Create an in-memory SQLite database for testing."""
    async with session_factory() as session:
        yield session


# ============================================================================
# ROWS
# ============================================================================

@pytest_asyncio.fixture
async def sample_store(test_db: AsyncSession) -> Store:
    store = Store(
        id=uuid.uuid4(),
        name="Amazon SA",
        slug="amazon-sa",
        domain="amazon.sa",
        country="SA",
        currency="SAR",
        is_active=True,
        scrape_interval_minutes=360,
    )
    test_db.add(store)
    await test_db.commit()
    return store


@pytest_asyncio.fixture
async def second_store(test_db: AsyncSession) -> Store:
    store = Store(
        id=uuid.uuid4(),
        name="Noon SA",
        slug="noon-sa",
        domain="noon.com",
        country="SA",
        currency="SAR",
        is_active=True,
        scrape_interval_minutes=360,
    )
    test_db.add(store)
    await test_db.commit()
    return store


@pytest_asyncio.fixture
async def third_store(test_db: AsyncSession) -> Store:
    store = Store(
        id=uuid.uuid4(),
        name="Jarir",
        slug="jarir",
        domain="jarir.com",
        country="SA",
        currency="SAR",
        is_active=True,
        scrape_interval_minutes=720,
    )
    test_db.add(store)
    await test_db.commit()
    return store


@pytest_asyncio.fixture
async def sample_product(test_db: AsyncSession) -> Product:
    product = Product(
        id=uuid.uuid4(),
        name="Sony WH-1000XM5 Wireless Headphones",
        brand="Sony",
        category="electronics",
        barcode="B09XS7JWHH",
    )
    test_db.add(product)
    await test_db.commit()
    return product


@pytest_asyncio.fixture
async def sample_user(test_db: AsyncSession) -> User:
    user = User(
        id=uuid.uuid4(),
        email="shopper@example.com",
        name="Test Shopper",
        telegram_id="123456",
        push_token="push-token-1",
        preferred_currency="SAR",
    )
    test_db.add(user)
    await test_db.commit()
    return user


async def make_listing(
    db: AsyncSession,
    store: Store,
    product: Product,
    price: str,
    *,
    original_price: Optional[str] = None,
    discount: int = 0,
    in_stock: bool = True,
    currency: str = "SAR",
    url: Optional[str] = None,
    history: Optional[List[str]] = None,
    days_between: int = 1,
) -> StoreProduct:
    """Insert a listing plus its price history.

    ``history`` is oldest first and spaced ``days_between`` days apart,
    the last entry being today. Without it a single point at ``price``
    is written.
    """
    price_dec = Decimal(price)
    rate = DEFAULT_RATES[currency]
    listing = StoreProduct(
        id=uuid.uuid4(),
        store_id=store.id,
        product_id=product.id,
        url=url or f"https://www.{store.domain}/dp/{uuid.uuid4().hex[:10].upper()}",
        price=price_dec,
        currency=currency,
        price_usd=(price_dec / rate).quantize(Decimal("0.01")),
        original_price=Decimal(original_price) if original_price else None,
        discount=discount,
        in_stock=in_stock,
        last_scraped=utc_now(),
    )
    db.add(listing)

    points = history or [price]
    now = utc_now()
    for idx, value in enumerate(points):
        recorded = now - timedelta(days=(len(points) - 1 - idx) * days_between)
        amount = Decimal(value)
        db.add(PriceHistory(
            id=uuid.uuid4(),
            store_product_id=listing.id,
            price=amount,
            currency=currency,
            price_usd=(amount / rate).quantize(Decimal("0.01")),
            recorded_at=recorded,
        ))
    db.add(StockHistory(id=uuid.uuid4(), store_product_id=listing.id, in_stock=in_stock, checked_at=now))

    await db.commit()
    return listing


@pytest_asyncio.fixture
async def sample_listing(test_db: AsyncSession, sample_store: Store, sample_product: Product) -> StoreProduct:
    return await make_listing(
        test_db,
        sample_store,
        sample_product,
        "1299.00",
        original_price="1599.00",
        discount=19,
        url="https://www.amazon.sa/dp/B09XS7JWHH",
        history=["1599.00", "1499.00", "1299.00"],
    )


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class RecordingDispatcher:
    """Stand-in for NotificationDispatcher that records every send."""

    def __init__(self, fail_channels: tuple = ()):
        self.sent: List[tuple] = []
        self.fail_channels = fail_channels

    def is_configured(self, channel: str) -> bool:
        return channel not in self.fail_channels

    async def send(self, target: NotificationTarget, template_kind: str, payload: NotificationPayload) -> bool:
        self.sent.append((template_kind, target, payload))
        return target.channel not in self.fail_channels

    async def aclose(self) -> None:
        pass


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


# ============================================================================
# FAKES
# ============================================================================

class StubAdapter:
    """Adapter serving canned products keyed by URL."""

    def __init__(self, slug: str, pages: Dict[str, Union[ScrapedProduct, Exception, None]], hits=()):
        self.slug = slug
        self.pages = pages
        self.hits = list(hits)
        self.calls = []

    async def scrape_product(self, url: str) -> Optional[ScrapedProduct]:
        self.calls.append(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        return page

    async def search_products(self, query: str) -> List[ScrapedProduct]:
        return list(self.hits)


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis."""

    def __init__(self, fail: bool = False):
        self.data = {}
        self.ttls = {}
        self.fail = fail
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ex

    async def scan_iter(self, match="*", count=None):
        self._check()
        for key in list(self.data):
            if fnmatch.fnmatch(key, match):
                yield key

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            removed += self.data.pop(key, None) is not None
        return removed

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        self.closed = True
