"""Tests for stock monitoring and back-in-stock subscriptions."""

import uuid
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.core.dates import utc_now
from pricehunter.core.exceptions import NotFoundError
from pricehunter.models import Product, StockHistory, Store, StoreProduct, User
from pricehunter.services.notification_service import BACK_IN_STOCK, EMAIL, PUSH
from pricehunter.services.stock_service import StockMonitor, StockObservation, estimate_restock

from conftest import RecordingDispatcher, make_listing


NOW = datetime(2024, 6, 20, 12, 0, tzinfo=timezone.utc)


def observations(pattern):
    """Build daily observations from ``(day, in_stock)`` pairs."""
    start = NOW - timedelta(days=13)
    return [StockObservation(in_stock=flag, checked_at=start + timedelta(days=day)) for day, flag in pattern]


# ============================================================================
# TESTS: RESTOCK ESTIMATE
# ============================================================================

class TestEstimateRestock:
    # Two completed outages of 2 and 4 days; the current one began a day ago
    PATTERN = [
        (0, True), (1, False), (2, False), (3, True), (4, True),
        (5, False), (9, True), (10, True), (11, True), (12, False),
    ]

    def test_average_outage_minus_elapsed(self):
        estimate = estimate_restock(False, observations(self.PATTERN), now=NOW)
        assert estimate == NOW + timedelta(days=2)

    def test_order_does_not_matter(self):
        shuffled = list(reversed(observations(self.PATTERN)))
        assert estimate_restock(False, shuffled, now=NOW) == NOW + timedelta(days=2)

    def test_at_least_one_day(self):
        # Completed outages average 2 days; the current one is already 5 days old
        pattern = [
            (0, True), (1, False), (2, False), (3, True), (4, True), (5, False),
            (6, False), (7, True), (8, False), (9, False), (10, False),
        ]
        assert estimate_restock(False, observations(pattern), now=NOW) == NOW + timedelta(days=1)

    def test_in_stock_has_no_estimate(self):
        assert estimate_restock(True, observations(self.PATTERN), now=NOW) is None

    def test_too_few_observations(self):
        assert estimate_restock(False, observations(self.PATTERN[:9]), now=NOW) is None

    def test_no_completed_outage(self):
        pattern = [(day, True) for day in range(10)] + [(11, False)]
        assert estimate_restock(False, observations(pattern), now=NOW) is None


# ============================================================================
# TESTS: OBSERVATIONS
# ============================================================================

class TestStockObservations:
    async def test_record_stock_check(self, test_db: AsyncSession, sample_listing: StoreProduct):
        monitor = StockMonitor(test_db)

        listing = await monitor.record_stock_check(sample_listing.id, False)

        assert listing.in_stock is False
        status = await monitor.get_stock_status(sample_listing.id)
        assert status.in_stock is False
        assert len(status.history) == 2
        assert status.history[0].in_stock is False
        assert status.last_in_stock is not None
        assert status.estimated_restock is None

    async def test_unknown_listing(self, test_db: AsyncSession):
        monitor = StockMonitor(test_db)

        with pytest.raises(NotFoundError):
            await monitor.record_stock_check(uuid4(), True)
        with pytest.raises(NotFoundError):
            await monitor.get_stock_status(uuid4())

    async def test_recently_restocked(self, test_db: AsyncSession, sample_listing: StoreProduct):
        # sample_listing was in stock on its only observation; this one came back
        product = Product(id=uuid.uuid4(), name="PlayStation 5")
        test_db.add(product)
        store = await test_db.get(Store, sample_listing.store_id)
        restocked = await make_listing(test_db, store, product, "2099.00")
        test_db.add(StockHistory(
            id=uuid.uuid4(),
            store_product_id=restocked.id,
            in_stock=False,
            checked_at=utc_now() - timedelta(hours=2),
        ))
        await test_db.commit()

        results = await StockMonitor(test_db).get_recently_restocked(hours=24)

        assert [r.store_product_id for r in results] == [restocked.id]
        assert results[0].product_name == "PlayStation 5"
        assert results[0].store_name == "Amazon SA"


# ============================================================================
# TESTS: SUBSCRIPTIONS
# ============================================================================

class TestSubscriptions:
    async def test_subscribe_twice_rearms_same_row(
        self, test_db: AsyncSession, sample_user: User, sample_listing: StoreProduct
    ):
        monitor = StockMonitor(test_db)

        first = await monitor.subscribe(sample_user.id, sample_listing.id)
        first.is_active = False
        await test_db.commit()

        second = await monitor.subscribe(sample_user.id, sample_listing.id, notify_email=False, notify_push=True)

        assert second.id == first.id
        assert second.is_active is True
        assert second.notify_push is True
        assert len(await monitor.list_subscriptions(sample_user.id)) == 1

    async def test_subscribe_unknown_rows(self, test_db: AsyncSession, sample_user: User, sample_listing: StoreProduct):
        monitor = StockMonitor(test_db)

        with pytest.raises(NotFoundError):
            await monitor.subscribe(uuid4(), sample_listing.id)
        with pytest.raises(NotFoundError):
            await monitor.subscribe(sample_user.id, uuid4())

    async def test_toggle_unsubscribe_and_ownership(
        self, test_db: AsyncSession, sample_user: User, sample_listing: StoreProduct
    ):
        monitor = StockMonitor(test_db)
        subscription = await monitor.subscribe(sample_user.id, sample_listing.id)

        toggled = await monitor.toggle(sample_user.id, subscription.id)
        assert toggled.is_active is False
        with pytest.raises(NotFoundError):
            await monitor.toggle(uuid4(), subscription.id)

        assert await monitor.unsubscribe(uuid4(), subscription.id) is False

        assert await monitor.unsubscribe(sample_user.id, subscription.id) is True
        assert await monitor.list_subscriptions(sample_user.id) == []
        assert await monitor.unsubscribe(sample_user.id, subscription.id) is False

    async def test_subscription_stats(self, test_db: AsyncSession, sample_user: User, sample_listing: StoreProduct):
        monitor = StockMonitor(test_db)
        subscription = await monitor.subscribe(sample_user.id, sample_listing.id)
        subscription.last_notified_at = utc_now()
        subscription.is_active = False
        await test_db.commit()

        assert await monitor.get_subscription_stats(sample_user.id) == {"total": 1, "active": 0, "notified": 1}


# ============================================================================
# TESTS: BATCH PROCESSING
# ============================================================================

class TestProcessStockNotifications:
    async def test_notifies_once_by_email(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_listing: StoreProduct,
        dispatcher: RecordingDispatcher,
    ):
        monitor = StockMonitor(test_db, dispatcher)
        subscription = await monitor.subscribe(sample_user.id, sample_listing.id, notify_email=True, notify_push=True)

        stats = await monitor.process_stock_notifications()

        assert stats == {"processed": 1, "notified": 1, "errors": 0}
        assert len(dispatcher.sent) == 1
        kind, target, payload = dispatcher.sent[0]
        assert kind == BACK_IN_STOCK
        assert target.channel == EMAIL
        assert target.address == "shopper@example.com"
        assert payload.store_name == "Amazon SA"

        await test_db.refresh(subscription)
        assert subscription.is_active is False
        assert subscription.last_notified_at is not None

        again = await monitor.process_stock_notifications()
        assert again["processed"] == 0
        assert len(dispatcher.sent) == 1

    async def test_push_when_email_disabled(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_listing: StoreProduct,
        dispatcher: RecordingDispatcher,
    ):
        monitor = StockMonitor(test_db, dispatcher)
        await monitor.subscribe(sample_user.id, sample_listing.id, notify_email=False, notify_push=True)

        await monitor.process_stock_notifications()

        assert dispatcher.sent[0][1].channel == PUSH
        assert dispatcher.sent[0][1].address == "push-token-1"

    async def test_out_of_stock_listing_is_skipped(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_listing: StoreProduct,
        dispatcher: RecordingDispatcher,
    ):
        monitor = StockMonitor(test_db, dispatcher)
        await monitor.subscribe(sample_user.id, sample_listing.id)
        await monitor.record_stock_check(sample_listing.id, False)

        stats = await monitor.process_stock_notifications()

        assert stats["processed"] == 0
        assert dispatcher.sent == []

    async def test_no_channel_still_consumes_subscription(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_listing: StoreProduct,
        dispatcher: RecordingDispatcher,
    ):
        monitor = StockMonitor(test_db, dispatcher)
        subscription = await monitor.subscribe(sample_user.id, sample_listing.id, notify_email=False, notify_push=False)

        stats = await monitor.process_stock_notifications()

        assert stats == {"processed": 1, "notified": 0, "errors": 0}
        assert dispatcher.sent == []
        await test_db.refresh(subscription)
        assert subscription.is_active is False

    async def test_failed_delivery_is_not_counted(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_listing: StoreProduct,
    ):
        failing = RecordingDispatcher(fail_channels=(EMAIL,))
        monitor = StockMonitor(test_db, failing)
        await monitor.subscribe(sample_user.id, sample_listing.id)

        stats = await monitor.process_stock_notifications()

        assert stats == {"processed": 1, "notified": 0, "errors": 0}
        assert len(failing.sent) == 1
