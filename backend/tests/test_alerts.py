"""Tests for price alert CRUD and batch evaluation."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.core.exceptions import InvalidInputError, NotFoundError
from pricehunter.models import Product, Store, StoreProduct, User
from pricehunter.scrapers.base import ScrapedProduct
from pricehunter.services.alert_service import AlertService
from pricehunter.services.notification_service import EMAIL, PRICE_ALERT, PUSH, TELEGRAM
from pricehunter.services.price_history_service import PriceHistoryStore

from conftest import RecordingDispatcher, make_listing


# ============================================================================
# TESTS: CRUD
# ============================================================================

class TestAlertCrud:
    """Tests for creating, updating and deleting alerts."""

    async def test_create_alert(self, test_db: AsyncSession, sample_user: User, sample_product: Product):
        alert = await AlertService(test_db).create_alert(sample_user.id, sample_product.id, Decimal("1200"), "sar")

        assert alert.target_price == Decimal("1200")
        assert alert.currency == "SAR"
        assert alert.is_active is True
        assert alert.triggered is False
        assert alert.notify_email is True

    async def test_create_twice_updates_and_rearms(
        self, test_db: AsyncSession, sample_user: User, sample_product: Product
    ):
        service = AlertService(test_db)
        first = await service.create_alert(sample_user.id, sample_product.id, Decimal("1200"))
        first.triggered = True
        await test_db.commit()

        second = await service.create_alert(
            sample_user.id, sample_product.id, Decimal("300"), "USD", notify_telegram=True
        )

        assert second.id == first.id
        assert second.target_price == Decimal("300")
        assert second.currency == "USD"
        assert second.triggered is False
        assert second.notify_telegram is True
        assert (await service.get_alert_stats(sample_user.id))["total"] == 1

    @pytest.mark.parametrize("target", [Decimal("0"), Decimal("-5"), "abc", "NaN"])
    async def test_invalid_target(self, test_db: AsyncSession, sample_user: User, sample_product: Product, target):
        with pytest.raises(InvalidInputError) as exc:
            await AlertService(test_db).create_alert(sample_user.id, sample_product.id, target)
        assert exc.value.field == "target_price"

    async def test_invalid_currency_and_unknown_rows(
        self, test_db: AsyncSession, sample_user: User, sample_product: Product
    ):
        service = AlertService(test_db)

        with pytest.raises(InvalidInputError):
            await service.create_alert(sample_user.id, sample_product.id, Decimal("10"), "GBP")
        with pytest.raises(NotFoundError):
            await service.create_alert(uuid4(), sample_product.id, Decimal("10"))
        with pytest.raises(NotFoundError):
            await service.create_alert(sample_user.id, uuid4(), Decimal("10"))

    async def test_update_alert(self, test_db: AsyncSession, sample_user: User, sample_product: Product):
        service = AlertService(test_db)
        alert = await service.create_alert(sample_user.id, sample_product.id, Decimal("1200"))

        updated = await service.update_alert(alert.id, sample_user.id, target_price="1100.50", notify_push=True)

        assert updated.target_price == Decimal("1100.50")
        assert updated.notify_push is True

        with pytest.raises(InvalidInputError):
            await service.update_alert(alert.id, sample_user.id, triggered=True)
        with pytest.raises(NotFoundError):
            await service.update_alert(alert.id, uuid4(), target_price="1")

    async def test_delete_alert(self, test_db: AsyncSession, sample_user: User, sample_product: Product):
        service = AlertService(test_db)
        alert = await service.create_alert(sample_user.id, sample_product.id, Decimal("1200"))

        assert await service.delete_alert(alert.id, uuid4()) is False
        assert await service.delete_alert(alert.id, sample_user.id) is True
        assert await service.delete_alert(alert.id, sample_user.id) is False

    async def test_alerts_for_user_carry_current_price(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_product: Product,
        sample_listing: StoreProduct,
    ):
        service = AlertService(test_db)
        await service.create_alert(sample_user.id, sample_product.id, Decimal("100"), "USD")

        views = await service.get_alerts_for_user(sample_user.id)

        assert len(views) == 1
        assert views[0].current_price == Decimal("346.40")
        assert await service.get_triggered_alerts(sample_user.id) == []


# ============================================================================
# TESTS: EVALUATION
# ============================================================================

class TestEvaluateAlerts:
    """Tests for the alert evaluation batch."""

    async def test_triggers_once_and_notifies_each_channel(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_product: Product,
        sample_listing: StoreProduct,
        dispatcher: RecordingDispatcher,
    ):
        service = AlertService(test_db, dispatcher)
        alert = await service.create_alert(
            sample_user.id,
            sample_product.id,
            Decimal("1300"),
            "SAR",
            notify_email=True,
            notify_telegram=True,
            notify_push=True,
        )

        stats = await service.evaluate_alerts()

        assert stats == {"checked": 1, "triggered": 1, "notified": 3, "errors": 0}
        assert [target.channel for _, target, _ in dispatcher.sent] == [EMAIL, TELEGRAM, PUSH]
        kind, _, payload = dispatcher.sent[0]
        assert kind == PRICE_ALERT
        assert payload.price == Decimal("1299.00")
        assert payload.currency == "SAR"
        assert payload.target_price == Decimal("1300")
        assert payload.product_url == "https://www.amazon.sa/dp/B09XS7JWHH"

        await test_db.refresh(alert)
        assert alert.triggered is True
        assert alert.triggered_at is not None

        again = await service.evaluate_alerts()
        assert again["checked"] == 0
        assert len(dispatcher.sent) == 3

    async def test_compares_in_alert_currency(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_product: Product,
        sample_listing: StoreProduct,
        dispatcher: RecordingDispatcher,
    ):
        service = AlertService(test_db, dispatcher)
        await service.create_alert(sample_user.id, sample_product.id, Decimal("340"), "USD")

        stats = await service.evaluate_alerts()
        assert stats["triggered"] == 0

        await service.create_alert(sample_user.id, sample_product.id, Decimal("10703.76"), "EGP")
        stats = await service.evaluate_alerts()

        assert stats["triggered"] == 1
        assert dispatcher.sent[0][2].price == Decimal("10703.76")
        assert dispatcher.sent[0][2].currency == "EGP"

    async def test_cheapest_in_stock_listing_wins(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_product: Product,
        sample_listing: StoreProduct,
        second_store: Store,
        third_store: Store,
        dispatcher: RecordingDispatcher,
    ):
        await make_listing(test_db, third_store, sample_product, "999.00", in_stock=False)
        await make_listing(test_db, second_store, sample_product, "1200.00", url="https://www.noon.com/saudi-en/x/N1/p/")
        service = AlertService(test_db, dispatcher)
        await service.create_alert(sample_user.id, sample_product.id, Decimal("1260"))

        await service.evaluate_alerts()

        payload = dispatcher.sent[0][2]
        assert payload.price == Decimal("1200.00")
        assert payload.store_name == "Noon SA"

    async def test_inactive_store_is_ignored(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_product: Product,
        sample_listing: StoreProduct,
        sample_store: Store,
        dispatcher: RecordingDispatcher,
    ):
        sample_store.is_active = False
        await test_db.commit()
        service = AlertService(test_db, dispatcher)
        await service.create_alert(sample_user.id, sample_product.id, Decimal("5000"))

        stats = await service.evaluate_alerts()

        assert stats["checked"] == 1
        assert stats["triggered"] == 0
        assert dispatcher.sent == []

    async def test_failed_channel_not_counted(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_product: Product,
        sample_listing: StoreProduct,
    ):
        failing = RecordingDispatcher(fail_channels=(TELEGRAM,))
        service = AlertService(test_db, failing)
        await service.create_alert(sample_user.id, sample_product.id, Decimal("1300"), notify_telegram=True)

        stats = await service.evaluate_alerts()

        assert stats["triggered"] == 1
        assert stats["notified"] == 1
        assert len(failing.sent) == 2

    async def test_reset_and_stats(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_product: Product,
        sample_listing: StoreProduct,
        dispatcher: RecordingDispatcher,
    ):
        service = AlertService(test_db, dispatcher)
        alert = await service.create_alert(sample_user.id, sample_product.id, Decimal("1300"))
        await service.evaluate_alerts()

        assert await service.get_alert_stats(sample_user.id) == {"total": 1, "active": 1, "triggered": 1}
        triggered = await service.get_triggered_alerts(sample_user.id)
        assert [view.alert.id for view in triggered] == [alert.id]

        reset = await service.reset_alert(alert.id, sample_user.id)
        assert reset.triggered is False
        assert reset.triggered_at is None

        await service.evaluate_alerts()
        assert len(dispatcher.sent) == 2

    async def test_price_equal_to_target_triggers(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_store: Store,
        dispatcher: RecordingDispatcher,
    ):
        tracked = await PriceHistoryStore(test_db).track_scraped_product(
            sample_store,
            ScrapedProduct(
                name="Philips Air Fryer",
                price=Decimal("100.00"),
                currency="SAR",
                url="https://www.amazon.sa/dp/B0AIRFRYER",
            ),
        )
        assert tracked.store_product.price_usd == Decimal("26.67")
        product_id = tracked.store_product.product_id
        service = AlertService(test_db, dispatcher)
        await service.create_alert(sample_user.id, product_id, Decimal("100.00"), "SAR")

        views = await service.get_alerts_for_user(sample_user.id)
        assert views[0].current_price == Decimal("100.00")

        stats = await service.evaluate_alerts()

        assert stats["triggered"] == 1
        assert dispatcher.sent[0][2].price == Decimal("100.00")

    async def test_cross_currency_target_uses_listed_price(
        self,
        test_db: AsyncSession,
        sample_user: User,
        sample_product: Product,
        sample_store: Store,
        dispatcher: RecordingDispatcher,
    ):
        await make_listing(test_db, sample_store, sample_product, "100.00")
        service = AlertService(test_db, dispatcher)
        await service.create_alert(sample_user.id, sample_product.id, Decimal("97.87"), "AED")

        stats = await service.evaluate_alerts()

        assert stats["triggered"] == 1
        assert dispatcher.sent[0][2].price == Decimal("97.87")
        assert dispatcher.sent[0][2].currency == "AED"
