"""Price alert service: user target-price alerts and their evaluation."""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricehunter.core.dates import utc_now
from pricehunter.core.exceptions import InvalidInputError, NotFoundError
from pricehunter.models.price_alert import PriceAlert
from pricehunter.models.product import Product
from pricehunter.models.store import Store
from pricehunter.models.store_product import StoreProduct
from pricehunter.models.user import User
from pricehunter.services.currency_service import (
    CurrencyService,
    convert_with_rates,
    normalize_currency,
)
from pricehunter.services.notification_service import (
    EMAIL,
    PRICE_ALERT,
    PUSH,
    TELEGRAM,
    NotificationDispatcher,
    NotificationPayload,
    NotificationTarget,
)

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = ("target_price", "currency", "is_active", "notify_email", "notify_telegram", "notify_push")


@dataclass(frozen=True)
class LowestOffer:
    """Cheapest in-stock listing of a product, priced in the alert's currency."""

    store_product_id: uuid.UUID
    store_name: str
    url: str
    price: Decimal
    currency: str


@dataclass
class AlertView:
    alert: PriceAlert
    current_price: Optional[Decimal]


def _check_target(target_price: Any) -> Decimal:
    try:
        value = Decimal(str(target_price))
    except (ArithmeticError, ValueError):
        raise InvalidInputError("target_price", "must be a number")
    if not value.is_finite() or value <= 0:
        raise InvalidInputError("target_price", "must be positive")
    return value


class AlertService:
    """Handles CRUD and batch evaluation for user price alerts."""

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        currency_service: Optional[CurrencyService] = None,
    ):
        """Initialize alert service.

        Args:
            db: Async database session
            dispatcher: Notification dispatcher used by evaluate_alerts
            currency_service: Rate source for cross-currency comparison
        """
        self.db = db
        self.dispatcher = dispatcher
        self.currency = currency_service or CurrencyService(db)
        self.logger = logger.bind(service="alert_service")

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_alert(
        self,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        target_price: Decimal,
        currency: str = "SAR",
        notify_email: bool = True,
        notify_telegram: bool = False,
        notify_push: bool = False,
    ) -> PriceAlert:
        """Create an alert, or update and re-arm the user's existing one.

        There is at most one alert per (user, product). A repeated call
        overwrites target, currency and channels and resets it to active
        and untriggered.

        Raises:
            InvalidInputError: Non-positive target or unsupported currency
            NotFoundError: Unknown user or product
        """
        target_price = _check_target(target_price)
        currency = normalize_currency(currency)

        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User", str(user_id))
        if await self.db.get(Product, product_id) is None:
            raise NotFoundError("Product", str(product_id))

        values = dict(
            target_price=target_price,
            currency=currency,
            notify_email=notify_email,
            notify_telegram=notify_telegram,
            notify_push=notify_push,
        )

        alert = await self._find(user_id, product_id)
        if alert is None:
            alert = PriceAlert(id=uuid.uuid4(), user_id=user_id, product_id=product_id, **values)
            alert.is_active = True
            alert.triggered = False
            self.db.add(alert)
            try:
                await self.db.commit()
            except IntegrityError:
                # Concurrent create won; fall through to update theirs
                await self.db.rollback()
                alert = await self._find(user_id, product_id)
                if alert is None:
                    raise
                self._rearm(alert, values)
                await self.db.commit()
        else:
            self._rearm(alert, values)
            await self.db.commit()

        await self.db.refresh(alert)
        self.logger.info(
            "alert_saved",
            alert_id=str(alert.id),
            user_id=str(user_id),
            product_id=str(product_id),
            target_price=str(target_price),
            currency=currency,
        )
        return alert

    async def update_alert(self, alert_id: uuid.UUID, user_id: uuid.UUID, **changes: Any) -> PriceAlert:
        """Apply a partial update to one of the user's alerts.

        Raises:
            NotFoundError: If the alert does not belong to the user
            InvalidInputError: On an invalid target, currency or field name
        """
        alert = await self._get_owned(alert_id, user_id)

        for key, value in changes.items():
            if value is None:
                continue
            if key not in UPDATABLE_FIELDS:
                raise InvalidInputError(key, "cannot be updated")
            if key == "target_price":
                value = _check_target(value)
            elif key == "currency":
                value = normalize_currency(value)
            setattr(alert, key, value)

        await self.db.commit()
        await self.db.refresh(alert)
        return alert

    async def delete_alert(self, alert_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """Delete a price alert. Returns False when the user has no such alert."""
        try:
            alert = await self._get_owned(alert_id, user_id)
        except NotFoundError:
            return False

        await self.db.delete(alert)
        await self.db.commit()
        self.logger.info("alert_deleted", alert_id=str(alert_id), user_id=str(user_id))
        return True

    async def reset_alert(self, alert_id: uuid.UUID, user_id: uuid.UUID) -> PriceAlert:
        """Re-arm a triggered alert so it can fire again."""
        alert = await self._get_owned(alert_id, user_id)
        alert.triggered = False
        alert.triggered_at = None
        alert.is_active = True
        await self.db.commit()
        await self.db.refresh(alert)
        return alert

    async def get_alerts_for_user(
        self,
        user_id: uuid.UUID,
        active_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> List[AlertView]:
        """User's alerts, newest first, each with the product's current lowest price."""
        stmt = (
            select(PriceAlert)
            .options(selectinload(PriceAlert.product))
            .where(PriceAlert.user_id == user_id)
        )
        if active_only:
            stmt = stmt.where(PriceAlert.is_active.is_(True))
        stmt = stmt.order_by(PriceAlert.created_at.desc()).offset(offset).limit(limit)

        alerts = list((await self.db.execute(stmt)).scalars().all())
        offers = await self._lowest_offers([alert.product_id for alert in alerts])
        rates = await self.currency.get_rates() if offers else {}

        return [
            AlertView(alert, self._priced_for(alert, offers.get(alert.product_id), rates))
            for alert in alerts
        ]

    async def get_alert_stats(self, user_id: uuid.UUID) -> Dict[str, int]:
        row = (await self.db.execute(
            select(
                func.count(PriceAlert.id),
                func.count(PriceAlert.id).filter(PriceAlert.is_active.is_(True)),
                func.count(PriceAlert.id).filter(PriceAlert.triggered.is_(True)),
            ).where(PriceAlert.user_id == user_id)
        )).one()
        return {"total": row[0], "active": row[1], "triggered": row[2]}

    async def get_triggered_alerts(self, user_id: uuid.UUID) -> List[AlertView]:
        """Active alerts whose target is currently met, triggered or not."""
        result = await self.db.execute(
            select(PriceAlert)
            .options(selectinload(PriceAlert.product))
            .where(PriceAlert.user_id == user_id, PriceAlert.is_active.is_(True))
            .order_by(PriceAlert.created_at.desc())
        )
        alerts = list(result.scalars().all())
        offers = await self._lowest_offers([alert.product_id for alert in alerts])
        if not offers:
            return []
        rates = await self.currency.get_rates()

        views = []
        for alert in alerts:
            price = self._priced_for(alert, offers.get(alert.product_id), rates)
            if price is not None and price <= alert.target_price:
                views.append(AlertView(alert, price))
        return views

    # ------------------------------------------------------------------
    # Evaluation batch
    # ------------------------------------------------------------------

    async def evaluate_alerts(self) -> Dict[str, int]:
        """Trigger every active alert whose target has been reached.

        In-stock listings on active stores are ranked by USD price; the
        cheapest listing's own price is converted into the alert's currency
        and compared with the target. An alert is claimed with a
        conditional update (untriggered -> triggered) and committed before
        any notification goes out, so re-running never notifies twice.
        Each enabled channel receives one notification.

        Returns:
            Dict with checked, triggered, notified and errors counts
        """
        dispatcher = self.dispatcher or NotificationDispatcher()
        stats = {"checked": 0, "triggered": 0, "notified": 0, "errors": 0}

        result = await self.db.execute(
            select(PriceAlert)
            .options(selectinload(PriceAlert.user), selectinload(PriceAlert.product))
            .where(PriceAlert.is_active.is_(True), PriceAlert.triggered.is_(False))
        )
        alerts = list(result.scalars().all())

        offers = await self._lowest_offers([alert.product_id for alert in alerts])
        rates = await self.currency.get_rates()

        # Plain values only; a rollback below expires ORM state
        pending = []
        for alert in alerts:
            offer = self._offer_in(alert.currency, offers.get(alert.product_id), rates)
            pending.append((alert.id, alert.target_price, offer, self._targets(alert), alert.product.name))

        for alert_id, target_price, offer, targets, product_name in pending:
            stats["checked"] += 1
            if offer is None or offer.price > target_price:
                continue

            try:
                claimed = await self.db.execute(
                    update(PriceAlert)
                    .where(
                        PriceAlert.id == alert_id,
                        PriceAlert.is_active.is_(True),
                        PriceAlert.triggered.is_(False),
                    )
                    .values(triggered=True, triggered_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
                if claimed.rowcount != 1:
                    continue

                stats["triggered"] += 1
                self.logger.info(
                    "alert_triggered",
                    alert_id=str(alert_id),
                    price=str(offer.price),
                    target_price=str(target_price),
                    currency=offer.currency,
                )

                payload = NotificationPayload(
                    product_name=product_name,
                    product_url=offer.url,
                    store_name=offer.store_name,
                    price=offer.price,
                    currency=offer.currency,
                    target_price=target_price,
                )
                for target in targets:
                    if await dispatcher.send(target, PRICE_ALERT, payload):
                        stats["notified"] += 1
            except Exception as e:
                await self.db.rollback()
                stats["errors"] += 1
                self.logger.error("alert_evaluation_failed", alert_id=str(alert_id), error=str(e), exc_info=True)

        if self.dispatcher is None:
            await dispatcher.aclose()

        self.logger.info("alerts_evaluated", **stats)
        return stats

    # ------------------------------------------------------------------

    async def _lowest_offers(self, product_ids: List[uuid.UUID]) -> Dict[uuid.UUID, StoreProduct]:
        """Cheapest in-stock listing per product, ranked by USD price, active stores only."""
        if not product_ids:
            return {}

        result = await self.db.execute(
            select(StoreProduct)
            .join(Store, StoreProduct.store_id == Store.id)
            .options(selectinload(StoreProduct.store))
            .where(
                StoreProduct.product_id.in_(set(product_ids)),
                StoreProduct.in_stock.is_(True),
                StoreProduct.price_usd.is_not(None),
                Store.is_active.is_(True),
            )
            .order_by(StoreProduct.price_usd.asc())
        )

        offers: Dict[uuid.UUID, StoreProduct] = {}
        for listing in result.scalars().all():
            offers.setdefault(listing.product_id, listing)
        return offers

    @staticmethod
    def _offer_in(currency: str, listing: Optional[StoreProduct], rates: Dict[str, Decimal]) -> Optional[LowestOffer]:
        if listing is None:
            return None
        # price_usd is rounded to cents; only the listed price converts back exactly
        price = convert_with_rates(listing.price, listing.currency, currency, rates).converted_amount
        return LowestOffer(
            store_product_id=listing.id,
            store_name=listing.store.name,
            url=listing.url,
            price=price,
            currency=currency,
        )

    def _priced_for(
        self,
        alert: PriceAlert,
        listing: Optional[StoreProduct],
        rates: Dict[str, Decimal],
    ) -> Optional[Decimal]:
        offer = self._offer_in(alert.currency, listing, rates)
        return offer.price if offer else None

    @staticmethod
    def _targets(alert: PriceAlert) -> List[NotificationTarget]:
        user = alert.user
        targets = []
        if alert.notify_email and user.email:
            targets.append(NotificationTarget(EMAIL, user.email))
        if alert.notify_telegram and user.telegram_id:
            targets.append(NotificationTarget(TELEGRAM, user.telegram_id))
        if alert.notify_push and user.push_token:
            targets.append(NotificationTarget(PUSH, user.push_token))
        return targets

    @staticmethod
    def _rearm(alert: PriceAlert, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            setattr(alert, key, value)
        alert.is_active = True
        alert.triggered = False
        alert.triggered_at = None

    async def _find(self, user_id: uuid.UUID, product_id: uuid.UUID) -> Optional[PriceAlert]:
        result = await self.db.execute(
            select(PriceAlert)
            .where(PriceAlert.user_id == user_id, PriceAlert.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_owned(self, alert_id: uuid.UUID, user_id: uuid.UUID) -> PriceAlert:
        # Batch claims update rows behind the identity map
        alert = await self.db.get(PriceAlert, alert_id, populate_existing=True)
        if alert is None or alert.user_id != user_id:
            raise NotFoundError("PriceAlert", str(alert_id))
        return alert
