"""Stock monitoring, restock estimation and back-in-stock notifications."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol, Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricehunter.core.dates import as_utc, utc_now
from pricehunter.core.exceptions import NotFoundError
from pricehunter.models.stock_history import StockHistory
from pricehunter.models.stock_notification import StockNotification
from pricehunter.models.store_product import StoreProduct
from pricehunter.models.user import User
from pricehunter.services.notification_service import (
    BACK_IN_STOCK,
    EMAIL,
    PUSH,
    NotificationDispatcher,
    NotificationPayload,
    NotificationTarget,
)

logger = structlog.get_logger(__name__)

STATUS_HISTORY_SIZE = 30
MIN_OBSERVATIONS_FOR_ESTIMATE = 10
SECONDS_PER_DAY = 86400


class StockObservationLike(Protocol):
    in_stock: bool
    checked_at: datetime


@dataclass(frozen=True)
class StockObservation:
    in_stock: bool
    checked_at: datetime


@dataclass
class StockStatus:
    store_product_id: UUID
    in_stock: bool
    last_checked: Optional[datetime]
    last_in_stock: Optional[datetime]
    estimated_restock: Optional[datetime]
    history: List[StockObservation] = field(default_factory=list)


@dataclass(frozen=True)
class RestockedListing:
    store_product_id: UUID
    product_name: str
    store_name: str
    price: Any
    currency: str
    url: str
    restocked_at: datetime


def estimate_restock(
    in_stock: bool,
    history: Sequence[StockObservationLike],
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Project when an out-of-stock listing comes back.

    Observations (any order) are split into contiguous out-of-stock runs.
    Completed runs give an average outage length; the estimate is
    ``now + max(1 day, average - time already spent in the current run)``.

    Returns:
        Estimated restock time, or None when the listing is in stock, there
        are fewer than 10 observations, or no completed outage exists
    """
    if in_stock or len(history) < MIN_OBSERVATIONS_FOR_ESTIMATE:
        return None

    now = now or utc_now()
    ordered = sorted(history, key=lambda obs: as_utc(obs.checked_at))

    durations: List[float] = []
    run_start: Optional[datetime] = None
    for obs in ordered:
        checked_at = as_utc(obs.checked_at)
        if not obs.in_stock and run_start is None:
            run_start = checked_at
        elif obs.in_stock and run_start is not None:
            days = (checked_at - run_start).total_seconds() / SECONDS_PER_DAY
            if days > 0:
                durations.append(days)
            run_start = None

    if not durations:
        return None

    average_days = sum(durations) / len(durations)
    days_in_current_run = (now - run_start).total_seconds() / SECONDS_PER_DAY if run_start else 0.0
    return now + timedelta(days=max(1.0, average_days - days_in_current_run))


class StockMonitor:
    """Stock observations and back-in-stock subscriptions."""

    def __init__(self, db: AsyncSession, dispatcher: Optional[NotificationDispatcher] = None):
        """Initialize stock monitor.

        Args:
            db: Async database session
            dispatcher: Notification dispatcher used by process_stock_notifications
        """
        self.db = db
        self.dispatcher = dispatcher
        self.logger = logger.bind(service="stock_monitor")

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    async def record_stock_check(self, store_product_id: UUID, in_stock: bool) -> StoreProduct:
        """Append an observation and update the listing in one transaction.

        Raises:
            NotFoundError: If the listing does not exist
        """
        listing = await self.db.get(StoreProduct, store_product_id)
        if listing is None:
            raise NotFoundError("StoreProduct", str(store_product_id))

        now = utc_now()
        self.db.add(StockHistory(store_product_id=listing.id, in_stock=in_stock, checked_at=now))
        listing.in_stock = in_stock
        listing.last_scraped = now
        await self.db.commit()

        self.logger.debug("stock_check_recorded", store_product_id=str(store_product_id), in_stock=in_stock)
        return listing

    async def get_stock_status(self, store_product_id: UUID) -> StockStatus:
        """Current stock flag, the last 30 observations and a restock estimate.

        Raises:
            NotFoundError: If the listing does not exist
        """
        listing = await self.db.get(StoreProduct, store_product_id)
        if listing is None:
            raise NotFoundError("StoreProduct", str(store_product_id))

        rows = (await self.db.execute(
            select(StockHistory)
            .where(StockHistory.store_product_id == store_product_id)
            .order_by(StockHistory.checked_at.desc())
            .limit(STATUS_HISTORY_SIZE)
        )).scalars().all()

        history = [StockObservation(in_stock=row.in_stock, checked_at=as_utc(row.checked_at)) for row in rows]
        last_in_stock = next((obs.checked_at for obs in history if obs.in_stock), None)

        return StockStatus(
            store_product_id=listing.id,
            in_stock=listing.in_stock,
            last_checked=as_utc(listing.last_scraped),
            last_in_stock=last_in_stock,
            estimated_restock=estimate_restock(listing.in_stock, history),
            history=history,
        )

    async def get_recently_restocked(self, hours: int = 24, limit: int = 10) -> List[RestockedListing]:
        """Listings with an out-of-stock -> in-stock transition in the window.

        The in-stock observation must fall within the last ``hours`` hours
        and the observation right before it must be out of stock.
        """
        since = utc_now() - timedelta(hours=hours)
        recent_ids = select(StockHistory.store_product_id).where(
            StockHistory.in_stock.is_(True),
            StockHistory.checked_at >= since,
        ).distinct()

        observations = (await self.db.execute(
            select(StockHistory)
            .where(StockHistory.store_product_id.in_(recent_ids))
            .order_by(StockHistory.store_product_id, StockHistory.checked_at.desc())
        )).scalars().all()

        grouped: Dict[UUID, List[StockHistory]] = {}
        for obs in observations:
            grouped.setdefault(obs.store_product_id, []).append(obs)

        restocked_at: Dict[UUID, datetime] = {}
        for store_product_id, newest_first in grouped.items():
            for current, previous in zip(newest_first, newest_first[1:]):
                if as_utc(current.checked_at) < since:
                    break
                if current.in_stock and not previous.in_stock:
                    restocked_at[store_product_id] = as_utc(current.checked_at)
                    break

        if not restocked_at:
            return []

        listings = (await self.db.execute(
            select(StoreProduct)
            .options(selectinload(StoreProduct.product), selectinload(StoreProduct.store))
            .where(StoreProduct.id.in_(list(restocked_at)))
        )).scalars().all()

        results = [
            RestockedListing(
                store_product_id=listing.id,
                product_name=listing.product.name,
                store_name=listing.store.name,
                price=listing.price,
                currency=listing.currency,
                url=listing.url,
                restocked_at=restocked_at[listing.id],
            )
            for listing in listings
        ]
        results.sort(key=lambda item: item.restocked_at, reverse=True)
        return results[:limit]

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        user_id: UUID,
        store_product_id: UUID,
        notify_email: bool = True,
        notify_push: bool = False,
    ) -> StockNotification:
        """Create or reactivate a back-in-stock subscription.

        Raises:
            NotFoundError: If the user or listing does not exist
        """
        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User", str(user_id))
        if await self.db.get(StoreProduct, store_product_id) is None:
            raise NotFoundError("StoreProduct", str(store_product_id))

        subscription = await self._find_subscription(user_id, store_product_id)
        if subscription is None:
            subscription = StockNotification(
                user_id=user_id,
                store_product_id=store_product_id,
                notify_email=notify_email,
                notify_push=notify_push,
                is_active=True,
            )
            self.db.add(subscription)
            try:
                await self.db.commit()
            except IntegrityError:
                # Lost a race with a concurrent subscribe; update theirs
                await self.db.rollback()
                subscription = await self._find_subscription(user_id, store_product_id)
                if subscription is None:
                    raise
                self._rearm(subscription, notify_email, notify_push)
                await self.db.commit()
        else:
            self._rearm(subscription, notify_email, notify_push)
            await self.db.commit()

        await self.db.refresh(subscription)
        self.logger.info(
            "stock_subscription_saved",
            user_id=str(user_id),
            store_product_id=str(store_product_id),
        )
        return subscription

    async def unsubscribe(self, user_id: UUID, subscription_id: UUID) -> bool:
        """Delete a subscription. Returns False when the user has no such subscription."""
        try:
            subscription = await self._get_owned(user_id, subscription_id)
        except NotFoundError:
            return False

        await self.db.delete(subscription)
        await self.db.commit()
        self.logger.info("stock_unsubscribed", subscription_id=str(subscription_id), user_id=str(user_id))
        return True

    async def toggle(self, user_id: UUID, subscription_id: UUID) -> StockNotification:
        """Flip a subscription between active and paused."""
        subscription = await self._get_owned(user_id, subscription_id)
        subscription.is_active = not subscription.is_active
        await self.db.commit()
        await self.db.refresh(subscription)
        return subscription

    async def list_subscriptions(self, user_id: UUID) -> List[StockNotification]:
        result = await self.db.execute(
            select(StockNotification)
            .options(
                selectinload(StockNotification.store_product).selectinload(StoreProduct.product),
                selectinload(StockNotification.store_product).selectinload(StoreProduct.store),
            )
            .where(StockNotification.user_id == user_id)
            .order_by(StockNotification.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_subscription_stats(self, user_id: UUID) -> Dict[str, int]:
        """Total, active and already-notified subscription counts."""
        row = (await self.db.execute(
            select(
                func.count(StockNotification.id),
                func.count(StockNotification.id).filter(StockNotification.is_active.is_(True)),
                func.count(StockNotification.id).filter(StockNotification.last_notified_at.is_not(None)),
            ).where(StockNotification.user_id == user_id)
        )).one()
        return {"total": row[0], "active": row[1], "notified": row[2]}

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    async def process_stock_notifications(self) -> Dict[str, int]:
        """Notify subscribers whose listing is back in stock.

        Each subscription is claimed with a conditional update
        (active -> inactive) before anything is sent, so a concurrent or
        repeated run never notifies twice. At most one message goes out per
        subscription: email first, then push.

        Returns:
            Dict with processed, notified and errors counts
        """
        dispatcher = self.dispatcher or NotificationDispatcher()
        stats = {"processed": 0, "notified": 0, "errors": 0}

        result = await self.db.execute(
            select(StockNotification)
            .join(StoreProduct, StockNotification.store_product_id == StoreProduct.id)
            .options(
                selectinload(StockNotification.user),
                selectinload(StockNotification.store_product).selectinload(StoreProduct.product),
                selectinload(StockNotification.store_product).selectinload(StoreProduct.store),
            )
            .where(StockNotification.is_active.is_(True), StoreProduct.in_stock.is_(True))
        )
        subscriptions = list(result.scalars().all())

        # Plain values only; a rollback below expires ORM state
        pending = [
            (subscription.id, self._pick_target(subscription), self._payload(subscription.store_product))
            for subscription in subscriptions
        ]

        for subscription_id, target, payload in pending:
            stats["processed"] += 1
            try:
                claimed = await self.db.execute(
                    update(StockNotification)
                    .where(StockNotification.id == subscription_id, StockNotification.is_active.is_(True))
                    .values(is_active=False, last_notified_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
                if claimed.rowcount != 1:
                    continue

                if target is None:
                    self.logger.info("stock_notification_no_channel", subscription_id=str(subscription_id))
                    continue

                if await dispatcher.send(target, BACK_IN_STOCK, payload):
                    stats["notified"] += 1
            except Exception as e:
                await self.db.rollback()
                stats["errors"] += 1
                self.logger.error(
                    "stock_notification_failed",
                    subscription_id=str(subscription_id),
                    error=str(e),
                    exc_info=True,
                )

        if self.dispatcher is None:
            await dispatcher.aclose()

        self.logger.info("stock_notifications_processed", **stats)
        return stats

    # ------------------------------------------------------------------

    @staticmethod
    def _pick_target(subscription: StockNotification) -> Optional[NotificationTarget]:
        user = subscription.user
        if subscription.notify_email and user.email:
            return NotificationTarget(EMAIL, user.email)
        if subscription.notify_push and user.push_token:
            return NotificationTarget(PUSH, user.push_token)
        return None

    @staticmethod
    def _payload(listing: StoreProduct) -> NotificationPayload:
        return NotificationPayload(
            product_name=listing.product.name,
            product_url=listing.url,
            store_name=listing.store.name,
            price=listing.price,
            currency=listing.currency,
        )

    @staticmethod
    def _rearm(subscription: StockNotification, notify_email: bool, notify_push: bool) -> None:
        subscription.notify_email = notify_email
        subscription.notify_push = notify_push
        subscription.is_active = True

    async def _find_subscription(self, user_id: UUID, store_product_id: UUID) -> Optional[StockNotification]:
        result = await self.db.execute(
            select(StockNotification).where(
                StockNotification.user_id == user_id,
                StockNotification.store_product_id == store_product_id,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_owned(self, user_id: UUID, subscription_id: UUID) -> StockNotification:
        subscription = await self.db.get(StockNotification, subscription_id, populate_existing=True)
        if subscription is None or subscription.user_id != user_id:
            raise NotFoundError("StockNotification", str(subscription_id))
        return subscription
