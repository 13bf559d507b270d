"""Back-in-stock subscription model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.user import User
    from pricehunter.models.store_product import StoreProduct


class StockNotification(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """User subscription to a listing's return to stock.

    Deactivated as soon as it fires; the user must subscribe again to
    hear about the next restock.
    """

    __tablename__ = "stock_notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    store_product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("store_products.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "store_product_id", name="uq_stock_notification_user_listing"),
    )

    user: Mapped["User"] = relationship(back_populates="stock_notifications")
    store_product: Mapped["StoreProduct"] = relationship()

    def __repr__(self) -> str:
        return f"<StockNotification(user={self.user_id}, store_product={self.store_product_id}, active={self.is_active})>"
