"""PriceAlert model for user target-price notifications."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Numeric, Boolean, String, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.user import User
    from pricehunter.models.product import Product


class PriceAlert(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """User's standing target-price request for a product.

    One row per (user, product). Flips to triggered exactly once when the
    lowest available price reaches the target and stays triggered until
    reset or deleted.
    """

    __tablename__ = "price_alerts"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    target_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False,
        comment="Alert when price drops to or below this"
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR")
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
        comment="Whether alert is still active"
    )
    triggered: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="Whether alert has been triggered"
    )
    triggered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Channels are independent, any combination may be enabled
    notify_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_telegram: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notify_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_price_alert_user_product"),
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="price_alerts")
    product: Mapped["Product"] = relationship(back_populates="price_alerts")

    def __repr__(self) -> str:
        return f"<PriceAlert(user={self.user_id}, product={self.product_id}, target={self.target_price})>"
