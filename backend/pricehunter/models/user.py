"""User model holding notification targets."""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.price_alert import PriceAlert
    from pricehunter.models.stock_notification import StockNotification


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Application user.

    Accounts are managed by the auth service; this table only carries
    what the alerting side needs to reach the user.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(320), unique=True, nullable=False, index=True,
        comment="User email address (unique)"
    )
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    telegram_id: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True,
        comment="Telegram chat id for bot messages"
    )
    push_token: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    preferred_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    price_alerts: Mapped[List["PriceAlert"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    stock_notifications: Mapped[List["StockNotification"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
