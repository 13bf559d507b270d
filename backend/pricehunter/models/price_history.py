"""Price history tracking for store listings."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, ForeignKey, Numeric, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.core.dates import utc_now
from pricehunter.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.store_product import StoreProduct


class PriceHistory(UUIDPrimaryKeyMixin, Base):
    """Immutable price observation for a listing.

    One row is appended per scrape. Read newest-first for
    current-vs-previous comparisons.
    """

    __tablename__ = "price_history"

    store_product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("store_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, comment="Price at this point in time")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    price_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        comment="When this price was recorded",
    )

    __table_args__ = (
        Index("idx_price_history_listing_recorded", "store_product_id", "recorded_at"),
    )

    store_product: Mapped["StoreProduct"] = relationship(back_populates="price_history")

    def __repr__(self) -> str:
        return f"<PriceHistory(store_product_id={self.store_product_id}, price={self.price}, recorded_at={self.recorded_at})>"
