"""Stock availability observations for store listings."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.core.dates import utc_now
from pricehunter.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.store_product import StoreProduct


class StockHistory(UUIDPrimaryKeyMixin, Base):
    """Immutable in/out-of-stock observation, drives restock analysis."""

    __tablename__ = "stock_history"

    store_product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("store_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    in_stock: Mapped[bool] = mapped_column(Boolean, nullable=False)
    checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_stock_history_listing_checked", "store_product_id", "checked_at"),
    )

    store_product: Mapped["StoreProduct"] = relationship(back_populates="stock_history")

    def __repr__(self) -> str:
        return f"<StockHistory(store_product_id={self.store_product_id}, in_stock={self.in_stock}, checked_at={self.checked_at})>"
