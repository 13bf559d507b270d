"""One storefront's listing of a catalog product."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Integer, DateTime, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.store import Store
    from pricehunter.models.product import Product
    from pricehunter.models.price_history import PriceHistory
    from pricehunter.models.stock_history import StockHistory


class StoreProduct(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Current state of a (store, product) listing.

    Created on the first successful scrape of a URL and overwritten by
    every later observation. Historical values live in PriceHistory and
    StockHistory, written in the same transaction.
    """

    __tablename__ = "store_products"

    store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url: Mapped[str] = mapped_column(String(2000), nullable=False, unique=True, comment="Canonical listing URL")

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    price_usd: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Price in the reference currency at scrape time",
    )
    original_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="List price before discount, always >= price",
    )
    discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="Discount percentage 0-100")

    # Availability and reviews
    in_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(2, 1), nullable=True, comment="0.0-5.0")
    review_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    last_scraped: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("product_id", "store_id", name="uq_store_product_pair"),
        Index("idx_store_products_discount", "in_stock", "discount"),
    )

    # Relationships
    store: Mapped["Store"] = relationship(back_populates="store_products")
    product: Mapped["Product"] = relationship(back_populates="store_products")
    price_history: Mapped[list["PriceHistory"]] = relationship(
        back_populates="store_product",
        cascade="all, delete-orphan",
        order_by="PriceHistory.recorded_at.desc()",
    )
    stock_history: Mapped[list["StockHistory"]] = relationship(
        back_populates="store_product",
        cascade="all, delete-orphan",
        order_by="StockHistory.checked_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<StoreProduct(id={self.id}, price={self.price} {self.currency}, in_stock={self.in_stock})>"
