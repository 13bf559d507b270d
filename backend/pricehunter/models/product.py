"""Catalog product shared across storefronts."""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.store_product import StoreProduct
    from pricehunter.models.price_alert import PriceAlert


class Product(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Canonical product, listed by one or more stores.

    Price and availability live on StoreProduct; this row only carries
    the descriptive fields used for search and categorization.
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    brand: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    barcode: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Store SKU / ASIN / EAN used to match listings",
    )

    # Relationships
    store_products: Mapped[list["StoreProduct"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
    )
    price_alerts: Mapped[list["PriceAlert"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name='{self.name[:50]}')>"
