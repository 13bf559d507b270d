"""Store model representing e-commerce storefronts."""

from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.store_product import StoreProduct
    from pricehunter.models.scrape_job import ScrapeJob


class Store(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """E-commerce storefront (Amazon SA, Noon EG, Jarir, ...).

    The slug doubles as the adapter registry key, one storefront per
    country for multi-country retailers.
    """

    __tablename__ = "stores"

    name: Mapped[str] = mapped_column(String(100), nullable=False, comment="Display name (e.g., 'Amazon SA')")
    slug: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False, comment="Adapter registry key")
    domain: Mapped[str] = mapped_column(String(200), nullable=False, comment="Storefront hostname without www.")

    # Localization
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="SA", comment="ISO country code")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR", comment="ISO currency code")

    # Scraping configuration
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="Inactive stores are excluded from deals and alerts")
    scrape_interval_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=360,
        comment="How often tracked listings are re-scraped",
    )

    # Relationships
    store_products: Mapped[list["StoreProduct"]] = relationship(back_populates="store", cascade="all, delete-orphan")
    scrape_jobs: Mapped[list["ScrapeJob"]] = relationship(back_populates="store", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Store(id={self.id}, slug='{self.slug}', currency='{self.currency}')>"
