"""Behavioral signals: searches and outbound listing clicks."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, ForeignKey, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from pricehunter.core.dates import utc_now
from pricehunter.models.base import Base, UUIDPrimaryKeyMixin


class SearchHistory(UUIDPrimaryKeyMixin, Base):
    """A search query, anonymous or tied to a user."""

    __tablename__ = "search_history"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    query: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    results_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_search_history_created", "created_at"),
    )


class ProductClick(UUIDPrimaryKeyMixin, Base):
    """Click-through from the catalog to a store listing."""

    __tablename__ = "product_clicks"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    store_product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("store_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_product_clicks_created", "created_at"),
    )
