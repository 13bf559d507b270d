"""Scrape run tracking and monitoring."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text, ForeignKey, Integer, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.core.dates import utc_now
from pricehunter.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.store import Store


class ScrapeJob(UUIDPrimaryKeyMixin, Base):
    """Outcome of one store refresh run."""

    __tablename__ = "scrape_jobs"

    store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="Status: 'pending', 'running', 'completed', 'failed'"
    )

    # Timing
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)

    # Metrics
    items_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="Listings attempted")
    items_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="Listings recorded")
    errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="Fetch/parse failures")

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    store: Mapped["Store"] = relationship(back_populates="scrape_jobs")

    def __repr__(self) -> str:
        return f"<ScrapeJob(id={self.id}, store_id={self.store_id}, status='{self.status}')>"
