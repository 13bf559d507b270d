"""Persisted exchange rates refreshed from the external feed."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pricehunter.core.dates import utc_now
from pricehunter.models.base import Base, UUIDPrimaryKeyMixin


class ExchangeRate(UUIDPrimaryKeyMixin, Base):
    """One unit of from_currency expressed in to_currency.

    Rows are kept against the reference currency (to_currency = USD).
    """

    __tablename__ = "exchange_rates"

    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(16, 8), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    __table_args__ = (
        UniqueConstraint("from_currency", "to_currency", name="uq_exchange_rate_pair"),
    )

    def __repr__(self) -> str:
        return f"<ExchangeRate({self.from_currency}->{self.to_currency} = {self.rate})>"


class ExchangeRateSnapshot(UUIDPrimaryKeyMixin, Base):
    """Append-only copy of every rate written by a feed refresh.

    Same orientation as ExchangeRate (one unit of from_currency in USD).
    """

    __tablename__ = "exchange_rate_snapshots"

    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(16, 8), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("idx_rate_snapshot_pair_recorded", "from_currency", "to_currency", "recorded_at"),
    )

    def __repr__(self) -> str:
        return f"<ExchangeRateSnapshot({self.from_currency}->{self.to_currency} = {self.rate} @ {self.recorded_at})>"
