"""Price history export as CSV or JSON downloads."""

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.core.dates import as_utc, utc_now
from pricehunter.core.exceptions import InvalidInputError
from pricehunter.models.price_history import PriceHistory
from pricehunter.models.product import Product
from pricehunter.models.store import Store
from pricehunter.models.store_product import StoreProduct
from pricehunter.services.currency_service import normalize_currency

logger = structlog.get_logger(__name__)

EXPORT_ROW_LIMIT = 10000
MEDIA_TYPES = {"csv": "text/csv", "json": "application/json"}
CSV_HEADER = ["Date", "Product", "Store", "Price", "Price (USD)", "Currency", "In Stock", "Discount (%)"]


@dataclass(frozen=True)
class ExportRecord:
    recorded_at: datetime
    price: Decimal
    price_usd: Optional[Decimal]
    currency: str
    store_name: str
    store_slug: str
    product_id: UUID
    product_name: str
    in_stock: bool
    discount: int


@dataclass(frozen=True)
class HistoryExport:
    filename: str
    media_type: str
    content: str
    record_count: int


def _money(value: Optional[Decimal]) -> str:
    return "" if value is None else f"{Decimal(value):.2f}"


def render_csv(records: Sequence[ExportRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        writer.writerow([
            as_utc(record.recorded_at).isoformat(),
            record.product_name,
            record.store_name,
            _money(record.price),
            _money(record.price_usd),
            record.currency,
            "Yes" if record.in_stock else "No",
            record.discount,
        ])
    return buffer.getvalue()


def render_json(records: Sequence[ExportRecord], exported_at: datetime) -> str:
    """JSON document with export metadata; money is written as strings."""
    payload = {
        "export_date": exported_at.isoformat(),
        "record_count": len(records),
        "records": [
            {
                "date": as_utc(record.recorded_at).isoformat(),
                "product": {"id": str(record.product_id), "name": record.product_name},
                "store": {"name": record.store_name, "slug": record.store_slug},
                "price": {
                    "amount": _money(record.price),
                    "amount_usd": _money(record.price_usd) or None,
                    "currency": record.currency,
                },
                "in_stock": record.in_stock,
                "discount": record.discount,
            }
            for record in records
        ],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


class PriceHistoryExporter:
    """Collects price samples across listings and renders them for download."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="price_history_exporter")

    async def collect(
        self,
        product_id: Optional[UUID] = None,
        store_product_id: Optional[UUID] = None,
        store_slug: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        currency: Optional[str] = None,
    ) -> List[ExportRecord]:
        """Newest-first samples matching every filter given, capped at 10,000."""
        query = (
            select(PriceHistory, StoreProduct, Store, Product)
            .join(StoreProduct, PriceHistory.store_product_id == StoreProduct.id)
            .join(Store, StoreProduct.store_id == Store.id)
            .join(Product, StoreProduct.product_id == Product.id)
        )
        if product_id is not None:
            query = query.where(StoreProduct.product_id == product_id)
        if store_product_id is not None:
            query = query.where(PriceHistory.store_product_id == store_product_id)
        if store_slug:
            query = query.where(Store.slug == store_slug)
        if start is not None:
            query = query.where(PriceHistory.recorded_at >= start)
        if end is not None:
            query = query.where(PriceHistory.recorded_at <= end)
        if currency:
            query = query.where(PriceHistory.currency == normalize_currency(currency))
        query = query.order_by(PriceHistory.recorded_at.desc()).limit(EXPORT_ROW_LIMIT)

        rows = (await self.db.execute(query)).all()
        return [
            ExportRecord(
                recorded_at=sample.recorded_at,
                price=sample.price,
                price_usd=sample.price_usd,
                currency=sample.currency,
                store_name=store.name,
                store_slug=store.slug,
                product_id=product.id,
                product_name=product.name,
                in_stock=listing.in_stock,
                discount=listing.discount,
            )
            for sample, listing, store, product in rows
        ]

    async def export(
        self,
        fmt: str = "csv",
        product_id: Optional[UUID] = None,
        store_product_id: Optional[UUID] = None,
        store_slug: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        currency: Optional[str] = None,
    ) -> HistoryExport:
        """Render matching samples as a downloadable file.

        The filename names the listing or product exported, or ``all``,
        plus today's date.

        Raises:
            InvalidInputError: For an unknown format, an unsupported
                currency or a start after the end
        """
        fmt = (fmt or "").lower()
        if fmt not in MEDIA_TYPES:
            raise InvalidInputError("format", f"expected one of {sorted(MEDIA_TYPES)}")
        if start is not None and end is not None and as_utc(start) > as_utc(end):
            raise InvalidInputError("start", "must not be after end")

        records = await self.collect(
            product_id=product_id,
            store_product_id=store_product_id,
            store_slug=store_slug,
            start=start,
            end=end,
            currency=currency,
        )
        now = utc_now()
        content = render_csv(records) if fmt == "csv" else render_json(records, now)
        subject = store_product_id or product_id or "all"

        self.logger.info("price_history_exported", format=fmt, records=len(records), subject=str(subject))
        return HistoryExport(
            filename=f"price-history-{subject}-{now:%Y-%m-%d}.{fmt}",
            media_type=MEDIA_TYPES[fmt],
            content=content,
            record_count=len(records),
        )
