"""Tests for price history CSV and JSON exports."""

import csv
import io
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.core.dates import utc_now
from pricehunter.core.exceptions import InvalidInputError
from pricehunter.models import Product, Store, StoreProduct
from pricehunter.services.price_export import (
    CSV_HEADER,
    ExportRecord,
    PriceHistoryExporter,
    render_csv,
    render_json,
)

from conftest import make_listing


def record(**overrides) -> ExportRecord:
    values = dict(
        recorded_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        price=Decimal("1299"),
        price_usd=Decimal("346.40"),
        currency="SAR",
        store_name="Amazon SA",
        store_slug="amazon-sa",
        product_id=uuid4(),
        product_name='Sony WH-1000XM5, Black "2024"',
        in_stock=False,
        discount=19,
    )
    values.update(overrides)
    return ExportRecord(**values)


def parse_csv(content: str):
    return list(csv.reader(io.StringIO(content)))


# ============================================================================
# TESTS: RENDERING
# ============================================================================

class TestRendering:
    def test_csv_quotes_and_formats(self):
        content = render_csv([record()])

        rows = parse_csv(content)
        assert rows[0] == CSV_HEADER
        assert rows[1] == [
            "2026-03-01T12:00:00+00:00",
            'Sony WH-1000XM5, Black "2024"',
            "Amazon SA",
            "1299.00",
            "346.40",
            "SAR",
            "No",
            "19",
        ]
        assert '"Sony WH-1000XM5, Black ""2024"""' in content

    def test_csv_without_usd_price(self):
        rows = parse_csv(render_csv([record(price_usd=None, in_stock=True)]))
        assert rows[1][4] == ""
        assert rows[1][6] == "Yes"

    def test_json_document(self):
        exported_at = datetime(2026, 3, 2, tzinfo=timezone.utc)
        entry = record()

        document = json.loads(render_json([entry], exported_at))

        assert document["export_date"] == "2026-03-02T00:00:00+00:00"
        assert document["record_count"] == 1
        assert document["records"][0] == {
            "date": "2026-03-01T12:00:00+00:00",
            "product": {"id": str(entry.product_id), "name": entry.product_name},
            "store": {"name": "Amazon SA", "slug": "amazon-sa"},
            "price": {"amount": "1299.00", "amount_usd": "346.40", "currency": "SAR"},
            "in_stock": False,
            "discount": 19,
        }

    def test_empty_exports(self):
        assert parse_csv(render_csv([])) == [CSV_HEADER]
        assert json.loads(render_json([], utc_now()))["records"] == []


# ============================================================================
# TESTS: EXPORTER
# ============================================================================

class TestPriceHistoryExporter:
    async def test_listing_csv(self, test_db: AsyncSession, sample_listing: StoreProduct):
        export = await PriceHistoryExporter(test_db).export("csv", store_product_id=sample_listing.id)

        assert export.media_type == "text/csv"
        assert export.filename.startswith(f"price-history-{sample_listing.id}-")
        assert export.filename.endswith(".csv")
        assert export.record_count == 3
        rows = parse_csv(export.content)
        assert [row[3] for row in rows[1:]] == ["1299.00", "1499.00", "1599.00"]
        assert rows[1][1] == "Sony WH-1000XM5 Wireless Headphones"
        assert rows[1][6:] == ["Yes", "19"]

    async def test_listing_json(self, test_db: AsyncSession, sample_listing: StoreProduct):
        export = await PriceHistoryExporter(test_db).export("JSON", store_product_id=sample_listing.id)

        assert export.media_type == "application/json"
        assert export.filename.endswith(".json")
        document = json.loads(export.content)
        assert document["record_count"] == 3
        assert document["records"][0]["price"] == {"amount": "1299.00", "amount_usd": "346.40", "currency": "SAR"}

    async def test_product_export_and_filters(
        self,
        test_db: AsyncSession,
        second_store: Store,
        sample_product: Product,
        sample_listing: StoreProduct,
    ):
        await make_listing(test_db, second_store, sample_product, "1250.00")
        exporter = PriceHistoryExporter(test_db)

        everything = await exporter.collect(product_id=sample_product.id)
        noon = await exporter.collect(product_id=sample_product.id, store_slug="noon-sa")
        today = await exporter.collect(store_product_id=sample_listing.id, start=utc_now() - timedelta(hours=12))
        egp = await exporter.collect(product_id=sample_product.id, currency="egp")

        assert len(everything) == 4
        assert [r.price for r in noon] == [Decimal("1250.00")]
        assert [r.price for r in today] == [Decimal("1299.00")]
        assert egp == []

    async def test_unscoped_export_is_named_all(self, test_db: AsyncSession, sample_listing: StoreProduct):
        export = await PriceHistoryExporter(test_db).export()

        assert export.filename.startswith("price-history-all-")
        assert export.record_count == 3

    async def test_invalid_requests(self, test_db: AsyncSession, sample_listing: StoreProduct):
        exporter = PriceHistoryExporter(test_db)

        with pytest.raises(InvalidInputError) as exc:
            await exporter.export("xml")
        assert exc.value.field == "format"
        with pytest.raises(InvalidInputError):
            await exporter.export("csv", currency="GBP")
        with pytest.raises(InvalidInputError):
            await exporter.export("csv", start=utc_now(), end=utc_now() - timedelta(days=1))
