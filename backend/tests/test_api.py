"""HTTP-level tests: routing, dependencies and the error envelope."""

from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import httpx
import pytest_asyncio

from pricehunter.api.v1 import health
from pricehunter.dependencies import get_db
from pricehunter.main import app
from pricehunter.scrapers.adapters import AMAZON_SA, NOON_SA
from pricehunter.scrapers.base import ScrapedProduct
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.services.cache_service import CacheService, get_cache
from pricehunter.services.notification_service import (
    EmailChannel,
    NotificationDispatcher,
    PushChannel,
    TelegramChannel,
)

from conftest import FakeRedis, RecordingDispatcher, StubAdapter

TRACKED_URL = "https://www.amazon.sa/dp/B0CHX1W1XY"


@pytest_asyncio.fixture
async def client(session_factory, monkeypatch):
    """API client wired to the test database, a stub registry and fake Redis."""
    iphone = ScrapedProduct(
        name="Apple iPhone 15 128GB",
        price=Decimal("3199.00"),
        currency="SAR",
        url=TRACKED_URL,
        original_price=Decimal("3599.00"),
        barcode="B0CHX1W1XY",
    )
    registry = AdapterRegistry(fetcher=MagicMock())
    registry.register(AMAZON_SA, lambda fetcher: StubAdapter("amazon-sa", {TRACKED_URL: iphone}, hits=[iphone]))
    registry.register(NOON_SA, lambda fetcher: StubAdapter("noon-sa", {}))
    cache = CacheService("redis://unused", client=FakeRedis())

    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    async def override_get_cache():
        return cache

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = override_get_cache
    monkeypatch.setattr(health, "get_cache", override_get_cache)
    app.state.registry = registry
    app.state.dispatcher = RecordingDispatcher()
    app.state.scheduler = None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()


def auth(user) -> dict:
    return {"X-User-Id": str(user.id)}


# ============================================================================
# TESTS: ERROR ENVELOPE
# ============================================================================

class TestErrors:
    async def test_not_found_envelope(self, client):
        response = await client.get(f"/api/v1/products/{uuid4()}/analysis")

        assert response.status_code == 404
        body = response.json()
        assert body["status"] == "error"
        assert body["error"]["code"] == "not_found"

    async def test_invalid_input_envelope(self, client, sample_user, sample_product):
        response = await client.post(
            "/api/v1/alerts",
            json={"product_id": str(sample_product.id), "target_price": "100", "currency": "GBP"},
            headers=auth(sample_user),
        )

        assert response.status_code == 422
        assert response.json()["error"] == {
            "code": "invalid_input",
            "message": "Invalid currency: unsupported currency 'GBP'",
            "field": "currency",
            "context": None,
        }

    async def test_identity_required(self, client):
        assert (await client.get("/api/v1/alerts")).status_code == 401
        assert (await client.get("/api/v1/alerts", headers={"X-User-Id": "not-a-uuid"})).status_code == 401

    async def test_request_validation(self, client, sample_user, sample_product):
        response = await client.post(
            "/api/v1/alerts",
            json={"product_id": str(sample_product.id), "target_price": "0"},
            headers=auth(sample_user),
        )
        assert response.status_code == 422


# ============================================================================
# TESTS: ENDPOINTS
# ============================================================================

class TestEndpoints:
    async def test_health(self, client):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["stores"] == ["amazon-sa", "noon-sa"]

    async def test_health_reports_notification_channels(self, client):
        async with httpx.AsyncClient() as http:
            app.state.dispatcher = NotificationDispatcher(
                client=http,
                email=EmailChannel(host="", sender=""),
                telegram=TelegramChannel(http, bot_token="123:abc"),
                push=PushChannel(http, webhook_url=""),
            )

            body = (await client.get("/api/v1/health")).json()

        assert body["notifications"] == {"email": False, "telegram": True, "push": False}

    async def test_track_then_list_deals(self, client):
        response = await client.post("/api/v1/track", json={"url": TRACKED_URL})

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["store_slug"] == "amazon-sa"
        assert data["listing_created"] is True
        assert Decimal(data["price_usd"]) == Decimal("853.07")

        deals = (await client.get("/api/v1/deals")).json()
        assert [d["discount"] for d in deals["data"]] == [11]
        assert deals["meta"]["count"] == 1

    async def test_track_failures(self, client):
        unsupported = await client.post("/api/v1/track", json={"url": "https://example.com/product/1"})
        assert unsupported.status_code == 422
        assert unsupported.json()["error"]["field"] == "url"

        unparseable = await client.post("/api/v1/track", json={"url": "https://www.amazon.sa/dp/B000000000"})
        assert unparseable.status_code == 502
        assert unparseable.json()["error"]["code"] == "scrape_failed"

    async def test_search(self, client):
        response = await client.get("/api/v1/search", params={"q": "iphone 15", "stores": ["amazon-sa", "noon-sa"]})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["results"]["amazon-sa"][0]["discount"] == 11
        assert data["results"]["noon-sa"] == []
        assert data["errors"] == {}

        popular = (await client.get("/api/v1/search/popular")).json()
        assert popular["data"] == ["iphone 15"]

    async def test_stores(self, client, sample_listing, second_store):
        response = await client.get("/api/v1/stores")

        stores = {s["slug"]: s for s in response.json()["data"]}
        assert stores["amazon-sa"]["listing_count"] == 1
        assert stores["amazon-sa"]["has_adapter"] is True
        assert stores["noon-sa"]["listing_count"] == 0

    async def test_resolve_store(self, client):
        response = await client.get("/api/v1/stores/resolve", params={"url": "https://www.noon.com/egypt-en/x/N1/p/"})

        assert response.json()["data"] == {
            "url": "https://www.noon.com/egypt-en/x/N1/p/",
            "store": "noon-eg",
            "supported": False,
        }
        bad = await client.get("/api/v1/stores/resolve", params={"url": "ftp://files.example.com/x"})
        assert bad.status_code == 422

    async def test_convert(self, client):
        response = await client.get("/api/v1/currency/convert", params={"amount": "100", "from": "USD", "to": "SAR"})

        data = response.json()["data"]
        assert Decimal(data["converted_amount"]) == Decimal("375.00")
        assert data["formatted"] == "﷼375.00 SAR"

    async def test_alert_flow_with_job(self, client, sample_user, sample_product, sample_listing):
        created = await client.post(
            "/api/v1/alerts",
            json={"product_id": str(sample_product.id), "target_price": "1300", "currency": "SAR"},
            headers=auth(sample_user),
        )
        assert created.status_code == 201

        listed = (await client.get("/api/v1/alerts", headers=auth(sample_user))).json()
        assert Decimal(listed["data"][0]["current_price"]) == Decimal("1299.00")

        run = await client.post("/api/v1/jobs/alerts")
        assert run.json()["data"]["triggered"] == 1
        assert len(app.state.dispatcher.sent) == 1

        stats = (await client.get("/api/v1/alerts/stats", headers=auth(sample_user))).json()
        assert stats["data"]["triggered"] == 1

    async def test_prediction_and_best_time(self, client, sample_listing):
        prediction = await client.get(f"/api/v1/listings/{sample_listing.id}/prediction", params={"days": 14})

        assert prediction.status_code == 200
        data = prediction.json()["data"]
        assert Decimal(data["predicted_price"]) == Decimal("1299.00")
        assert data["recommendation"] == "neutral"
        assert data["confidence"] == 0.3

        timing = (await client.get(f"/api/v1/listings/{sample_listing.id}/best-time")).json()["data"]
        assert timing["recommendation"].startswith("Not enough data")
        assert (await client.get(f"/api/v1/listings/{uuid4()}/prediction")).status_code == 404

    async def test_export_download(self, client, sample_listing):
        response = await client.get(f"/api/v1/listings/{sample_listing.id}/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].startswith(
            f'attachment; filename="price-history-{sample_listing.id}-'
        )
        lines = response.text.strip().split("\n")
        assert lines[0] == "Date,Product,Store,Price,Price (USD),Currency,In Stock,Discount (%)"
        assert len(lines) == 4

        as_json = await client.get(f"/api/v1/listings/{sample_listing.id}/export", params={"format": "json"})
        assert as_json.json()["record_count"] == 3

        assert (await client.get(f"/api/v1/listings/{sample_listing.id}/export", params={"format": "xml"})).status_code == 422
        assert (await client.get(f"/api/v1/listings/{uuid4()}/export")).status_code == 404

    async def test_product_chart_and_export(self, client, sample_product, sample_listing):
        chart = (await client.get(f"/api/v1/products/{sample_product.id}/chart", params={"days": 7})).json()["data"]

        assert len(chart["labels"]) == 7
        assert chart["series"][0]["store_slug"] == "amazon-sa"
        assert Decimal(chart["series"][0]["data"][-1]) == Decimal("1299.00")

        predictions = (await client.get(f"/api/v1/products/{sample_product.id}/predictions")).json()["data"]
        assert list(predictions) == ["amazon-sa"]

        export = await client.get(
            f"/api/v1/products/{sample_product.id}/export", params={"format": "json", "store": "amazon-sa"}
        )
        assert export.headers["content-type"] == "application/json"
        assert export.json()["record_count"] == 3
