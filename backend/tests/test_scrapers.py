"""Tests for the scraping layer.

Tests cover:
- Price / rating / stock text normalization
- Selector adapters parsing fixture markup
- Page fetcher error mapping
- Adapter registry URL resolution and multi-store search
"""

import asyncio
from decimal import Decimal
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from pricehunter.core.exceptions import FetchFailure, ParseFailure
from pricehunter.scrapers.adapters import ALL_STORE_CONFIGS, AMAZON_SA, JARIR, NOON_SA
from pricehunter.scrapers.base import ScrapedProduct, SelectorAdapter
from pricehunter.scrapers.fetcher import PageFetcher
from pricehunter.scrapers.register_adapters import build_default_registry, store_rate_limits
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.utils import DomainRateLimiter, PriceNormalizer, normalize_url


AMAZON_PRODUCT_HTML = """
<html><body>
  <span id="productTitle">  Sony WH-1000XM5   Wireless Headphones </span>
  <a id="bylineInfo">Visit the Sony Store</a>
  <div id="corePrice_feature_div"><span class="a-price-whole">1,299.</span></div>
  <span class="a-text-price"><span class="a-offscreen">SAR 1,599.00</span></span>
  <img id="landingImage" src="https://m.media-amazon.com/images/I/xm5.jpg">
  <span class="a-icon-alt">4.5 out of 5 stars</span>
  <span id="acrCustomerReviewText">2,345 ratings</span>
  <div id="availability"><span>In Stock</span></div>
  <div id="feature-bullets"><ul><li>Noise cancelling</li><li>30 hour battery</li></ul></div>
</body></html>
"""

AMAZON_OUT_OF_STOCK_HTML = """
<html><body>
  <span id="productTitle">Sony WH-1000XM5</span>
  <span class="a-price-whole">1,299.</span>
  <div id="availability"><span>Currently unavailable.</span></div>
</body></html>
"""

AMAZON_SEARCH_HTML = """
<html><body>
  <div data-component-type="s-search-result">
    <h2><a href="/dp/B0AAAAAAAA?ref=sr_1_1"><span>Anker Charger 20W</span></a></h2>
    <span class="a-price-whole">99.</span><span class="a-price-fraction">95</span>
    <img class="s-image" src="https://m.media-amazon.com/images/I/anker.jpg">
  </div>
  <div data-component-type="s-search-result">
    <h2><a href="/dp/B0BBBBBBBB"><span>Sponsored thing without price</span></a></h2>
  </div>
  <div data-component-type="s-search-result">
    <h2><a href="/dp/B0CCCCCCCC"><span>USB-C Cable</span></a></h2>
    <span class="a-price-whole">25.</span><span class="a-price-fraction">00</span>
    <span class="a-icon-star-small"><span class="a-icon-alt">4.2 out of 5 stars</span></span>
  </div>
</body></html>
"""

JARIR_PRODUCT_HTML = """
<html><body>
  <div class="product-name"><h1>iPhone 15 128GB Black</h1></div>
  <div class="special-price"><span class="price">SAR 3,199.00</span></div>
  <div class="old-price"><span class="price">SAR 3,499.00</span></div>
  <div class="rating-result" title="4.7 out of 5"></div>
  <div class="product-brand"><a>Apple</a></div>
</body></html>
"""

NOON_PRODUCT_HTML = """
<html><body>
  <h1 data-qa="pdp-name">AirPods Pro (2nd generation)</h1>
  <div data-qa="pdp-price">ر.س 899.00</div>
  <div data-qa="pdp-was-price">ر.س 1,049.00</div>
  <button data-qa="pdp-add-to-cart">Add to cart</button>
</body></html>
"""


def make_adapter(config, html: str, **kwargs) -> SelectorAdapter:
    fetcher = MagicMock()
    fetcher.fetch_html = AsyncMock(return_value=html)
    return SelectorAdapter(config, fetcher, delay_range=(0, 0), **kwargs)


class FakeAdapter:
    """StoreAdapter returning canned results, optionally slow or failing."""

    def __init__(self, slug: str, products: Optional[List[ScrapedProduct]] = None, delay: float = 0, error: Exception = None):
        self.slug = slug
        self.products = products or []
        self.delay = delay
        self.error = error

    async def scrape_product(self, url: str) -> Optional[ScrapedProduct]:
        return self.products[0] if self.products else None

    async def search_products(self, query: str) -> List[ScrapedProduct]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.products


def scraped(name: str = "Widget", price: str = "10.00", currency: str = "SAR") -> ScrapedProduct:
    return ScrapedProduct(name=name, price=Decimal(price), currency=currency, url=f"https://example.com/{name}")


# ============================================================================
# TESTS: NORMALIZER
# ============================================================================

class TestPriceNormalizer:
    """Tests for PriceNormalizer."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("SAR 1,299.00", Decimal("1299.00")),
            ("1,299.", Decimal("1299")),
            ("EGP\xa015,999", Decimal("15999")),
            ("ر.س 99.95", Decimal("99.95")),
        ],
    )
    def test_parse_price(self, raw, expected):
        assert PriceNormalizer.parse_price(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "Call for price", "0.00", "1.2.3"])
    def test_parse_price_unusable(self, raw):
        assert PriceNormalizer.parse_price(raw) is None

    def test_parse_rating(self):
        assert PriceNormalizer.parse_rating("4.5 out of 5 stars") == Decimal("4.5")
        assert PriceNormalizer.parse_rating("7 out of 5") is None
        assert PriceNormalizer.parse_rating(None) is None

    def test_parse_rating_from_width(self):
        assert PriceNormalizer.parse_rating_from_width("width: 90%") == Decimal("4.5")
        assert PriceNormalizer.parse_rating_from_width("height: 10px") is None

    def test_parse_review_count(self):
        assert PriceNormalizer.parse_review_count("2,345 ratings") == 2345
        assert PriceNormalizer.parse_review_count("no reviews") is None

    def test_is_in_stock_bilingual(self):
        assert PriceNormalizer.is_in_stock("In Stock") is True
        assert PriceNormalizer.is_in_stock(None) is True
        assert PriceNormalizer.is_in_stock("Currently unavailable.") is False
        assert PriceNormalizer.is_in_stock("غير متوفر حاليا") is False

    def test_calculate_discount(self):
        assert PriceNormalizer.calculate_discount(Decimal("75"), Decimal("100")) == 25
        assert PriceNormalizer.calculate_discount(Decimal("100"), Decimal("100")) == 0
        assert PriceNormalizer.calculate_discount(Decimal("100"), None) == 0

    def test_normalize_url_strips_tracking(self):
        url = "https://www.amazon.sa/dp/B09XS7JWHH?ref=sr_1&utm_source=x&color=black#reviews"
        assert normalize_url(url) == "https://www.amazon.sa/dp/B09XS7JWHH?color=black"


class TestScrapedProduct:
    """Tests for the ScrapedProduct record."""

    def test_rejects_non_positive_price(self):
        with pytest.raises(ValueError):
            ScrapedProduct(name="x", price=Decimal("0"), currency="SAR", url="https://example.com")

    def test_drops_original_price_not_above_price(self):
        product = ScrapedProduct(
            name="x", price=Decimal("100"), currency="SAR", url="https://example.com", original_price=Decimal("90")
        )
        assert product.original_price is None
        assert product.discount == 0


# ============================================================================
# TESTS: SELECTOR ADAPTERS
# ============================================================================

class TestSelectorAdapter:
    """Tests for SelectorAdapter against fixture markup."""

    async def test_amazon_product_page(self):
        adapter = make_adapter(AMAZON_SA, AMAZON_PRODUCT_HTML)
        product = await adapter.scrape_product("https://www.amazon.sa/dp/B09XS7JWHH")

        assert product is not None
        assert product.name == "Sony WH-1000XM5 Wireless Headphones"
        assert product.price == Decimal("1299")
        assert product.original_price == Decimal("1599.00")
        assert product.currency == "SAR"
        assert product.discount == 19
        assert product.in_stock is True
        assert product.rating == Decimal("4.5")
        assert product.review_count == 2345
        assert product.brand == "Sony"
        assert product.barcode == "B09XS7JWHH"
        assert product.image_url == "https://m.media-amazon.com/images/I/xm5.jpg"
        assert product.description == "Noise cancelling 30 hour battery"

    async def test_amazon_out_of_stock(self):
        adapter = make_adapter(AMAZON_SA, AMAZON_OUT_OF_STOCK_HTML)
        product = await adapter.scrape_product("https://www.amazon.sa/dp/B09XS7JWHH")
        assert product.in_stock is False

    async def test_missing_price_returns_none(self):
        adapter = make_adapter(AMAZON_SA, "<html><span id='productTitle'>Thing</span></html>")
        assert await adapter.scrape_product("https://www.amazon.sa/dp/B000000000") is None

    def test_parse_product_raises_parse_failure(self):
        adapter = make_adapter(AMAZON_SA, "")
        with pytest.raises(ParseFailure) as exc:
            adapter.parse_product("<html><body>nothing</body></html>", "https://www.amazon.sa/dp/X")
        assert exc.value.missing == "title"

    async def test_fetch_failure_returns_none(self):
        fetcher = MagicMock()
        fetcher.fetch_html = AsyncMock(side_effect=FetchFailure("amazon-sa", "https://www.amazon.sa/dp/X", "HTTP 503"))
        adapter = SelectorAdapter(AMAZON_SA, fetcher, delay_range=(0, 0))
        assert await adapter.scrape_product("https://www.amazon.sa/dp/X") is None

    async def test_jarir_stock_marker_and_title_rating(self):
        adapter = make_adapter(JARIR, JARIR_PRODUCT_HTML)
        product = await adapter.scrape_product("https://www.jarir.com/sa-en/apple-iphone-15-551234.html")

        assert product.price == Decimal("3199.00")
        assert product.original_price == Decimal("3499.00")
        assert product.rating == Decimal("4.7")
        assert product.brand == "Apple"
        assert product.barcode == "551234"
        # No "in stock" marker rendered
        assert product.in_stock is False

    async def test_noon_arabic_price_and_cart_button(self):
        adapter = make_adapter(NOON_SA, NOON_PRODUCT_HTML)
        product = await adapter.scrape_product("https://www.noon.com/saudi-en/airpods-pro/N53346840A/p/")

        assert product.price == Decimal("899.00")
        assert product.original_price == Decimal("1049.00")
        assert product.in_stock is True
        assert product.barcode == "N53346840A"

    async def test_search_skips_incomplete_items(self):
        sleep = AsyncMock()
        fetcher = MagicMock()
        fetcher.fetch_html = AsyncMock(return_value=AMAZON_SEARCH_HTML)
        adapter = SelectorAdapter(AMAZON_SA, fetcher, delay_range=(0.1, 0.2), sleep=sleep)

        results = await adapter.search_products("charger")

        assert [p.name for p in results] == ["Anker Charger 20W", "USB-C Cable"]
        assert results[0].price == Decimal("99.95")
        assert results[0].url == "https://www.amazon.sa/dp/B0AAAAAAAA?ref=sr_1_1"
        assert results[1].rating == Decimal("4.2")
        assert all(p.in_stock for p in results)
        # One pause between each pair of items
        assert sleep.await_count == 2
        fetcher.fetch_html.assert_awaited_once()
        assert "k=charger" in fetcher.fetch_html.await_args.args[0]

    async def test_search_respects_result_limit(self):
        adapter = make_adapter(AMAZON_SA, AMAZON_SEARCH_HTML, result_limit=1)
        results = await adapter.search_products("charger")
        assert len(results) == 1

    async def test_blank_query_does_not_fetch(self):
        adapter = make_adapter(AMAZON_SA, AMAZON_SEARCH_HTML)
        assert await adapter.search_products("   ") == []
        adapter.fetcher.fetch_html.assert_not_awaited()


# ============================================================================
# TESTS: FETCHER
# ============================================================================

class TestPageFetcher:
    """Tests for PageFetcher using httpx.MockTransport."""

    async def test_returns_body_with_browser_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user_agent"] = request.headers.get("user-agent")
            seen["referer"] = request.headers.get("referer")
            return httpx.Response(200, text="<html>ok</html>")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        fetcher = PageFetcher(client=client)

        body = await fetcher.fetch_html("https://www.amazon.sa/dp/X", "amazon-sa", referer="https://www.amazon.sa/")

        assert body == "<html>ok</html>"
        assert seen["user_agent"]
        assert seen["referer"] == "https://www.amazon.sa/"
        await fetcher.aclose()

    async def test_not_found_is_final(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(404)

        fetcher = PageFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(FetchFailure) as exc:
            await fetcher.fetch_html("https://www.amazon.sa/dp/GONE", "amazon-sa")

        assert "HTTP 404" in str(exc.value)
        assert len(calls) == 1
        await fetcher.aclose()


class TestDomainRateLimiter:
    def test_domain_of_ignores_www(self):
        assert DomainRateLimiter.domain_of("https://www.Amazon.sa/dp/X") == "amazon.sa"
        assert DomainRateLimiter.domain_of("noon.com") == "noon.com"

    def test_limits(self):
        limiter = DomainRateLimiter({"jarir.com": 15}, default_rpm=30)
        assert limiter.get_limit("https://www.jarir.com/x") == 15
        assert limiter.get_limit("extra.com") == 30
        limiter.set_limit("www.extra.com", 10)
        assert limiter.get_limit("extra.com") == 10

    async def test_acquire_within_burst_does_not_block(self):
        limiter = DomainRateLimiter({"amazon.sa": 60})
        await asyncio.wait_for(limiter.acquire("https://www.amazon.sa/a"), timeout=1)
        await asyncio.wait_for(limiter.acquire("https://www.amazon.sa/b"), timeout=1)


# ============================================================================
# TESTS: REGISTRY
# ============================================================================

class TestAdapterRegistry:
    """Tests for AdapterRegistry."""

    @pytest.mark.parametrize(
        "url,slug",
        [
            ("https://www.amazon.sa/dp/B09XS7JWHH", "amazon-sa"),
            ("https://amazon.eg/dp/B09XS7JWHH", "amazon-eg"),
            ("https://www.amazon.ae/-/en/dp/B09XS7JWHH", "amazon-ae"),
            ("https://www.noon.com/egypt-en/airpods/N1/p/", "noon-eg"),
            ("https://www.noon.com/uae-ar/airpods/N1/p/", "noon-ae"),
            ("https://www.noon.com/airpods/N1/p/", "noon-sa"),
            ("https://www.jarir.com/sa-en/x.html", "jarir"),
            ("https://www.jumia.com.eg/x.html", "jumia-eg"),
            ("https://2b.com.eg/en/phone", "2b"),
        ],
    )
    def test_resolve_store(self, url, slug):
        assert AdapterRegistry.resolve_store(url) == slug

    @pytest.mark.parametrize("url", ["not a url", "https://example.com/x", "ftp://amazon.sa/dp/X", ""])
    def test_resolve_store_unknown(self, url):
        assert AdapterRegistry.resolve_store(url) is None

    def test_adapters_built_lazily_and_cached(self):
        built = []

        def builder(fetcher):
            built.append(fetcher)
            return FakeAdapter("fake")

        registry = AdapterRegistry(fetcher=MagicMock())
        registry.register("fake", builder)

        assert built == []
        assert registry.get("fake") is registry.get("fake")
        assert len(built) == 1
        assert registry.get("missing") is None

    def test_register_slug_requires_builder(self):
        registry = AdapterRegistry(fetcher=MagicMock())
        with pytest.raises(ValueError):
            registry.register("orphan")

    async def test_scrape_url_recognised_without_adapter(self):
        registry = AdapterRegistry(fetcher=MagicMock())
        assert await registry.scrape_url("https://2b.com.eg/en/phone") == ("2b", None)
        assert await registry.scrape_url("https://example.com/") == (None, None)

    async def test_search_stores_isolates_failures(self):
        registry = AdapterRegistry(fetcher=MagicMock(), store_timeout=0.05)
        registry.register("ok", lambda f: FakeAdapter("ok", [scraped("A"), scraped("B")]))
        registry.register("slow", lambda f: FakeAdapter("slow", [scraped("C")], delay=1))
        registry.register(
            "broken",
            lambda f: FakeAdapter("broken", error=FetchFailure("broken", "https://x", "HTTP 503")),
        )

        outcome = await registry.search_stores("phone", ["ok", "slow", "broken", "unknown"])

        assert set(outcome.results) == {"ok", "slow", "broken", "unknown"}
        assert [p.name for p in outcome.results["ok"]] == ["A", "B"]
        assert outcome.results["slow"] == []
        assert outcome.total == 2
        assert "timed out" in outcome.errors["slow"]
        assert "HTTP 503" in outcome.errors["broken"]
        assert outcome.errors["unknown"] == "no adapter registered"
        assert "ok" not in outcome.errors

    async def test_search_all_returns_mapping(self):
        registry = AdapterRegistry(fetcher=MagicMock())
        registry.register("ok", lambda f: FakeAdapter("ok", [scraped("A")]))

        results = await registry.search_all("phone", ["ok", "ok"])

        assert list(results) == ["ok"]


class TestDefaultRegistry:
    def test_every_store_registered(self):
        registry = build_default_registry(fetcher=MagicMock())
        assert set(registry.registered_slugs) == {c.slug for c in ALL_STORE_CONFIGS}
        assert registry.get_config("amazon-eg").currency == "EGP"
        assert registry.get_config("noon-ae").country == "AE"

    def test_rate_limits_shared_host_takes_tightest(self):
        limits = store_rate_limits()
        assert limits["noon.com"] == 20
        assert limits["jarir.com"] == 15
