"""Store adapter contract and the selector-driven adapter.

Storefront modules under ``scrapers.adapters`` describe themselves as a
``StoreConfig`` (URLs, currency, CSS selector table, stock and rating
rules). ``SelectorAdapter`` turns any config into an object satisfying the
``StoreAdapter`` protocol, so adding a store means adding data, not a
subclass.
"""

import asyncio
import random
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, Protocol, runtime_checkable
from urllib.parse import quote_plus, urljoin

import structlog
from bs4 import BeautifulSoup, Tag

from pricehunter.config import settings
from pricehunter.core.exceptions import FetchFailure, ParseFailure
from pricehunter.scrapers.fetcher import PageFetcher
from pricehunter.scrapers.utils.normalizer import PriceNormalizer


# How the stock selector is read
STOCK_TEXT = "text"        # keyword check on the element's text (missing element = in stock)
STOCK_PRESENT = "present"  # in stock only when the element exists, e.g. an add-to-cart button
STOCK_ABSENT = "absent"    # out of stock when a non-empty marker element exists

# How the rating selector is read
RATING_TEXT = "text"    # first number in the text or title attribute
RATING_WIDTH = "width"  # star bar width percentage / 20

Selectors = tuple[str, ...]


@dataclass
class ScrapedProduct:
    """Canonical product record returned by every adapter."""

    name: str
    price: Decimal
    currency: str
    url: str
    original_price: Optional[Decimal] = None
    image_url: Optional[str] = None
    in_stock: bool = True
    rating: Optional[Decimal] = None
    review_count: Optional[int] = None
    barcode: Optional[str] = None  # ASIN / SKU when the URL exposes one
    brand: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.name:
            raise ValueError("name is required")
        if self.price is None or self.price <= 0:
            raise ValueError("price must be a positive Decimal")
        # A "was" price at or below the current price is not a discount
        if self.original_price is not None and self.original_price <= self.price:
            self.original_price = None

    @property
    def discount(self) -> int:
        """Whole-number discount vs. the original price."""
        return PriceNormalizer.calculate_discount(self.price, self.original_price)


@dataclass(frozen=True)
class ProductSelectors:
    """CSS selectors for a product detail page, tried in order."""

    title: Selectors
    price: Selectors
    original_price: Selectors = ()
    image: Selectors = ()
    rating: Selectors = ()
    review_count: Selectors = ()
    stock: Selectors = ()
    brand: Selectors = ()
    description: Selectors = ()


@dataclass(frozen=True)
class SearchSelectors:
    """CSS selectors for a search results page; item-relative except ``item``."""

    item: str
    title: Selectors
    link: Selectors
    price: Selectors
    price_fraction: Selectors = ()
    image: Selectors = ()
    rating: Selectors = ()


@dataclass(frozen=True)
class StoreConfig:
    """Everything store-specific about scraping one storefront."""

    slug: str
    name: str
    domain: str          # bare hostname, e.g. "amazon.sa"
    base_url: str        # scheme + host used to absolutize links
    currency: str
    country: str
    search_url: str      # template with a {query} placeholder
    product: ProductSelectors
    search: SearchSelectors
    stock_rule: str = STOCK_TEXT
    rating_source: str = RATING_TEXT
    sku_pattern: Optional[str] = None
    requests_per_minute: int = 20
    image_attrs: Selectors = ("src", "data-src", "data-old-hires")


@runtime_checkable
class StoreAdapter(Protocol):
    """Capability interface every storefront adapter provides."""

    slug: str

    async def scrape_product(self, url: str) -> Optional[ScrapedProduct]:
        """Scrape one product page; None when the page has no usable product."""
        ...

    async def search_products(self, query: str) -> List[ScrapedProduct]:
        """Search the storefront; at most SEARCH_RESULT_LIMIT results."""
        ...


class SelectorAdapter:
    """StoreAdapter implementation driven entirely by a StoreConfig."""

    def __init__(
        self,
        config: StoreConfig,
        fetcher: PageFetcher,
        delay_range: Optional[tuple[float, float]] = None,
        result_limit: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the adapter.

        Args:
            config: Store selector table
            fetcher: Shared page fetcher
            delay_range: Inter-item pause window in seconds (default from settings)
            result_limit: Maximum search results (default SEARCH_RESULT_LIMIT)
            sleep: Awaitable used for the inter-item pause
        """
        self.config = config
        self.slug = config.slug
        self.fetcher = fetcher
        self.delay_range = delay_range if delay_range is not None else settings.scrape_delay_range
        self.result_limit = result_limit if result_limit is not None else settings.SEARCH_RESULT_LIMIT
        self._sleep = sleep
        self.logger = structlog.get_logger(adapter=config.slug)

    def __repr__(self) -> str:
        return f"<SelectorAdapter(slug='{self.slug}')>"

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def scrape_product(self, url: str) -> Optional[ScrapedProduct]:
        """Fetch and parse a product page.

        Fetch and parse failures are logged and turned into None so that
        batch callers never have to guard individual items.

        Args:
            url: Product page URL on this storefront

        Returns:
            ScrapedProduct, or None when the page could not be read
        """
        try:
            html = await self.fetcher.fetch_html(url, self.slug, referer=f"{self.config.base_url}/")
        except FetchFailure as e:
            self.logger.warning("product_fetch_failed", url=url, error=str(e))
            return None

        try:
            product = self.parse_product(html, url)
        except ParseFailure as e:
            self.logger.info("product_parse_failed", url=url, missing=e.missing)
            return None

        self.logger.info(
            "product_scraped",
            url=url,
            price=str(product.price),
            in_stock=product.in_stock,
        )
        return product

    async def search_products(self, query: str) -> List[ScrapedProduct]:
        """Run a storefront search and parse up to ``result_limit`` items.

        Items are parsed one at a time with a randomized pause between
        them. Items missing a title, link or price are skipped.

        Args:
            query: Free-text search query

        Returns:
            List of ScrapedProduct (in_stock assumed True on result pages)

        Raises:
            FetchFailure: If the results page cannot be fetched
        """
        query = query.strip()
        if not query:
            return []

        search_url = self.config.search_url.format(query=quote_plus(query))
        html = await self.fetcher.fetch_html(search_url, self.slug, referer=f"{self.config.base_url}/")
        soup = BeautifulSoup(html, "html.parser")

        items = soup.select(self.config.search.item)[: self.result_limit]
        results: List[ScrapedProduct] = []

        for index, item in enumerate(items):
            if index > 0:
                await self._pause()
            product = self._parse_search_item(item)
            if product is not None:
                results.append(product)

        self.logger.info("search_completed", query=query, items=len(items), results=len(results))
        return results

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_product(self, html: str, url: str) -> ScrapedProduct:
        """Parse product page HTML.

        Raises:
            ParseFailure: If the title or a positive price is missing
        """
        soup = BeautifulSoup(html, "html.parser")
        selectors = self.config.product

        title = self._text(soup, selectors.title)
        if not title:
            raise ParseFailure(self.slug, url, "title")

        price = PriceNormalizer.parse_price(self._text(soup, selectors.price))
        if price is None:
            raise ParseFailure(self.slug, url, "price")

        description = self._joined_text(soup, selectors.description, limit=5)

        return ScrapedProduct(
            name=title,
            price=price,
            currency=self.config.currency,
            url=url,
            original_price=PriceNormalizer.parse_price(self._text(soup, selectors.original_price)),
            image_url=self._image(soup, selectors.image),
            in_stock=self._in_stock(soup),
            rating=self._rating(soup, selectors.rating),
            review_count=PriceNormalizer.parse_review_count(self._text(soup, selectors.review_count)),
            barcode=self._barcode(url),
            brand=self._brand(soup),
            description=description[:500] if description else None,
        )

    def _parse_search_item(self, item: Tag) -> Optional[ScrapedProduct]:
        selectors = self.config.search

        title = self._text(item, selectors.title)
        href = self._attr(item, selectors.link, ("href",))
        if not title or not href:
            return None

        price_text = self._text(item, selectors.price) or ""
        if selectors.price_fraction:
            price_text += self._text(item, selectors.price_fraction) or ""
        price = PriceNormalizer.parse_price(price_text)
        if price is None:
            return None

        return ScrapedProduct(
            name=title,
            price=price,
            currency=self.config.currency,
            url=self._absolute(href),
            image_url=self._image(item, selectors.image),
            in_stock=True,
            rating=self._rating(item, selectors.rating),
        )

    def _in_stock(self, soup: BeautifulSoup) -> bool:
        selectors = self.config.product.stock
        if not selectors:
            return True

        element = self._element(soup, selectors)
        text = element.get_text(" ", strip=True) if element is not None else ""

        if self.config.stock_rule == STOCK_PRESENT:
            return element is not None and PriceNormalizer.is_in_stock(text)
        if self.config.stock_rule == STOCK_ABSENT:
            return element is None or not text
        return PriceNormalizer.is_in_stock(text)

    def _rating(self, root: Tag, selectors: Selectors) -> Optional[Decimal]:
        element = self._element(root, selectors)
        if element is None:
            return None
        if self.config.rating_source == RATING_WIDTH:
            return PriceNormalizer.parse_rating_from_width(element.get("style"))
        text = element.get_text(" ", strip=True) or element.get("title") or element.get("aria-label")
        return PriceNormalizer.parse_rating(text)

    def _brand(self, soup: BeautifulSoup) -> Optional[str]:
        brand = self._text(soup, self.config.product.brand)
        if not brand:
            return None
        # Amazon bylines read "Visit the Sony Store" / "Brand: Sony"
        brand = re.sub(r"visit the|brand:|store$", "", brand, flags=re.IGNORECASE).strip()
        return brand or None

    def _barcode(self, url: str) -> Optional[str]:
        if not self.config.sku_pattern:
            return None
        match = re.search(self.config.sku_pattern, url, re.IGNORECASE)
        return match.group(1) if match else None

    def _image(self, root: Tag, selectors: Selectors) -> Optional[str]:
        src = self._attr(root, selectors, self.config.image_attrs)
        return self._absolute(src) if src else None

    def _absolute(self, href: str) -> str:
        # Handles "/p/123", "//cdn.host/img.jpg" and already absolute URLs
        return urljoin(f"{self.config.base_url}/", href.strip())

    # ------------------------------------------------------------------
    # Selector helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _element(root: Tag, selectors: Selectors) -> Optional[Tag]:
        for selector in selectors:
            element = root.select_one(selector)
            if element is not None:
                return element
        return None

    @staticmethod
    def _text(root: Tag, selectors: Selectors) -> Optional[str]:
        """First non-empty text among the selectors."""
        for selector in selectors:
            element = root.select_one(selector)
            if element is None:
                continue
            text = PriceNormalizer.clean_text(element.get_text(" ", strip=True))
            if text:
                return text
        return None

    @staticmethod
    def _joined_text(root: Tag, selectors: Selectors, limit: int) -> Optional[str]:
        for selector in selectors:
            parts = [
                text
                for text in (PriceNormalizer.clean_text(el.get_text(" ", strip=True)) for el in root.select(selector))
                if text
            ]
            if parts:
                return " ".join(parts[:limit])
        return None

    @staticmethod
    def _attr(root: Tag, selectors: Selectors, attrs: Selectors) -> Optional[str]:
        """First non-empty attribute value among the selectors."""
        for selector in selectors:
            element = root.select_one(selector)
            if element is None:
                continue
            for attr in attrs:
                value = element.get(attr)
                if value:
                    return str(value)
        return None

    async def _pause(self) -> None:
        low, high = self.delay_range
        delay = random.uniform(low, high)
        if delay > 0:
            await self._sleep(delay)
