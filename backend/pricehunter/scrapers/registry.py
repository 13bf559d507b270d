"""Adapter registry: store slug -> adapter, URL -> store, multi-store search."""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlparse

import structlog

from pricehunter.config import settings
from pricehunter.scrapers.adapters.noon import COUNTRY_PATHS as NOON_COUNTRY_PATHS
from pricehunter.scrapers.adapters.noon import DEFAULT_SLUG as NOON_DEFAULT_SLUG
from pricehunter.scrapers.base import (
    ScrapedProduct,
    SelectorAdapter,
    StoreAdapter,
    StoreConfig,
)
from pricehunter.scrapers.fetcher import PageFetcher


logger = structlog.get_logger(__name__)

AdapterBuilder = Callable[[PageFetcher], StoreAdapter]

# Hostname (without "www.") -> store slug. noon.com is resolved by path.
DOMAIN_SLUGS: Dict[str, str] = {
    "amazon.sa": "amazon-sa",
    "amazon.eg": "amazon-eg",
    "amazon.ae": "amazon-ae",
    "jarir.com": "jarir",
    "extra.com": "extra",
    "jumia.com.eg": "jumia-eg",
    "btech.com": "btech",
    # Recognised retailers without an adapter yet
    "2b.com.eg": "2b",
    "sharafdg.com": "sharaf-dg",
    "carrefouruae.com": "carrefour-ae",
    "luluhypermarket.com": "lulu-sa",
}


@dataclass
class StoreSearchResult:
    """Outcome of a multi-store search."""

    query: str
    results: Dict[str, List[ScrapedProduct]] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(products) for products in self.results.values())


class AdapterRegistry:
    """Maps store slugs to lazily built, cached adapters.

    Built once at process start and passed to whoever needs it. All
    adapters share one ``PageFetcher`` (one HTTP connection pool).
    """

    def __init__(self, fetcher: Optional[PageFetcher] = None, store_timeout: Optional[float] = None):
        """Initialize the registry.

        Args:
            fetcher: Shared page fetcher (a default one is created if omitted)
            store_timeout: Per-store search time box in seconds
                (default SEARCH_STORE_TIMEOUT_SECONDS)
        """
        self.fetcher = fetcher or PageFetcher()
        self.store_timeout = store_timeout if store_timeout is not None else settings.SEARCH_STORE_TIMEOUT_SECONDS
        self._builders: Dict[str, AdapterBuilder] = {}
        self._configs: Dict[str, StoreConfig] = {}
        self._adapters: Dict[str, StoreAdapter] = {}

    def register(self, store: Union[StoreConfig, str], builder: Optional[AdapterBuilder] = None) -> None:
        """Register a store.

        Args:
            store: A StoreConfig (built with SelectorAdapter) or a bare slug
            builder: Custom adapter builder; required when ``store`` is a slug
        """
        if isinstance(store, StoreConfig):
            slug = store.slug
            self._configs[slug] = store
            if builder is None:
                config = store
                builder = lambda fetcher: SelectorAdapter(config, fetcher)  # noqa: E731
        else:
            slug = store
            if builder is None:
                raise ValueError(f"A builder is required to register '{slug}' without a config")

        self._builders[slug] = builder
        self._adapters.pop(slug, None)
        logger.debug("adapter_registered", store=slug)

    def get(self, slug: str) -> Optional[StoreAdapter]:
        """Return the adapter for a slug, building it on first use.

        Returns:
            Adapter instance, or None if no builder is registered
        """
        adapter = self._adapters.get(slug)
        if adapter is not None:
            return adapter

        builder = self._builders.get(slug)
        if builder is None:
            return None

        adapter = builder(self.fetcher)
        self._adapters[slug] = adapter
        logger.info("adapter_created", store=slug)
        return adapter

    def get_config(self, slug: str) -> Optional[StoreConfig]:
        return self._configs.get(slug)

    def has_adapter(self, slug: str) -> bool:
        return slug in self._builders

    @property
    def registered_slugs(self) -> List[str]:
        return list(self._builders.keys())

    @staticmethod
    def resolve_store(url: str) -> Optional[str]:
        """Map a product URL to a store slug.

        Args:
            url: Product page URL

        Returns:
            Store slug, or None for malformed URLs and unknown domains
        """
        try:
            parsed = urlparse(url.strip())
            host = (parsed.hostname or "").lower()
        except (AttributeError, ValueError):
            return None

        if parsed.scheme not in ("http", "https") or not host:
            return None

        if host.startswith("www."):
            host = host[4:]

        if host == "noon.com":
            segment = parsed.path.lstrip("/").split("/", 1)[0].lower()
            country = segment.split("-", 1)[0]
            return NOON_COUNTRY_PATHS.get(country, NOON_DEFAULT_SLUG)

        return DOMAIN_SLUGS.get(host)

    async def scrape_url(self, url: str) -> Tuple[Optional[str], Optional[ScrapedProduct]]:
        """Resolve the store for a URL and scrape it.

        Returns:
            (slug, product). slug is None for unrecognised URLs; product is
            None when there is no adapter or the page could not be scraped.
        """
        slug = self.resolve_store(url)
        if slug is None:
            logger.info("store_not_recognised", url=url)
            return None, None

        adapter = self.get(slug)
        if adapter is None:
            logger.info("store_not_supported", store=slug, url=url)
            return slug, None

        return slug, await adapter.scrape_product(url)

    async def search_stores(self, query: str, stores: Optional[Iterable[str]] = None) -> StoreSearchResult:
        """Search several stores concurrently.

        Every requested store appears in ``results``. A store that errors,
        times out or has no adapter contributes an empty list and an entry
        in ``errors``; this method never raises for a single store.

        Args:
            query: Free-text query
            stores: Store slugs (default DEFAULT_SEARCH_STORES)

        Returns:
            StoreSearchResult
        """
        slugs = list(dict.fromkeys(stores)) if stores else settings.get_default_search_stores()
        outcome = StoreSearchResult(query=query)

        async def run(slug: str) -> Tuple[str, List[ScrapedProduct], Optional[str]]:
            adapter = self.get(slug)
            if adapter is None:
                return slug, [], "no adapter registered"
            try:
                products = await asyncio.wait_for(adapter.search_products(query), timeout=self.store_timeout)
                return slug, products, None
            except asyncio.TimeoutError:
                logger.warning("store_search_timeout", store=slug, query=query, timeout=self.store_timeout)
                return slug, [], f"timed out after {self.store_timeout:g}s"
            except Exception as e:
                logger.warning("store_search_failed", store=slug, query=query, error=str(e), exc_info=True)
                return slug, [], str(e)

        for slug, products, error in await asyncio.gather(*(run(slug) for slug in slugs)):
            outcome.results[slug] = products
            if error is not None:
                outcome.errors[slug] = error

        logger.info(
            "multi_store_search_completed",
            query=query,
            stores=len(slugs),
            total=outcome.total,
            failed=len(outcome.errors),
        )
        return outcome

    async def search_all(self, query: str, stores: Optional[Iterable[str]] = None) -> Dict[str, List[ScrapedProduct]]:
        """Search several stores concurrently and return ``{slug: products}``."""
        outcome = await self.search_stores(query, stores)
        return outcome.results

    async def close(self) -> None:
        """Release the shared HTTP client."""
        self._adapters.clear()
        await self.fetcher.aclose()
