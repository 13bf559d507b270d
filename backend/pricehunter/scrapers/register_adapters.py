"""Build the process-wide adapter registry.

Called once during application startup (and by the scraper CLI).
"""

from typing import Dict, Optional

import structlog

from pricehunter.scrapers.adapters import ALL_STORE_CONFIGS
from pricehunter.scrapers.fetcher import PageFetcher
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.utils import DomainRateLimiter

logger = structlog.get_logger(__name__)


def store_rate_limits() -> Dict[str, int]:
    """Requests-per-minute per storefront domain.

    Noon storefronts share one host, so the tightest limit wins.
    """
    limits: Dict[str, int] = {}
    for config in ALL_STORE_CONFIGS:
        current = limits.get(config.domain)
        if current is None or config.requests_per_minute < current:
            limits[config.domain] = config.requests_per_minute
    return limits


def build_default_registry(fetcher: Optional[PageFetcher] = None) -> AdapterRegistry:
    """Register every known storefront.

    Args:
        fetcher: Optional pre-built fetcher; by default one is created with
            a per-domain rate limiter sized from the store configs

    Returns:
        Populated AdapterRegistry
    """
    if fetcher is None:
        fetcher = PageFetcher(rate_limiter=DomainRateLimiter(store_rate_limits()))

    registry = AdapterRegistry(fetcher=fetcher)
    for config in ALL_STORE_CONFIGS:
        registry.register(config)

    logger.info(
        "adapter_registration_complete",
        total_adapters=len(registry.registered_slugs),
        stores=registry.registered_slugs,
    )
    return registry
