"""Scraper system for reading product pages from e-commerce storefronts.

This package provides:
- Selector-driven store adapters and their per-store configuration
- A page fetcher with per-domain rate limiting and retries
- The adapter registry that resolves URLs to stores and fans out searches
- Utility modules for rate limiting, headers and price normalization
"""

from .base import ScrapedProduct, SelectorAdapter, StoreAdapter, StoreConfig
from .fetcher import PageFetcher
from .registry import AdapterRegistry, StoreSearchResult

__all__ = [
    # Adapters
    "SelectorAdapter",
    "StoreAdapter",
    "StoreConfig",
    # Data structures
    "ScrapedProduct",
    "StoreSearchResult",
    # Infrastructure
    "PageFetcher",
    "AdapterRegistry",
]
