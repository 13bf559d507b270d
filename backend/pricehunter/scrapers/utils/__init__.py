"""Scraper utilities for rate limiting, retries, headers and normalization."""

from .rate_limiter import DomainRateLimiter, TokenBucket
from .user_agents import get_random_user_agent, build_browser_headers, USER_AGENTS
from .normalizer import PriceNormalizer, normalize_url, OUT_OF_STOCK_KEYWORDS
from .retry import http_retry, is_retryable_http_error


__all__ = [
    "DomainRateLimiter",
    "TokenBucket",
    "get_random_user_agent",
    "build_browser_headers",
    "USER_AGENTS",
    "PriceNormalizer",
    "normalize_url",
    "OUT_OF_STOCK_KEYWORDS",
    "http_retry",
    "is_retryable_http_error",
]
