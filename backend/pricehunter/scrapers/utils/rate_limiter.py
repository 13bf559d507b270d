"""Token bucket rate limiter for per-domain politeness."""

import asyncio
import time
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse


class TokenBucket:
    """Token bucket: starts full, refills at a constant rate.

    Each request consumes one token and waits for a refill when the
    bucket is empty.
    """

    def __init__(self, rate: float, capacity: float):
        """Initialize token bucket.

        Args:
            rate: Tokens per second (e.g., 0.5 = 30 RPM)
            capacity: Maximum tokens in bucket (burst capacity)
        """
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Take tokens from the bucket, sleeping until enough are available."""
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                await asyncio.sleep((tokens - self.tokens) / self.rate)


class DomainRateLimiter:
    """One token bucket per storefront hostname.

    Limits are requests per minute keyed by bare domain ("amazon.sa");
    a leading "www." on the requested host is ignored.
    """

    DEFAULT_RPM = 20

    def __init__(self, limits_rpm: Optional[Mapping[str, int]] = None, default_rpm: int = DEFAULT_RPM):
        self._limits: Dict[str, int] = dict(limits_rpm or {})
        self._default_rpm = default_rpm
        self._buckets: Dict[str, TokenBucket] = {}

    @staticmethod
    def domain_of(url_or_host: str) -> str:
        """Bare hostname for a URL or host string."""
        host = urlparse(url_or_host).hostname if "://" in url_or_host else url_or_host
        host = (host or "").lower()
        return host[4:] if host.startswith("www.") else host

    def set_limit(self, domain: str, rpm: int) -> None:
        """Set (or replace) the limit for a domain."""
        domain = self.domain_of(domain)
        self._limits[domain] = rpm
        self._buckets.pop(domain, None)

    def get_limit(self, domain: str) -> int:
        """Requests per minute applied to a domain."""
        return self._limits.get(self.domain_of(domain), self._default_rpm)

    def _get_bucket(self, domain: str) -> TokenBucket:
        if domain not in self._buckets:
            rpm = self._limits.get(domain, self._default_rpm)
            # Small bursts: 10% of RPM, at least 2
            self._buckets[domain] = TokenBucket(rate=rpm / 60.0, capacity=max(2.0, rpm / 10.0))
        return self._buckets[domain]

    async def acquire(self, url_or_host: str) -> None:
        """Wait until the domain's bucket allows one more request."""
        await self._get_bucket(self.domain_of(url_or_host)).acquire()
