"""Shared HTTP page fetcher for storefront adapters."""

from typing import Optional

import httpx
import structlog

from pricehunter.config import settings
from pricehunter.core.exceptions import FetchFailure
from pricehunter.scrapers.utils.rate_limiter import DomainRateLimiter
from pricehunter.scrapers.utils.retry import http_retry
from pricehunter.scrapers.utils.user_agents import build_browser_headers

logger = structlog.get_logger(__name__)


class PageFetcher:
    """Fetches storefront HTML with browser headers, retries and throttling.

    One instance (and one connection pool) is shared by every adapter the
    registry builds. Each request is time-boxed by ``timeout``.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the fetcher.

        Args:
            timeout: Per-request timeout in seconds (default SCRAPE_TIMEOUT_SECONDS)
            rate_limiter: Optional per-domain limiter shared across adapters
            client: Optional pre-built client (tests inject a MockTransport)
        """
        self.timeout = timeout if timeout is not None else settings.SCRAPE_TIMEOUT_SECONDS
        self.rate_limiter = rate_limiter
        self._client = client
        self.logger = logger.bind(service="page_fetcher")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    @http_retry
    async def _get(self, url: str, referer: Optional[str]) -> httpx.Response:
        response = await self._get_client().get(
            url,
            headers=build_browser_headers(referer),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response

    async def fetch_html(self, url: str, store: str, referer: Optional[str] = None) -> str:
        """GET a page and return its body.

        Args:
            url: Absolute page URL
            store: Store slug, used for logging and error context
            referer: Optional Referer header

        Returns:
            Response text

        Raises:
            FetchFailure: After retries are exhausted or on a final 4xx
        """
        if self.rate_limiter:
            await self.rate_limiter.acquire(url)

        self.logger.debug("fetching_page", store=store, url=url)

        try:
            response = await self._get(url, referer)
        except httpx.HTTPStatusError as e:
            raise FetchFailure(store, url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchFailure(store, url, f"{type(e).__name__}: {e}") from e

        return response.text

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
