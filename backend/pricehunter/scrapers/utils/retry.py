"""Retry policy with exponential backoff for storefront requests."""

import logging

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log,
)


logger = logging.getLogger(__name__)


def is_retryable_http_error(exc: BaseException) -> bool:
    """Timeouts, connection errors, 429 and 5xx are worth another attempt.

    Other 4xx responses (404 for a delisted product) are final.
    """
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


# Reusable retry decorator for HTTP requests (httpx)
http_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=2, min=2, max=30),
    retry=retry_if_exception(is_retryable_http_error),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
