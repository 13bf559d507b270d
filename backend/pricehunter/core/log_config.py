"""structlog setup shared by the API process and the scraper CLI."""

import logging
from typing import Optional

import structlog

from pricehunter.config import settings


def configure_logging(debug: Optional[bool] = None) -> None:
    """Configure stdlib logging (tenacity, uvicorn) and structlog.

    Args:
        debug: Log at DEBUG when true, INFO otherwise (default: settings.DEBUG)
    """
    debug = settings.DEBUG if debug is None else debug
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if settings.ENVIRONMENT == "development":
        renderers = [structlog.dev.ConsoleRenderer()]
    else:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            *renderers,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
