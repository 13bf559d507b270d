"""PriceHunter Backend -- FastAPI Application Entry Point."""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pricehunter.api.v1.router import api_v1_router
from pricehunter.config import settings
from pricehunter.core.exceptions import (
    FetchFailure,
    InvalidInputError,
    NotFoundError,
    ParseFailure,
    PriceHunterException,
)
from pricehunter.core.log_config import configure_logging
from pricehunter.db.session import async_session_factory
from pricehunter.db.utils import create_tables
from pricehunter.schemas import ErrorDetail, ErrorResponse
from pricehunter.scrapers.register_adapters import build_default_registry
from pricehunter.scrapers.scheduler import PriceHunterScheduler
from pricehunter.scrapers.scraper_service import TrackingService
from pricehunter.services.cache_service import get_cache_service
from pricehunter.services.notification_service import NotificationDispatcher

configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    logger.info("api_starting", environment=settings.ENVIRONMENT, debug=settings.DEBUG)

    registry = build_default_registry()
    dispatcher = NotificationDispatcher()
    app.state.registry = registry
    app.state.dispatcher = dispatcher
    app.state.scheduler = None

    try:
        await create_tables()
        async with async_session_factory() as session:
            await TrackingService(session, registry).sync_stores()
        logger.info("database_ready")
    except Exception as e:
        logger.error("database_init_failed", error=str(e), exc_info=True)

    if settings.ENVIRONMENT != "test":
        scheduler = PriceHunterScheduler(async_session_factory, registry, dispatcher)
        scheduler.add_core_jobs()
        try:
            await scheduler.load_store_jobs()
        except Exception as e:
            logger.error("store_jobs_load_failed", error=str(e), exc_info=True)
        scheduler.start()
        app.state.scheduler = scheduler

        # Rates are used for every USD price; fetch once before serving
        await scheduler.refresh_rates()
    else:
        logger.info("scheduler_disabled", reason="test environment")

    cache = get_cache_service()
    if not await cache.health_check():
        logger.warning("redis_unavailable", detail="search results will not be cached")

    yield

    logger.info("api_stopping")
    if app.state.scheduler:
        app.state.scheduler.stop()
    await registry.close()
    await dispatcher.aclose()
    await cache.close()


app = FastAPI(
    title="PriceHunter API",
    description="Price tracking, deals and alerts for stores in Saudi Arabia, Egypt and the UAE",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, code: str, exc: PriceHunterException, field: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=exc.message, field=field))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return _error(422, "invalid_input", exc, field=exc.field)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, "not_found", exc)


@app.exception_handler(FetchFailure)
@app.exception_handler(ParseFailure)
async def scrape_failure_handler(request: Request, exc: PriceHunterException) -> JSONResponse:
    logger.warning("scrape_request_failed", path=request.url.path, error=exc.message)
    return _error(502, "scrape_failed", exc)


app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "PriceHunter API",
        "version": "0.1.0",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
    }
