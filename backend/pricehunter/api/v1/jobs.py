"""Manual triggers for the periodic batch jobs.

The scheduler runs these on its own; the endpoints exist for operators
and for deployments that drive them from an external cron.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_db, get_dispatcher, get_registry
from pricehunter.schemas import ApiResponse
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.scraper_service import TrackingService
from pricehunter.services.alert_service import AlertService
from pricehunter.services.currency_service import CurrencyService
from pricehunter.services.notification_service import NotificationDispatcher
from pricehunter.services.stock_service import StockMonitor

router = APIRouter()


@router.post("/alerts", response_model=ApiResponse)
async def run_alert_evaluation(
    db: AsyncSession = Depends(get_db),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher),
):
    """Evaluate every active alert once. Safe to repeat: triggered alerts never fire twice."""
    return ApiResponse(data=await AlertService(db, dispatcher=dispatcher).evaluate_alerts())


@router.post("/stock", response_model=ApiResponse)
async def run_stock_notifications(
    db: AsyncSession = Depends(get_db),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher),
):
    """Notify subscribers whose listing is back in stock."""
    return ApiResponse(data=await StockMonitor(db, dispatcher=dispatcher).process_stock_notifications())


@router.post("/rates", response_model=ApiResponse)
async def run_rate_refresh(db: AsyncSession = Depends(get_db)):
    return ApiResponse(data=await CurrencyService(db).refresh_rates())


@router.post("/stores/{store_slug}/refresh", response_model=ApiResponse)
async def run_store_refresh(
    store_slug: str,
    db: AsyncSession = Depends(get_db),
    registry: AdapterRegistry = Depends(get_registry),
):
    """Re-scrape every tracked listing of one store now."""
    return ApiResponse(data=await TrackingService(db, registry).refresh_store(store_slug))
