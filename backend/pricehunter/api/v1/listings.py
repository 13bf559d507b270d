"""Per-listing endpoints: history, statistics, forecasts, exports, stock and clicks."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_db, get_optional_user_id
from pricehunter.schemas import (
    ApiResponse,
    BuyTimingResponse,
    PaginationMeta,
    PriceAnalysisResponse,
    PriceHistoryPoint,
    PricePredictionResponse,
    PriceStatsResponse,
    PriceSummaryResponse,
    StockCheckRequest,
    StockStatusResponse,
)
from pricehunter.services.deal_service import DealService
from pricehunter.services.price_analysis import PriceAnalyzer
from pricehunter.services.price_export import PriceHistoryExporter
from pricehunter.services.price_history_service import PriceHistoryStore
from pricehunter.services.stock_service import StockMonitor

router = APIRouter()


@router.get("/{store_product_id}/analysis", response_model=ApiResponse[PriceAnalysisResponse])
async def listing_analysis(store_product_id: UUID, db: AsyncSession = Depends(get_db)):
    """Current price vs. history: lows, highs, average and the last change."""
    analysis = await PriceAnalyzer(db).analyze_store_product(store_product_id)
    return ApiResponse(data=PriceAnalysisResponse.model_validate(analysis))


@router.get("/{store_product_id}/history", response_model=ApiResponse[List[PriceHistoryPoint]])
async def price_history(
    store_product_id: UUID,
    days: Optional[int] = Query(None, ge=1, le=365, description="Only the last N days"),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Price samples, newest first."""
    store = PriceHistoryStore(db)
    await store.get_store_product(store_product_id)
    samples = await store.get_price_history(store_product_id, days=days, limit=limit)

    return ApiResponse(
        data=[PriceHistoryPoint.model_validate(s) for s in samples],
        meta=PaginationMeta(limit=limit, offset=0, count=len(samples)),
    )


@router.get("/{store_product_id}/stats", response_model=ApiResponse[Optional[PriceStatsResponse]])
async def price_stats(
    store_product_id: UUID,
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    """Windowed statistics with trend and volatility; null data for an empty window."""
    stats = await PriceAnalyzer(db).get_price_stats(store_product_id, days=days)
    return ApiResponse(data=PriceStatsResponse.model_validate(stats) if stats else None)


@router.get("/{store_product_id}/summary", response_model=ApiResponse[PriceSummaryResponse])
async def price_summary(
    store_product_id: UUID,
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    summary = await PriceAnalyzer(db).get_price_summary(store_product_id, days=days)
    return ApiResponse(data=PriceSummaryResponse.model_validate(summary))


@router.get("/{store_product_id}/prediction", response_model=ApiResponse[PricePredictionResponse])
async def price_prediction(
    store_product_id: UUID,
    days: int = Query(7, ge=1, le=90, description="Forecast horizon in days"),
    db: AsyncSession = Depends(get_db),
):
    """Forecast price with a buy / wait recommendation; neutral below 7 samples."""
    prediction = await PriceAnalyzer(db).predict_price(store_product_id, days_ahead=days)
    return ApiResponse(data=PricePredictionResponse.model_validate(prediction))


@router.get("/{store_product_id}/best-time", response_model=ApiResponse[BuyTimingResponse])
async def best_time_to_buy(store_product_id: UUID, db: AsyncSession = Depends(get_db)):
    timing = await PriceAnalyzer(db).get_best_time_to_buy(store_product_id)
    return ApiResponse(data=BuyTimingResponse.model_validate(timing))


@router.get("/{store_product_id}/export")
async def export_price_history(
    store_product_id: UUID,
    format: str = Query("csv", pattern="^(csv|json)$"),
    start: Optional[datetime] = Query(None, description="Earliest sample, ISO 8601"),
    end: Optional[datetime] = Query(None, description="Latest sample, ISO 8601"),
    db: AsyncSession = Depends(get_db),
):
    """Download the listing's price history as a CSV or JSON file."""
    await PriceHistoryStore(db).get_store_product(store_product_id)
    export = await PriceHistoryExporter(db).export(
        format, store_product_id=store_product_id, start=start, end=end
    )
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("/{store_product_id}/stock", response_model=ApiResponse[StockStatusResponse])
async def stock_status(store_product_id: UUID, db: AsyncSession = Depends(get_db)):
    """Stock flag, recent observations and a restock estimate when out of stock."""
    status = await StockMonitor(db).get_stock_status(store_product_id)
    return ApiResponse(data=StockStatusResponse.model_validate(status))


@router.post("/{store_product_id}/stock", response_model=ApiResponse[StockStatusResponse])
async def record_stock_check(
    store_product_id: UUID,
    body: StockCheckRequest,
    db: AsyncSession = Depends(get_db),
):
    """Record a stock observation made outside the scrapers."""
    monitor = StockMonitor(db)
    await monitor.record_stock_check(store_product_id, body.in_stock)
    status = await monitor.get_stock_status(store_product_id)
    return ApiResponse(data=StockStatusResponse.model_validate(status))


@router.post("/{store_product_id}/click", response_model=ApiResponse, status_code=201)
async def record_click(
    store_product_id: UUID,
    user_id: Optional[UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Log a click-through to the store."""
    await DealService(db).record_click(store_product_id, user_id)
    return ApiResponse(data={"recorded": True})
