"""Catalog product endpoints: analysis, comparison, charts, forecasts and exports."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_db
from pricehunter.schemas import (
    ApiResponse,
    DealResponse,
    NewLowResponse,
    PriceChartResponse,
    PricePredictionResponse,
    ProductAnalysisResponse,
)
from pricehunter.services.deal_service import DealService
from pricehunter.services.price_analysis import PriceAnalyzer
from pricehunter.services.price_export import PriceHistoryExporter

router = APIRouter()


@router.get("/at-lowest", response_model=ApiResponse[List[NewLowResponse]])
async def products_at_lowest_price(
    limit: int = Query(20, ge=1, le=100),
    country: Optional[str] = Query(None, pattern="^(SA|EG|AE|sa|eg|ae)$", description="Store country"),
    days: int = Query(90, ge=1, le=365, description="History window in days"),
    db: AsyncSession = Depends(get_db),
):
    """In-stock listings priced below everything in their history window.

    Listings need at least two samples; ranked by savings vs. the window high.
    """
    analyzer = PriceAnalyzer(db)
    lows = await analyzer.find_products_at_lowest_price(limit=limit, country=country, days=days)
    return ApiResponse(data=[NewLowResponse.model_validate(low) for low in lows])


@router.get("/{product_id}/analysis", response_model=ApiResponse[ProductAnalysisResponse])
async def product_analysis(product_id: UUID, db: AsyncSession = Depends(get_db)):
    """Price analysis of every listing of a product, with the cheapest in-stock one."""
    report = await PriceAnalyzer(db).analyze_product(product_id)
    return ApiResponse(data=ProductAnalysisResponse.model_validate(report))


@router.get("/{product_id}/compare", response_model=ApiResponse[List[DealResponse]])
async def compare_stores(product_id: UUID, db: AsyncSession = Depends(get_db)):
    """All listings of a product across stores, cheapest (in USD) first."""
    deals = await DealService(db).compare_across_stores(product_id)
    return ApiResponse(data=[DealResponse.model_validate(d) for d in deals])


@router.get("/{product_id}/chart", response_model=ApiResponse[PriceChartResponse])
async def price_chart(
    product_id: UUID,
    days: int = Query(30, ge=1, le=365),
    store_ids: Optional[List[UUID]] = Query(None, description="Only listings at these stores"),
    db: AsyncSession = Depends(get_db),
):
    """Daily price series per listing, one label per day."""
    chart = await PriceAnalyzer(db).get_chart_data(product_id, days=days, store_ids=store_ids)
    return ApiResponse(data=PriceChartResponse.model_validate(chart))


@router.get("/{product_id}/predictions", response_model=ApiResponse[Dict[str, PricePredictionResponse]])
async def product_predictions(
    product_id: UUID,
    days: int = Query(7, ge=1, le=90, description="Forecast horizon in days"),
    db: AsyncSession = Depends(get_db),
):
    """Forecast for each listing at an active store, keyed by store slug."""
    predictions = await PriceAnalyzer(db).predict_product(product_id, days_ahead=days)
    return ApiResponse(
        data={slug: PricePredictionResponse.model_validate(p) for slug, p in predictions.items()}
    )


@router.get("/{product_id}/export")
async def export_product_history(
    product_id: UUID,
    format: str = Query("csv", pattern="^(csv|json)$"),
    store: Optional[str] = Query(None, description="Store slug"),
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Download price history across a product's listings."""
    export = await PriceHistoryExporter(db).export(
        format,
        product_id=product_id,
        store_slug=store,
        start=start,
        end=end,
        currency=currency,
    )
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )
