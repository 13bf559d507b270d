"""Deals API endpoints."""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_current_user_id, get_db
from pricehunter.schemas import ApiResponse, DealResponse, DealSummaryResponse, PaginationMeta
from pricehunter.services.deal_service import DealFilter, DealService

router = APIRouter()


def _deals_response(deals, limit: int = 0, offset: int = 0) -> ApiResponse:
    return ApiResponse(
        data=[DealResponse.model_validate(d) for d in deals],
        meta=PaginationMeta(limit=limit or len(deals), offset=offset, count=len(deals)),
    )


@router.get("", response_model=ApiResponse[List[DealResponse]])
async def list_deals(
    limit: int = Query(50, ge=1, le=100, description="Items per page"),
    offset: int = Query(0, ge=0),
    deal_type: Optional[List[str]] = Query(None, description="clearance, flash_sale, price_drop, daily_deal"),
    store: Optional[List[str]] = Query(None, description="Filter by store slug"),
    category: Optional[str] = Query(None, description="Category substring"),
    min_discount: Optional[int] = Query(None, ge=0, le=100, description="Minimum discount percentage"),
    max_price: Optional[Decimal] = Query(None, gt=0),
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    include_out_of_stock: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Discounted listings, biggest discount first.

    Deal types are derived from the discount at read time:
    clearance >= 50%, flash_sale >= 30%, price_drop >= 15%, else daily_deal.
    """
    deal_filter = DealFilter(
        deal_types=deal_type or (),
        store_slugs=store or (),
        category=category,
        min_discount=min_discount,
        max_price=max_price,
        currency=currency,
        in_stock_only=not include_out_of_stock,
    )
    deals = await DealService(db).get_deals(deal_filter, limit=limit, offset=offset)
    return _deals_response(deals, limit, offset)


@router.get("/summary", response_model=ApiResponse[DealSummaryResponse])
async def deal_summary(db: AsyncSession = Depends(get_db)):
    summary = await DealService(db).get_deal_summary()
    return ApiResponse(data=DealSummaryResponse.model_validate(summary))


@router.get("/flash-sales", response_model=ApiResponse[List[DealResponse]])
async def flash_sales(limit: int = Query(20, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return _deals_response(await DealService(db).get_flash_sales(limit), limit)


@router.get("/clearance", response_model=ApiResponse[List[DealResponse]])
async def clearance(limit: int = Query(20, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return _deals_response(await DealService(db).get_clearance_deals(limit), limit)


@router.get("/best", response_model=ApiResponse[List[DealResponse]])
async def best_deals(
    currency: str = Query("SAR", min_length=3, max_length=3),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Deals in one currency ranked by absolute savings."""
    return _deals_response(await DealService(db).get_best_deals(currency.upper(), limit), limit)


@router.get("/price-drops", response_model=ApiResponse[List[DealResponse]])
async def price_drops(
    days: int = Query(1, ge=1, le=30),
    min_drop: int = Query(0, ge=0, le=100),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Listings whose latest sample dropped below the previous one."""
    deals = await DealService(db).get_price_drops(days=days, min_drop=min_drop, limit=limit)
    return _deals_response(deals, limit)


@router.get("/new-lows", response_model=ApiResponse[List[DealResponse]])
async def new_lows(
    country: Optional[str] = Query(None, pattern="^(SA|EG|AE|sa|eg|ae)$"),
    limit: int = Query(30, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Listings at an all-time low, tagged new_low."""
    return _deals_response(await DealService(db).get_new_lowest_prices(limit, country), limit)


@router.get("/trending", response_model=ApiResponse[List[DealResponse]])
async def trending(
    days: int = Query(7, ge=1, le=30),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Deals weighted by recent clicks and searches."""
    return _deals_response(await DealService(db).get_trending_deals(days, limit), limit)


@router.get("/for-you", response_model=ApiResponse[List[DealResponse]])
async def personalized(
    days: int = Query(7, ge=1, le=30),
    limit: int = Query(30, ge=1, le=100),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Deals weighted by the caller's own clicks and searches."""
    return _deals_response(await DealService(db).get_personalized_deals(user_id, days, limit), limit)


@router.get("/search", response_model=ApiResponse[List[DealResponse]])
async def search_deals(
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Deals whose product name, brand or category contains the query."""
    return _deals_response(await DealService(db).search_deals(q, limit=limit), limit)


@router.get("/store/{store_slug}", response_model=ApiResponse[List[DealResponse]])
async def deals_by_store(store_slug: str, limit: int = Query(50, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return _deals_response(await DealService(db).get_deals_by_store(store_slug, limit), limit)


@router.get("/category/{category}", response_model=ApiResponse[List[DealResponse]])
async def deals_by_category(category: str, limit: int = Query(50, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return _deals_response(await DealService(db).get_deals_by_category(category, limit), limit)
