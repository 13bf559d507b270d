"""Currency conversion endpoints."""

from decimal import Decimal
from typing import Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_db
from pricehunter.schemas import (
    ApiResponse,
    CompareRequest,
    ComparedPriceResponse,
    ConversionResponse,
    RatePointResponse,
)
from pricehunter.services.currency_service import (
    CURRENCY_INFO,
    CurrencyService,
    PriceQuote,
    format_currency,
)

router = APIRouter()


@router.get("/currencies", response_model=ApiResponse)
async def list_currencies():
    """Supported currencies with display names and symbols."""
    return ApiResponse(
        data=[
            {"code": info.code, "name": info.name, "name_ar": info.name_ar, "symbol": info.symbol, "country": info.country}
            for info in CURRENCY_INFO.values()
        ]
    )


@router.get("/rates", response_model=ApiResponse[Dict[str, Decimal]])
async def current_rates(db: AsyncSession = Depends(get_db)):
    """Units of each currency per 1 USD."""
    return ApiResponse(data=await CurrencyService(db).get_rates())


@router.get("/convert", response_model=ApiResponse[ConversionResponse])
async def convert(
    amount: Decimal = Query(..., gt=0),
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
    db: AsyncSession = Depends(get_db),
):
    conversion = await CurrencyService(db).convert(amount, from_currency, to_currency)
    response = ConversionResponse.model_validate(conversion)
    response.formatted = format_currency(conversion.converted_amount, conversion.to_currency, show_code=True)
    return ApiResponse(data=response)


@router.get("/convert-many", response_model=ApiResponse[List[ConversionResponse]])
async def convert_many(
    amount: Decimal = Query(..., gt=0),
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to: List[str] = Query(..., description="Target currency codes"),
    db: AsyncSession = Depends(get_db),
):
    """Convert one amount into several currencies using a single rate lookup."""
    conversions = await CurrencyService(db).convert_many(amount, from_currency, to)
    return ApiResponse(data=[ConversionResponse.model_validate(c) for c in conversions])


@router.post("/compare", response_model=ApiResponse[List[ComparedPriceResponse]])
async def compare_prices(body: CompareRequest, db: AsyncSession = Depends(get_db)):
    """Rank prices quoted in different currencies; exactly one is marked cheapest."""
    quotes = [PriceQuote(amount=p.amount, currency=p.currency, label=p.label) for p in body.prices]
    compared = await CurrencyService(db).compare_prices(quotes, body.target_currency)
    return ApiResponse(data=[ComparedPriceResponse.model_validate(c) for c in compared])


@router.get("/history", response_model=ApiResponse[List[RatePointResponse]])
async def rate_history(
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    """Cross rate at each stored feed refresh, oldest first."""
    points = await CurrencyService(db).get_rate_history(from_currency, to_currency, days)
    return ApiResponse(data=[RatePointResponse.model_validate(p) for p in points])
