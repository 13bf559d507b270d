"""Price history and analysis schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class PriceHistoryPoint(BaseModel):
    """One price sample."""

    model_config = ConfigDict(from_attributes=True)

    price: Decimal
    currency: str
    price_usd: Optional[Decimal] = None
    recorded_at: datetime


class PriceChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    amount: Decimal
    percentage: Decimal
    direction: str
    days_ago: int


class PriceAnalysisResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current_price: Decimal
    lowest_ever: Decimal
    highest_ever: Decimal
    average_price: Decimal
    is_at_lowest: bool
    previous_price: Optional[Decimal] = None
    price_change: Optional[PriceChangeResponse] = None
    sample_count: int = 0


class ListingAnalysisResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_product_id: UUID
    store_slug: str
    store_name: str
    price: Decimal
    currency: str
    price_usd: Optional[Decimal] = None
    in_stock: bool
    url: str
    analysis: PriceAnalysisResponse


class ProductAnalysisResponse(BaseModel):
    """Cross-store analysis of one catalog product."""

    model_config = ConfigDict(from_attributes=True)

    product_id: UUID
    product_name: str
    listings: List[ListingAnalysisResponse] = []
    best_listing: Optional[ListingAnalysisResponse] = None
    lowest_price_usd: Optional[Decimal] = None


class PriceStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    min_price: Decimal
    max_price: Decimal
    avg_price: Decimal
    median_price: Decimal
    std_dev: Decimal
    trend: str
    trend_percentage: Decimal
    volatility: str
    sample_count: int
    window_days: int


class PriceSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_product_id: UUID
    currency: str
    current_price: Decimal
    lowest_price: Decimal
    highest_price: Decimal
    average_price: Decimal
    change_amount: Decimal
    change_percentage: Decimal
    sample_count: int
    window_days: int


class NewLowResponse(BaseModel):
    """Listing currently at its lowest price in the window."""

    model_config = ConfigDict(from_attributes=True)

    store_product_id: UUID
    product_id: UUID
    product_name: str
    image_url: Optional[str] = None
    store_slug: str
    store_name: str
    current_price: Decimal
    previous_lowest: Decimal
    historical_high: Decimal
    savings_percentage: Decimal
    currency: str


class PricePredictionResponse(BaseModel):
    """Short-range forecast with a buy / wait recommendation."""

    model_config = ConfigDict(from_attributes=True)

    current_price: Decimal
    predicted_price: Decimal
    confidence: float
    direction: str
    change_percentage: Decimal
    recommendation: str
    reasoning: str
    predicted_date: datetime
    historical_trend: str
    sample_count: int


class BuyTimingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    recommendation: str
    best_day: Optional[str] = None
    expected_savings: Optional[Decimal] = None


class ChartSeriesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_product_id: UUID
    store_slug: str
    store_name: str
    currency: str
    color: str
    data: List[Optional[Decimal]]


class PriceChartResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: UUID
    labels: List[date]
    series: List[ChartSeriesResponse] = []
