"""Pydantic schemas for the PriceHunter API.

All request/response models are defined here for easy import.
"""

from pricehunter.schemas.common import ApiResponse, ErrorDetail, ErrorResponse, PaginationMeta
from pricehunter.schemas.health import HealthCheckResponse
from pricehunter.schemas.tracking import ScrapedProductResponse, SearchResponse, TrackRequest, TrackResponse
from pricehunter.schemas.product import (
    BuyTimingResponse,
    ChartSeriesResponse,
    ListingAnalysisResponse,
    NewLowResponse,
    PriceAnalysisResponse,
    PriceChangeResponse,
    PriceChartResponse,
    PriceHistoryPoint,
    PricePredictionResponse,
    PriceStatsResponse,
    PriceSummaryResponse,
    ProductAnalysisResponse,
)
from pricehunter.schemas.deal import DealResponse, DealSummaryResponse
from pricehunter.schemas.alert import AlertCreateRequest, AlertResponse, AlertStatsResponse, AlertUpdateRequest
from pricehunter.schemas.stock import (
    RestockedResponse,
    StockCheckRequest,
    StockObservationResponse,
    StockStatusResponse,
    StockSubscribeRequest,
    StockSubscriptionResponse,
)
from pricehunter.schemas.store import ResolvedStoreResponse, StoreResponse
from pricehunter.schemas.currency import (
    CompareRequest,
    ComparedPriceResponse,
    ConversionResponse,
    PriceQuoteRequest,
    RatePointResponse,
)

__all__ = [
    # Common
    "ApiResponse",
    "ErrorDetail",
    "ErrorResponse",
    "PaginationMeta",
    # Health
    "HealthCheckResponse",
    # Tracking / search
    "TrackRequest",
    "TrackResponse",
    "ScrapedProductResponse",
    "SearchResponse",
    # Analysis
    "PriceHistoryPoint",
    "PriceChangeResponse",
    "PriceAnalysisResponse",
    "ListingAnalysisResponse",
    "ProductAnalysisResponse",
    "PriceStatsResponse",
    "PriceSummaryResponse",
    "NewLowResponse",
    "PricePredictionResponse",
    "BuyTimingResponse",
    "ChartSeriesResponse",
    "PriceChartResponse",
    # Deals
    "DealResponse",
    "DealSummaryResponse",
    # Alerts
    "AlertCreateRequest",
    "AlertUpdateRequest",
    "AlertResponse",
    "AlertStatsResponse",
    # Stock
    "StockObservationResponse",
    "StockStatusResponse",
    "RestockedResponse",
    "StockSubscribeRequest",
    "StockSubscriptionResponse",
    "StockCheckRequest",
    # Stores
    "StoreResponse",
    "ResolvedStoreResponse",
    # Currency
    "ConversionResponse",
    "PriceQuoteRequest",
    "CompareRequest",
    "ComparedPriceResponse",
    "RatePointResponse",
]
