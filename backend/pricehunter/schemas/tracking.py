"""Schemas for tracking product URLs and live store search."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TrackRequest(BaseModel):
    """Request to start tracking a product page."""

    url: str = Field(..., min_length=10, max_length=2000, description="Product page URL")

    @field_validator("url")
    @classmethod
    def http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return value


class TrackResponse(BaseModel):
    store_product_id: UUID
    product_id: UUID
    store_slug: str
    price: Decimal
    currency: str
    price_usd: Optional[Decimal] = None
    in_stock: bool
    product_created: bool
    listing_created: bool
    last_scraped: Optional[datetime] = None


class ScrapedProductResponse(BaseModel):
    """One live search hit, not yet tracked."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    price: Decimal
    currency: str
    url: str
    original_price: Optional[Decimal] = None
    discount: int = 0
    image_url: Optional[str] = None
    in_stock: bool = True
    rating: Optional[Decimal] = None
    review_count: Optional[int] = None
    barcode: Optional[str] = None


class SearchResponse(BaseModel):
    query: str
    total: int
    results: Dict[str, List[ScrapedProductResponse]]
    errors: Dict[str, str] = {}
