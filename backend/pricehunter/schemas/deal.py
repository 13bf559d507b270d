"""Deal Pydantic schemas for responses."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class DealResponse(BaseModel):
    """Standard deal response schema."""

    model_config = ConfigDict(from_attributes=True)

    store_product_id: UUID
    product_id: UUID
    product_name: str
    store_slug: str
    store_name: str
    price: Decimal
    original_price: Decimal
    discount: int
    savings: Decimal
    currency: str
    price_usd: Optional[Decimal] = None
    url: str
    in_stock: bool
    deal_type: str
    image_url: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    rating: Optional[Decimal] = None
    review_count: Optional[int] = None
    previous_price: Optional[Decimal] = None
    updated_at: datetime


class DealSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_deals: int
    by_type: Dict[str, int]
    by_store: List[Dict[str, object]] = []
    top_categories: List[Dict[str, object]] = []
    average_discount: int = 0
    max_discount: int = 0
