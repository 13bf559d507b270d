"""Currency conversion schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConversionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    original_amount: Decimal
    from_currency: str
    converted_amount: Decimal
    to_currency: str
    rate: Decimal
    inverse_rate: Decimal
    formatted: Optional[str] = None


class PriceQuoteRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    label: Optional[str] = None


class CompareRequest(BaseModel):
    """Prices in any supported currencies, ranked in ``target_currency``."""

    prices: List[PriceQuoteRequest] = Field(..., min_length=1, max_length=100)
    target_currency: str = Field("USD", min_length=3, max_length=3)


class ComparedPriceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    label: Optional[str] = None
    amount: Decimal
    currency: str
    converted_amount: Decimal
    is_cheapest: bool


class RatePointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    recorded_at: datetime
    rate: Decimal
