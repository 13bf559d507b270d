"""Price alert Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AlertCreateRequest(BaseModel):
    """Request to create (or re-arm) a price alert."""

    product_id: UUID
    target_price: Decimal = Field(..., gt=0)
    currency: str = Field("SAR", min_length=3, max_length=3)
    notify_email: bool = True
    notify_telegram: bool = False
    notify_push: bool = False


class AlertUpdateRequest(BaseModel):
    target_price: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    is_active: Optional[bool] = None
    notify_email: Optional[bool] = None
    notify_telegram: Optional[bool] = None
    notify_push: Optional[bool] = None


class AlertResponse(BaseModel):
    """Price alert response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    target_price: Decimal
    currency: str
    current_price: Optional[Decimal] = None
    is_active: bool
    triggered: bool
    triggered_at: Optional[datetime] = None
    notify_email: bool
    notify_telegram: bool
    notify_push: bool
    created_at: datetime


class AlertStatsResponse(BaseModel):
    total: int
    active: int
    triggered: int
