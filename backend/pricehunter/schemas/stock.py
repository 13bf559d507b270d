"""Stock status and back-in-stock subscription schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class StockObservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    in_stock: bool
    checked_at: datetime


class StockStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_product_id: UUID
    in_stock: bool
    last_checked: Optional[datetime] = None
    last_in_stock: Optional[datetime] = None
    estimated_restock: Optional[datetime] = None
    history: List[StockObservationResponse] = []


class RestockedResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_product_id: UUID
    product_name: str
    store_name: str
    price: Decimal
    currency: str
    url: str
    restocked_at: datetime


class StockSubscribeRequest(BaseModel):
    store_product_id: UUID
    notify_email: bool = True
    notify_push: bool = False


class StockSubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_product_id: UUID
    is_active: bool
    notify_email: bool
    notify_push: bool
    last_notified_at: Optional[datetime] = None
    created_at: datetime


class StockCheckRequest(BaseModel):
    in_stock: bool
