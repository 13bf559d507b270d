"""Back-in-stock subscriptions and restock feed."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_current_user_id, get_db
from pricehunter.schemas import (
    ApiResponse,
    RestockedResponse,
    StockSubscribeRequest,
    StockSubscriptionResponse,
)
from pricehunter.services.stock_service import StockMonitor

router = APIRouter()


@router.get("/restocked", response_model=ApiResponse[List[RestockedResponse]])
async def recently_restocked(
    hours: int = Query(24, ge=1, le=168),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Listings that went from out of stock to in stock within the window."""
    items = await StockMonitor(db).get_recently_restocked(hours=hours, limit=limit)
    return ApiResponse(data=[RestockedResponse.model_validate(i) for i in items])


@router.get("/subscriptions", response_model=ApiResponse[List[StockSubscriptionResponse]])
async def list_subscriptions(user_id: UUID = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    subscriptions = await StockMonitor(db).list_subscriptions(user_id)
    return ApiResponse(data=[StockSubscriptionResponse.model_validate(s) for s in subscriptions])


@router.get("/subscriptions/stats", response_model=ApiResponse)
async def subscription_stats(user_id: UUID = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return ApiResponse(data=await StockMonitor(db).get_subscription_stats(user_id))


@router.post("/subscriptions", response_model=ApiResponse[StockSubscriptionResponse], status_code=201)
async def subscribe(
    body: StockSubscribeRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Subscribe to a back-in-stock notification (reactivates an existing one)."""
    subscription = await StockMonitor(db).subscribe(
        user_id,
        body.store_product_id,
        notify_email=body.notify_email,
        notify_push=body.notify_push,
    )
    return ApiResponse(data=StockSubscriptionResponse.model_validate(subscription))


@router.post("/subscriptions/{subscription_id}/toggle", response_model=ApiResponse[StockSubscriptionResponse])
async def toggle_subscription(
    subscription_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    subscription = await StockMonitor(db).toggle(user_id, subscription_id)
    return ApiResponse(data=StockSubscriptionResponse.model_validate(subscription))


@router.delete("/subscriptions/{subscription_id}", response_model=ApiResponse)
async def unsubscribe(
    subscription_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete a back-in-stock subscription."""
    if not await StockMonitor(db).unsubscribe(user_id, subscription_id):
        raise HTTPException(status_code=404, detail="Subscription not found")
    return ApiResponse(data={"deleted": True})
