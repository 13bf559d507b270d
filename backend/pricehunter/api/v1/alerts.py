"""Price alert API endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_current_user_id, get_db
from pricehunter.models.price_alert import PriceAlert
from pricehunter.schemas import (
    AlertCreateRequest,
    AlertResponse,
    AlertStatsResponse,
    AlertUpdateRequest,
    ApiResponse,
    PaginationMeta,
)
from pricehunter.services.alert_service import AlertService

router = APIRouter()


def _alert_response(alert: PriceAlert, current_price=None) -> AlertResponse:
    response = AlertResponse.model_validate(alert)
    response.current_price = current_price
    return response


@router.get("", response_model=ApiResponse[List[AlertResponse]])
async def list_alerts(
    active_only: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The caller's price alerts with each product's current lowest price."""
    views = await AlertService(db).get_alerts_for_user(user_id, active_only=active_only, limit=limit, offset=offset)
    return ApiResponse(
        data=[_alert_response(v.alert, v.current_price) for v in views],
        meta=PaginationMeta(limit=limit, offset=offset, count=len(views)),
    )


@router.get("/stats", response_model=ApiResponse[AlertStatsResponse])
async def alert_stats(user_id: UUID = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    stats = await AlertService(db).get_alert_stats(user_id)
    return ApiResponse(data=AlertStatsResponse(**stats))


@router.get("/reached", response_model=ApiResponse[List[AlertResponse]])
async def reached_alerts(user_id: UUID = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    """Active alerts whose target price is met right now."""
    views = await AlertService(db).get_triggered_alerts(user_id)
    return ApiResponse(data=[_alert_response(v.alert, v.current_price) for v in views])


@router.post("", response_model=ApiResponse[AlertResponse], status_code=201)
async def create_alert(
    body: AlertCreateRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a price alert, or update and re-arm the existing one for the product."""
    alert = await AlertService(db).create_alert(
        user_id=user_id,
        product_id=body.product_id,
        target_price=body.target_price,
        currency=body.currency,
        notify_email=body.notify_email,
        notify_telegram=body.notify_telegram,
        notify_push=body.notify_push,
    )
    return ApiResponse(data=_alert_response(alert))


@router.patch("/{alert_id}", response_model=ApiResponse[AlertResponse])
async def update_alert(
    alert_id: UUID,
    body: AlertUpdateRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    alert = await AlertService(db).update_alert(alert_id, user_id, **body.model_dump(exclude_none=True))
    return ApiResponse(data=_alert_response(alert))


@router.post("/{alert_id}/reset", response_model=ApiResponse[AlertResponse])
async def reset_alert(
    alert_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Re-arm a triggered alert."""
    alert = await AlertService(db).reset_alert(alert_id, user_id)
    return ApiResponse(data=_alert_response(alert))


@router.delete("/{alert_id}", response_model=ApiResponse)
async def delete_alert(
    alert_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete a price alert."""
    if not await AlertService(db).delete_alert(alert_id, user_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return ApiResponse(data={"deleted": True})
