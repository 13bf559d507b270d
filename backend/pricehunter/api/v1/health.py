"""Health check endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_db, get_dispatcher, get_registry
from pricehunter.schemas import HealthCheckResponse
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.services.cache_service import get_cache
from pricehunter.services.notification_service import CHANNELS, NotificationDispatcher

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    registry: AdapterRegistry = Depends(get_registry),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher),
):
    """Return service health status.

    Checks connectivity to the database and Redis, and lists the stores
    with a registered adapter and the notification channels that are
    configured. Redis is optional, so a failed ping only marks the
    service degraded.
    """
    services = {}

    try:
        await db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"
    services["database"] = db_status

    cache = await get_cache()
    redis_status = "ok" if await cache.health_check() else "error: ping failed"
    services["redis"] = redis_status

    overall_status = "ok" if all(s == "ok" for s in services.values()) else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        redis=redis_status,
        services=services,
        stores=registry.registered_slugs,
        notifications={channel: dispatcher.is_configured(channel) for channel in CHANNELS} if dispatcher else {},
    )
