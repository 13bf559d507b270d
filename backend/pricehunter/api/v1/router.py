"""API v1 router -- aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from pricehunter.api.v1 import (
    alerts,
    currency,
    deals,
    health,
    jobs,
    listings,
    products,
    search,
    stock,
    stores,
    tracking,
)

api_v1_router = APIRouter()

api_v1_router.include_router(health.router, tags=["health"])
api_v1_router.include_router(tracking.router, prefix="/track", tags=["tracking"])
api_v1_router.include_router(search.router, prefix="/search", tags=["search"])
api_v1_router.include_router(stores.router, prefix="/stores", tags=["stores"])
api_v1_router.include_router(products.router, prefix="/products", tags=["products"])
api_v1_router.include_router(listings.router, prefix="/listings", tags=["listings"])
api_v1_router.include_router(deals.router, prefix="/deals", tags=["deals"])
api_v1_router.include_router(alerts.router, prefix="/alerts", tags=["alerts"])
api_v1_router.include_router(stock.router, prefix="/stock", tags=["stock"])
api_v1_router.include_router(currency.router, prefix="/currency", tags=["currency"])
api_v1_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
