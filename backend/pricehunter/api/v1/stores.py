"""Stores API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.core.exceptions import InvalidInputError
from pricehunter.dependencies import get_db, get_registry
from pricehunter.models.store import Store
from pricehunter.models.store_product import StoreProduct
from pricehunter.schemas import ApiResponse, ResolvedStoreResponse, StoreResponse
from pricehunter.scrapers.registry import AdapterRegistry

router = APIRouter()


@router.get("", response_model=ApiResponse[List[StoreResponse]])
async def list_stores(
    active_only: bool = Query(True, description="Only return active stores"),
    country: Optional[str] = Query(None, min_length=2, max_length=2, description="ISO country code (SA, EG, AE)"),
    db: AsyncSession = Depends(get_db),
    registry: AdapterRegistry = Depends(get_registry),
):
    """List storefronts with their tracked listing counts."""
    counts = (
        select(StoreProduct.store_id, func.count(StoreProduct.id).label("listing_count"))
        .group_by(StoreProduct.store_id)
        .subquery()
    )
    query = (
        select(Store, func.coalesce(counts.c.listing_count, 0))
        .outerjoin(counts, counts.c.store_id == Store.id)
        .order_by(Store.country, Store.name)
    )
    if active_only:
        query = query.where(Store.is_active.is_(True))
    if country:
        query = query.where(Store.country == country.upper())

    rows = (await db.execute(query)).all()

    stores = []
    for store, listing_count in rows:
        item = StoreResponse.model_validate(store)
        item.listing_count = listing_count
        item.has_adapter = registry.has_adapter(store.slug)
        stores.append(item)

    return ApiResponse(data=stores)


@router.get("/resolve", response_model=ApiResponse[ResolvedStoreResponse])
async def resolve_url(
    url: str = Query(..., min_length=8, max_length=2000),
    registry: AdapterRegistry = Depends(get_registry),
):
    """Which store adapter, if any, handles a product URL."""
    if not url.startswith(("http://", "https://")):
        raise InvalidInputError("url", "must be an http(s) URL")

    slug = registry.resolve_store(url)
    return ApiResponse(
        data=ResolvedStoreResponse(url=url, store=slug, supported=slug is not None and registry.has_adapter(slug))
    )
