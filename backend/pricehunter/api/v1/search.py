"""Live multi-store search endpoint."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_db, get_optional_user_id, get_registry
from pricehunter.schemas import ApiResponse, ScrapedProductResponse, SearchResponse
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.services.cache_service import CacheService, get_cache
from pricehunter.services.search_service import SearchService

router = APIRouter()


@router.get("", response_model=ApiResponse[SearchResponse])
async def search_stores(
    q: str = Query(..., min_length=1, max_length=200, description="Search query"),
    stores: Optional[List[str]] = Query(None, description="Store slugs (default: DEFAULT_SEARCH_STORES)"),
    user_id: Optional[UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
    registry: AdapterRegistry = Depends(get_registry),
    cache: CacheService = Depends(get_cache),
):
    """Search several storefronts concurrently.

    A store that fails or times out contributes an empty list and an entry
    in ``errors``; the other stores' results are still returned.
    """
    service = SearchService(db, registry, cache)
    result = await service.search(q, stores, user_id=user_id)

    return ApiResponse(
        data=SearchResponse(
            query=result.query,
            total=result.total,
            results={
                slug: [ScrapedProductResponse.model_validate(p) for p in products]
                for slug, products in result.results.items()
            },
            errors=result.errors,
        )
    )


@router.get("/popular", response_model=ApiResponse[List[str]])
async def popular_queries(
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    registry: AdapterRegistry = Depends(get_registry),
):
    """Most searched queries."""
    service = SearchService(db, registry)
    return ApiResponse(data=await service.get_popular_queries(limit))
