"""Track a product URL: scrape it now and keep it refreshed."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.dependencies import get_db, get_registry
from pricehunter.schemas import ApiResponse, TrackRequest, TrackResponse
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.scraper_service import TrackingService

router = APIRouter()


@router.post("", response_model=ApiResponse[TrackResponse], status_code=201)
async def track_product(
    body: TrackRequest,
    db: AsyncSession = Depends(get_db),
    registry: AdapterRegistry = Depends(get_registry),
):
    """Scrape a product page and record it.

    The first call creates the catalog product and store listing; later
    calls for the same URL append a new price sample.

    Errors: 422 for an unsupported store, 502 when the page yields no product.
    """
    result = await TrackingService(db, registry).track_url(body.url)
    listing = result.store_product

    return ApiResponse(
        data=TrackResponse(
            store_product_id=listing.id,
            product_id=listing.product_id,
            store_slug=registry.resolve_store(body.url),
            price=listing.price,
            currency=listing.currency,
            price_usd=listing.price_usd,
            in_stock=listing.in_stock,
            product_created=result.product_created,
            listing_created=result.listing_created,
            last_scraped=listing.last_scraped,
        )
    )
