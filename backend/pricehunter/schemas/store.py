"""Store schemas."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class StoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    slug: str
    domain: str
    country: str
    currency: str
    is_active: bool
    scrape_interval_minutes: int
    listing_count: int = 0
    has_adapter: bool = False


class ResolvedStoreResponse(BaseModel):
    """Result of matching a URL against the registered storefronts."""

    url: str
    store: Optional[str] = None
    supported: bool
