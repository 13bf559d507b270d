"""Noon storefronts.

noon.com serves every country from one host; the country is the first
path segment (``/saudi-en/...``, ``/egypt-ar/...``, ``/uae-en/...``).
"""

from pricehunter.scrapers.base import (
    STOCK_PRESENT,
    ProductSelectors,
    SearchSelectors,
    StoreConfig,
)


PRODUCT_SELECTORS = ProductSelectors(
    title=('[data-qa="pdp-name"]', ".productTitle", "h1"),
    price=('[data-qa="pdp-price"]', ".priceNow"),
    original_price=('[data-qa="pdp-was-price"]', ".priceWas"),
    image=('[data-qa="pdp-image-main"] img', ".swiper-slide img"),
    rating=('[data-qa="pdp-rating"]', ".stars"),
    # In stock iff the add-to-cart button is rendered
    stock=('[data-qa="pdp-add-to-cart"]',),
    brand=('[data-qa="pdp-brand"]', 'a[href*="/brand/"]'),
)

SEARCH_SELECTORS = SearchSelectors(
    item='[data-qa="product-block"], .productContainer',
    title=('[data-qa="product-name"]', ".productTitle"),
    link=("a",),
    price=('[data-qa="product-price"]', ".price"),
    image=("img",),
    rating=('[data-qa="product-rating"]',),
)

# slug suffix -> (path country, country code, currency)
_COUNTRIES = {
    "sa": ("saudi", "SA", "SAR"),
    "eg": ("egypt", "EG", "EGP"),
    "ae": ("uae", "AE", "AED"),
}

# Path prefixes used to tell the country of a noon.com URL
COUNTRY_PATHS = {path: f"noon-{suffix}" for suffix, (path, _, _) in _COUNTRIES.items()}
DEFAULT_SLUG = "noon-sa"


def noon_config(suffix: str) -> StoreConfig:
    """Selector table for one Noon country storefront."""
    path, country, currency = _COUNTRIES[suffix]
    return StoreConfig(
        slug=f"noon-{suffix}",
        name=f"Noon {country}",
        domain="noon.com",
        base_url="https://www.noon.com",
        currency=currency,
        country=country,
        search_url=f"https://www.noon.com/{path}-ar/search/?q={{query}}",
        product=PRODUCT_SELECTORS,
        search=SEARCH_SELECTORS,
        stock_rule=STOCK_PRESENT,
        sku_pattern=r"/([A-Z0-9]{8,})/p/?",
        requests_per_minute=20,
    )


NOON_SA = noon_config("sa")
NOON_EG = noon_config("eg")
NOON_AE = noon_config("ae")
