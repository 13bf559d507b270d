"""Amazon storefronts (amazon.sa, amazon.eg, amazon.ae).

All three countries share one markup; only domain and currency differ.
"""

from pricehunter.scrapers.base import (
    STOCK_TEXT,
    ProductSelectors,
    SearchSelectors,
    StoreConfig,
)


PRODUCT_SELECTORS = ProductSelectors(
    title=("#productTitle",),
    price=(".a-price-whole", "#corePrice_feature_div .a-offscreen", "#priceblock_ourprice"),
    original_price=(".a-text-price .a-offscreen", ".basisPrice .a-offscreen"),
    image=("#landingImage", "#imgBlkFront"),
    rating=("span.a-icon-alt",),
    review_count=("#acrCustomerReviewText",),
    stock=("#availability span", "#availability"),
    brand=("#bylineInfo",),
    description=("#feature-bullets li", "#productDescription p"),
)

SEARCH_SELECTORS = SearchSelectors(
    item='[data-component-type="s-search-result"]',
    title=("h2 a span", "h2 span"),
    link=("h2 a", "a.a-link-normal"),
    price=(".a-price-whole",),
    price_fraction=(".a-price-fraction",),
    image=("img.s-image",),
    rating=(".a-icon-star-small .a-icon-alt", ".a-icon-alt"),
)

_COUNTRIES = {
    "sa": ("SA", "SAR"),
    "eg": ("EG", "EGP"),
    "ae": ("AE", "AED"),
}


def amazon_config(country_code: str) -> StoreConfig:
    """Selector table for one Amazon country site."""
    country, currency = _COUNTRIES[country_code]
    domain = f"amazon.{country_code}"
    return StoreConfig(
        slug=f"amazon-{country_code}",
        name=f"Amazon {country}",
        domain=domain,
        base_url=f"https://www.{domain}",
        currency=currency,
        country=country,
        search_url=f"https://www.{domain}/s?k={{query}}",
        product=PRODUCT_SELECTORS,
        search=SEARCH_SELECTORS,
        stock_rule=STOCK_TEXT,
        sku_pattern=r"/dp/([A-Z0-9]{10})",
        requests_per_minute=20,
    )


AMAZON_SA = amazon_config("sa")
AMAZON_EG = amazon_config("eg")
AMAZON_AE = amazon_config("ae")
