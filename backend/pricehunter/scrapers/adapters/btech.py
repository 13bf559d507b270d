"""B.TECH electronics (Egypt)."""

from pricehunter.scrapers.base import (
    RATING_WIDTH,
    STOCK_PRESENT,
    ProductSelectors,
    SearchSelectors,
    StoreConfig,
)


BTECH = StoreConfig(
    slug="btech",
    name="B.TECH",
    domain="btech.com",
    base_url="https://btech.com",
    currency="EGP",
    country="EG",
    search_url="https://btech.com/en/catalogsearch/result/?q={query}",
    product=ProductSelectors(
        title=(".product-name", "h1.title", "h1.page-title"),
        price=(".price-box .price", ".special-price .price"),
        original_price=(".old-price .price",),
        image=(".product-image img", ".gallery-image img"),
        rating=(".rating-summary .rating-result",),
        review_count=(".reviews-actions",),
        stock=(".stock.available", ".availability.in-stock"),
        brand=(".product-brand a", ".brand-name"),
        description=(".product-description", ".description-content"),
    ),
    search=SearchSelectors(
        item=".product-item, .product-card",
        title=(".product-item-link", ".product-name a"),
        link=(".product-item-link", "a"),
        price=(".special-price .price", ".price"),
        image=(".product-image-photo", "img"),
    ),
    stock_rule=STOCK_PRESENT,
    rating_source=RATING_WIDTH,
    sku_pattern=r"/p/([^/?]+)",
    requests_per_minute=15,
)
