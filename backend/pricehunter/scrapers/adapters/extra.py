"""eXtra electronics (Saudi Arabia)."""

from pricehunter.scrapers.base import (
    RATING_WIDTH,
    STOCK_PRESENT,
    ProductSelectors,
    SearchSelectors,
    StoreConfig,
)


EXTRA = StoreConfig(
    slug="extra",
    name="eXtra",
    domain="extra.com",
    base_url="https://www.extra.com",
    currency="SAR",
    country="SA",
    search_url="https://www.extra.com/en-sa/search/?text={query}",
    product=ProductSelectors(
        title=(".product-name", "h1.title"),
        price=(".price-wrapper .price", ".final-price"),
        original_price=(".old-price .price", ".was-price"),
        image=(".product-image-main img", ".gallery-image"),
        rating=(".rating-summary .rating-result",),
        review_count=(".reviews-actions .action.view",),
        stock=(".stock.available", ".in-stock"),
        brand=(".product-brand", ".brand"),
        description=(".product-description", ".overview"),
    ),
    search=SearchSelectors(
        item=".product-item, .product-tile",
        title=(".product-name", ".product-title"),
        link=("a.product-link", "a"),
        price=(".price", ".final-price"),
        image=("img.product-image", "img"),
    ),
    stock_rule=STOCK_PRESENT,
    rating_source=RATING_WIDTH,
    sku_pattern=r"/p/([^/?]+)",
    requests_per_minute=15,
)
