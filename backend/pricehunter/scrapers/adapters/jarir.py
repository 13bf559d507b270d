"""Jarir Bookstore (Saudi Arabia)."""

from pricehunter.scrapers.base import (
    RATING_TEXT,
    STOCK_PRESENT,
    ProductSelectors,
    SearchSelectors,
    StoreConfig,
)


JARIR = StoreConfig(
    slug="jarir",
    name="Jarir Bookstore",
    domain="jarir.com",
    base_url="https://www.jarir.com",
    currency="SAR",
    country="SA",
    search_url="https://www.jarir.com/sa-en/catalogsearch/result/?q={query}",
    product=ProductSelectors(
        title=(".product-name h1", ".product-title"),
        price=(".special-price .price", ".price"),
        original_price=(".old-price .price",),
        image=("#image-main", ".product-image img"),
        # Star widget carries "4.5 out of 5" in its title attribute
        rating=(".rating-result",),
        review_count=(".reviews-actions a",),
        stock=(".stock.available",),
        brand=(".product-brand a", ".brand-name"),
        description=(".product-description", ".description"),
    ),
    search=SearchSelectors(
        item=".product-item, .product-card",
        title=(".product-item-link", ".product-name"),
        link=(".product-item-link", "a"),
        price=(".special-price .price", ".price"),
        image=(".product-image-photo", "img"),
    ),
    stock_rule=STOCK_PRESENT,
    rating_source=RATING_TEXT,
    sku_pattern=r"[/-](\d{5,})\.html",
    requests_per_minute=15,
)
