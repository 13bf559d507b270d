"""Jumia Egypt."""

from pricehunter.scrapers.base import (
    STOCK_ABSENT,
    ProductSelectors,
    SearchSelectors,
    StoreConfig,
)


JUMIA_EG = StoreConfig(
    slug="jumia-eg",
    name="Jumia Egypt",
    domain="jumia.com.eg",
    base_url="https://www.jumia.com.eg",
    currency="EGP",
    country="EG",
    search_url="https://www.jumia.com.eg/catalog/?q={query}",
    product=ProductSelectors(
        title=("h1.-fs20", ".-fs20", ".name"),
        price=(".-b.-ltr", ".price .-b"),
        original_price=(".-tal.-gy5.-lthr", ".old-price"),
        image=(".-phs.-pvs img", ".sldr img", ".img-cover"),
        rating=(".stars", ".-fs14 .-pvxs"),
        review_count=(".-plxs.-fs14", ".reviews"),
        # Out-of-stock banner, absent while the item is sellable
        stock=(".-oos-msg",),
        brand=(".-mhm a", ".brand"),
        description=(".markup.-pam", ".description"),
    ),
    search=SearchSelectors(
        item="article.prd, .prd",
        title=(".name", ".core"),
        link=("a.core", "a"),
        price=(".prc", ".price"),
        image=("img.img", "img"),
        rating=(".stars._s",),
    ),
    stock_rule=STOCK_ABSENT,
    sku_pattern=r"-(\d+)\.html",
    requests_per_minute=20,
    image_attrs=("data-src", "src"),
)
