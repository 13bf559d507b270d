"""SQLAlchemy models for PriceHunter.

All models are imported here so Base.metadata knows every table.
"""

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from pricehunter.models.store import Store
from pricehunter.models.product import Product
from pricehunter.models.store_product import StoreProduct
from pricehunter.models.price_history import PriceHistory
from pricehunter.models.stock_history import StockHistory
from pricehunter.models.user import User
from pricehunter.models.price_alert import PriceAlert
from pricehunter.models.stock_notification import StockNotification
from pricehunter.models.exchange_rate import ExchangeRate, ExchangeRateSnapshot
from pricehunter.models.activity import SearchHistory, ProductClick
from pricehunter.models.scrape_job import ScrapeJob

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Store",
    "Product",
    "StoreProduct",
    "PriceHistory",
    "StockHistory",
    "User",
    "PriceAlert",
    "StockNotification",
    "ExchangeRate",
    "ExchangeRateSnapshot",
    "SearchHistory",
    "ProductClick",
    "ScrapeJob",
]
