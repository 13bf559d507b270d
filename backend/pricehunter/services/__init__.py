"""Services module for business logic and data operations.

This module contains service classes that implement the core business logic
of PriceHunter: price history, analysis, deals, stock, alerts, currency
conversion and notification delivery.
"""

from pricehunter.services.alert_service import AlertService
from pricehunter.services.currency_service import CurrencyService
from pricehunter.services.deal_service import DealService
from pricehunter.services.notification_service import NotificationDispatcher
from pricehunter.services.price_analysis import PriceAnalyzer
from pricehunter.services.price_history_service import PriceHistoryStore
from pricehunter.services.search_service import SearchService
from pricehunter.services.stock_service import StockMonitor

__all__ = [
    "AlertService",
    "CurrencyService",
    "DealService",
    "NotificationDispatcher",
    "PriceAnalyzer",
    "PriceHistoryStore",
    "SearchService",
    "StockMonitor",
]
