"""Storefront selector tables.

Each module describes one retailer as ``StoreConfig`` data consumed by
``SelectorAdapter``.
"""

from .amazon import AMAZON_AE, AMAZON_EG, AMAZON_SA
from .btech import BTECH
from .extra import EXTRA
from .jarir import JARIR
from .jumia import JUMIA_EG
from .noon import NOON_AE, NOON_EG, NOON_SA

# Saudi Arabia and Egypt first, UAE after
ALL_STORE_CONFIGS = [
    AMAZON_SA,
    NOON_SA,
    JARIR,
    EXTRA,
    AMAZON_EG,
    NOON_EG,
    JUMIA_EG,
    BTECH,
    AMAZON_AE,
    NOON_AE,
]

__all__ = [
    "ALL_STORE_CONFIGS",
    "AMAZON_SA",
    "AMAZON_EG",
    "AMAZON_AE",
    "NOON_SA",
    "NOON_EG",
    "NOON_AE",
    "JARIR",
    "EXTRA",
    "JUMIA_EG",
    "BTECH",
]
