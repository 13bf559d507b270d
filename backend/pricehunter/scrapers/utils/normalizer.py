"""Data normalization utilities for scraped storefront markup."""

import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse


# Bilingual (English / Arabic) availability markers
OUT_OF_STOCK_KEYWORDS: tuple[str, ...] = (
    "out of stock",
    "unavailable",
    "sold out",
    "currently unavailable",
    "غير متوفر",
    "نفذ",
    "نفدت الكمية",
)

# Tracking parameters stripped from product URLs before they become keys
TRACKING_PARAMS = frozenset({
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "ref_",
    "tag",
    "source",
    "fbclid",
    "gclid",
    "psc",
    "th",
})

_WIDTH_RE = re.compile(r"width:\s*(\d+(?:\.\d+)?)%")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

MAX_RATING = Decimal("5")


class PriceNormalizer:
    """Parsing helpers for prices, ratings, review counts and stock text.

    Storefront markup is hostile input: every helper returns None (or a
    neutral value) instead of raising on text it cannot read.
    """

    @staticmethod
    def parse_price(raw: Optional[str]) -> Optional[Decimal]:
        """Parse a price string and extract its numeric value.

        Handles formats like:
        - "SAR 1,299.00" -> 1299.00
        - "1,299." -> 1299
        - "EGP\xa015,999" -> 15999
        - "ر.س 99.95" -> 99.95

        Args:
            raw: Raw price string

        Returns:
            Positive Decimal price, or None if no usable number was found
        """
        if not raw:
            return None

        # Keep digits and separators, then drop thousands separators
        cleaned = re.sub(r"[^\d.,]", "", raw).replace(",", "")
        # A stray leading/trailing dot from currency abbreviations ("ر.س")
        cleaned = cleaned.strip(".")

        if not cleaned or cleaned.count(".") > 1:
            return None

        try:
            price = Decimal(cleaned)
        except InvalidOperation:
            return None

        return price if price > 0 else None

    @staticmethod
    def parse_rating(raw: Optional[str]) -> Optional[Decimal]:
        """Extract a 0-5 rating from text such as "4.5 out of 5 stars"."""
        if not raw:
            return None
        match = _NUMBER_RE.search(raw)
        if not match:
            return None
        rating = Decimal(match.group(0))
        if rating < 0 or rating > MAX_RATING:
            return None
        return rating.quantize(Decimal("0.1"))

    @staticmethod
    def parse_rating_from_width(style: Optional[str]) -> Optional[Decimal]:
        """Convert a star bar's CSS width (``width: 90%``) to a 0-5 rating."""
        if not style:
            return None
        match = _WIDTH_RE.search(style)
        if not match:
            return None
        percent = Decimal(match.group(1))
        if percent < 0 or percent > 100:
            return None
        return (percent / 20).quantize(Decimal("0.1"))

    @staticmethod
    def parse_review_count(raw: Optional[str]) -> Optional[int]:
        """Extract the first integer from text such as "1,234 ratings"."""
        if not raw:
            return None
        match = re.search(r"\d+", raw.replace(",", ""))
        return int(match.group(0)) if match else None

    @staticmethod
    def is_in_stock(
        stock_text: Optional[str],
        keywords: Iterable[str] = OUT_OF_STOCK_KEYWORDS,
    ) -> bool:
        """True unless the text contains an out-of-stock keyword."""
        if not stock_text:
            return True
        lowered = stock_text.lower()
        return not any(keyword in lowered for keyword in keywords)

    @staticmethod
    def calculate_discount(price: Decimal, original_price: Optional[Decimal]) -> int:
        """Whole-number discount percentage, 0 without a higher list price."""
        if not original_price or original_price <= 0 or price >= original_price:
            return 0
        discount = (original_price - price) / original_price * 100
        return int(discount.quantize(Decimal("1")))

    @staticmethod
    def clean_text(raw: Optional[str]) -> Optional[str]:
        """Collapse whitespace; empty strings become None."""
        if not raw:
            return None
        text = " ".join(raw.split())
        return text or None


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters and fragments.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    if not url:
        return url

    parsed = urlparse(url.strip())
    query_params = parse_qs(parsed.query)

    filtered_params = {
        k: v for k, v in query_params.items() if k not in TRACKING_PARAMS
    }
    new_query = urlencode(filtered_params, doseq=True)

    return urlunparse(
        (parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, "")
    )
