"""Currency conversion against USD as the reference currency.

Rates are expressed as units of a currency per one USD. Persisted
``ExchangeRate`` rows (refreshed from an external feed) override a static
default table; a currency without a row falls back to its default.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.config import settings
from pricehunter.core.dates import as_utc, utc_now
from pricehunter.core.exceptions import InvalidInputError, RateSourceFailure
from pricehunter.models.exchange_rate import ExchangeRate, ExchangeRateSnapshot
from pricehunter.scrapers.utils.retry import http_retry

logger = structlog.get_logger(__name__)

REFERENCE_CURRENCY = "USD"

# Units per 1 USD
DEFAULT_RATES: Dict[str, Decimal] = {
    "USD": Decimal("1"),
    "SAR": Decimal("3.75"),
    "EGP": Decimal("30.9"),
    "AED": Decimal("3.67"),
    "KWD": Decimal("0.31"),
}

SUPPORTED_CURRENCIES = tuple(DEFAULT_RATES.keys())

COUNTRY_CURRENCIES = {
    "SA": "SAR",
    "EG": "EGP",
    "AE": "AED",
    "KW": "KWD",
    "US": "USD",
}

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
STORED_RATE_PLACES = Decimal("0.00000001")


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    name: str
    name_ar: str
    symbol: str
    country: str


CURRENCY_INFO: Dict[str, CurrencyInfo] = {
    "USD": CurrencyInfo("USD", "US Dollar", "دولار أمريكي", "$", "United States"),
    "SAR": CurrencyInfo("SAR", "Saudi Riyal", "ريال سعودي", "﷼", "Saudi Arabia"),
    "EGP": CurrencyInfo("EGP", "Egyptian Pound", "جنيه مصري", "E£", "Egypt"),
    "AED": CurrencyInfo("AED", "UAE Dirham", "درهم إماراتي", "د.إ", "United Arab Emirates"),
    "KWD": CurrencyInfo("KWD", "Kuwaiti Dinar", "دينار كويتي", "د.ك", "Kuwait"),
}


@dataclass(frozen=True)
class Conversion:
    """Result of converting one amount."""

    original_amount: Decimal
    from_currency: str
    converted_amount: Decimal
    to_currency: str
    rate: Decimal
    inverse_rate: Decimal


@dataclass(frozen=True)
class PriceQuote:
    """An amount to compare, with an optional caller label (store slug, id)."""

    amount: Decimal
    currency: str
    label: Optional[str] = None


@dataclass(frozen=True)
class ComparedPrice:
    label: Optional[str]
    amount: Decimal
    currency: str
    converted_amount: Decimal
    is_cheapest: bool


@dataclass(frozen=True)
class RatePoint:
    recorded_at: datetime
    rate: Decimal


def normalize_currency(code: Optional[str], field: str = "currency") -> str:
    """Upper-case a currency code and check it is supported.

    Raises:
        InvalidInputError: For missing or unsupported codes
    """
    normalized = (code or "").strip().upper()
    if normalized not in DEFAULT_RATES:
        raise InvalidInputError(field, f"unsupported currency '{code}'")
    return normalized


def convert_with_rates(
    amount: Decimal,
    from_currency: str,
    to_currency: str,
    rates: Mapping[str, Decimal],
) -> Conversion:
    """Convert using an already loaded units-per-USD table.

    Identity conversions return the amount untouched with a rate of exactly 1.
    """
    from_currency = normalize_currency(from_currency, "from_currency")
    to_currency = normalize_currency(to_currency, "to_currency")
    amount = Decimal(amount)

    if from_currency == to_currency:
        return Conversion(amount, from_currency, amount, to_currency, Decimal("1"), Decimal("1"))

    from_rate = rates[from_currency]
    to_rate = rates[to_currency]
    raw_rate = to_rate / from_rate

    rate = raw_rate.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
    inverse_rate = (1 / raw_rate).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
    converted = (amount / from_rate * to_rate).quantize(CENT, rounding=ROUND_HALF_UP)

    return Conversion(amount, from_currency, converted, to_currency, rate, inverse_rate)


def format_currency(
    amount: Decimal,
    currency: str,
    show_symbol: bool = True,
    show_code: bool = False,
    decimals: int = 2,
) -> str:
    """Format an amount for display, e.g. ``﷼1,299.00 SAR``."""
    info = CURRENCY_INFO[normalize_currency(currency)]
    formatted = f"{Decimal(amount):,.{decimals}f}"

    if show_symbol and show_code:
        return f"{info.symbol}{formatted} {info.code}"
    if show_symbol:
        return f"{info.symbol}{formatted}"
    if show_code:
        return f"{formatted} {info.code}"
    return formatted


def currency_for_country(country_code: str) -> str:
    """Local currency for an ISO country code, USD when unknown."""
    return COUNTRY_CURRENCIES.get((country_code or "").upper(), REFERENCE_CURRENCY)


class ExchangeRateFeed:
    """Client for the open.er-api.com / exchangerate-api.com v6 feed.

    The payload is untrusted: entries that are missing, non-numeric or not
    positive are dropped, and a payload with no usable entry is a failure.
    """

    KEYED_URL = "https://v6.exchangerate-api.com/v6/{key}/latest/{base}"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, api_key: Optional[str] = None):
        self._client = client
        self.api_key = settings.EXCHANGE_RATE_API_KEY if api_key is None else api_key
        self.logger = logger.bind(service="exchange_rate_feed")

    def url_for(self, base: str) -> str:
        if self.api_key:
            return self.KEYED_URL.format(key=self.api_key, base=base)
        return f"{settings.EXCHANGE_RATE_FEED_URL.rstrip('/')}/{base}"

    @http_retry
    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        response = await client.get(url, timeout=settings.SCRAPE_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response

    async def fetch(self, base: str = REFERENCE_CURRENCY) -> Dict[str, Decimal]:
        """Fetch units-per-``base`` rates for the supported currencies.

        Returns:
            Mapping of currency code to rate (the base itself is omitted)

        Raises:
            RateSourceFailure: When the feed is unreachable or unusable
        """
        url = self.url_for(base)
        try:
            if self._client is not None:
                response = await self._get(self._client, url)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._get(client, url)
            payload = response.json()
        except httpx.HTTPError as e:
            raise RateSourceFailure(f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise RateSourceFailure("response is not JSON") from e

        return self.parse_payload(payload, base)

    def parse_payload(self, payload: Any, base: str = REFERENCE_CURRENCY) -> Dict[str, Decimal]:
        """Validate a feed payload and extract supported rates.

        Raises:
            RateSourceFailure: When the payload has no usable rate
        """
        if not isinstance(payload, dict):
            raise RateSourceFailure("payload is not an object")
        if payload.get("result") == "error":
            raise RateSourceFailure(str(payload.get("error-type", "feed reported an error")))

        raw_rates = payload.get("rates") or payload.get("conversion_rates")
        if not isinstance(raw_rates, dict):
            raise RateSourceFailure("payload has no rates object")

        rates: Dict[str, Decimal] = {}
        for code in SUPPORTED_CURRENCIES:
            if code == base:
                continue
            value = self._valid_rate(raw_rates.get(code))
            if value is None:
                self.logger.warning("rate_rejected", currency=code, value=repr(raw_rates.get(code)))
                continue
            rates[code] = value

        if not rates:
            raise RateSourceFailure("no supported currency in payload")
        return rates

    @staticmethod
    def _valid_rate(value: Any) -> Optional[Decimal]:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return None
        if isinstance(value, float) and not math.isfinite(value):
            return None
        try:
            rate = Decimal(str(value))
        except InvalidOperation:
            return None
        if not rate.is_finite() or rate <= 0:
            return None
        return rate


class CurrencyService:
    """Currency conversion backed by persisted and default rates."""

    def __init__(self, db: AsyncSession, feed: Optional[ExchangeRateFeed] = None):
        """Initialize currency service.

        Args:
            db: Async database session
            feed: Rate feed used by refresh_rates
        """
        self.db = db
        self.feed = feed or ExchangeRateFeed()
        self.logger = logger.bind(service="currency_service")

    async def get_rates(self) -> Dict[str, Decimal]:
        """Units-per-USD table: persisted rows over static defaults.

        Database errors fall back to the static table.
        """
        rates = dict(DEFAULT_RATES)
        try:
            result = await self.db.execute(
                select(ExchangeRate).where(ExchangeRate.to_currency == REFERENCE_CURRENCY)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            self.logger.warning("rate_lookup_failed", error=str(e))
            return rates

        for row in rows:
            # Rows hold USD per unit; the table is units per USD
            if row.from_currency in rates and row.rate and row.rate > 0:
                rates[row.from_currency] = Decimal("1") / Decimal(row.rate)
        return rates

    async def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Conversion:
        """Convert an amount between two supported currencies.

        Raises:
            InvalidInputError: For unsupported currency codes
        """
        normalize_currency(from_currency, "from_currency")
        normalize_currency(to_currency, "to_currency")
        if from_currency.upper() == to_currency.upper():
            return convert_with_rates(amount, from_currency, to_currency, DEFAULT_RATES)
        return convert_with_rates(amount, from_currency, to_currency, await self.get_rates())

    async def convert_many(self, amount: Decimal, from_currency: str, targets: Sequence[str]) -> List[Conversion]:
        """Convert one amount into several currencies with a single rate lookup."""
        normalize_currency(from_currency, "from_currency")
        for target in targets:
            normalize_currency(target, "to_currency")
        rates = await self.get_rates()
        return [convert_with_rates(amount, from_currency, target, rates) for target in targets]

    async def to_usd(self, amount: Decimal, currency: str) -> Decimal:
        """Reference-currency value of an amount, rounded to cents."""
        conversion = await self.convert(amount, currency, REFERENCE_CURRENCY)
        return conversion.converted_amount.quantize(CENT, rounding=ROUND_HALF_UP)

    async def compare_prices(self, prices: Sequence[PriceQuote], target_currency: str) -> List[ComparedPrice]:
        """Rank prices in different currencies by their value in one currency.

        Sorted ascending; exactly one entry is marked cheapest (first seen
        on ties).
        """
        target_currency = normalize_currency(target_currency, "target_currency")
        if not prices:
            return []

        rates = await self.get_rates()
        converted = [
            (quote, convert_with_rates(quote.amount, quote.currency, target_currency, rates).converted_amount)
            for quote in prices
        ]
        # sorted() is stable, so ties keep their input order
        converted.sort(key=lambda pair: pair[1])

        return [
            ComparedPrice(
                label=quote.label,
                amount=Decimal(quote.amount),
                currency=quote.currency.upper(),
                converted_amount=amount,
                is_cheapest=index == 0,
            )
            for index, (quote, amount) in enumerate(converted)
        ]

    async def refresh_rates(self) -> Dict[str, Any]:
        """Pull fresh rates from the feed and upsert them.

        Never raises: on failure the previous rows (or static defaults)
        stay in effect.

        Returns:
            Dict with success flag, number of currencies updated, and an
            error message on failure
        """
        try:
            per_usd = await self.feed.fetch(REFERENCE_CURRENCY)
        except RateSourceFailure as e:
            self.logger.warning("rate_refresh_failed", error=str(e))
            return {"success": False, "updated": 0, "error": str(e)}

        now = utc_now()
        try:
            result = await self.db.execute(
                select(ExchangeRate).where(ExchangeRate.to_currency == REFERENCE_CURRENCY)
            )
            existing = {row.from_currency: row for row in result.scalars().all()}

            for code, units_per_usd in per_usd.items():
                usd_per_unit = (Decimal("1") / units_per_usd).quantize(STORED_RATE_PLACES, rounding=ROUND_HALF_UP)
                row = existing.get(code)
                if row is None:
                    self.db.add(ExchangeRate(
                        from_currency=code,
                        to_currency=REFERENCE_CURRENCY,
                        rate=usd_per_unit,
                        updated_at=now,
                    ))
                else:
                    row.rate = usd_per_unit
                    row.updated_at = now
                self.db.add(ExchangeRateSnapshot(
                    from_currency=code,
                    to_currency=REFERENCE_CURRENCY,
                    rate=usd_per_unit,
                    recorded_at=now,
                ))

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("rate_refresh_write_failed", error=str(e), exc_info=True)
            return {"success": False, "updated": 0, "error": str(e)}

        self.logger.info("rates_refreshed", updated=len(per_usd), currencies=sorted(per_usd))
        return {"success": True, "updated": len(per_usd)}

    async def get_rate_history(self, from_currency: str, to_currency: str, days: int = 30) -> List[RatePoint]:
        """Cross rate at each feed refresh within the window, oldest first.

        A currency missing from a refresh uses its current rate.
        """
        from_currency = normalize_currency(from_currency, "from_currency")
        to_currency = normalize_currency(to_currency, "to_currency")
        if days < 1:
            raise InvalidInputError("days", "must be at least 1")

        since = utc_now() - timedelta(days=days)
        result = await self.db.execute(
            select(ExchangeRateSnapshot)
            .where(
                ExchangeRateSnapshot.to_currency == REFERENCE_CURRENCY,
                ExchangeRateSnapshot.from_currency.in_({from_currency, to_currency}),
                ExchangeRateSnapshot.recorded_at >= since,
            )
            .order_by(ExchangeRateSnapshot.recorded_at.asc())
        )

        by_refresh: Dict[datetime, Dict[str, Decimal]] = defaultdict(dict)
        for snapshot in result.scalars().all():
            by_refresh[as_utc(snapshot.recorded_at)][snapshot.from_currency] = Decimal("1") / Decimal(snapshot.rate)

        current = await self.get_rates()
        points = []
        for recorded_at, snapshot_rates in sorted(by_refresh.items()):
            rates = {**current, **snapshot_rates}
            points.append(RatePoint(
                recorded_at=recorded_at,
                rate=convert_with_rates(Decimal("1"), from_currency, to_currency, rates).rate,
            ))
        return points
