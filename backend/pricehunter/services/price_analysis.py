"""Price history analysis.

Pure functions compute the analysis from a current price and a
newest-first list of samples; ``PriceAnalyzer`` loads the data and adds
per-product and catalogue-wide views, short-range forecasts and history
exports on top.

History is newest first. Because every observation appends a sample, the
newest sample is normally the current observation itself; the sample
before it is what the current price is compared against.
"""

import statistics
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Protocol, Sequence, Tuple
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricehunter.core.dates import as_utc, utc_now
from pricehunter.core.exceptions import InvalidInputError, NotFoundError
from pricehunter.models.price_history import PriceHistory
from pricehunter.models.product import Product
from pricehunter.models.store import Store
from pricehunter.models.store_product import StoreProduct

logger = structlog.get_logger(__name__)

DEFAULT_WINDOW_DAYS = 30
ANALYSIS_SAMPLE_LIMIT = 100
PREDICTION_SAMPLE_LIMIT = 90
TIMING_SAMPLE_LIMIT = 60

TREND_THRESHOLD_PCT = Decimal("5")
HIGH_VOLATILITY_CV = 0.2
MEDIUM_VOLATILITY_CV = 0.1

CENT = Decimal("0.01")

DEFAULT_DAYS_AHEAD = 7
MIN_PREDICTION_SAMPLES = 7
MIN_TIMING_SAMPLES = 14
SEASONALITY_MIN_SAMPLES = 30

RECENT_SAMPLES = 14
OLDER_SAMPLES_END = 30

VOLATILE_CV = 0.15
MEAN_REVERSION_CV = 0.1
TREND_CHANGE_PCT = 5.0
DIRECTION_CHANGE_PCT = 2.0
SEASONAL_DEVIATION = 0.05

NEUTRAL_CONFIDENCE = 0.3
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
CHART_COLORS = ("#FF6384", "#36A2EB", "#FFCE56", "#4BC0C0", "#9966FF", "#FF9F40", "#C9CBCF")

INSUFFICIENT_HISTORY = "Insufficient price history for accurate prediction"
NOT_ENOUGH_DATA = "Not enough data to determine the best time to buy. Consider setting a price alert."
BUY_NOW_ADVICE = "Now is a good time to buy. Prices may increase soon."
STABLE_ADVICE = "Prices are stable. Set a price alert for when prices drop below your target."


class PriceSample(Protocol):
    price: Decimal
    recorded_at: datetime


@dataclass(frozen=True)
class PriceChange:
    amount: Decimal
    percentage: Decimal
    direction: str  # "up" | "down" | "stable"
    days_ago: int


@dataclass(frozen=True)
class PriceAnalysis:
    current_price: Decimal
    lowest_ever: Decimal
    highest_ever: Decimal
    average_price: Decimal
    is_at_lowest: bool
    previous_price: Optional[Decimal] = None
    price_change: Optional[PriceChange] = None
    sample_count: int = 0


@dataclass(frozen=True)
class PriceStats:
    """Statistics over one time window of samples."""

    min_price: Decimal
    max_price: Decimal
    avg_price: Decimal
    median_price: Decimal
    std_dev: Decimal
    trend: str  # "up" | "down" | "stable"
    trend_percentage: Decimal
    volatility: str  # "low" | "medium" | "high"
    sample_count: int
    window_days: int


@dataclass(frozen=True)
class PriceSummary:
    store_product_id: UUID
    currency: str
    current_price: Decimal
    lowest_price: Decimal
    highest_price: Decimal
    average_price: Decimal
    change_amount: Decimal
    change_percentage: Decimal
    sample_count: int
    window_days: int


@dataclass
class ListingAnalysis:
    store_product_id: UUID
    store_slug: str
    store_name: str
    price: Decimal
    currency: str
    price_usd: Optional[Decimal]
    in_stock: bool
    url: str
    analysis: PriceAnalysis


@dataclass
class ProductAnalysis:
    product_id: UUID
    product_name: str
    listings: List[ListingAnalysis] = field(default_factory=list)
    best_listing: Optional[ListingAnalysis] = None
    lowest_price_usd: Optional[Decimal] = None


@dataclass(frozen=True)
class NewLowListing:
    """A listing whose current price undercuts its whole window."""

    store_product_id: UUID
    product_id: UUID
    product_name: str
    image_url: Optional[str]
    store_slug: str
    store_name: str
    current_price: Decimal
    previous_lowest: Decimal
    historical_high: Decimal
    savings_percentage: Decimal
    currency: str


@dataclass(frozen=True)
class ChartSeries:
    store_product_id: UUID
    store_slug: str
    store_name: str
    currency: str
    color: str
    data: List[Optional[Decimal]]


@dataclass
class PriceChart:
    """One label per day and one series per listing, aligned by index."""

    product_id: UUID
    labels: List[date]
    series: List[ChartSeries] = field(default_factory=list)


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return Decimal("0")
    return (Decimal(part) / Decimal(whole) * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def _previous_sample(current_price: Decimal, history: Sequence[PriceSample]) -> Optional[PriceSample]:
    """Sample immediately preceding the current observation."""
    if not history:
        return None
    if history[0].price == current_price:
        return history[1] if len(history) > 1 else None
    return history[0]


def analyze_price(
    current_price: Decimal,
    history: Sequence[PriceSample],
    now: Optional[datetime] = None,
) -> PriceAnalysis:
    """Analyze a current price against newest-first history.

    With no history the current price stands in for every statistic and
    counts as the lowest.
    """
    current_price = Decimal(current_price)

    if not history:
        return PriceAnalysis(
            current_price=current_price,
            lowest_ever=current_price,
            highest_ever=current_price,
            average_price=current_price,
            is_at_lowest=True,
        )

    now = now or utc_now()
    prices = [Decimal(sample.price) for sample in history]
    average = Decimal(str(statistics.mean(float(p) for p in prices))).quantize(CENT, rounding=ROUND_HALF_UP)

    price_change = None
    previous = _previous_sample(current_price, history)
    if previous is not None:
        previous_price = Decimal(previous.price)
        diff = current_price - previous_price
        if diff > 0:
            direction = "up"
        elif diff < 0:
            direction = "down"
        else:
            direction = "stable"
        price_change = PriceChange(
            amount=abs(diff),
            percentage=_percent(abs(diff), previous_price),
            direction=direction,
            days_ago=(now - as_utc(previous.recorded_at)).days,
        )

    return PriceAnalysis(
        current_price=current_price,
        lowest_ever=min(prices + [current_price]),
        highest_ever=max(prices + [current_price]),
        average_price=average,
        is_at_lowest=current_price <= min(prices),
        previous_price=Decimal(previous.price) if previous is not None else None,
        price_change=price_change,
        sample_count=len(history),
    )


def calculate_window_stats(
    history: Sequence[PriceSample],
    days: int = DEFAULT_WINDOW_DAYS,
    now: Optional[datetime] = None,
) -> Optional[PriceStats]:
    """Statistics for the samples recorded in the last ``days`` days.

    Args:
        history: Samples, newest first
        days: Window length
        now: Reference time (default: now)

    Returns:
        PriceStats, or None when the window holds no samples
    """
    now = now or utc_now()
    cutoff = now - timedelta(days=days)
    window = [sample for sample in history if as_utc(sample.recorded_at) >= cutoff]
    if not window:
        return None

    prices = [float(sample.price) for sample in window]
    mean = statistics.mean(prices)
    std_dev = statistics.pstdev(prices)

    # Window runs oldest -> newest
    oldest = Decimal(window[-1].price)
    newest = Decimal(window[0].price)
    trend_pct = _percent(newest - oldest, oldest)
    if trend_pct > TREND_THRESHOLD_PCT:
        trend = "up"
    elif trend_pct < -TREND_THRESHOLD_PCT:
        trend = "down"
    else:
        trend = "stable"

    cv = std_dev / mean if mean else 0.0
    if cv > HIGH_VOLATILITY_CV:
        volatility = "high"
    elif cv > MEDIUM_VOLATILITY_CV:
        volatility = "medium"
    else:
        volatility = "low"

    return PriceStats(
        min_price=Decimal(str(min(prices))).quantize(CENT),
        max_price=Decimal(str(max(prices))).quantize(CENT),
        avg_price=Decimal(str(mean)).quantize(CENT, rounding=ROUND_HALF_UP),
        median_price=Decimal(str(statistics.median(prices))).quantize(CENT, rounding=ROUND_HALF_UP),
        std_dev=Decimal(str(std_dev)).quantize(CENT, rounding=ROUND_HALF_UP),
        trend=trend,
        trend_percentage=trend_pct,
        volatility=volatility,
        sample_count=len(window),
        window_days=days,
    )


def is_new_low(current_price: Decimal, history: Sequence[PriceSample]) -> bool:
    """True when the current price is below every sample before it.

    Needs at least two samples: the current observation and one earlier.
    """
    if len(history) < 2:
        return False
    return Decimal(current_price) < min(Decimal(sample.price) for sample in history[1:])


# ----------------------------------------------------------------------
# Forecasting
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class PricePrediction:
    current_price: Decimal
    predicted_price: Decimal
    confidence: float  # 0.2 - 0.95, 0.3 when history is too short
    direction: str  # "up" | "down" | "stable"
    change_percentage: Decimal
    recommendation: str  # "buy_now" | "wait" | "neutral"
    reasoning: str
    predicted_date: datetime
    historical_trend: str  # "rising" | "falling" | "stable" | "volatile"
    sample_count: int = 0


@dataclass(frozen=True)
class BuyTiming:
    recommendation: str
    best_day: Optional[str] = None
    expected_savings: Optional[Decimal] = None


def coefficient_of_variation(history: Sequence[PriceSample], now: Optional[datetime] = None) -> float:
    """Population standard deviation over mean for every sample given."""
    if len(history) < 2:
        return 0.0
    now = now or utc_now()
    span = max((now - as_utc(history[-1].recorded_at)).days + 1, 1)
    stats = calculate_window_stats(history, days=span, now=now)
    if stats is None or stats.avg_price == 0:
        return 0.0
    return float(stats.std_dev / stats.avg_price)


def classify_trend(history: Sequence[PriceSample], volatility: float) -> str:
    """Compare the last two weeks of samples against the two before them."""
    if len(history) < 3:
        return "stable"

    recent = [float(s.price) for s in history[:RECENT_SAMPLES]]
    older = [float(s.price) for s in history[RECENT_SAMPLES:OLDER_SAMPLES_END]]
    if not older:
        return "stable"

    older_avg = statistics.mean(older)
    change = (statistics.mean(recent) - older_avg) / older_avg * 100 if older_avg else 0.0

    if volatility > VOLATILE_CV:
        return "volatile"
    if change > TREND_CHANGE_PCT:
        return "rising"
    if change < -TREND_CHANGE_PCT:
        return "falling"
    return "stable"


def best_weekday(history: Sequence[PriceSample]) -> Optional[str]:
    """Weekday with the cheapest average price, when one stands out.

    Needs 30 samples, and some weekday's average has to sit more than 5%
    off the mean of the weekday averages.
    """
    if len(history) < SEASONALITY_MIN_SAMPLES:
        return None

    by_day: Dict[int, List[float]] = {}
    for sample in history:
        by_day.setdefault(as_utc(sample.recorded_at).weekday(), []).append(float(sample.price))

    averages = {day: statistics.mean(prices) for day, prices in by_day.items()}
    overall = statistics.mean(averages.values())
    if not overall:
        return None

    deviation = max(abs(avg - overall) / overall for avg in averages.values())
    if deviation <= SEASONAL_DEVIATION:
        return None
    return WEEKDAYS[min(averages, key=averages.get)]


def fit_line(history: Sequence[PriceSample]) -> Tuple[float, float, float]:
    """Least-squares line over sample index, oldest sample at x=0.

    Returns:
        (slope, intercept, r_squared) with r_squared clamped to 0..1
    """
    ys = [float(s.price) for s in reversed(history)]
    xs = list(range(len(ys)))
    slope, intercept = statistics.linear_regression(xs, ys)

    mean = statistics.mean(ys)
    ss_total = sum((y - mean) ** 2 for y in ys)
    ss_residual = sum((y - (slope * x + intercept)) ** 2 for x, y in zip(xs, ys))
    r_squared = 1 - ss_residual / ss_total if ss_total > 0 else 0.0
    return slope, intercept, min(1.0, max(0.0, r_squared))


def score_confidence(sample_count: int, volatility: float, r_squared: float) -> float:
    confidence = 0.5
    if sample_count >= OLDER_SAMPLES_END:
        confidence += 0.15
    elif sample_count >= RECENT_SAMPLES:
        confidence += 0.1
    confidence += r_squared * 0.2
    confidence += max(0.0, 0.15 - volatility)
    return min(0.95, max(0.2, confidence))


def recommend(direction: str, change_pct: float, confidence: float, trend: str) -> str:
    if confidence < 0.4:
        return "neutral"
    if direction == "up" and change_pct > 3 and confidence > 0.6:
        return "buy_now"
    if direction == "down" and change_pct < -3 and confidence > 0.6:
        return "wait"
    if trend == "falling" and confidence > 0.5:
        return "wait"
    if trend == "rising" and confidence > 0.5:
        return "buy_now"
    return "neutral"


def explain(trend: str, change_pct: float, confidence: float, weekday: Optional[str]) -> str:
    if trend == "rising":
        parts = ["Prices have been trending upward recently"]
    elif trend == "falling":
        parts = ["Prices have been declining"]
    elif trend == "volatile":
        parts = ["Prices have been fluctuating significantly"]
    else:
        parts = ["Prices have been relatively stable"]

    if abs(change_pct) > TREND_CHANGE_PCT:
        word = "increase" if change_pct > 0 else "decrease"
        parts.append(f"and we predict a {abs(change_pct):.1f}% {word}")

    if confidence > 0.7:
        parts.append("with high confidence.")
    elif confidence > 0.5:
        parts.append("with moderate confidence.")
    else:
        parts.append("but prediction confidence is low.")

    if weekday:
        parts.append(f"Best prices typically on {weekday}.")
    return " ".join(parts)


def predict_from_history(
    current_price: Decimal,
    history: Sequence[PriceSample],
    days_ahead: int = DEFAULT_DAYS_AHEAD,
    now: Optional[datetime] = None,
) -> PricePrediction:
    """Forecast the price ``days_ahead`` days out.

    Fewer than 7 samples give a neutral forecast: the current price,
    stable, confidence 0.3.

    Args:
        current_price: Listed price now
        history: Samples, newest first
        days_ahead: Forecast horizon in days
        now: Reference time (default: now)
    """
    now = now or utc_now()
    current_price = Decimal(current_price)
    predicted_date = now + timedelta(days=days_ahead)

    if len(history) < MIN_PREDICTION_SAMPLES:
        return PricePrediction(
            current_price=current_price,
            predicted_price=current_price,
            confidence=NEUTRAL_CONFIDENCE,
            direction="stable",
            change_percentage=Decimal("0.0"),
            recommendation="neutral",
            reasoning=INSUFFICIENT_HISTORY,
            predicted_date=predicted_date,
            historical_trend="stable",
            sample_count=len(history),
        )

    volatility = coefficient_of_variation(history, now=now)
    trend = classify_trend(history, volatility)
    weekday = best_weekday(history)
    slope, intercept, r_squared = fit_line(history)

    forecast = max(0.0, slope * (len(history) + days_ahead) + intercept)
    # Swingy prices drift back toward the mean
    if volatility > MEAN_REVERSION_CV:
        pull = volatility * 0.5 * 0.3
        if trend == "rising":
            forecast *= 1 - pull
        elif trend == "falling":
            forecast *= 1 + pull

    confidence = score_confidence(len(history), volatility, r_squared)
    change_pct = (forecast - float(current_price)) / float(current_price) * 100 if current_price else 0.0
    if change_pct > DIRECTION_CHANGE_PCT:
        direction = "up"
    elif change_pct < -DIRECTION_CHANGE_PCT:
        direction = "down"
    else:
        direction = "stable"

    return PricePrediction(
        current_price=current_price,
        predicted_price=Decimal(str(forecast)).quantize(CENT, rounding=ROUND_HALF_UP),
        confidence=round(confidence, 2),
        direction=direction,
        change_percentage=Decimal(str(change_pct)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
        recommendation=recommend(direction, change_pct, confidence, trend),
        reasoning=explain(trend, change_pct, confidence, weekday),
        predicted_date=predicted_date,
        historical_trend=trend,
        sample_count=len(history),
    )


def advise_timing(prediction: PricePrediction, history: Sequence[PriceSample]) -> BuyTiming:
    """Turn a forecast and recent history into buying advice.

    A wait forecast wins, then a cheap weekday, then a buy-now forecast.
    """
    if len(history) < MIN_TIMING_SAMPLES:
        return BuyTiming(recommendation=NOT_ENOUGH_DATA)

    if prediction.recommendation == "wait":
        return BuyTiming(
            recommendation=f"Wait for better prices. {prediction.reasoning}",
            expected_savings=abs(prediction.current_price - prediction.predicted_price),
        )

    weekday = best_weekday(history)
    if weekday:
        return BuyTiming(recommendation=f"Best prices typically on {weekday}", best_day=weekday)

    if prediction.recommendation == "buy_now":
        return BuyTiming(recommendation=BUY_NOW_ADVICE)
    return BuyTiming(recommendation=STABLE_ADVICE)


class PriceAnalyzer:
    """Loads listings and history and runs the analysis."""

    def __init__(self, db: AsyncSession):
        """Initialize price analyzer.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="price_analyzer")

    # ------------------------------------------------------------------
    # Single listing
    # ------------------------------------------------------------------

    async def analyze_store_product(self, store_product_id: UUID) -> PriceAnalysis:
        """Analyze a listing's current price against its last 100 samples.

        Raises:
            NotFoundError: If the listing does not exist
        """
        listing = await self._get_listing(store_product_id)
        history = await self._get_history(store_product_id, limit=ANALYSIS_SAMPLE_LIMIT)
        return analyze_price(listing.price, history)

    async def get_price_stats(self, store_product_id: UUID, days: int = DEFAULT_WINDOW_DAYS) -> Optional[PriceStats]:
        """Windowed statistics for a listing; None when the window is empty.

        Raises:
            InvalidInputError: If days is not positive
            NotFoundError: If the listing does not exist
        """
        if days < 1:
            raise InvalidInputError("days", "must be at least 1")
        await self._get_listing(store_product_id)
        history = await self._get_history(store_product_id, days=days)
        return calculate_window_stats(history, days=days)

    async def get_price_summary(self, store_product_id: UUID, days: int = DEFAULT_WINDOW_DAYS) -> PriceSummary:
        """Current price with the window's low, high, average and net change.

        Change is measured from the oldest sample in the window to the
        current price. An empty window summarizes the current price alone.
        """
        if days < 1:
            raise InvalidInputError("days", "must be at least 1")

        listing = await self._get_listing(store_product_id)
        history = await self._get_history(store_product_id, days=days)
        current = Decimal(listing.price)

        if history:
            prices = [Decimal(sample.price) for sample in history]
            start = prices[-1]
            average = Decimal(str(statistics.mean(float(p) for p in prices))).quantize(CENT, rounding=ROUND_HALF_UP)
            lowest, highest = min(prices + [current]), max(prices + [current])
        else:
            start = lowest = highest = average = current

        return PriceSummary(
            store_product_id=listing.id,
            currency=listing.currency,
            current_price=current,
            lowest_price=lowest,
            highest_price=highest,
            average_price=average,
            change_amount=current - start,
            change_percentage=_percent(current - start, start),
            sample_count=len(history),
            window_days=days,
        )

    # ------------------------------------------------------------------
    # Product-wide
    # ------------------------------------------------------------------

    async def analyze_product(self, product_id: UUID) -> ProductAnalysis:
        """Analysis of every listing of a product plus the cheapest one.

        The best listing is the lowest USD price among in-stock listings,
        falling back to all listings when none is in stock.

        Raises:
            NotFoundError: If the product does not exist
        """
        result = await self.db.execute(
            select(Product)
            .options(selectinload(Product.store_products).selectinload(StoreProduct.store))
            .where(Product.id == product_id)
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", str(product_id))

        histories = await self._get_histories(
            [listing.id for listing in product.store_products], limit=ANALYSIS_SAMPLE_LIMIT
        )

        report = ProductAnalysis(product_id=product.id, product_name=product.name)
        for listing in product.store_products:
            report.listings.append(ListingAnalysis(
                store_product_id=listing.id,
                store_slug=listing.store.slug,
                store_name=listing.store.name,
                price=listing.price,
                currency=listing.currency,
                price_usd=listing.price_usd,
                in_stock=listing.in_stock,
                url=listing.url,
                analysis=analyze_price(listing.price, histories.get(listing.id, [])),
            ))

        priced = [entry for entry in report.listings if entry.price_usd is not None]
        candidates = [entry for entry in priced if entry.in_stock] or priced
        if candidates:
            report.best_listing = min(candidates, key=lambda entry: entry.price_usd)
            report.lowest_price_usd = report.best_listing.price_usd

        self.logger.debug("product_analyzed", product_id=str(product_id), listings=len(report.listings))
        return report

    async def find_products_at_lowest_price(
        self,
        limit: int = 20,
        country: Optional[str] = None,
        days: int = 90,
    ) -> List[NewLowListing]:
        """In-stock listings currently priced below their whole window.

        Ranked by savings against the window's historical high, best first.

        Args:
            limit: Maximum listings returned
            country: Optional store country filter (SA, EG, AE)
            days: History window
        """
        query = (
            select(StoreProduct)
            .join(Store, StoreProduct.store_id == Store.id)
            .options(selectinload(StoreProduct.store), selectinload(StoreProduct.product))
            .where(StoreProduct.in_stock.is_(True), Store.is_active.is_(True))
        )
        if country:
            query = query.where(Store.country == country.upper())

        listings = list((await self.db.execute(query)).scalars().all())
        histories = await self._get_histories([listing.id for listing in listings], days=days)

        found: List[NewLowListing] = []
        for listing in listings:
            history = histories.get(listing.id, [])
            if not is_new_low(listing.price, history):
                continue

            earlier = [Decimal(sample.price) for sample in history[1:]]
            high = max(earlier)
            found.append(NewLowListing(
                store_product_id=listing.id,
                product_id=listing.product_id,
                product_name=listing.product.name,
                image_url=listing.product.image_url,
                store_slug=listing.store.slug,
                store_name=listing.store.name,
                current_price=listing.price,
                previous_lowest=min(earlier),
                historical_high=high,
                savings_percentage=_percent(high - listing.price, high),
                currency=listing.currency,
            ))

        found.sort(key=lambda entry: entry.savings_percentage, reverse=True)
        self.logger.info("new_lows_found", candidates=len(listings), found=len(found), country=country)
        return found[:limit]

    # ------------------------------------------------------------------
    # Forecasts
    # ------------------------------------------------------------------

    async def predict_price(self, store_product_id: UUID, days_ahead: int = DEFAULT_DAYS_AHEAD) -> PricePrediction:
        """Forecast a listing's price from its last 90 samples.

        Raises:
            InvalidInputError: If days_ahead is not positive
            NotFoundError: If the listing does not exist
        """
        if days_ahead < 1:
            raise InvalidInputError("days_ahead", "must be at least 1")

        listing = await self._get_listing(store_product_id)
        history = await self._get_history(store_product_id, limit=PREDICTION_SAMPLE_LIMIT)
        prediction = predict_from_history(listing.price, history, days_ahead=days_ahead)

        self.logger.debug(
            "price_predicted",
            store_product_id=str(store_product_id),
            samples=len(history),
            recommendation=prediction.recommendation,
        )
        return prediction

    async def predict_product(self, product_id: UUID, days_ahead: int = DEFAULT_DAYS_AHEAD) -> Dict[str, PricePrediction]:
        """Forecasts for every listing of a product at an active store, keyed by store slug."""
        if days_ahead < 1:
            raise InvalidInputError("days_ahead", "must be at least 1")

        result = await self.db.execute(
            select(StoreProduct)
            .join(Store, StoreProduct.store_id == Store.id)
            .options(selectinload(StoreProduct.store))
            .where(StoreProduct.product_id == product_id, Store.is_active.is_(True))
        )
        listings = list(result.scalars().all())
        histories = await self._get_histories([listing.id for listing in listings], limit=PREDICTION_SAMPLE_LIMIT)

        return {
            listing.store.slug: predict_from_history(listing.price, histories.get(listing.id, []), days_ahead=days_ahead)
            for listing in listings
        }

    async def get_best_time_to_buy(self, store_product_id: UUID) -> BuyTiming:
        """Buying advice from a 7-day forecast and the last 60 samples.

        Raises:
            NotFoundError: If the listing does not exist
        """
        history = await self._get_history(store_product_id, limit=TIMING_SAMPLE_LIMIT)
        prediction = await self.predict_price(store_product_id)
        return advise_timing(prediction, history)

    async def get_chart_data(
        self,
        product_id: UUID,
        days: int = DEFAULT_WINDOW_DAYS,
        store_ids: Optional[List[UUID]] = None,
    ) -> PriceChart:
        """Daily prices per listing over the last ``days`` days, ready for a line chart.

        Each series holds one value per label; days without a sample are
        None, and a day with several samples shows the last one.

        Raises:
            InvalidInputError: If days is not positive
            NotFoundError: If the product does not exist
        """
        if days < 1:
            raise InvalidInputError("days", "must be at least 1")

        product = await self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", str(product_id))

        query = (
            select(StoreProduct)
            .options(selectinload(StoreProduct.store))
            .where(StoreProduct.product_id == product_id)
            .order_by(StoreProduct.created_at)
        )
        if store_ids:
            query = query.where(StoreProduct.store_id.in_(store_ids))
        listings = list((await self.db.execute(query)).scalars().all())

        today = utc_now().date()
        labels = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
        histories = await self._get_histories([listing.id for listing in listings], days=days)

        chart = PriceChart(product_id=product.id, labels=labels)
        for idx, listing in enumerate(listings):
            daily: Dict[date, Decimal] = {}
            for sample in reversed(histories.get(listing.id, [])):
                daily[as_utc(sample.recorded_at).date()] = sample.price
            chart.series.append(ChartSeries(
                store_product_id=listing.id,
                store_slug=listing.store.slug,
                store_name=listing.store.name,
                currency=listing.currency,
                color=CHART_COLORS[idx % len(CHART_COLORS)],
                data=[daily.get(label) for label in labels],
            ))
        return chart

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _get_listing(self, store_product_id: UUID) -> StoreProduct:
        listing = await self.db.get(StoreProduct, store_product_id)
        if listing is None:
            raise NotFoundError("StoreProduct", str(store_product_id))
        return listing

    async def _get_history(
        self,
        store_product_id: UUID,
        days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[PriceHistory]:
        query = select(PriceHistory).where(PriceHistory.store_product_id == store_product_id)
        if days is not None:
            query = query.where(PriceHistory.recorded_at >= utc_now() - timedelta(days=days))
        query = query.order_by(PriceHistory.recorded_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return list((await self.db.execute(query)).scalars().all())

    async def _get_histories(
        self,
        store_product_ids: List[UUID],
        days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[UUID, List[PriceHistory]]:
        """Newest-first samples for many listings in one query."""
        if not store_product_ids:
            return {}

        query = select(PriceHistory).where(PriceHistory.store_product_id.in_(store_product_ids))
        if days is not None:
            query = query.where(PriceHistory.recorded_at >= utc_now() - timedelta(days=days))
        query = query.order_by(PriceHistory.store_product_id, PriceHistory.recorded_at.desc())

        grouped: Dict[UUID, List[PriceHistory]] = {}
        for sample in (await self.db.execute(query)).scalars().all():
            samples = grouped.setdefault(sample.store_product_id, [])
            if limit is None or len(samples) < limit:
                samples.append(sample)
        return grouped
