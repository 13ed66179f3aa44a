"""
Sell-Through Calculator

Pure functions that turn sold/active counts and price lists into the
derived metrics of a MarketSignal:
- sell-through rate and verdict tier
- price statistics (avg / median / low / high)
- price-to-speed estimate (days to sell at a candidate price)
- average days to sell from scraped sale dates
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import Verdict

# ============================================================
# VERDICT TIERS (lower bound of each tier, highest first)
# ============================================================

VERDICT_THRESHOLDS: Tuple[Tuple[float, Verdict], ...] = (
    (100.0, Verdict.S_TIER),
    (75.0, Verdict.STRONG_BUY),
    (50.0, Verdict.BUY),
    (25.0, Verdict.MAYBE),
)

VERDICT_DISPLAY = {
    Verdict.S_TIER: "S-TIER",
    Verdict.STRONG_BUY: "STRONG BUY",
    Verdict.BUY: "BUY",
    Verdict.MAYBE: "MAYBE",
    Verdict.PASS: "PASS",
}

VERDICT_LABELS = {
    Verdict.S_TIER: "Sells out instantly - buy every one you see",
    Verdict.STRONG_BUY: "Very strong demand - buy with confidence",
    Verdict.BUY: "Strong demand - BUY",
    Verdict.MAYBE: "Maybe - price carefully",
    Verdict.PASS: "Low demand - skip it",
}

# ============================================================
# PRICE-TO-SPEED CURVE
# ============================================================

BASE_DAYS_CEILING = 30       # Baseline days at 0% sell-through
BASE_DAYS_PER_POINT = 0.4    # Days removed per sell-through point
BASE_DAYS_FLOOR = 2
MIN_DAYS = 1
MAX_DAYS = 60
NO_MEDIAN_DAYS = 30          # No price reference at all

SOLD_LOOKBACK_DAYS = 90


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def calculate_sell_through(sold: int, active: int) -> float:
    """sold / (sold + active) * 100, one decimal; 0 when both are 0."""
    total = sold + active
    if total <= 0:
        return 0.0
    return _round_half_up(sold / total * 100, 1)


def get_verdict(rate: float) -> Verdict:
    for threshold, verdict in VERDICT_THRESHOLDS:
        if rate >= threshold:
            return verdict
    return Verdict.PASS


def get_verdict_label(verdict: Verdict) -> str:
    return VERDICT_LABELS[verdict]


# ============================================================
# PRICE STATISTICS
# ============================================================

@dataclass
class PriceStats:
    avg: float = 0.0
    median: float = 0.0
    low: float = 0.0
    high: float = 0.0


def median(values: Iterable[float]) -> float:
    ordered = sorted(values)
    if not ordered:
        return 0.0
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def quartiles(values: Iterable[float]) -> Tuple[float, float]:
    """(Q1, Q3) with linear interpolation between closest ranks."""
    ordered = sorted(values)
    if not ordered:
        return 0.0, 0.0

    def _at(fraction: float) -> float:
        position = (len(ordered) - 1) * fraction
        lower = math.floor(position)
        upper = min(lower + 1, len(ordered) - 1)
        return ordered[lower] + (ordered[upper] - ordered[lower]) * (position - lower)

    return _at(0.25), _at(0.75)


def relative_dispersion(prices: Sequence[float]) -> Optional[float]:
    """Interquartile range divided by the median price (None if undefined)."""
    mid = median(prices)
    if not prices or mid <= 0:
        return None
    q1, q3 = quartiles(prices)
    return (q3 - q1) / mid


def trim_outliers(prices: Sequence[float], min_count: int = 10) -> List[float]:
    """Keep the 10th-90th percentile slice once there are more than min_count prices."""
    if len(prices) <= min_count:
        return list(prices)
    ordered = sorted(prices)
    low_index = math.floor(len(ordered) * 0.1)
    high_index = math.floor(len(ordered) * 0.9)
    return ordered[low_index:high_index + 1]


def price_stats(prices: Sequence[float]) -> PriceStats:
    """Stats over one price list; negative and zero prices are ignored."""
    valid = [p for p in prices if p > 0]
    if not valid:
        return PriceStats()
    return PriceStats(
        avg=_round_half_up(sum(valid) / len(valid), 2),
        median=_round_half_up(median(valid), 2),
        low=_round_half_up(min(valid), 2),
        high=_round_half_up(max(valid), 2),
    )


# ============================================================
# PRICE-TO-SPEED
# ============================================================

def _price_multiplier(price_ratio: float) -> float:
    """Piecewise curve: cheap sells fast, near median is baseline, pricey slows down."""
    if price_ratio <= 0.5:
        return 0.4                                  # Deep discount
    if price_ratio <= 0.8:
        return 0.4 + (price_ratio - 0.5) * 2        # 0.4 -> 1.0
    if price_ratio <= 1.2:
        return 1.0                                  # Near median
    if price_ratio <= 1.5:
        return 1.0 + (price_ratio - 1.2) * (1.0 / 0.3)  # 1.0 -> 2.0
    if price_ratio <= 2.0:
        return 2.0 + (price_ratio - 1.5) * 4        # 2.0 -> 4.0
    return 4.0 + (price_ratio - 2.0) * 2            # Keeps climbing


def baseline_days(sell_through_rate: float) -> int:
    return max(BASE_DAYS_FLOOR, int(_round_half_up(BASE_DAYS_CEILING - sell_through_rate * BASE_DAYS_PER_POINT)))


def estimate_days_to_sell(price: float, median_price: float, sell_through_rate: float) -> int:
    """
    Estimated days to sell at a candidate list price.

    Non-decreasing in price / median for a fixed rate and non-increasing in
    rate for a fixed ratio. Clamped to [MIN_DAYS, MAX_DAYS].
    """
    if median_price <= 0:
        return NO_MEDIAN_DAYS
    if not math.isfinite(price):
        return MAX_DAYS
    price_ratio = max(price, 0.0) / median_price
    days = baseline_days(sell_through_rate) * _price_multiplier(price_ratio)
    if not math.isfinite(days):
        return MAX_DAYS
    return int(max(MIN_DAYS, min(MAX_DAYS, _round_half_up(days))))


def estimate_days_range(median_price: float, sell_through_rate: float) -> Tuple[int, int]:
    """(low, high) days when listing between 70% and 140% of the median."""
    at_median = estimate_days_to_sell(median_price, median_price, sell_through_rate)
    at_low = estimate_days_to_sell(median_price * 0.7, median_price, sell_through_rate)
    at_high = estimate_days_to_sell(median_price * 1.4, median_price, sell_through_rate)
    return min(at_median, at_low), max(at_median, at_high)


def speed_label(days: int) -> str:
    if days <= 7:
        return "Fast"
    if days <= 14:
        return "Moderate"
    if days <= 30:
        return "Slow"
    return "Very slow"


def calculate_avg_days_to_sell(sold_dates: Iterable[date], today: Optional[date] = None) -> int:
    """Mean age in days of sales within the lookback window (0 if none)."""
    today = today or date.today()
    ages = []
    for sold_on in sold_dates:
        age = (today - sold_on).days
        if 0 <= age <= SOLD_LOOKBACK_DAYS:
            ages.append(age)
    if not ages:
        return 0
    return int(_round_half_up(sum(ages) / len(ages)))
