"""
Fallback Sold-Count Estimator

Used only when the sold-listings scrape produced no confirmed count.
Infers a plausible 90-day sold count from active-listing volume and how
tightly active prices cluster around the median.

The output is a pure function of (active_count, active prices, config):
no randomness, so the same market always yields the same estimate.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from sellcheck.config import ESTIMATOR, EstimatorConfig
from .sellthrough import relative_dispersion

logger = logging.getLogger(__name__)

# Position inside a tier's ratio band when nothing nudges it
DEFAULT_BAND_POSITION = 0.5

# Ratios at or above this would make the sold count unbounded
MAX_RATIO = 0.95


@dataclass
class SoldEstimate:
    sold_count: int
    ratio: float                      # Assumed sell-through as a fraction
    tier: int                         # Index of the volume tier used
    dispersion: Optional[float] = None
    nudged: bool = False


def select_tier(active_count: int, config: EstimatorConfig = ESTIMATOR) -> int:
    for index, (max_active, _, _) in enumerate(config.tiers):
        if active_count < max_active:
            return index
    return len(config.tiers) - 1


def estimate_ratio(
    active_count: int,
    prices: Sequence[float],
    config: EstimatorConfig = ESTIMATOR,
) -> SoldEstimate:
    """Pick the assumed sell-through ratio for this market."""
    tier = select_tier(active_count, config)
    _, ratio_low, ratio_high = config.tiers[tier]

    position = DEFAULT_BAND_POSITION
    dispersion = None
    nudged = False

    valid = [p for p in prices if p > 0]
    if len(valid) >= config.min_prices_for_dispersion:
        dispersion = relative_dispersion(valid)
        if dispersion is not None and dispersion < config.dispersion_threshold:
            # Tighter clustering -> closer to the top of the band
            tightness = 1.0 - dispersion / config.dispersion_threshold
            position = DEFAULT_BAND_POSITION + (1.0 - DEFAULT_BAND_POSITION) * tightness
            nudged = True

    ratio = min(ratio_low + (ratio_high - ratio_low) * position, MAX_RATIO)
    return SoldEstimate(sold_count=0, ratio=ratio, tier=tier, dispersion=dispersion, nudged=nudged)


def estimate_sold_count(
    active_count: int,
    prices: Sequence[float],
    config: EstimatorConfig = ESTIMATOR,
) -> SoldEstimate:
    """
    Solve rate = sold / (sold + active) for sold at the assumed ratio.

    Floored at 1 whenever there is any active supply.
    """
    estimate = estimate_ratio(active_count, prices, config)
    if active_count <= 0:
        estimate.sold_count = 0
        return estimate

    sold = estimate.ratio * active_count / (1.0 - estimate.ratio)
    estimate.sold_count = max(1, int(math.floor(sold + 0.5)))

    logger.info(
        f"[ESTIMATOR] active={active_count} tier={estimate.tier} ratio={estimate.ratio:.3f} "
        f"dispersion={estimate.dispersion if estimate.dispersion is None else round(estimate.dispersion, 3)} "
        f"-> sold={estimate.sold_count}"
    )
    return estimate
