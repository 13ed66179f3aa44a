"""
Pipeline Orchestrator

Single entry point for turning a product query into a MarketSignal.

Flow:
1. Normalize query + derive cache key
2. Cache lookup (hit -> return; store failure -> treated as miss)
3. Browse API (active) and sold-listings scraper run concurrently
4. Scrape failed -> fallback estimator on the active snapshot
5. Fuse into a MarketSignal (rate, verdict, price stats, days to sell)
6. Cache write (failure logged, result still returned)

The orchestrator handles:
- Source failure policy (no active data -> SourceUnavailableError)
- Real vs. estimated tagging
- Insights and price-to-speed on demand
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union

from sellcheck.config import CACHE, ESTIMATOR, EstimatorConfig
from sellcheck.services.exceptions import SellCheckError, SourceUnavailableError
from .estimator import estimate_sold_count
from .insights import generate_insights
from .models import (
    ActiveSnapshot,
    Condition,
    DataSource,
    Insight,
    MarketSignal,
    NormalizedQuery,
    SoldSnapshot,
)
from .normalize import build_query, cache_key
from .sellthrough import (
    VERDICT_DISPLAY,
    calculate_avg_days_to_sell,
    calculate_sell_through,
    estimate_days_range,
    estimate_days_to_sell,
    get_verdict,
    get_verdict_label,
    price_stats,
    speed_label,
)

logger = logging.getLogger(__name__)

# Scraped sold prices are only trusted for stats above this many
MIN_SOLD_PRICES = 5


@dataclass
class SearchOutcome:
    """Result of one orchestrated search"""
    signal: MarketSignal
    cached: bool = False
    cache_key: str = ""
    insights: List[Insight] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        low, high = estimate_days_range(self.signal.median_price, self.signal.sell_through_rate)
        signal = self.signal.to_dict()
        signal["verdictLabel"] = get_verdict_label(self.signal.verdict)
        signal["verdictDisplay"] = VERDICT_DISPLAY[self.signal.verdict]
        result = {
            "result": signal,
            "cached": self.cached,
            "speedRange": {"low": low, "high": high},
        }
        if self.insights:
            result["insights"] = [insight.to_dict() for insight in self.insights]
        return result


def fuse_signal(
    query: NormalizedQuery,
    active: ActiveSnapshot,
    sold: SoldSnapshot,
    estimator_config: EstimatorConfig = ESTIMATOR,
    today: Optional[date] = None,
) -> MarketSignal:
    """
    Combine both sources into one MarketSignal.

    Price stats always come from a single list: scraped sold prices when
    there are enough of them, active prices otherwise.
    """
    if sold.success:
        sold_count = sold.sold_count
        data_source = DataSource.REAL
        prices = sold.sold_prices if len(sold.sold_prices) > MIN_SOLD_PRICES else active.prices
    else:
        estimate = estimate_sold_count(active.total_count, active.prices, estimator_config)
        sold_count = estimate.sold_count
        data_source = DataSource.ESTIMATED
        prices = active.prices

    rate = calculate_sell_through(sold_count, active.total_count)
    stats = price_stats(prices)

    avg_days = 0
    if data_source is DataSource.REAL and sold.sold_dates:
        avg_days = calculate_avg_days_to_sell(sold.sold_dates, today)
    if not avg_days:
        avg_days = estimate_days_to_sell(stats.median, stats.median, rate)

    return MarketSignal(
        query=query.text,
        sold_count=sold_count,
        active_count=active.total_count,
        sell_through_rate=rate,
        avg_price=stats.avg,
        median_price=stats.median,
        price_low=stats.low,
        price_high=stats.high,
        avg_days_to_sell=avg_days,
        verdict=get_verdict(rate),
        data_source=data_source,
        condition=query.condition,
        sample_listings=list(active.sample_listings),
        count_strategy=sold.strategy,
    )


class MarketSignalOrchestrator:
    """
    Usage:
        orchestrator = MarketSignalOrchestrator(active_client, scraper, cache)
        outcome = await orchestrator.get_signal("Nike Dunk Low", condition="USED")
    """

    def __init__(
        self,
        active_client,
        scraper,
        cache=None,
        ttl_seconds: int = CACHE.ttl_seconds,
        estimator_config: EstimatorConfig = ESTIMATOR,
    ):
        """
        Args:
            active_client: object with async search_active(NormalizedQuery) -> ActiveSnapshot
            scraper: object with async scrape(NormalizedQuery) -> SoldSnapshot
            cache: store with get(key) / put(key, signal, ttl), or None to disable
        """
        self.active_client = active_client
        self.scraper = scraper
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.estimator_config = estimator_config

        self.stats = {
            "total_searches": 0,
            "cache_hits": 0,
            "real_results": 0,
            "estimated_results": 0,
            "confirmed_zero": 0,
            "scrape_failures": 0,
            "source_errors": 0,
            "cache_errors": 0,
        }

    # ============================================================
    # Cache access (never fatal)
    # ============================================================

    def _cache_get(self, key: str):
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except Exception as e:
            self.stats["cache_errors"] += 1
            logger.warning(f"[CACHE] Read failed for {key[:8]}, treating as miss: {e}")
            return None

    def _cache_put(self, key: str, signal: MarketSignal) -> None:
        if self.cache is None:
            return
        try:
            self.cache.put(key, signal, self.ttl_seconds)
        except Exception as e:
            self.stats["cache_errors"] += 1
            logger.warning(f"[CACHE] Write failed for {key[:8]}, result not persisted: {e}")

    # ============================================================
    # Source fetch
    # ============================================================

    async def _scrape(self, query: NormalizedQuery) -> SoldSnapshot:
        try:
            return await self.scraper.scrape(query)
        except Exception as e:
            # Scrapers are expected to never raise; keep the contract here too
            logger.warning(f"[PIPELINE] Scraper raised {type(e).__name__}: {e}")
            return SoldSnapshot.failed(f"unexpected: {type(e).__name__}")

    async def fetch_sources(self, query: NormalizedQuery) -> Tuple[ActiveSnapshot, SoldSnapshot]:
        """Run both sources concurrently and wait for both to settle."""
        active_result, sold = await asyncio.gather(
            self.active_client.search_active(query),
            self._scrape(query),
            return_exceptions=True,
        )

        if isinstance(sold, BaseException):
            sold = SoldSnapshot.failed(f"unexpected: {type(sold).__name__}")

        if isinstance(active_result, BaseException):
            self.stats["source_errors"] += 1
            if isinstance(active_result, SellCheckError):
                logger.error(f"[PIPELINE] Active listings unavailable for '{query.text}': {active_result}")
            else:
                logger.error(
                    f"[PIPELINE] Active listings failed for '{query.text}'",
                    exc_info=active_result,
                )
            raise SourceUnavailableError(query.text, cause=active_result)

        return active_result, sold

    # ============================================================
    # Entry points
    # ============================================================

    async def get_signal(
        self,
        query: Union[str, NormalizedQuery],
        condition: Union[str, Condition, None] = None,
        with_insights: bool = False,
    ) -> SearchOutcome:
        normalized = query if isinstance(query, NormalizedQuery) else build_query(query, condition)
        key = cache_key(normalized)
        self.stats["total_searches"] += 1

        entry = self._cache_get(key)
        if entry is not None:
            self.stats["cache_hits"] += 1
            logger.info(f"[PIPELINE] Cache hit for '{normalized.text}'")
            signal = replace(entry.signal, cached_at=entry.cached_at)
            return SearchOutcome(
                signal=signal,
                cached=True,
                cache_key=key,
                insights=generate_insights(signal) if with_insights else [],
            )

        active, sold = await self.fetch_sources(normalized)

        if not sold.success:
            self.stats["scrape_failures"] += 1
        elif sold.is_confirmed_zero:
            self.stats["confirmed_zero"] += 1

        signal = fuse_signal(normalized, active, sold, self.estimator_config)
        if signal.data_source is DataSource.REAL:
            self.stats["real_results"] += 1
        else:
            self.stats["estimated_results"] += 1

        logger.info(
            f"[PIPELINE] '{normalized.text}' sold={signal.sold_count} active={signal.active_count} "
            f"rate={signal.sell_through_rate} verdict={signal.verdict.value} source={signal.data_source.value}"
        )

        self._cache_put(key, signal)

        return SearchOutcome(
            signal=signal,
            cached=False,
            cache_key=key,
            insights=generate_insights(signal) if with_insights else [],
        )

    @staticmethod
    def estimate_speed(signal: MarketSignal, price: float) -> Dict[str, Any]:
        """Days to sell if listed at `price`, against this market."""
        days = estimate_days_to_sell(price, signal.median_price, signal.sell_through_rate)
        at_median = estimate_days_to_sell(signal.median_price, signal.median_price, signal.sell_through_rate)
        return {
            "price": price,
            "medianPrice": signal.median_price,
            "sellThroughRate": signal.sell_through_rate,
            "estimatedDays": days,
            "medianDays": at_median,
            "label": speed_label(days),
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get pipeline statistics"""
        fresh = self.stats["real_results"] + self.stats["estimated_results"]
        return {
            **self.stats,
            "cache_hit_rate": (
                self.stats["cache_hits"] / self.stats["total_searches"]
                if self.stats["total_searches"] > 0
                else 0
            ),
            "estimated_rate": (
                self.stats["estimated_results"] / fresh
                if fresh > 0
                else 0
            ),
        }
