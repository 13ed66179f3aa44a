"""
Market signal pipeline.

Query -> cache -> (active listings || sold scrape) -> estimator fallback
-> sell-through / verdict / price stats -> cache.
"""

from .models import (
    Condition,
    Verdict,
    DataSource,
    NormalizedQuery,
    TopListing,
    ActiveSnapshot,
    SoldSnapshot,
    MarketSignal,
    CachedSignal,
    Insight,
)
from .normalize import normalize_query, build_query, cache_key
from .sellthrough import calculate_sell_through, get_verdict, price_stats, estimate_days_to_sell
from .orchestrator import MarketSignalOrchestrator, SearchOutcome, fuse_signal

__all__ = [
    'Condition',
    'Verdict',
    'DataSource',
    'NormalizedQuery',
    'TopListing',
    'ActiveSnapshot',
    'SoldSnapshot',
    'MarketSignal',
    'CachedSignal',
    'Insight',
    'normalize_query',
    'build_query',
    'cache_key',
    'calculate_sell_through',
    'get_verdict',
    'price_stats',
    'estimate_days_to_sell',
    'MarketSignalOrchestrator',
    'SearchOutcome',
    'fuse_signal',
]
