"""
Services for SellCheck

- exceptions: error hierarchy shared by every layer
- ebay_auth: OAuth client-credentials token cache
- ebay_browse: active listings via the Browse API
- sold_scraper: sold listings count/prices from the search results page
- search_cache: memory / SQLite / tiered MarketSignal stores

The FastAPI wiring (app_state, app_factory, error_handler) is imported
directly from its module.
"""

from .exceptions import (
    SellCheckError,
    ExternalServiceError,
    EbayAPIError,
    CredentialError,
    ScrapeError,
    BotChallengeError,
    SourceUnavailableError,
    CacheError,
    ValidationError,
    InvalidQueryError,
    RateLimitError,
    ConfigurationError,
    UnauthorizedError,
)
from .ebay_auth import EbayTokenManager
from .ebay_browse import ActiveListingsClient, extract_prices, extract_top_listings
from .sold_scraper import SoldListingsScraper, parse_sold_page, build_sold_url
from .search_cache import MemorySignalStore, SqliteSignalStore, TieredSignalStore

__all__ = [
    # Exceptions
    'SellCheckError',
    'ExternalServiceError',
    'EbayAPIError',
    'CredentialError',
    'ScrapeError',
    'BotChallengeError',
    'SourceUnavailableError',
    'CacheError',
    'ValidationError',
    'InvalidQueryError',
    'RateLimitError',
    'ConfigurationError',
    'UnauthorizedError',
    # Sources
    'EbayTokenManager',
    'ActiveListingsClient',
    'extract_prices',
    'extract_top_listings',
    'SoldListingsScraper',
    'parse_sold_page',
    'build_sold_url',
    # Cache
    'MemorySignalStore',
    'SqliteSignalStore',
    'TieredSignalStore',
]
