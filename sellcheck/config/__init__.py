"""
Configuration package.

Re-exports everything from config/settings.py.
"""

from .settings import (
    # Paths
    BASE_DIR,
    CACHE_DB_PATH,

    # Server
    HOST,
    PORT,
    LOG_LEVEL,
    DEBUG_MODE,

    # Credentials
    EBAY_CLIENT_ID,
    EBAY_CLIENT_SECRET,
    ADMIN_SECRET,

    # Dataclass configs
    CacheConfig,
    CACHE,
    BrowseConfig,
    BROWSE,
    ScraperConfig,
    SCRAPER,
    EstimatorConfig,
    ESTIMATOR,
)
