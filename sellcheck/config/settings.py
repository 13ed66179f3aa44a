"""
Centralized Configuration Settings for SellCheck

All configuration values are consolidated here for easy management.
Environment variables are loaded from a .env file when one is present.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

# ============================================================
# ENVIRONMENT LOADING
# ============================================================
# Try .env in project root first, then the working directory
env_path = Path(__file__).parent.parent.parent / ".env"
if not env_path.exists():
    env_path = Path.cwd() / ".env"
if env_path.exists():
    load_dotenv(env_path)
    print(f"[CONFIG] Loaded .env from {env_path}")

# ============================================================
# PATHS
# ============================================================
BASE_DIR = Path(__file__).parent.parent.parent
CACHE_DB_PATH = Path(os.getenv("CACHE_DB_PATH", str(BASE_DIR / "search_cache.db")))

# ============================================================
# SERVER SETTINGS
# ============================================================
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"

# ============================================================
# API KEYS & CREDENTIALS
# ============================================================
# eBay Browse API (OAuth2 client credentials)
EBAY_CLIENT_ID = os.getenv("EBAY_CLIENT_ID") or os.getenv("EBAY_APP_ID")
EBAY_CLIENT_SECRET = os.getenv("EBAY_CLIENT_SECRET") or os.getenv("EBAY_CERT_ID")

if EBAY_CLIENT_ID and EBAY_CLIENT_SECRET:
    print(f"[CONFIG] eBay client ID loaded ({EBAY_CLIENT_ID[:8]}...) - Browse API enabled")
else:
    print("[CONFIG] WARNING: EBAY_CLIENT_ID / EBAY_CLIENT_SECRET not set - active listings unavailable")

# Admin endpoints (cache flush)
ADMIN_SECRET = os.getenv("ADMIN_SECRET")
if not ADMIN_SECRET:
    print("[CONFIG] WARNING: ADMIN_SECRET not set - admin endpoints disabled")

# ============================================================
# CACHE SETTINGS
# ============================================================
@dataclass
class CacheConfig:
    """Search result cache settings"""
    ttl_seconds: int = 24 * 60 * 60   # Fixed 24h TTL for every signal
    max_size: int = 1000              # In-memory LRU capacity
    version: str = "v2"               # Bump to invalidate every cached result
    persist: bool = os.getenv("CACHE_PERSIST", "true").lower() == "true"

CACHE = CacheConfig()

# ============================================================
# EBAY BROWSE API SETTINGS
# ============================================================
@dataclass
class BrowseConfig:
    """Browse API endpoints and request limits"""
    oauth_url: str = "https://api.ebay.com/identity/v1/oauth2/token"
    search_url: str = "https://api.ebay.com/buy/browse/v1/item_summary/search"
    scope: str = "https://api.ebay.com/oauth/api_scope"
    marketplace_id: str = "EBAY_US"
    result_limit: int = 200            # Browse API max is 200
    timeout: float = 10.0
    token_safety_margin: int = 300     # Refresh 5 minutes before expiry
    sample_listings: int = 6           # Comp Check listings per result

BROWSE = BrowseConfig()

# ============================================================
# SOLD LISTINGS SCRAPER SETTINGS
# ============================================================
@dataclass
class ScraperConfig:
    """Public sold-listings page scraping"""
    search_url: str = "https://www.ebay.com/sch/i.html"
    timeout: float = float(os.getenv("SCRAPER_TIMEOUT", "8.0"))
    page_size: int = 240               # _ipg max items per page
    price_ceiling: float = 100000.0    # Anything above is parsing noise
    trim_outliers: bool = True         # Keep 10th-90th percentile when >10 prices
    user_agents: Tuple[str, ...] = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.3 Safari/605.1.15",
    )

SCRAPER = ScraperConfig()

# ============================================================
# FALLBACK ESTIMATOR SETTINGS
# ============================================================
@dataclass
class EstimatorConfig:
    """
    Sell-through ratio bands used when no sold count could be scraped.

    Each tier is (max_active_count, ratio_low, ratio_high). Fewer active
    listings imply a higher assumed sell-through ratio.
    """
    tiers: Tuple[Tuple[float, float, float], ...] = (
        (50, 0.45, 0.60),            # Thin supply
        (500, 0.30, 0.45),           # Normal supply
        (float("inf"), 0.15, 0.30),  # Saturated
    )
    dispersion_threshold: float = 0.5  # IQR / median below this = standardized product
    min_prices_for_dispersion: int = 4

ESTIMATOR = EstimatorConfig()

if DEBUG_MODE:
    print("[CONFIG] DEBUG_MODE enabled - error responses include exception details")
