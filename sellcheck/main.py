"""
SellCheck - resale market signal service

Wires the eBay sources, the search cache and the orchestrator into the
FastAPI app and runs it with uvicorn.

Run:
    sellcheck
    python -m sellcheck.main
"""

import logging
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI

from sellcheck.config import (
    ADMIN_SECRET,
    CACHE,
    CACHE_DB_PATH,
    DEBUG_MODE,
    EBAY_CLIENT_ID,
    EBAY_CLIENT_SECRET,
    HOST,
    LOG_LEVEL,
    PORT,
)
from sellcheck.pipeline import MarketSignalOrchestrator
from sellcheck.services import (
    ActiveListingsClient,
    CacheError,
    EbayTokenManager,
    MemorySignalStore,
    SoldListingsScraper,
    SqliteSignalStore,
    TieredSignalStore,
)
from sellcheck.services.app_factory import create_app
from sellcheck.services.app_state import AppState

# ============================================================
# LOGGING SETUP
# ============================================================
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def build_cache(persist: bool = CACHE.persist) -> TieredSignalStore:
    """Memory store, backed by SQLite when persistence is enabled and the file opens."""
    durable: Optional[SqliteSignalStore] = None
    if persist:
        try:
            durable = SqliteSignalStore(CACHE_DB_PATH)
        except CacheError as e:
            logger.error(f"[CACHE] {e.message}, continuing with memory cache only")
    return TieredSignalStore(MemorySignalStore(), durable)


def build_app() -> FastAPI:
    http_client = httpx.AsyncClient(follow_redirects=True)

    token_manager = EbayTokenManager(EBAY_CLIENT_ID, EBAY_CLIENT_SECRET, http_client=http_client)
    if not token_manager.configured:
        logger.warning("[EBAY OAuth] Credentials not set - searches will return SOURCE_UNAVAILABLE")

    cache = build_cache()
    orchestrator = MarketSignalOrchestrator(
        active_client=ActiveListingsClient(token_manager, http_client=http_client),
        scraper=SoldListingsScraper(http_client=http_client),
        cache=cache,
    )

    state = AppState(
        orchestrator=orchestrator,
        cache=cache,
        http_client=http_client,
        admin_secret=ADMIN_SECRET,
        debug_mode=DEBUG_MODE,
    )
    return create_app(state)


def run():
    print("\n" + "=" * 60)
    print("SellCheck - sell-through and verdicts")
    print("=" * 60)
    print(f"API:    http://{HOST}:{PORT}/api/search?q=...")
    print(f"Health: http://{HOST}:{PORT}/health")
    print("=" * 60 + "\n")

    uvicorn.run(build_app(), host=HOST, port=PORT)


if __name__ == "__main__":
    run()
