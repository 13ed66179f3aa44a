"""
eBay Browse API - Active Listings

Fetches current supply for a query: the total number of active fixed-price
listings reported by the API and the prices of the items returned.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from sellcheck.config import BROWSE, BrowseConfig
from sellcheck.pipeline.models import ActiveSnapshot, Condition, NormalizedQuery, TopListing
from .ebay_auth import EbayTokenManager
from .exceptions import EbayAPIError, RateLimitError

logger = logging.getLogger(__name__)


def extract_prices(items: List[Dict[str, Any]]) -> List[float]:
    """Positive item prices; unparseable values are skipped."""
    prices = []
    for item in items:
        try:
            price = float((item.get("price") or {}).get("value", 0))
        except (TypeError, ValueError):
            continue
        if price > 0:
            prices.append(price)
    return prices


def _to_top_listing(item: Dict[str, Any]) -> TopListing:
    return TopListing(
        title=item.get("title", ""),
        price=float(item["price"]["value"]),
        item_url=item.get("itemWebUrl", ""),
        condition=item.get("condition") or "Not specified",
        image_url=(item.get("image") or {}).get("imageUrl"),
        seller=(item.get("seller") or {}).get("username"),
    )


def extract_top_listings(items: List[Dict[str, Any]], count: int = 6) -> List[TopListing]:
    """
    Pick `count` listings with images, evenly spaced across the price range,
    so comparables show price diversity instead of the cheapest N.
    """
    with_images = []
    for item in items:
        if not (item.get("image") or {}).get("imageUrl"):
            continue
        try:
            if float(item["price"]["value"]) <= 0:
                continue
        except (KeyError, TypeError, ValueError):
            continue
        with_images.append(item)

    ordered = sorted(with_images, key=lambda item: float(item["price"]["value"]))
    if len(ordered) <= count:
        return [_to_top_listing(item) for item in ordered]
    if count <= 1:
        return [_to_top_listing(ordered[0])] if count == 1 else []

    step = (len(ordered) - 1) / (count - 1)
    return [_to_top_listing(ordered[int(i * step + 0.5)]) for i in range(count)]


class ActiveListingsClient:
    """
    Usage:
        client = ActiveListingsClient(token_manager, http_client=client)
        snapshot = await client.search_active(build_query("nike dunk low"))
    """

    def __init__(
        self,
        token_manager: EbayTokenManager,
        http_client: Optional[httpx.AsyncClient] = None,
        config: BrowseConfig = BROWSE,
    ):
        self.token_manager = token_manager
        self.http_client = http_client
        self.config = config

    def build_params(self, query: NormalizedQuery, limit: int) -> Dict[str, str]:
        filters = ["buyingOptions:{FIXED_PRICE}"]
        if query.condition is Condition.NEW:
            filters.append("conditions:{NEW}")
        elif query.condition is Condition.USED:
            filters.append("conditions:{USED}")
        return {
            "q": query.text,
            "limit": str(min(limit, 200)),  # Browse API max is 200
            "filter": ",".join(filters),
        }

    async def search_active(self, query: NormalizedQuery, limit: Optional[int] = None) -> ActiveSnapshot:
        """
        Raises CredentialError, RateLimitError or EbayAPIError on failure.
        """
        token = await self.token_manager.get_token()

        headers = {
            "Authorization": f"Bearer {token}",
            "X-EBAY-C-MARKETPLACE-ID": self.config.marketplace_id,
            "Content-Type": "application/json",
        }
        params = self.build_params(query, limit or self.config.result_limit)

        try:
            if self.http_client is not None:
                response = await self.http_client.get(
                    self.config.search_url, headers=headers, params=params, timeout=self.config.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                    response = await client.get(self.config.search_url, headers=headers, params=params)
        except httpx.HTTPError as e:
            logger.error(f"[Browse API] Request error: {e}")
            raise EbayAPIError("eBay Browse API request failed", cause=e) from e

        if response.status_code == 401:
            # Token expired or revoked, next request re-acquires one
            self.token_manager.invalidate()
            logger.warning("[Browse API] 401 - cleared cached token")
            raise EbayAPIError("eBay Browse API rejected token", status_code=401)

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError("ebay", retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None)

        if response.status_code != 200:
            logger.error(f"[Browse API] Error {response.status_code}: {response.text[:300]}")
            raise EbayAPIError(
                f"eBay Browse API error: {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EbayAPIError("eBay Browse API returned invalid JSON", cause=e) from e

        items = data.get("itemSummaries") or []
        total = data.get("total")
        if total is None:
            total = len(items)

        logger.info(f"[Browse API] Fetched {len(items)} of {total} for '{query.text[:30]}'")

        return ActiveSnapshot(
            total_count=int(total),
            prices=extract_prices(items),
            sample_listings=extract_top_listings(items, self.config.sample_listings),
        )
