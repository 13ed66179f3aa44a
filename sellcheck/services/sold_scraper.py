"""
eBay Sold Listings Scraper

Fetches eBay's public sold/completed search page and extracts the total
sold count, individual sale prices and sale dates.

The page structure is not under our control, so the count is read by an
ordered list of independent strategies; the first one that yields a
positive integer wins and its name is recorded for diagnostics.

Processing order:
1. Bot-challenge detection        -> failure
2. Search-page sanity check       -> failure
3. Explicit zero-result detection -> confirmed zero (success)
4. Count strategies               -> success if any matched
5. Price/date extraction (s-card layout first, legacy li.s-item second)

scrape() never raises: every failure becomes SoldSnapshot(success=False).
"""

import asyncio
import itertools
import logging
import re
import time
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

import httpx
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from sellcheck.config import SCRAPER, ScraperConfig
from sellcheck.pipeline.models import Condition, NormalizedQuery, SoldSnapshot
from sellcheck.pipeline.sellthrough import trim_outliers
from .exceptions import BotChallengeError, ScrapeError

logger = logging.getLogger(__name__)

# LH_ItemCondition: 1000 = New, 3000 = Used
CONDITION_PARAMS = {
    Condition.NEW: "1000",
    Condition.USED: "3000",
}

BOT_CHALLENGE_MARKERS = (
    "captcha",
    "verify you are a human",
    "pardon our interruption",
    "splashui/challenge",
    "checking your browser",
)

SEARCH_PAGE_MARKERS = (
    "srp-controls__count-heading",
    "srp-results",
    "srp-river-results",
    "s-card__price",
    "s-item__price",
    "no exact matches found",
    "srp-save-null-search",
)

COUNT_HEADING = "h1.srp-controls__count-heading"

_NUMBER = re.compile(r"\d[\d,.]*")
_HEADING_RESULTS = re.compile(r"([\d,.]+)\s*\+?\s*results?", re.I)
_ZERO_HEADING = re.compile(r"^\s*0\s*\+?\s*results?\b", re.I)
_ZERO_BODY = re.compile(r"(?<![\d,.])0\s+results?\s+(?:for|found)", re.I)
_PRICE = re.compile(r"\$?\s*([\d,]+(?:\.\d+)?)")
_SOLD_PREFIX = re.compile(r"^\s*sold\s*(?:on\s*)?", re.I)

# Ghost card eBay injects at the top of legacy result lists
_GHOST_TITLE = "shop on ebay"


def _parse_int(text: Optional[str]) -> Optional[int]:
    """'1,234+' -> 1234; None if no digits or not positive."""
    if not text:
        return None
    match = _NUMBER.search(text)
    if not match:
        return None
    digits = re.sub(r"\D", "", match.group())
    if not digits:
        return None
    value = int(digits)
    return value if value > 0 else None


# ============================================================
# COUNT STRATEGIES
# ============================================================
# Each strategy takes (soup, page_size) and returns a positive count or None.

def count_from_heading_bold(soup: BeautifulSoup, page_size: int) -> Optional[int]:
    node = soup.select_one(f"{COUNT_HEADING} .BOLD")
    return _parse_int(node.get_text()) if node else None


def count_from_heading_span(soup: BeautifulSoup, page_size: int) -> Optional[int]:
    node = soup.select_one(f"{COUNT_HEADING} span")
    return _parse_int(node.get_text()) if node else None


def count_from_heading_text(soup: BeautifulSoup, page_size: int) -> Optional[int]:
    node = soup.select_one(COUNT_HEADING)
    if not node:
        return None
    match = _HEADING_RESULTS.search(node.get_text(" ", strip=True))
    return _parse_int(match.group(1)) if match else None


def count_from_alt_element(soup: BeautifulSoup, page_size: int) -> Optional[int]:
    node = soup.select_one(".srp-controls__result-count")
    return _parse_int(node.get_text()) if node else None


def count_priced_cards(soup: BeautifulSoup, page_size: int) -> Optional[int]:
    cards = [card for card in soup.select(".s-card") if card.select_one(".s-card__price")]
    if not cards:
        return None
    return min(len(cards), page_size)


def count_priced_legacy_items(soup: BeautifulSoup, page_size: int) -> Optional[int]:
    items = [item for item in _legacy_items(soup) if item.select_one(".s-item__price")]
    if not items:
        return None
    return min(len(items), page_size)


CountStrategy = Callable[[BeautifulSoup, int], Optional[int]]

COUNT_STRATEGIES: Sequence[Tuple[str, CountStrategy]] = (
    ("heading_bold", count_from_heading_bold),
    ("heading_span", count_from_heading_span),
    ("heading_text", count_from_heading_text),
    ("result_count_alt", count_from_alt_element),
    ("card_count", count_priced_cards),
    ("legacy_item_count", count_priced_legacy_items),
)


def extract_sold_count(
    soup: BeautifulSoup,
    page_size: int,
    strategies: Sequence[Tuple[str, CountStrategy]] = COUNT_STRATEGIES,
) -> Tuple[int, Optional[str]]:
    """Run strategies in priority order; (count, strategy name) of the first hit."""
    for name, strategy in strategies:
        count = strategy(soup, page_size)
        if count:
            return count, name
    return 0, None


# ============================================================
# PAGE CLASSIFICATION
# ============================================================

def detect_bot_challenge(html: str) -> Optional[str]:
    """Return the matching challenge marker, if any."""
    lowered = html.lower()
    for marker in BOT_CHALLENGE_MARKERS:
        if marker in lowered:
            return marker
    return None


def is_search_page(html: str) -> bool:
    lowered = html.lower()
    return any(marker in lowered for marker in SEARCH_PAGE_MARKERS)


def is_zero_results(soup: BeautifulSoup) -> bool:
    heading = soup.select_one(COUNT_HEADING)
    if heading and _ZERO_HEADING.search(heading.get_text(" ", strip=True)):
        return True
    body_text = soup.get_text(" ", strip=True)
    if "no exact matches found" in body_text.lower():
        return True
    return bool(_ZERO_BODY.search(body_text))


# ============================================================
# PRICE / DATE EXTRACTION
# ============================================================

def parse_price(text: str, ceiling: float) -> Optional[float]:
    """First currency amount in the text, if it is inside (0, ceiling)."""
    match = _PRICE.search(text or "")
    if not match:
        return None
    try:
        price = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    if 0 < price < ceiling:
        return price
    return None


def parse_sold_date(text: str) -> Optional[date]:
    """'Sold  Feb 14, 2026' -> date(2026, 2, 14)"""
    cleaned = _SOLD_PREFIX.sub("", text or "").strip()
    if not cleaned:
        return None
    try:
        return date_parser.parse(cleaned).date()
    except (ValueError, OverflowError):
        return None


def _legacy_items(soup: BeautifulSoup):
    for item in soup.select("li.s-item"):
        title = item.select_one(".s-item__title")
        if title and title.get_text(strip=True).lower() == _GHOST_TITLE:
            continue
        yield item


def extract_prices_and_dates(soup: BeautifulSoup, ceiling: float) -> Tuple[List[float], List[date]]:
    """Scan result cards, newer s-card layout first, legacy li.s-item as fallback."""
    prices: List[float] = []
    dates: List[date] = []

    cards = soup.select(".s-card")
    if cards:
        for card in cards:
            price_node = card.select_one(".s-card__price")
            if price_node:
                price = parse_price(price_node.get_text(), ceiling)
                if price is not None:
                    prices.append(price)
            for caption in card.select(".s-card__caption"):
                text = caption.get_text(" ", strip=True)
                if "sold" in text.lower():
                    sold_on = parse_sold_date(text)
                    if sold_on:
                        dates.append(sold_on)
                    break
        return prices, dates

    for item in _legacy_items(soup):
        price_node = item.select_one(".s-item__price")
        if price_node:
            price = parse_price(price_node.get_text(), ceiling)
            if price is not None:
                prices.append(price)
        date_node = item.select_one(".s-item__endedDate, .s-item__ended-date, .s-item__caption--signal, .POSITIVE")
        if date_node:
            sold_on = parse_sold_date(date_node.get_text(" ", strip=True))
            if sold_on:
                dates.append(sold_on)
    return prices, dates


def parse_sold_page(html: str, config: ScraperConfig = SCRAPER) -> SoldSnapshot:
    """
    Turn a sold-listings page into a SoldSnapshot.

    Raises BotChallengeError / ScrapeError for pages that carry no usable
    signal; the scraper converts those into failed snapshots.
    """
    marker = detect_bot_challenge(html)
    if marker:
        raise BotChallengeError(marker)

    if not is_search_page(html):
        raise ScrapeError("not_search_page")

    soup = BeautifulSoup(html, "html.parser")

    if is_zero_results(soup):
        return SoldSnapshot.confirmed_zero()

    sold_count, strategy = extract_sold_count(soup, config.page_size)
    if not strategy:
        raise ScrapeError("no_count_strategy_matched")

    prices, dates = extract_prices_and_dates(soup, config.price_ceiling)
    if config.trim_outliers:
        prices = trim_outliers(prices)

    return SoldSnapshot(
        success=True,
        sold_count=sold_count,
        sold_prices=prices,
        sold_dates=dates,
        strategy=strategy,
    )


# ============================================================
# SCRAPER
# ============================================================

def build_sold_url(query: NormalizedQuery, config: ScraperConfig = SCRAPER) -> str:
    params = {
        "_nkw": query.text,
        "LH_Sold": "1",
        "LH_Complete": "1",
        "_ipg": str(config.page_size),
        "rt": "nc",
    }
    if query.condition in CONDITION_PARAMS:
        params["LH_ItemCondition"] = CONDITION_PARAMS[query.condition]
    return f"{config.search_url}?{urlencode(params)}"


class SoldListingsScraper:
    """
    Usage:
        scraper = SoldListingsScraper(http_client=client)
        snapshot = await scraper.scrape(build_query("nike dunk low"))
        if not snapshot.success:
            ...  # fall back to estimation
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        config: ScraperConfig = SCRAPER,
    ):
        self.http_client = http_client
        self.config = config
        self._user_agents = itertools.cycle(config.user_agents)

    def _headers(self) -> dict:
        return {
            "User-Agent": next(self._user_agents),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "Cache-Control": "no-cache",
        }

    async def _fetch_html(self, url: str) -> str:
        if self.http_client is not None:
            response = await self.http_client.get(url, headers=self._headers(), timeout=self.config.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout, follow_redirects=True) as client:
                response = await client.get(url, headers=self._headers())

        if response.status_code != 200:
            raise ScrapeError(f"http_{response.status_code}")
        return response.text

    async def scrape(self, query: NormalizedQuery) -> SoldSnapshot:
        start_time = time.monotonic()
        url = build_sold_url(query, self.config)

        try:
            html = await asyncio.wait_for(self._fetch_html(url), timeout=self.config.timeout)
            snapshot = parse_sold_page(html, self.config)
        except ScrapeError as e:
            snapshot = SoldSnapshot.failed(e.reason)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            snapshot = SoldSnapshot.failed("timeout")
        except httpx.HTTPError as e:
            snapshot = SoldSnapshot.failed(f"network: {type(e).__name__}")
        except Exception as e:
            logger.exception(f"[SCRAPER] Unexpected error for query='{query.text}'")
            snapshot = SoldSnapshot.failed(f"unexpected: {type(e).__name__}")

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if snapshot.success:
            logger.info(
                f"[SCRAPER] query='{query.text}' soldCount={snapshot.sold_count} strategy={snapshot.strategy} "
                f"pricesFound={len(snapshot.sold_prices)} datesFound={len(snapshot.sold_dates)} duration={duration_ms}ms"
            )
        else:
            logger.warning(
                f"[SCRAPER] FAILED query='{query.text}' reason={snapshot.failure_reason} "
                f"duration={duration_ms}ms - falling back to estimation"
            )
        return snapshot
