"""
Market signal data model.

Transient snapshots (ActiveSnapshot, SoldSnapshot) live only for the
duration of one fusion pass. MarketSignal is the caller-facing result and
the only thing that gets cached.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Condition(str, Enum):
    NEW = "NEW"
    USED = "USED"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Condition"]:
        """Map a free-form condition filter to a Condition (None = any)."""
        if value is None:
            return None
        if isinstance(value, Condition):
            return value
        cleaned = str(value).strip().upper()
        if cleaned in ("", "ANY", "ALL"):
            return None
        try:
            return cls(cleaned)
        except ValueError:
            return None


class Verdict(str, Enum):
    """Demand tiers, lowest to highest."""
    PASS = "PASS"
    MAYBE = "MAYBE"
    BUY = "BUY"
    STRONG_BUY = "STRONG_BUY"
    S_TIER = "S_TIER"


class DataSource(str, Enum):
    REAL = "real"
    ESTIMATED = "estimated"


@dataclass(frozen=True)
class NormalizedQuery:
    text: str
    condition: Optional[Condition] = None


@dataclass
class TopListing:
    """Active listing shown as a comparable (Comp Check)"""
    title: str
    price: float
    item_url: str
    condition: str = "Not specified"
    image_url: Optional[str] = None
    seller: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "price": self.price,
            "imageUrl": self.image_url,
            "condition": self.condition,
            "itemUrl": self.item_url,
            "seller": self.seller,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TopListing":
        return cls(
            title=data.get("title", ""),
            price=float(data.get("price", 0)),
            item_url=data.get("itemUrl", ""),
            condition=data.get("condition", "Not specified"),
            image_url=data.get("imageUrl"),
            seller=data.get("seller"),
        )


@dataclass
class ActiveSnapshot:
    """Current supply from the Browse API"""
    total_count: int
    prices: List[float] = field(default_factory=list)
    sample_listings: List[TopListing] = field(default_factory=list)


@dataclass
class SoldSnapshot:
    """
    Sold-listing data from the scraper.

    sold_count == 0 is a confirmed zero only when success is True.
    """
    success: bool
    sold_count: int = 0
    sold_prices: List[float] = field(default_factory=list)
    sold_dates: List[date] = field(default_factory=list)
    strategy: Optional[str] = None
    failure_reason: Optional[str] = None

    @classmethod
    def failed(cls, reason: str) -> "SoldSnapshot":
        return cls(success=False, failure_reason=reason)

    @classmethod
    def confirmed_zero(cls) -> "SoldSnapshot":
        return cls(success=True, sold_count=0, strategy="zero_results")

    @property
    def is_confirmed_zero(self) -> bool:
        return self.success and self.sold_count == 0


@dataclass
class MarketSignal:
    """Fused, caller-facing result for one query"""
    query: str
    sold_count: int                 # Last 90 days
    active_count: int
    sell_through_rate: float        # 0-100, one decimal
    avg_price: float
    median_price: float
    price_low: float
    price_high: float
    avg_days_to_sell: int
    verdict: Verdict
    data_source: DataSource
    condition: Optional[Condition] = None
    sample_listings: List[TopListing] = field(default_factory=list)
    count_strategy: Optional[str] = None
    platform: str = "ebay"
    cached_at: Optional[datetime] = None

    @property
    def total_results(self) -> int:
        return self.sold_count + self.active_count

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response dict"""
        return {
            "query": self.query,
            "condition": self.condition.value if self.condition else None,
            "soldCount90d": self.sold_count,
            "activeCount": self.active_count,
            "sellThroughRate": self.sell_through_rate,
            "avgSoldPrice": self.avg_price,
            "medianSoldPrice": self.median_price,
            "priceLow": self.price_low,
            "priceHigh": self.price_high,
            "avgDaysToSell": self.avg_days_to_sell,
            "verdict": self.verdict.value,
            "dataSource": self.data_source.value,
            "totalResults": self.total_results,
            "platform": self.platform,
            "countStrategy": self.count_strategy,
            "topListings": [listing.to_dict() for listing in self.sample_listings],
            "cachedAt": self.cached_at.isoformat() if self.cached_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketSignal":
        cached_at = data.get("cachedAt")
        return cls(
            query=data["query"],
            sold_count=int(data["soldCount90d"]),
            active_count=int(data["activeCount"]),
            sell_through_rate=float(data["sellThroughRate"]),
            avg_price=float(data["avgSoldPrice"]),
            median_price=float(data["medianSoldPrice"]),
            price_low=float(data["priceLow"]),
            price_high=float(data["priceHigh"]),
            avg_days_to_sell=int(data["avgDaysToSell"]),
            verdict=Verdict(data["verdict"]),
            data_source=DataSource(data["dataSource"]),
            condition=Condition.parse(data.get("condition")),
            sample_listings=[TopListing.from_dict(item) for item in data.get("topListings") or []],
            count_strategy=data.get("countStrategy"),
            platform=data.get("platform", "ebay"),
            cached_at=datetime.fromisoformat(cached_at) if cached_at else None,
        )


@dataclass
class CachedSignal:
    """MarketSignal plus its cache lifetime"""
    signal: MarketSignal
    cached_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at


@dataclass(frozen=True)
class Insight:
    """Human-readable observation; lower priority = more important"""
    text: str
    icon: str
    priority: int

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "icon": self.icon, "priority": self.priority}
