"""
Smart Insights - rule-based contextual tips

Each rule inspects a MarketSignal and emits at most one Insight. Rules are
independent of each other; priority lives on the rule so ordering is
decided once, centrally, after every rule has run.
"""

from dataclasses import dataclass
from typing import Callable, List, Sequence, Union

from .models import Insight, MarketSignal

MAX_INSIGHTS = 3


@dataclass(frozen=True)
class InsightRule:
    name: str
    priority: int
    icon: str
    applies: Callable[[MarketSignal], bool]
    text: Union[str, Callable[[MarketSignal], str]]

    def evaluate(self, signal: MarketSignal):
        if not self.applies(signal):
            return None
        text = self.text(signal) if callable(self.text) else self.text
        return Insight(text=text, icon=self.icon, priority=self.priority)


INSIGHT_RULES: Sequence[InsightRule] = (
    InsightRule(
        name="quick_seller",
        priority=1,
        icon="fire",
        applies=lambda s: s.sell_through_rate > 60 and s.avg_days_to_sell < 10,
        text="This moves fast - don't overthink it, just grab it.",
    ),
    InsightRule(
        name="dying_demand",
        priority=1,
        icon="trend-down",
        applies=lambda s: s.sell_through_rate < 15,
        text="Very few selling vs. listed - this category is oversaturated.",
    ),
    InsightRule(
        name="high_value",
        priority=2,
        icon="gem",
        applies=lambda s: s.median_price > 80,
        text="Sells at a solid price point - worth buying even with a longer wait.",
    ),
    InsightRule(
        name="low_competition",
        priority=2,
        icon="target",
        applies=lambda s: s.active_count < 20,
        text=lambda s: f"Only {s.active_count} listed right now - you could set your own price.",
    ),
    InsightRule(
        name="high_volume",
        priority=2,
        icon="trend-up",
        applies=lambda s: s.sold_count > 500,
        text=lambda s: f"{s.sold_count:,} sold in 90 days - high volume, reliable demand.",
    ),
    InsightRule(
        name="saturated_market",
        priority=3,
        icon="bolt",
        applies=lambda s: s.active_count > 500,
        text="Lots of competition - price below median to sell faster.",
    ),
    InsightRule(
        name="margin_potential",
        priority=3,
        icon="money",
        # Typical thrift buy is $3-8, so a $25+ median already leaves room
        applies=lambda s: s.median_price > 25 and s.sell_through_rate > 30,
        text="Strong margin potential even after fees and shipping.",
    ),
    InsightRule(
        name="price_sweet_spot",
        priority=3,
        icon="target",
        applies=lambda s: 40 <= s.sell_through_rate < 70,
        text=lambda s: f"Most sales happen around ${s.median_price:.0f} - price there for fastest turnover.",
    ),
    InsightRule(
        name="wide_price_range",
        priority=4,
        icon="ruler",
        applies=lambda s: s.price_low > 0 and s.price_high > 0 and s.price_high / s.price_low > 4,
        text="Huge price range - condition and completeness matter a lot here.",
    ),
    InsightRule(
        name="shipping_eats_margin",
        priority=4,
        icon="box",
        applies=lambda s: 0 < s.median_price < 30,
        text="At this price point, shipping costs could eat your margins.",
    ),
    InsightRule(
        name="slow_mover",
        priority=5,
        icon="turtle",
        applies=lambda s: s.avg_days_to_sell > 30,
        text="This is a slow burner - only buy if you can wait 30+ days to sell.",
    ),
    InsightRule(
        name="few_sales",
        priority=5,
        icon="warning",
        applies=lambda s: 0 < s.sold_count < 10,
        text="Very few recent sales - could be niche or declining demand.",
    ),
)


def generate_insights(
    signal: MarketSignal,
    rules: Sequence[InsightRule] = INSIGHT_RULES,
    limit: int = MAX_INSIGHTS,
) -> List[Insight]:
    """Run every rule, then keep the `limit` most important insights."""
    insights = [insight for insight in (rule.evaluate(signal) for rule in rules) if insight]
    insights.sort(key=lambda insight: insight.priority)
    return insights[:limit]
