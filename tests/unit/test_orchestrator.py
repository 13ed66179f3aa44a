import asyncio
import unittest
from datetime import date, datetime, timedelta, timezone

from sellcheck.pipeline.models import (
    ActiveSnapshot,
    Condition,
    DataSource,
    SoldSnapshot,
    TopListing,
    Verdict,
)
from sellcheck.pipeline.normalize import build_query
from sellcheck.pipeline.orchestrator import MarketSignalOrchestrator, fuse_signal
from sellcheck.services.exceptions import CacheError, EbayAPIError, SourceUnavailableError
from sellcheck.services.search_cache import MemorySignalStore


class _StubActiveClient:
    def __init__(self, snapshot=None, error=None, delay=0.0):
        self.snapshot = snapshot or ActiveSnapshot(total_count=183, prices=[80.0, 90.0, 100.0])
        self.error = error
        self.delay = delay
        self.calls = []

    async def search_active(self, query):
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.snapshot


class _StubScraper:
    def __init__(self, snapshot=None, error=None, delay=0.0):
        self.snapshot = snapshot or SoldSnapshot(
            success=True, sold_count=247, sold_prices=[], strategy="heading_bold"
        )
        self.error = error
        self.delay = delay
        self.calls = []

    async def scrape(self, query):
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.snapshot


class _BrokenCache:
    def get(self, key):
        raise CacheError("Cache read failed")

    def put(self, key, signal, ttl):
        raise CacheError("Cache write failed")


class FuseSignalTests(unittest.TestCase):
    def test_real_sold_count(self):
        signal = fuse_signal(
            build_query("nike dunk low"),
            ActiveSnapshot(total_count=183, prices=[80.0, 90.0, 100.0]),
            SoldSnapshot(success=True, sold_count=247, strategy="heading_bold"),
        )
        self.assertEqual(signal.sell_through_rate, 57.4)
        self.assertEqual(signal.verdict, Verdict.BUY)
        self.assertEqual(signal.data_source, DataSource.REAL)
        self.assertEqual(signal.median_price, 90.0)
        self.assertEqual(signal.count_strategy, "heading_bold")

    def test_sold_prices_used_when_enough(self):
        sold_prices = [50.0, 52.0, 54.0, 56.0, 58.0, 60.0]
        signal = fuse_signal(
            build_query("x"),
            ActiveSnapshot(total_count=10, prices=[500.0]),
            SoldSnapshot(success=True, sold_count=30, sold_prices=sold_prices, strategy="heading_bold"),
        )
        self.assertEqual(signal.price_low, 50.0)
        self.assertEqual(signal.price_high, 60.0)

    def test_few_sold_prices_fall_back_to_active(self):
        signal = fuse_signal(
            build_query("x"),
            ActiveSnapshot(total_count=10, prices=[500.0]),
            SoldSnapshot(success=True, sold_count=30, sold_prices=[50.0] * 5, strategy="heading_bold"),
        )
        self.assertEqual(signal.median_price, 500.0)

    def test_failed_scrape_is_estimated(self):
        signal = fuse_signal(
            build_query("x"),
            ActiveSnapshot(total_count=100, prices=[]),
            SoldSnapshot.failed("bot_challenge"),
        )
        self.assertEqual(signal.data_source, DataSource.ESTIMATED)
        self.assertEqual(signal.sold_count, 60)
        self.assertEqual(signal.sell_through_rate, 37.5)
        self.assertEqual(signal.verdict, Verdict.MAYBE)

    def test_confirmed_zero_is_real(self):
        signal = fuse_signal(
            build_query("x"),
            ActiveSnapshot(total_count=40, prices=[20.0]),
            SoldSnapshot.confirmed_zero(),
        )
        self.assertEqual(signal.data_source, DataSource.REAL)
        self.assertEqual(signal.sold_count, 0)
        self.assertEqual(signal.sell_through_rate, 0.0)
        self.assertEqual(signal.verdict, Verdict.PASS)

    def test_avg_days_from_sold_dates(self):
        today = date(2024, 6, 30)
        signal = fuse_signal(
            build_query("x"),
            ActiveSnapshot(total_count=10, prices=[20.0]),
            SoldSnapshot(
                success=True,
                sold_count=10,
                sold_dates=[today - timedelta(days=4), today - timedelta(days=8)],
                strategy="card_count",
            ),
            today=today,
        )
        self.assertEqual(signal.avg_days_to_sell, 6)

    def test_avg_days_estimated_without_dates(self):
        # rate 50 -> 10 baseline days at the median
        signal = fuse_signal(
            build_query("x"),
            ActiveSnapshot(total_count=10, prices=[20.0]),
            SoldSnapshot(success=True, sold_count=10, strategy="card_count"),
        )
        self.assertEqual(signal.avg_days_to_sell, 10)

    def test_empty_market(self):
        signal = fuse_signal(build_query("zzqx"), ActiveSnapshot(total_count=0), SoldSnapshot.confirmed_zero())
        self.assertEqual(signal.sell_through_rate, 0.0)
        self.assertEqual(signal.avg_price, 0.0)
        self.assertEqual(signal.verdict, Verdict.PASS)

    def test_keeps_condition_and_samples(self):
        listing = TopListing(title="t", price=10.0, item_url="u", image_url="i")
        signal = fuse_signal(
            build_query("x", "NEW"),
            ActiveSnapshot(total_count=1, prices=[10.0], sample_listings=[listing]),
            SoldSnapshot.confirmed_zero(),
        )
        self.assertEqual(signal.condition, Condition.NEW)
        self.assertEqual(signal.sample_listings, [listing])


class OrchestratorTests(unittest.TestCase):
    def test_fresh_search_then_cache_hit(self):
        active, scraper = _StubActiveClient(), _StubScraper()
        orchestrator = MarketSignalOrchestrator(active, scraper, cache=MemorySignalStore())

        async def scenario():
            first = await orchestrator.get_signal("Nike Dunk Low")
            second = await orchestrator.get_signal("  nike   dunk LOW ")
            return first, second

        first, second = asyncio.run(scenario())
        self.assertFalse(first.cached)
        self.assertTrue(second.cached)
        self.assertEqual(first.cache_key, second.cache_key)
        self.assertEqual(second.signal.sold_count, 247)
        self.assertIsNotNone(second.signal.cached_at)
        self.assertEqual(len(active.calls), 1)
        self.assertEqual(len(scraper.calls), 1)
        self.assertEqual(orchestrator.get_stats()["cache_hits"], 1)

    def test_condition_is_part_of_the_key(self):
        active = _StubActiveClient()
        orchestrator = MarketSignalOrchestrator(active, _StubScraper(), cache=MemorySignalStore())

        async def scenario():
            await orchestrator.get_signal("nike dunk low")
            return await orchestrator.get_signal("nike dunk low", condition="USED")

        outcome = asyncio.run(scenario())
        self.assertFalse(outcome.cached)
        self.assertEqual(active.calls[1].condition, Condition.USED)

    def test_bot_challenge_falls_back_to_estimate(self):
        scraper = _StubScraper(snapshot=SoldSnapshot.failed("bot_challenge"))
        orchestrator = MarketSignalOrchestrator(_StubActiveClient(), scraper)

        outcome = asyncio.run(orchestrator.get_signal("nike dunk low"))
        self.assertEqual(outcome.signal.data_source, DataSource.ESTIMATED)
        self.assertGreater(outcome.signal.sold_count, 0)
        self.assertEqual(orchestrator.get_stats()["scrape_failures"], 1)

    def test_scraper_exception_is_contained(self):
        orchestrator = MarketSignalOrchestrator(_StubActiveClient(), _StubScraper(error=RuntimeError("boom")))
        outcome = asyncio.run(orchestrator.get_signal("nike dunk low"))
        self.assertEqual(outcome.signal.data_source, DataSource.ESTIMATED)

    def test_confirmed_zero_is_not_estimated(self):
        orchestrator = MarketSignalOrchestrator(
            _StubActiveClient(ActiveSnapshot(total_count=40, prices=[15.0])),
            _StubScraper(snapshot=SoldSnapshot.confirmed_zero()),
        )
        outcome = asyncio.run(orchestrator.get_signal("obscure thing"))
        self.assertEqual(outcome.signal.data_source, DataSource.REAL)
        self.assertEqual(outcome.signal.sold_count, 0)
        self.assertEqual(outcome.signal.verdict, Verdict.PASS)
        self.assertEqual(orchestrator.get_stats()["confirmed_zero"], 1)

    def test_active_failure_is_source_unavailable(self):
        cache = MemorySignalStore()
        orchestrator = MarketSignalOrchestrator(
            _StubActiveClient(error=EbayAPIError("down", status_code=503)), _StubScraper(), cache=cache
        )
        with self.assertRaises(SourceUnavailableError) as ctx:
            asyncio.run(orchestrator.get_signal("nike dunk low"))
        self.assertEqual(ctx.exception.details["source_error"], "EBAY_API_ERROR")
        self.assertEqual(cache.get_stats()["size"], 0)

    def test_broken_cache_is_a_miss(self):
        orchestrator = MarketSignalOrchestrator(_StubActiveClient(), _StubScraper(), cache=_BrokenCache())
        outcome = asyncio.run(orchestrator.get_signal("nike dunk low"))
        self.assertFalse(outcome.cached)
        self.assertEqual(outcome.signal.sold_count, 247)
        self.assertEqual(orchestrator.get_stats()["cache_errors"], 2)

    def test_expired_entry_refetches(self):
        now = [datetime(2024, 6, 1, tzinfo=timezone.utc)]
        cache = MemorySignalStore(clock=lambda: now[0])
        active = _StubActiveClient()
        orchestrator = MarketSignalOrchestrator(active, _StubScraper(), cache=cache, ttl_seconds=60)

        async def scenario():
            await orchestrator.get_signal("nike")
            now[0] += timedelta(seconds=60)
            return await orchestrator.get_signal("nike")

        self.assertFalse(asyncio.run(scenario()).cached)
        self.assertEqual(len(active.calls), 2)

    def test_sources_run_concurrently(self):
        active = _StubActiveClient(delay=0.2)
        scraper = _StubScraper(delay=0.2)
        orchestrator = MarketSignalOrchestrator(active, scraper)

        async def scenario():
            loop = asyncio.get_running_loop()
            started = loop.time()
            await orchestrator.get_signal("nike")
            return loop.time() - started

        self.assertLess(asyncio.run(scenario()), 0.35)

    def test_insights_on_request(self):
        orchestrator = MarketSignalOrchestrator(_StubActiveClient(), _StubScraper())
        outcome = asyncio.run(orchestrator.get_signal("nike", with_insights=True))
        self.assertTrue(outcome.insights)
        self.assertLessEqual(len(outcome.insights), 3)
        self.assertIn("insights", outcome.to_dict())

        plain = asyncio.run(orchestrator.get_signal("nike"))
        self.assertNotIn("insights", plain.to_dict())

    def test_outcome_dict(self):
        orchestrator = MarketSignalOrchestrator(_StubActiveClient(), _StubScraper())
        body = asyncio.run(orchestrator.get_signal("nike")).to_dict()
        self.assertEqual(body["result"]["soldCount90d"], 247)
        self.assertEqual(body["result"]["activeCount"], 183)
        self.assertEqual(body["result"]["totalResults"], 430)
        self.assertEqual(body["result"]["verdict"], "BUY")
        self.assertEqual(body["result"]["dataSource"], "real")
        self.assertFalse(body["cached"])
        self.assertLessEqual(body["speedRange"]["low"], body["speedRange"]["high"])

    def test_estimate_speed(self):
        orchestrator = MarketSignalOrchestrator(_StubActiveClient(), _StubScraper())
        signal = asyncio.run(orchestrator.get_signal("nike")).signal
        fast = orchestrator.estimate_speed(signal, signal.median_price * 0.5)
        slow = orchestrator.estimate_speed(signal, signal.median_price * 2)
        self.assertLess(fast["estimatedDays"], slow["estimatedDays"])
        self.assertEqual(fast["medianPrice"], 90.0)
        self.assertIn(fast["label"], ("Fast", "Moderate", "Slow", "Very slow"))


if __name__ == "__main__":
    unittest.main()
