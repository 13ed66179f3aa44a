import unittest

from fastapi.testclient import TestClient

from sellcheck.pipeline.models import ActiveSnapshot, SoldSnapshot
from sellcheck.pipeline.orchestrator import MarketSignalOrchestrator
from sellcheck.services.app_factory import create_app
from sellcheck.services.app_state import AppState
from sellcheck.services.error_handler import create_error_response, get_status_code
from sellcheck.services.exceptions import (
    ConfigurationError,
    CredentialError,
    EbayAPIError,
    InvalidQueryError,
    RateLimitError,
    ScrapeError,
    SellCheckError,
    SourceUnavailableError,
    UnauthorizedError,
)
from sellcheck.services.search_cache import MemorySignalStore

ADMIN_SECRET = "s3cret"


class _StubActiveClient:
    def __init__(self, error=None):
        self.error = error

    async def search_active(self, query):
        if self.error:
            raise self.error
        return ActiveSnapshot(total_count=183, prices=[80.0, 90.0, 100.0])


class _StubScraper:
    async def scrape(self, query):
        return SoldSnapshot(success=True, sold_count=247, strategy="heading_bold")


def _client(active=None, admin_secret=ADMIN_SECRET):
    cache = MemorySignalStore()
    orchestrator = MarketSignalOrchestrator(active or _StubActiveClient(), _StubScraper(), cache=cache)
    state = AppState(orchestrator=orchestrator, cache=cache, admin_secret=admin_secret)
    return TestClient(create_app(state))


class SearchRouteTests(unittest.TestCase):
    def test_search(self):
        client = _client()
        response = client.get("/api/search", params={"q": "Nike Dunk Low"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["result"]["query"], "nike dunk low")
        self.assertEqual(body["result"]["sellThroughRate"], 57.4)
        self.assertEqual(body["result"]["verdict"], "BUY")
        self.assertEqual(body["result"]["verdictLabel"], "Strong demand - BUY")
        self.assertEqual(body["result"]["verdictDisplay"], "BUY")
        self.assertFalse(body["cached"])

        again = client.get("/api/search", params={"q": "nike dunk low"})
        self.assertTrue(again.json()["cached"])
        self.assertIsNotNone(again.json()["result"]["cachedAt"])

    def test_search_with_condition_and_insights(self):
        response = _client().get(
            "/api/search", params={"q": "nike dunk low", "condition": "used", "insights": "true"}
        )
        body = response.json()
        self.assertEqual(body["result"]["condition"], "USED")
        self.assertTrue(body["insights"])

    def test_missing_query(self):
        response = _client().get("/api/search")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "INVALID_QUERY")

    def test_query_too_short(self):
        response = _client().get("/api/search", params={"q": " a "})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["details"]["field"], "q")

    def test_source_unavailable(self):
        client = _client(active=_StubActiveClient(error=CredentialError("Missing eBay API credentials")))
        response = client.get("/api/search", params={"q": "nike dunk low"})
        self.assertEqual(response.status_code, 503)
        body = response.json()
        self.assertEqual(body["error"], "SOURCE_UNAVAILABLE")
        self.assertEqual(body["details"]["source_error"], "CREDENTIAL_ERROR")


class PriceSpeedRouteTests(unittest.TestCase):
    def test_price_speed(self):
        response = _client().get("/api/price-speed", params={"q": "nike dunk low", "price": 45})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["medianPrice"], 90.0)
        self.assertEqual(body["dataSource"], "real")
        self.assertLessEqual(body["estimatedDays"], body["medianDays"])

    def test_price_must_be_positive(self):
        response = _client().get("/api/price-speed", params={"q": "nike dunk low", "price": -5})
        self.assertEqual(response.status_code, 400)

    def test_price_required(self):
        response = _client().get("/api/price-speed", params={"q": "nike dunk low"})
        self.assertEqual(response.status_code, 422)

    def test_non_finite_price_rejected(self):
        client = _client()
        for price in ("inf", "nan", "1e400"):
            response = client.get("/api/price-speed", params={"q": "nike dunk low", "price": price})
            self.assertEqual(response.status_code, 400, price)
            self.assertEqual(response.json()["details"]["field"], "price")


class AdminRouteTests(unittest.TestCase):
    def test_flush_cache(self):
        client = _client()
        client.get("/api/search", params={"q": "nike dunk low"})

        response = client.post("/api/admin/flush-cache", headers={"Authorization": f"Bearer {ADMIN_SECRET}"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["deletedCount"], 1)
        self.assertFalse(client.get("/api/search", params={"q": "nike dunk low"}).json()["cached"])

    def test_wrong_secret(self):
        response = _client().post("/api/admin/flush-cache", headers={"Authorization": "Bearer nope"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "UNAUTHORIZED")

    def test_missing_header(self):
        self.assertEqual(_client().post("/api/admin/flush-cache").status_code, 401)

    def test_admin_disabled_without_secret(self):
        response = _client(admin_secret=None).post(
            "/api/admin/flush-cache", headers={"Authorization": "Bearer anything"}
        )
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "CONFIGURATION_ERROR")


class HealthRouteTests(unittest.TestCase):
    def test_health(self):
        client = _client()
        client.get("/api/search", params={"q": "nike dunk low"})
        body = client.get("/health").json()
        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["pipeline"]["total_searches"], 1)
        self.assertEqual(body["cache"]["size"], 1)


class _ClosableStore(MemorySignalStore):
    def __init__(self):
        super().__init__()
        self.closed = False

    def close(self):
        self.closed = True


class LifespanTests(unittest.TestCase):
    def test_shutdown_closes_cache(self):
        cache = _ClosableStore()
        orchestrator = MarketSignalOrchestrator(_StubActiveClient(), _StubScraper(), cache=cache)
        state = AppState(orchestrator=orchestrator, cache=cache, admin_secret=ADMIN_SECRET)

        with TestClient(create_app(state)) as client:
            client.get("/api/search", params={"q": "nike dunk low"})
            self.assertFalse(cache.closed)
        self.assertTrue(cache.closed)


class ErrorMappingTests(unittest.TestCase):
    def test_status_codes(self):
        self.assertEqual(get_status_code(InvalidQueryError("too short")), 400)
        self.assertEqual(get_status_code(UnauthorizedError()), 401)
        self.assertEqual(get_status_code(RateLimitError("ebay")), 429)
        self.assertEqual(get_status_code(EbayAPIError("down", status_code=500)), 502)
        self.assertEqual(get_status_code(ScrapeError("timeout")), 502)
        self.assertEqual(get_status_code(SourceUnavailableError("nike")), 503)
        self.assertEqual(get_status_code(ConfigurationError("missing")), 503)
        self.assertEqual(get_status_code(SellCheckError("boom")), 500)

    def test_rate_limit_sets_retry_after(self):
        response = create_error_response(RateLimitError("ebay", retry_after=30), 429)
        self.assertEqual(response.headers["retry-after"], "30")


if __name__ == "__main__":
    unittest.main()
