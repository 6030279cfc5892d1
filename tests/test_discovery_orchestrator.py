# tests/test_discovery_orchestrator.py

"""Tests for DiscoveryOrchestrator and its provider chain."""

import random
import unittest

from pricewatch.errors import EmptyQueryError, FetchFailed
from pricewatch.models.search_result import SearchResult
from pricewatch.services.discovery_orchestrator import (
    DiscoveryOrchestrator,
    DiscoveryResponse,
)
from pricewatch.services.providers import (
    CrossMarketplaceProvider,
    DemoProvider,
    MarketplaceFanoutProvider,
)
from pricewatch.services.rate_limiter import RateLimiter
from pricewatch.storage.result_cache import ResultCache


def _result(marketplace: str, price: float, name: str = "Echo Dot") -> SearchResult:
    return SearchResult(
        name=name,
        price=price,
        url=f"https://www.{marketplace}.com/p/{int(price * 100)}",
        marketplace=marketplace,
    )


class FakeAdapter:
    """Stub adapter with canned search behaviour."""

    def __init__(
        self,
        results: list[SearchResult] | None = None,
        configured: bool = True,
        error: Exception | None = None,
    ) -> None:
        self.results = results or []
        self.configured = configured
        self.error = error
        self.calls: list[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def search(
        self, query: str, max_results: int | None = None,
    ) -> list[SearchResult]:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        if not self.configured:
            return []
        return list(self.results)


def _factory(adapters: dict[str, FakeAdapter]):
    def create(marketplace: str) -> FakeAdapter | None:
        return adapters.get(marketplace)
    return create


def _orchestrator(
    adapters: dict[str, FakeAdapter],
    serp: FakeAdapter | None = None,
    cache: ResultCache | None = None,
    demo_allowed: bool = False,
) -> DiscoveryOrchestrator:
    limiter = RateLimiter(delay=0)
    return DiscoveryOrchestrator(
        rate_limiter=limiter,
        cache=cache,
        providers=[
            CrossMarketplaceProvider(serp or FakeAdapter(configured=False)),
            MarketplaceFanoutProvider(limiter, cache, _factory(adapters)),
            DemoProvider(
                credentials_present=lambda: not demo_allowed,
                delay=0,
                rng=random.Random(7),
            ),
        ],
    )


def _all_major(**overrides: FakeAdapter) -> dict[str, FakeAdapter]:
    adapters = {
        "amazon": FakeAdapter(configured=False),
        "walmart": FakeAdapter(configured=False),
        "target": FakeAdapter(configured=False),
        "bestbuy": FakeAdapter(configured=False),
    }
    adapters.update(overrides)
    return adapters


class TestProviderChain(unittest.IsolatedAsyncioTestCase):
    """Fallback order: cross-marketplace, fan-out, demo."""

    async def test_serpapi_short_circuits(self) -> None:
        """Cross-marketplace results end the chain with no adapter calls."""
        walmart = FakeAdapter([_result("walmart", 30.0)])
        serp = FakeAdapter([_result("bestbuy", 49.99), _result("amazon", 39.99)])
        orch = _orchestrator(_all_major(walmart=walmart), serp=serp)

        response = await orch.search_all("echo dot")

        self.assertIsInstance(response, DiscoveryResponse)
        self.assertEqual(response.source, "serpapi")
        self.assertEqual([r.price for r in response.results], [39.99, 49.99])
        self.assertEqual(walmart.calls, [])

    async def test_empty_serpapi_falls_through(self) -> None:
        """Zero cross-marketplace results moves on to the fan-out."""
        walmart = FakeAdapter([_result("walmart", 30.0)])
        orch = _orchestrator(
            _all_major(walmart=walmart), serp=FakeAdapter([]),
        )
        response = await orch.search_all("echo dot")
        self.assertEqual(response.source, "marketplaces")
        self.assertEqual(walmart.calls, ["echo dot"])

    async def test_serpapi_error_logged_and_falls_through(self) -> None:
        """A failing cross-marketplace call is logged, not a marketplace error."""
        walmart = FakeAdapter([_result("walmart", 30.0)])
        serp = FakeAdapter(error=FetchFailed("serpapi API request failed"))
        orch = _orchestrator(_all_major(walmart=walmart), serp=serp)

        with self.assertLogs("pricewatch.providers", level="ERROR"):
            response = await orch.search_all("echo dot")
        self.assertEqual(len(response.results), 1)
        self.assertEqual(response.results[0].marketplace, "walmart")
        self.assertEqual(response.errors, {})

    async def test_demo_when_no_credentials(self) -> None:
        """No credentials anywhere gives one demo result per marketplace."""
        orch = _orchestrator(_all_major(), demo_allowed=True)
        response = await orch.search_all("lego set")

        self.assertEqual(response.source, "demo")
        self.assertEqual(len(response.results), 4)
        self.assertEqual(
            {r.marketplace for r in response.results},
            {"amazon", "walmart", "target", "bestbuy"},
        )
        prices = [r.price for r in response.results]
        self.assertEqual(prices, sorted(prices))
        for price in prices:
            self.assertGreaterEqual(price, 30.0)
            self.assertLessEqual(price, 270.0)

    async def test_no_demo_when_credentials_exist(self) -> None:
        """Configured-but-empty sources never produce demo data."""
        orch = _orchestrator(_all_major(bestbuy=FakeAdapter([])))
        response = await orch.search_all("lego set")
        self.assertEqual(response.source, "marketplaces")
        self.assertEqual(response.results, [])

    async def test_nothing_available(self) -> None:
        """With every provider skipped the response is empty."""
        orch = _orchestrator(_all_major())
        response = await orch.search_all("lego set")
        self.assertEqual(response.source, "none")
        self.assertEqual(response.results, [])


class TestFanout(unittest.IsolatedAsyncioTestCase):
    """Per-marketplace fan-out behaviour."""

    async def test_partial_failure(self) -> None:
        """Failing marketplaces are reported; the rest still return."""
        adapters = _all_major(
            amazon=FakeAdapter([_result("amazon", 25.0)]),
            walmart=FakeAdapter(error=FetchFailed("walmart API request failed")),
            bestbuy=FakeAdapter([_result("bestbuy", 19.0), _result("bestbuy", 40.0)]),
        )
        response = await _orchestrator(adapters).search_all("headphones")

        self.assertEqual(
            [r.price for r in response.results], [19.0, 25.0, 40.0],
        )
        self.assertEqual(
            response.errors, {"walmart": "walmart API request failed"},
        )
        self.assertEqual(response.cheapest, response.results[0])

    async def test_unsupported_marketplace(self) -> None:
        """Unknown marketplace ids are recorded, not fatal."""
        adapters = _all_major(amazon=FakeAdapter([_result("amazon", 25.0)]))
        response = await _orchestrator(adapters).search_all(
            "headphones", marketplaces=["amazon", "ebay"],
        )
        self.assertEqual(response.errors["ebay"], "Unsupported marketplace")
        self.assertEqual(len(response.results), 1)

    async def test_only_requested_marketplaces(self) -> None:
        """Marketplaces outside the request are not searched."""
        amazon = FakeAdapter([_result("amazon", 25.0)])
        walmart = FakeAdapter([_result("walmart", 20.0)])
        orch = _orchestrator(_all_major(amazon=amazon, walmart=walmart))
        await orch.search_all("headphones", marketplaces=["amazon"])
        self.assertEqual(walmart.calls, [])
        self.assertEqual(amazon.calls, ["headphones"])

    async def test_invalid_results_dropped(self) -> None:
        """Blank names and bad prices never reach the response."""
        adapters = _all_major(
            amazon=FakeAdapter([
                _result("amazon", 25.0),
                _result("amazon", 0.0),
                _result("amazon", 12.0, name="  "),
            ]),
        )
        response = await _orchestrator(adapters).search_all("headphones")
        self.assertEqual([r.price for r in response.results], [25.0])


class TestCaching(unittest.IsolatedAsyncioTestCase):
    """Result cache integration."""

    def setUp(self) -> None:
        self.cache = ResultCache(":memory:")

    def tearDown(self) -> None:
        self.cache.close()

    async def test_second_search_served_from_cache(self) -> None:
        """A repeated query skips the adapter and flags cached."""
        amazon = FakeAdapter([_result("amazon", 25.0)])
        orch = _orchestrator(_all_major(amazon=amazon), cache=self.cache)

        first = await orch.search_all("Headphones", marketplaces=["amazon"])
        second = await orch.search_all("headphones", marketplaces=["amazon"])

        self.assertFalse(first.cached)
        self.assertTrue(second.cached)
        self.assertEqual(second.results, first.results)
        self.assertEqual(len(amazon.calls), 1)

    async def test_use_cache_false_bypasses(self) -> None:
        """use_cache=False always hits the adapter."""
        amazon = FakeAdapter([_result("amazon", 25.0)])
        orch = _orchestrator(_all_major(amazon=amazon), cache=self.cache)

        await orch.search_all("headphones", marketplaces=["amazon"])
        response = await orch.search_all(
            "headphones", use_cache=False, marketplaces=["amazon"],
        )
        self.assertFalse(response.cached)
        self.assertEqual(len(amazon.calls), 2)

    async def test_empty_results_not_cached(self) -> None:
        """Only non-empty result sets are stored."""
        amazon = FakeAdapter([])
        orch = _orchestrator(_all_major(amazon=amazon), cache=self.cache)
        await orch.search_all("headphones", marketplaces=["amazon"])
        self.assertIsNone(self.cache.get("headphones", "amazon"))
        self.assertEqual(len(self.cache), 0)


class TestValidation(unittest.IsolatedAsyncioTestCase):
    """Query validation."""

    async def test_empty_query_raises(self) -> None:
        """Blank queries are rejected before any provider runs."""
        serp = FakeAdapter([_result("amazon", 10.0)])
        orch = _orchestrator(_all_major(), serp=serp)
        for query in ["", "   "]:
            with self.subTest(query=query):
                with self.assertRaises(EmptyQueryError):
                    await orch.search_all(query)
        self.assertEqual(serp.calls, [])

    async def test_query_is_trimmed(self) -> None:
        """Surrounding whitespace is removed before searching."""
        serp = FakeAdapter([_result("amazon", 10.0)])
        orch = _orchestrator(_all_major(), serp=serp)
        response = await orch.search_all("  echo dot  ")
        self.assertEqual(response.query, "echo dot")
        self.assertEqual(serp.calls, ["echo dot"])


if __name__ == "__main__":
    unittest.main()
