# pricewatch/services/providers.py

"""Ordered search providers tried by the discovery orchestrator."""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import quote_plus

from pricewatch.config.settings import Settings
from pricewatch.filters.result_validator import ResultValidator
from pricewatch.models.search_result import SearchResult
from pricewatch.scrapers.base_scraper import BaseScraper
from pricewatch.scrapers.registry import create_scraper, marketplace_ids
from pricewatch.scrapers.serpapi_search import SerpApiSearch
from pricewatch.services.rate_limiter import RateLimiter
from pricewatch.storage.result_cache import ResultCache

logger = logging.getLogger("pricewatch.providers")

ScraperFactory = Callable[[str], BaseScraper | None]


@dataclass
class SearchOptions:
    """Per-call search parameters handed to every provider."""

    max_results: int = 10
    use_cache: bool = True
    marketplaces: list[str] = field(
        default_factory=lambda: list(Settings.MAJOR_MARKETPLACES)
    )


@dataclass
class ProviderOutcome:
    """What one provider produced.

    ``final`` outcomes end the chain. A non-final outcome only
    contributes its errors and the next provider is tried.
    """

    source: str
    results: list[SearchResult] = field(
        default_factory=lambda: list[SearchResult]()
    )
    errors: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )
    cached: bool = False
    final: bool = True


def marketplace_credentials_configured(
    factory: ScraperFactory = create_scraper,
) -> bool:
    """True when any registered marketplace adapter has credentials."""
    for marketplace in marketplace_ids():
        scraper = factory(marketplace)
        if scraper is not None and scraper.is_configured():
            return True
    return False


class SearchProvider(ABC):
    """One step of the search fallback chain."""

    name: str = "provider"

    @abstractmethod
    async def try_search(
        self, query: str, options: SearchOptions,
    ) -> ProviderOutcome | None:
        """Run the search, or return ``None`` to skip this provider."""
        ...


class CrossMarketplaceProvider(SearchProvider):
    """Single SerpAPI Google Shopping call covering all marketplaces."""

    name = "serpapi"

    def __init__(self, client: BaseScraper | None = None) -> None:
        self._client = client

    @property
    def client(self) -> BaseScraper:
        if self._client is None:
            self._client = SerpApiSearch()
        return self._client

    async def try_search(
        self, query: str, options: SearchOptions,
    ) -> ProviderOutcome | None:
        if not self.client.is_configured():
            return None
        try:
            results: list[SearchResult] = await asyncio.to_thread(
                self.client.search, query, options.max_results,
            )
        except Exception as exc:
            logger.error(
                "Cross-marketplace search failed for '%s': %s",
                query,
                exc,
                exc_info=True,
            )
            return ProviderOutcome(source=self.name, final=False)
        wanted = set(options.marketplaces)
        results = [r for r in results if r.marketplace in wanted]
        if not results:
            logger.info(
                "Cross-marketplace search for '%s' found nothing, "
                "falling back",
                query,
            )
            return ProviderOutcome(source=self.name, final=False)
        return ProviderOutcome(source=self.name, results=results)


class MarketplaceFanoutProvider(SearchProvider):
    """Concurrent per-marketplace adapter searches.

    Each marketplace goes through the rate limiter (keyed by the
    marketplace id) and the result cache. Failures are recorded per
    marketplace and never abort the others.
    """

    name = "marketplaces"

    def __init__(
        self,
        rate_limiter: RateLimiter,
        cache: ResultCache | None = None,
        scraper_factory: ScraperFactory = create_scraper,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.cache = cache
        self._factory = scraper_factory

    async def _search_one(
        self,
        marketplace: str,
        scraper: BaseScraper,
        query: str,
        options: SearchOptions,
    ) -> tuple[list[SearchResult], bool]:
        """Search one marketplace; returns (results, served_from_cache)."""
        if options.use_cache and self.cache is not None:
            hit = await asyncio.to_thread(self.cache.get, query, marketplace)
            if hit is not None:
                return hit, True

        async def call() -> list[SearchResult]:
            return await asyncio.to_thread(
                scraper.search, query, options.max_results,
            )

        raw = await self.rate_limiter.execute(marketplace, call)
        results, _ = ResultValidator.validate(raw)
        if options.use_cache and self.cache is not None and results:
            await asyncio.to_thread(
                self.cache.put, query, marketplace, results,
            )
        return results, False

    async def try_search(
        self, query: str, options: SearchOptions,
    ) -> ProviderOutcome | None:
        if not marketplace_credentials_configured(self._factory):
            return None

        outcome = ProviderOutcome(source=self.name)
        dispatched: list[str] = []
        tasks = []
        for marketplace in options.marketplaces:
            scraper = self._factory(marketplace)
            if scraper is None:
                outcome.errors[marketplace] = "Unsupported marketplace"
                continue
            dispatched.append(marketplace)
            tasks.append(
                self._search_one(marketplace, scraper, query, options)
            )

        batches = await asyncio.gather(*tasks, return_exceptions=True)
        for marketplace, batch in zip(dispatched, batches):
            if isinstance(batch, BaseException):
                outcome.errors[marketplace] = str(batch) or "Search failed"
                logger.error(
                    "Search error on %s for '%s': %s",
                    marketplace,
                    query,
                    batch,
                    exc_info=batch,
                )
                continue
            results, from_cache = batch
            outcome.results.extend(results)
            outcome.cached = outcome.cached or from_cache
        return outcome


class DemoProvider(SearchProvider):
    """Synthetic results used only when no credentials exist anywhere."""

    name = "demo"

    def __init__(
        self,
        credentials_present: Callable[[], bool] | None = None,
        delay: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._credentials_present = credentials_present or (
            lambda: bool(Settings.SERPAPI_KEY)
            or marketplace_credentials_configured()
        )
        self.delay = Settings.DEMO_DELAY if delay is None else delay
        self._rng = rng or random.Random()

    def generate(self, query: str, max_results: int) -> list[SearchResult]:
        """One result per major marketplace around a shared base price."""
        base = 50 + self._rng.random() * 200
        results: list[SearchResult] = []
        for idx, marketplace in enumerate(Settings.MAJOR_MARKETPLACES):
            price = round(base + (self._rng.random() - 0.5) * 40, 2)
            results.append(
                SearchResult(
                    name=f"{query} - Premium Edition",
                    price=price,
                    url=(
                        f"https://www.{marketplace}.com/product/"
                        f"demo-{quote_plus(query)}-{idx}"
                    ),
                    marketplace=marketplace,
                    image_url=(
                        "https://placehold.co/200x200/png?text="
                        f"{marketplace}"
                    ),
                    in_stock=self._rng.random() > 0.2,
                )
            )
        results.sort(key=lambda r: r.price)
        return results[:max_results]

    async def try_search(
        self, query: str, options: SearchOptions,
    ) -> ProviderOutcome | None:
        if self._credentials_present():
            return None
        logger.warning(
            "No marketplace credentials configured, returning demo data"
        )
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        return ProviderOutcome(
            source=self.name,
            results=self.generate(query, options.max_results),
        )
