# pricewatch/services/discovery_orchestrator.py

"""Finds a product's price across marketplaces with graceful fallback."""

import logging
from dataclasses import dataclass, field

from pricewatch.config.settings import Settings
from pricewatch.errors import EmptyQueryError
from pricewatch.models.search_result import SearchResult
from pricewatch.scrapers.registry import create_scraper
from pricewatch.services.providers import (
    CrossMarketplaceProvider,
    DemoProvider,
    MarketplaceFanoutProvider,
    ScraperFactory,
    SearchOptions,
    SearchProvider,
)
from pricewatch.services.rate_limiter import RateLimiter
from pricewatch.storage.result_cache import ResultCache

logger = logging.getLogger("pricewatch.orchestrator")


@dataclass
class DiscoveryResponse:
    """Container for a completed multi-marketplace search."""

    query: str
    results: list[SearchResult] = field(
        default_factory=lambda: list[SearchResult]()
    )
    errors: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )
    cached: bool = False
    source: str = "none"

    @property
    def cheapest(self) -> SearchResult | None:
        """Lowest-priced result, if any."""
        return self.results[0] if self.results else None


class DiscoveryOrchestrator:
    """Runs the provider chain for a query.

    Providers are tried in order. The first one that returns a final
    outcome ends the chain; errors from every provider tried are kept.
    Marketplace-level failures never abort the call.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        cache: ResultCache | None = None,
        providers: list[SearchProvider] | None = None,
        scraper_factory: ScraperFactory = create_scraper,
    ) -> None:
        self.rate_limiter = rate_limiter or RateLimiter()
        self.cache = cache
        self.providers: list[SearchProvider] = providers or [
            CrossMarketplaceProvider(),
            MarketplaceFanoutProvider(
                self.rate_limiter, cache, scraper_factory,
            ),
            DemoProvider(),
        ]

    async def search_all(
        self,
        query: str,
        max_results: int = 10,
        use_cache: bool = True,
        marketplaces: list[str] | None = None,
    ) -> DiscoveryResponse:
        """Search every requested marketplace for ``query``.

        Results come back sorted by ascending price. Raises
        ``EmptyQueryError`` for a blank query.
        """
        if not query or not query.strip():
            msg = "Search query must not be empty"
            raise EmptyQueryError(msg)
        query = query.strip()
        options = SearchOptions(
            max_results=max_results,
            use_cache=use_cache,
            marketplaces=list(
                marketplaces
                if marketplaces is not None
                else Settings.MAJOR_MARKETPLACES
            ),
        )
        response = DiscoveryResponse(query=query)

        for provider in self.providers:
            outcome = await provider.try_search(query, options)
            if outcome is None:
                logger.debug(
                    "Provider %s skipped for '%s'", provider.name, query,
                )
                continue
            response.errors.update(outcome.errors)
            if not outcome.final:
                continue
            response.results = sorted(outcome.results, key=lambda r: r.price)
            response.cached = outcome.cached
            response.source = outcome.source
            break

        logger.info(
            "Search '%s' via %s: %d results, %d errors%s",
            query,
            response.source,
            len(response.results),
            len(response.errors),
            " (cached)" if response.cached else "",
        )
        return response
