# pricewatch/services/update_worker.py

"""Refreshes one tracked product's price through the fallback chain."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from pricewatch.config.settings import Settings
from pricewatch.errors import PriceWatchError, ProductNotFound
from pricewatch.filters.url_tools import detect_marketplace
from pricewatch.models.scrape_result import ScrapeResult
from pricewatch.models.tracked_product import PriceObservation, TrackedProduct
from pricewatch.scrapers.base_scraper import BaseScraper
from pricewatch.scrapers.registry import scraper_for_url
from pricewatch.scrapers.screenshot_extractor import ScreenshotPriceExtractor
from pricewatch.services.discovery_orchestrator import DiscoveryOrchestrator
from pricewatch.services.notifier import (
    NotificationSummary,
    Notifier,
    build_alert_summary,
    build_update_summary,
    default_notifier,
)
from pricewatch.services.rate_limiter import RateLimiter
from pricewatch.services.reconciliation import (
    ReconciliationEngine,
    ReconciliationResult,
)
from pricewatch.services.vision_client import VisionResult
from pricewatch.storage.price_store import PriceStore

logger = logging.getLogger("pricewatch.worker")


@dataclass
class MarketplaceOutcome:
    """How one marketplace fared during an update run."""

    marketplace: str
    method: str
    success: bool
    price: float | None = None
    url: str | None = None
    image_url: str | None = None
    product_name: str | None = None
    in_stock: bool = True
    error: str = ""


@dataclass
class UpdateReport:
    """Result of ``UpdateWorker.run``."""

    product_id: int
    product_name: str
    outcomes: list[MarketplaceOutcome] = field(
        default_factory=lambda: list[MarketplaceOutcome]()
    )
    best_price: float | None = None
    best_marketplace: str | None = None
    updated: bool = False
    should_alert: bool = False
    notified: bool = False
    alerted: bool = False
    history_entries_written: int = 0

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)


@dataclass
class AutoUpdateSummary:
    """Result of a batch run over auto-update products."""

    reports: list[UpdateReport] = field(
        default_factory=lambda: list[UpdateReport]()
    )
    failures: dict[int, str] = field(
        default_factory=lambda: dict[int, str]()
    )


class UpdateWorker:
    """Scrape known URLs, fall back to search then screenshots,
    reconcile, then notify the owner.

    Only a missing product is fatal. Every other failure is recorded
    on the report and the run continues.
    """

    def __init__(
        self,
        store: PriceStore,
        orchestrator: DiscoveryOrchestrator | None = None,
        engine: ReconciliationEngine | None = None,
        notifier: Notifier | None = None,
        screenshot: ScreenshotPriceExtractor | None = None,
        rate_limiter: RateLimiter | None = None,
        scraper_for: Callable[[str], BaseScraper] = scraper_for_url,
    ) -> None:
        self.store = store
        # Scrapes and the search fallback share one limiter
        self.orchestrator = orchestrator or DiscoveryOrchestrator(
            rate_limiter=rate_limiter,
        )
        self.rate_limiter = rate_limiter or self.orchestrator.rate_limiter
        self.engine = engine or ReconciliationEngine(store)
        self.notifier = notifier or default_notifier()
        self.screenshot = screenshot
        self._scraper_for = scraper_for

    # ── Steps ────────────────────────────────────────────

    async def _scrape_one(
        self, marketplace: str, url: str,
    ) -> MarketplaceOutcome:
        """Scrape a stored product URL under the marketplace's queue."""
        try:
            scraper = self._scraper_for(url)
        except PriceWatchError as exc:
            return MarketplaceOutcome(
                marketplace, "scraping", False, url=url, error=str(exc),
            )

        async def call() -> ScrapeResult:
            return await asyncio.to_thread(scraper.scrape_by_url, url)

        result = await self.rate_limiter.execute(marketplace, call)
        if result.success:
            return MarketplaceOutcome(
                marketplace, "scraping", True, price=result.price, url=url,
            )
        return MarketplaceOutcome(
            marketplace,
            "scraping",
            False,
            url=url,
            error=result.error or "Scraping failed",
        )

    async def _scrape_known_urls(
        self, product: TrackedProduct,
    ) -> list[MarketplaceOutcome]:
        observations = await asyncio.to_thread(
            self.store.get_observations, product.id,
        )
        targets = [
            (o.marketplace, o.product_url)
            for o in observations
            if o.product_url
        ]
        if not targets and product.url:
            try:
                marketplace = detect_marketplace(product.url) or "generic"
            except PriceWatchError as exc:
                return [
                    MarketplaceOutcome(
                        "generic",
                        "scraping",
                        False,
                        url=product.url,
                        error=str(exc),
                    )
                ]
            targets = [(marketplace, product.url)]
        return list(
            await asyncio.gather(
                *(self._scrape_one(mp, url) for mp, url in targets)
            )
        )

    async def _search_fallback(
        self,
        product: TrackedProduct,
        failed: list[MarketplaceOutcome],
    ) -> None:
        """Replace failed outcomes with matching search results in place."""
        wanted = [
            o.marketplace
            for o in failed
            if o.marketplace in Settings.MAJOR_MARKETPLACES
        ]
        if not wanted:
            return
        try:
            response = await self.orchestrator.search_all(
                product.name, use_cache=False, marketplaces=wanted,
            )
        except PriceWatchError as exc:
            logger.warning(
                "Search fallback failed for product %d: %s",
                product.id,
                exc,
            )
            return
        if response.source == "demo":
            logger.info(
                "Search fallback for product %d only produced demo data, "
                "ignoring",
                product.id,
            )
            return
        for outcome in failed:
            # Results are sorted cheapest first
            match = next(
                (
                    r
                    for r in response.results
                    if r.marketplace == outcome.marketplace
                ),
                None,
            )
            if match is None:
                if outcome.marketplace in response.errors:
                    outcome.error = response.errors[outcome.marketplace]
                continue
            outcome.method = "search"
            outcome.success = True
            outcome.price = match.price
            outcome.url = match.url or outcome.url
            outcome.image_url = match.image_url
            outcome.product_name = match.name
            outcome.in_stock = match.in_stock
            outcome.error = ""

    async def _screenshot_fallback(
        self,
        product: TrackedProduct,
        failed: list[MarketplaceOutcome],
    ) -> None:
        """Last resort: vision extraction from each search-results page."""
        extractor = self.screenshot
        if extractor is None or not extractor.is_available():
            return
        for outcome in failed:

            async def call(mp: str = outcome.marketplace) -> VisionResult:
                return await asyncio.to_thread(
                    extractor.extract_for_product, product.name, mp,
                )

            result = await self.rate_limiter.execute("screenshot", call)
            if not result.success:
                logger.info(
                    "[%s] Vision fallback failed: %s",
                    outcome.marketplace,
                    result.error,
                )
                continue
            outcome.method = "screenshot"
            outcome.success = True
            outcome.price = result.price
            outcome.product_name = result.name
            outcome.error = ""

    async def _send(
        self, recipient: str, summary: NotificationSummary,
    ) -> bool:
        """Deliver one summary; any failure is logged and reported as False."""
        try:
            sent = await asyncio.to_thread(
                self.notifier.notify, recipient, summary,
            )
        except Exception:
            logger.error(
                "Notification '%s' for product %d failed",
                summary.subject,
                summary.product_id,
                exc_info=True,
            )
            return False
        return sent.success

    async def _notify(
        self,
        product: TrackedProduct,
        report: UpdateReport,
        applied: ReconciliationResult,
    ) -> None:
        """Completion summary, plus an alert when the target is crossed."""
        if not product.owner:
            logger.debug(
                "Product %d has no owner, skipping notifications",
                product.id,
            )
            return
        summary = build_update_summary(
            product.id,
            product.name,
            applied.updated_current_price,
            applied.previous_price,
            applied.best_marketplace,
            report.succeeded,
            len(report.outcomes),
        )
        report.notified = await self._send(product.owner, summary)

        if applied.should_alert and applied.updated_current_price is not None:
            best_url = next(
                (
                    o.url
                    for o in report.outcomes
                    if o.success and o.marketplace == applied.best_marketplace
                ),
                None,
            )
            alert = build_alert_summary(
                product.id,
                product.name,
                applied.updated_current_price,
                applied.previous_price,
                product.target_price,
                applied.best_marketplace,
                best_url,
            )
            report.alerted = await self._send(product.owner, alert)

    # ── Entry points ─────────────────────────────────────

    async def run(self, product_id: int) -> UpdateReport:
        """Refresh one product's price.

        Raises ``ProductNotFound`` for an unknown product.
        """
        product = await asyncio.to_thread(
            self.store.require_product, product_id,
        )
        report = UpdateReport(product_id=product.id, product_name=product.name)
        logger.info(
            "Updating price for product %d '%s'", product.id, product.name,
        )

        report.outcomes = await self._scrape_known_urls(product)

        failed = [o for o in report.outcomes if not o.success]
        if failed:
            await self._search_fallback(product, failed)

        failed = [o for o in report.outcomes if not o.success]
        if failed:
            await self._screenshot_fallback(product, failed)

        observations = [
            PriceObservation(
                marketplace=o.marketplace,
                price=o.price,
                url=o.url or "",
                image_url=o.image_url,
                in_stock=o.in_stock,
                source=o.marketplace,
                product_name=o.product_name,
            )
            for o in report.outcomes
            if o.success
        ]
        applied = await asyncio.to_thread(
            self.engine.apply, product.id, observations,
        )
        report.updated = applied.updated
        report.best_price = applied.updated_current_price
        report.best_marketplace = applied.best_marketplace
        report.should_alert = applied.should_alert
        report.history_entries_written = applied.history_entries_written

        await self._notify(product, report, applied)

        logger.info(
            "Product %d update done: %d/%d marketplaces, best %s",
            product.id,
            report.succeeded,
            len(report.outcomes),
            (
                f"{report.best_price:.2f} on {report.best_marketplace}"
                if report.best_price is not None
                else "none"
            ),
        )
        return report

    async def run_auto_updates(self) -> AutoUpdateSummary:
        """Run every auto-update-enabled product, one after another."""
        products = await asyncio.to_thread(self.store.auto_update_products)
        summary = AutoUpdateSummary()
        logger.info("Auto-update run over %d products", len(products))
        for product in products:
            try:
                summary.reports.append(await self.run(product.id))
            except ProductNotFound as exc:
                summary.failures[product.id] = str(exc)
                logger.warning("Auto-update skipped: %s", exc)
        return summary
