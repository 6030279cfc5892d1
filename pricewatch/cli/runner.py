# pricewatch/cli/runner.py

"""Headless CLI commands on top of the async services."""

import json
import logging
import sys

from rich.console import Console
from rich.table import Table

from pricewatch.config.settings import Settings
from pricewatch.errors import EmptyQueryError, InvalidUrl, ProductNotFound
from pricewatch.filters.url_tools import (
    detect_marketplace,
    normalize_url,
    validate_url,
)
from pricewatch.models.search_result import SearchResult
from pricewatch.models.tracked_product import MarketplaceObservation
from pricewatch.scrapers.metadata import extract_product_metadata
from pricewatch.scrapers.screenshot_extractor import ScreenshotPriceExtractor
from pricewatch.services.discovery_orchestrator import DiscoveryOrchestrator
from pricewatch.services.rate_limiter import RateLimiter
from pricewatch.services.update_worker import UpdateReport, UpdateWorker
from pricewatch.storage.price_store import PriceStore
from pricewatch.storage.result_cache import ResultCache

logger = logging.getLogger("pricewatch.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def resolve_marketplaces(csv: str | None) -> list[str]:
    """Map a comma-separated list of marketplace ids.

    Returns the major marketplaces when *csv* is ``None``.
    Raises ``SystemExit`` on unknown ids.
    """
    if csv is None:
        return list(Settings.MAJOR_MARKETPLACES)
    requested = [m.strip() for m in csv.split(",") if m.strip()]
    unknown = [m for m in requested if m not in Settings.MAJOR_MARKETPLACES]
    if unknown:
        _err.print(
            f"[red]Unknown marketplace(s): {', '.join(unknown)}[/red]"
        )
        _err.print(
            f"[dim]Available: {', '.join(Settings.MAJOR_MARKETPLACES)}[/dim]"
        )
        raise SystemExit(1)
    return requested


def _results_to_dicts(
    results: list[SearchResult],
) -> list[dict[str, object]]:
    return [r.to_dict() for r in results]


def _print_results(results: list[SearchResult]) -> None:
    """Render a Rich table of search results to stdout."""
    table = Table(
        title="Search Results",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", max_width=60)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Marketplace", style="magenta")
    table.add_column("Stock", justify="center")
    table.add_column("URL", overflow="fold", style="dim")
    for idx, r in enumerate(results, 1):
        table.add_row(
            str(idx),
            r.name[:60],
            f"${r.price:,.2f}",
            r.marketplace,
            "yes" if r.in_stock else "no",
            r.url,
        )
    Console().print(table)


def _print_report(report: UpdateReport) -> None:
    """Render an update report as a Rich table."""
    table = Table(
        title=f"Price Update: {report.product_name}",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Marketplace", style="magenta")
    table.add_column("Method")
    table.add_column("Status", justify="center")
    table.add_column("Price / Error")
    for o in report.outcomes:
        table.add_row(
            o.marketplace,
            o.method,
            "[green]OK[/green]" if o.success else "[red]FAILED[/red]",
            f"${o.price:,.2f}" if o.price is not None else o.error or "N/A",
        )
    Console().print(table)
    if report.best_price is not None:
        _err.print(
            f"[green]Best price ${report.best_price:,.2f}"
            f" at {report.best_marketplace}[/green]"
        )
    if report.should_alert:
        _err.print("[bold yellow]Price dropped below target![/bold yellow]")


async def cli_search(
    query: str,
    marketplace_csv: str | None,
    max_results: int,
    use_cache: bool,
    output_format: str,
) -> int:
    """Run a discovery search and return an exit code (0=ok, 1=fail)."""
    marketplaces = resolve_marketplaces(marketplace_csv)
    cache = ResultCache()
    orchestrator = DiscoveryOrchestrator(cache=cache)
    _err.print(
        f"[bold]Searching:[/bold] {query}  "
        f"[dim]marketplaces={', '.join(marketplaces)}[/dim]"
    )
    try:
        response = await orchestrator.search_all(
            query,
            max_results=max_results,
            use_cache=use_cache,
            marketplaces=marketplaces,
        )
    except EmptyQueryError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        cache.close()

    for marketplace, error in response.errors.items():
        _err.print(f"[red]{marketplace}: {error}[/red]")
    if not response.results:
        _err.print("[yellow]No results found.[/yellow]")
        return 1

    cached = " (cached)" if response.cached else ""
    _err.print(
        f"[green]✓ {len(response.results)} results via "
        f"{response.source}{cached}[/green]"
    )
    if output_format == "table":
        _print_results(response.results)
    else:
        json.dump(
            _results_to_dicts(response.results),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")
    return 0


def run_add(
    name: str,
    target_price: float,
    url: str | None,
    owner: str | None,
    auto_update: bool,
) -> int:
    """Track a new product, linking its URL to the detected marketplace."""
    store = PriceStore()
    try:
        if url is not None:
            url = normalize_url(validate_url(url))
        product = store.add_product(
            name,
            target_price,
            url=url,
            owner=owner,
            auto_update_enabled=auto_update,
        )
        if url is not None:
            marketplace = detect_marketplace(url) or "generic"
            store.upsert_observation(
                MarketplaceObservation(
                    product_id=product.id,
                    marketplace=marketplace,
                    product_url=url,
                )
            )
    except InvalidUrl as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        store.close()
    _err.print(
        f"[green]✓ Tracking #{product.id} {product.name}"
        f" (target ${product.target_price:,.2f})[/green]"
    )
    return 0


def _build_worker(store: PriceStore, cache: ResultCache) -> UpdateWorker:
    limiter = RateLimiter()
    return UpdateWorker(
        store,
        orchestrator=DiscoveryOrchestrator(rate_limiter=limiter, cache=cache),
        rate_limiter=limiter,
        screenshot=ScreenshotPriceExtractor(),
    )


async def run_update(product_id: int) -> int:
    """Refresh one product's price."""
    store = PriceStore()
    cache = ResultCache()
    try:
        report = await _build_worker(store, cache).run(product_id)
    except ProductNotFound as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        cache.close()
        store.close()
    _print_report(report)
    return 0 if report.updated else 1


async def run_auto_updates() -> int:
    """Refresh every auto-update-enabled product."""
    store = PriceStore()
    cache = ResultCache()
    try:
        summary = await _build_worker(store, cache).run_auto_updates()
    finally:
        cache.close()
        store.close()
    for report in summary.reports:
        _print_report(report)
    for product_id, error in summary.failures.items():
        _err.print(f"[red]#{product_id}: {error}[/red]")
    _err.print(
        f"[green]✓ {len(summary.reports)} products updated,"
        f" {len(summary.failures)} failed[/green]"
    )
    return 1 if summary.failures else 0


def run_history(product_id: int) -> int:
    """Show the latest price history for a product."""
    store = PriceStore()
    try:
        product = store.require_product(product_id)
        entries = store.get_price_history(
            product_id, limit=Settings.PRICE_HISTORY_LIMIT,
        )
    except ProductNotFound as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        store.close()

    table = Table(
        title=f"Price History: {product.name}",
        title_style="bold cyan",
    )
    table.add_column("Checked", style="dim")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Source", style="magenta")
    for e in entries:
        table.add_row(
            e.checked_at.strftime("%Y-%m-%d %H:%M"),
            f"${e.price:,.2f}",
            e.source,
        )
    Console().print(table)
    if product.lowest_price_ever is not None:
        _err.print(
            f"[dim]Lowest ${product.lowest_price_ever:,.2f} · "
            f"Highest ${product.highest_price_ever or 0:,.2f}[/dim]"
        )
    return 0


def run_sweep_cache() -> int:
    """Evict expired search cache entries."""
    cache = ResultCache()
    try:
        removed = cache.evict_expired()
    finally:
        cache.close()
    _err.print(f"[green]✓ Evicted {removed} expired cache entries[/green]")
    return 0


def run_metadata(url: str) -> int:
    """Print name, image and price scraped from a product URL."""
    meta = extract_product_metadata(url)
    if not meta.success:
        _err.print(f"[red]{meta.error}[/red]")
        return 1
    json.dump(
        {
            "name": meta.name,
            "image_url": meta.image_url,
            "price": meta.price,
            "retailer": meta.retailer,
        },
        sys.stdout,
        ensure_ascii=False,
        indent=2,
    )
    sys.stdout.write("\n")
    return 0
