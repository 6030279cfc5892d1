# pricewatch/scrapers/registry.py

"""Marketplace adapter registry and URL routing."""

import importlib
import logging
from typing import Any

from pricewatch.config.settings import Settings
from pricewatch.filters.url_tools import detect_marketplace
from pricewatch.scrapers.base_scraper import BaseScraper

logger = logging.getLogger("pricewatch.registry")


def load_scraper_class(dotted_path: str) -> type[Any]:
    """Dynamically import a scraper class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def marketplace_ids() -> list[str]:
    """Ids of every registered marketplace, in registry order."""
    return [s["id"] for s in Settings.AVAILABLE_MARKETPLACES]


def create_scraper(marketplace: str) -> BaseScraper | None:
    """Instantiate the adapter for a marketplace id.

    Returns ``None`` for unknown marketplaces. ``"generic"`` maps to
    the generic scraper.
    """
    if marketplace == "generic":
        generic: BaseScraper = load_scraper_class(Settings.GENERIC_SCRAPER)()
        return generic
    for source in Settings.AVAILABLE_MARKETPLACES:
        if source["id"] == marketplace:
            scraper: BaseScraper = load_scraper_class(source["scraper"])()
            return scraper
    logger.debug("No adapter registered for '%s'", marketplace)
    return None


def scraper_for_url(url: str) -> BaseScraper:
    """Route a product URL to its marketplace adapter.

    Unknown hosts use the generic scraper. Raises ``InvalidUrl`` for
    malformed URLs.
    """
    marketplace = detect_marketplace(url) or "generic"
    scraper = create_scraper(marketplace)
    if scraper is None:
        scraper = load_scraper_class(Settings.GENERIC_SCRAPER)()
    return scraper
