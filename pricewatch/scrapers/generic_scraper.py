# pricewatch/scrapers/generic_scraper.py

"""Fallback adapter for retailers without a dedicated scraper."""

from urllib.parse import quote_plus, urlparse

from pricewatch.config.settings import Settings
from pricewatch.models.scrape_result import ScrapeResult
from pricewatch.scrapers.base_scraper import BaseScraper


class GenericScraper(BaseScraper):
    """Scrape-only adapter applying common price patterns to any page."""

    MAX_PLAUSIBLE_PRICE = Settings.GENERIC_MAX_PRICE

    def __init__(self) -> None:
        super().__init__("generic")
        self._homepage = "https://www.google.com/"

    def _get_homepage(self) -> str:
        """Return the last scraped site's root as Referer."""
        return self._homepage

    def search_page_url(self, query: str) -> str:
        """Generic retailers have no known search page; use shopping search."""
        return f"https://www.google.com/search?tbm=shop&q={quote_plus(query)}"

    def scrape_by_url(self, url: str) -> ScrapeResult:
        """Scrape with the target site's root as Referer."""
        parsed = urlparse(url or "")
        if parsed.scheme and parsed.netloc:
            self._homepage = f"{parsed.scheme}://{parsed.netloc}/"
        return super().scrape_by_url(url)
