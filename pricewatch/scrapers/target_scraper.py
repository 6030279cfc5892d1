# pricewatch/scrapers/target_scraper.py

"""Adapter for target.com (scrape path only)."""

from urllib.parse import quote_plus

from pricewatch.scrapers.base_scraper import BaseScraper


class TargetScraper(BaseScraper):
    """Adapter for target.com.

    Target offers no public product search API, so ``search`` always
    reports the source as unavailable; known product URLs can still
    be scraped.
    """

    BASE_URL = "https://www.target.com"

    def __init__(self) -> None:
        super().__init__("target")

    def _get_homepage(self) -> str:
        """Return the Target homepage URL."""
        return f"{self.BASE_URL}/"

    def search_page_url(self, query: str) -> str:
        """Return the Target search-results page for a query."""
        return f"{self.BASE_URL}/s?searchTerm={quote_plus(query)}"
