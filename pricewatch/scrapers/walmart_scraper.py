# pricewatch/scrapers/walmart_scraper.py

"""Adapter for walmart.com using the affiliate product search API."""

import time
from typing import Any
from urllib.parse import quote_plus

from pricewatch.models.search_result import SearchResult
from pricewatch.scrapers.base_scraper import BaseScraper


class WalmartScraper(BaseScraper):
    """Adapter for walmart.com."""

    API_URL = (
        "https://developer.api.walmart.com/api-proxy/service/"
        "affil/product/v2/search"
    )
    BASE_URL = "https://www.walmart.com"

    def __init__(self) -> None:
        super().__init__("walmart")

    def _get_homepage(self) -> str:
        """Return the Walmart homepage URL."""
        return f"{self.BASE_URL}/"

    def search_page_url(self, query: str) -> str:
        """Return the Walmart search-results page for a query."""
        return f"{self.BASE_URL}/search?q={quote_plus(query)}"

    def is_configured(self) -> bool:
        """Walmart search needs an affiliate API key."""
        return bool(self.settings.WALMART_API_KEY)

    def _parse_item(self, item: dict[str, Any]) -> SearchResult | None:
        """Map one API item to a SearchResult."""
        name = item.get("name")
        price = self.parse_price(str(item.get("salePrice") or ""))
        if not name or price is None:
            return None
        return SearchResult(
            name=str(name),
            price=price,
            url=str(
                item.get("productUrl")
                or f"{self.BASE_URL}/ip/{item.get('itemId', '')}"
            ),
            marketplace="walmart",
            image_url=item.get("thumbnailImage") or item.get("mediumImage"),
            in_stock=item.get("stock") == "Available",
        )

    def _search(
        self, query: str, max_results: int,
    ) -> list[SearchResult]:
        """Query the affiliate search endpoint."""
        data = self._fetch_json(
            self.API_URL,
            headers={
                "WM_SEC.KEY_VERSION": "1",
                "WM_CONSUMER.ID": self.settings.WALMART_API_KEY,
                "WM_QOS.CORRELATION_ID": str(int(time.time() * 1000)),
            },
            params={"query": query, "numItems": str(max_results)},
        )
        items = data.get("items") if isinstance(data, dict) else None
        results: list[SearchResult] = []
        for item in items or []:
            if isinstance(item, dict):
                parsed = self._parse_item(item)
                if parsed is not None:
                    results.append(parsed)
        return results
