# pricewatch/scrapers/serpapi_search.py

"""Cross-marketplace search through SerpAPI's Google Shopping engine."""

from typing import Any
from urllib.parse import quote_plus

from pricewatch.models.search_result import SearchResult
from pricewatch.scrapers.base_scraper import BaseScraper

# Substrings of SerpAPI's ``source`` field mapped to marketplace ids
_SOURCE_MARKERS: list[tuple[str, str]] = [
    ("amazon", "amazon"),
    ("walmart", "walmart"),
    ("target", "target"),
    ("bestbuy", "bestbuy"),
    ("best buy", "bestbuy"),
]


def marketplace_from_source(source: str | None) -> str:
    """Map a shopping result's seller name to a marketplace id."""
    lowered = (source or "").lower()
    for marker, marketplace in _SOURCE_MARKERS:
        if marker in lowered:
            return marketplace
    return "other"


class SerpApiSearch(BaseScraper):
    """One request covering every major marketplace at once."""

    API_URL = "https://serpapi.com/search.json"

    def __init__(self) -> None:
        super().__init__("serpapi")

    def _get_homepage(self) -> str:
        """Return the SerpAPI homepage URL."""
        return "https://serpapi.com/"

    def search_page_url(self, query: str) -> str:
        """Return the Google Shopping page for a query."""
        return f"https://www.google.com/search?tbm=shop&q={quote_plus(query)}"

    def is_configured(self) -> bool:
        """SerpAPI needs its API key."""
        return bool(self.settings.SERPAPI_KEY)

    def _parse_item(self, item: dict[str, Any]) -> SearchResult | None:
        """Map one shopping result to a SearchResult."""
        title = item.get("title")
        extracted = item.get("extracted_price")
        price = (
            self.parse_price(str(extracted))
            if extracted is not None
            else self.parse_price(str(item.get("price") or ""))
        )
        if not title or price is None:
            return None
        return SearchResult(
            name=str(title),
            price=price,
            url=str(item.get("link") or item.get("product_link") or ""),
            marketplace=marketplace_from_source(item.get("source")),
            image_url=item.get("thumbnail") or item.get("image"),
            in_stock=True,
        )

    def _search(
        self, query: str, max_results: int,
    ) -> list[SearchResult]:
        """Query Google Shopping and keep the major marketplaces only."""
        data = self._fetch_json(
            self.API_URL,
            params={
                "engine": "google_shopping",
                "q": query,
                "api_key": self.settings.SERPAPI_KEY,
                "num": str(max_results),
                "hl": "en",
            },
        )
        items = (
            data.get("shopping_results") if isinstance(data, dict) else None
        )
        results: list[SearchResult] = []
        for item in items or []:
            if not isinstance(item, dict):
                continue
            parsed = self._parse_item(item)
            if (
                parsed is not None
                and parsed.marketplace in self.settings.MAJOR_MARKETPLACES
            ):
                results.append(parsed)
        results.sort(key=lambda r: r.price)
        return results
