# pricewatch/scrapers/bestbuy_scraper.py

"""Adapter for bestbuy.com using the Products API."""

from typing import Any
from urllib.parse import quote, quote_plus

from pricewatch.models.search_result import SearchResult
from pricewatch.scrapers.base_scraper import BaseScraper


class BestBuyScraper(BaseScraper):
    """Adapter for bestbuy.com."""

    API_URL = "https://api.bestbuy.com/v1/products((search={query}))"
    BASE_URL = "https://www.bestbuy.com"

    def __init__(self) -> None:
        super().__init__("bestbuy")

    def _get_homepage(self) -> str:
        """Return the Best Buy homepage URL."""
        return f"{self.BASE_URL}/"

    def search_page_url(self, query: str) -> str:
        """Return the Best Buy search-results page for a query."""
        return f"{self.BASE_URL}/site/searchpage.jsp?st={quote_plus(query)}"

    def is_configured(self) -> bool:
        """Best Buy search needs a Products API key."""
        return bool(self.settings.BESTBUY_API_KEY)

    def _parse_product(
        self, product: dict[str, Any],
    ) -> SearchResult | None:
        """Map one API product to a SearchResult."""
        name = product.get("name")
        price = self.parse_price(str(product.get("salePrice") or ""))
        if not name or price is None:
            return None
        return SearchResult(
            name=str(name),
            price=price,
            url=str(product.get("url") or ""),
            marketplace="bestbuy",
            image_url=product.get("image"),
            in_stock=bool(product.get("onlineAvailability", False)),
        )

    def _search(
        self, query: str, max_results: int,
    ) -> list[SearchResult]:
        """Query the Products API sorted by ascending sale price."""
        data = self._fetch_json(
            self.API_URL.format(query=quote(query)),
            params={
                "apiKey": self.settings.BESTBUY_API_KEY,
                "sort": "salePrice.asc",
                "show": "sku,name,salePrice,url,image,onlineAvailability",
                "pageSize": str(max_results),
                "format": "json",
            },
        )
        products = data.get("products") if isinstance(data, dict) else None
        results: list[SearchResult] = []
        for product in products or []:
            if isinstance(product, dict):
                parsed = self._parse_product(product)
                if parsed is not None:
                    results.append(parsed)
        return results
