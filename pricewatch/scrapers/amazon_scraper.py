# pricewatch/scrapers/amazon_scraper.py

"""Adapter for amazon.com."""

from urllib.parse import quote_plus, urljoin

from bs4 import Tag

from pricewatch.models.search_result import SearchResult
from pricewatch.scrapers.base_scraper import BaseScraper


class AmazonScraper(BaseScraper):
    """Adapter for amazon.com.

    Search is gated on Product Advertising credentials; results are
    read from the search-results page using the card selectors in
    ``sources.json``.
    """

    BASE_URL = "https://www.amazon.com"

    def __init__(self) -> None:
        super().__init__("amazon")
        self.selectors: dict[str, str] = self.config.get(
            "search_selectors", {}
        )

    def _get_homepage(self) -> str:
        """Return the Amazon homepage URL."""
        return f"{self.BASE_URL}/"

    def search_page_url(self, query: str) -> str:
        """Return the Amazon search-results page for a query."""
        return f"{self.BASE_URL}/s?k={quote_plus(query)}"

    def is_configured(self) -> bool:
        """Amazon search needs both access and secret keys."""
        return bool(
            self.settings.AMAZON_ACCESS_KEY
            and self.settings.AMAZON_SECRET_KEY
        )

    def _parse_card(self, card: Tag) -> SearchResult | None:
        """Parse a single result card; ``None`` when unusable."""
        name_el = card.select_one(self.selectors["name"])
        price_el = card.select_one(self.selectors["price"])
        link_el = card.select_one(self.selectors["link"])
        image_el = card.select_one(self.selectors["image"])

        price = self.parse_price(
            price_el.get_text(strip=True) if price_el else None
        )
        if name_el is None or price is None:
            return None

        url = ""
        if link_el is not None and link_el.get("href"):
            url = urljoin(self.BASE_URL, str(link_el["href"]))
            if self.settings.AMAZON_PARTNER_TAG:
                sep = "&" if "?" in url else "?"
                url = f"{url}{sep}tag={self.settings.AMAZON_PARTNER_TAG}"

        image_url = (
            str(image_el["src"])
            if image_el is not None and image_el.get("src")
            else None
        )
        return SearchResult(
            name=name_el.get_text(strip=True),
            price=price,
            url=url,
            marketplace="amazon",
            image_url=image_url,
            in_stock=True,
        )

    def _search(
        self, query: str, max_results: int,
    ) -> list[SearchResult]:
        """Parse product cards from the search-results page."""
        soup = self._get_page(self.search_page_url(query))
        results: list[SearchResult] = []
        for card in soup.select(self.selectors["product_card"]):
            parsed = self._parse_card(card)
            if parsed is not None:
                results.append(parsed)
            if len(results) >= max_results:
                break
        return results
