# tests/test_marketplace_scrapers.py

"""Tests for the concrete marketplace adapters and URL routing."""

import unittest
from typing import Any
from unittest.mock import MagicMock, patch

from pricewatch.config.settings import Settings
from pricewatch.errors import InvalidUrl
from pricewatch.scrapers.amazon_scraper import AmazonScraper
from pricewatch.scrapers.bestbuy_scraper import BestBuyScraper
from pricewatch.scrapers.generic_scraper import GenericScraper
from pricewatch.scrapers.registry import create_scraper, scraper_for_url
from pricewatch.scrapers.serpapi_search import (
    SerpApiSearch,
    marketplace_from_source,
)
from pricewatch.scrapers.target_scraper import TargetScraper
from pricewatch.scrapers.walmart_scraper import WalmartScraper


def _json_response(payload: dict[str, Any]) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200
    resp.text = "{}"
    resp.json.return_value = payload
    return resp


def _html_response(html: str) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200
    resp.text = html
    return resp


AMAZON_SEARCH_HTML = """
<html><body>
<div data-component-type="s-search-result">
  <h2><a href="/LEGO-Set/dp/B0001"><span>LEGO Classic Box</span></a></h2>
  <span class="a-price"><span class="a-offscreen">$34.99</span></span>
  <img class="s-image" src="https://m.media-amazon.com/1.jpg"/>
</div>
<div data-component-type="s-search-result">
  <h2><a href="/Sponsored/dp/B0002"><span>No price listing</span></a></h2>
</div>
<div data-component-type="s-search-result">
  <h2><a href="/LEGO-Big/dp/B0003"><span>LEGO Big Box</span></a></h2>
  <span class="a-price"><span class="a-offscreen">$1,049.00</span></span>
</div>
</body></html>
"""


class TestWalmartScraper(unittest.TestCase):
    """Affiliate API search."""

    @patch.object(Settings, "WALMART_API_KEY", "wm-key")
    def test_search_maps_items(self) -> None:
        """Items become SearchResults; stock maps to in_stock."""
        scraper = WalmartScraper()
        scraper.session = MagicMock()
        scraper.session.get.return_value = _json_response({
            "items": [
                {
                    "itemId": 1,
                    "name": "LEGO Classic",
                    "salePrice": 29.97,
                    "productUrl": "https://www.walmart.com/ip/1",
                    "thumbnailImage": "https://i5.walmartimages.com/1.jpg",
                    "stock": "Available",
                },
                {
                    "itemId": 2,
                    "name": "LEGO Duplo",
                    "salePrice": 19.5,
                    "stock": "Not available",
                },
                {"itemId": 3, "name": "No price"},
            ]
        })
        results = scraper.search("lego", max_results=5)

        self.assertEqual(len(results), 2)
        self.assertEqual(results[0].price, 29.97)
        self.assertTrue(results[0].in_stock)
        self.assertFalse(results[1].in_stock)
        self.assertEqual(results[1].url, "https://www.walmart.com/ip/2")
        _, kwargs = scraper.session.get.call_args
        self.assertEqual(kwargs["headers"]["WM_CONSUMER.ID"], "wm-key")
        self.assertEqual(kwargs["params"]["numItems"], "5")

    @patch.object(Settings, "WALMART_API_KEY", "")
    def test_unconfigured_returns_empty(self) -> None:
        """Without an API key no request is made."""
        scraper = WalmartScraper()
        scraper.session = MagicMock()
        self.assertFalse(scraper.is_configured())
        self.assertEqual(scraper.search("lego"), [])
        scraper.session.get.assert_not_called()


class TestBestBuyScraper(unittest.TestCase):
    """Products API search."""

    @patch.object(Settings, "BESTBUY_API_KEY", "bb-key")
    def test_search_sorted_by_sale_price(self) -> None:
        """Request asks for ascending sale price; availability maps."""
        scraper = BestBuyScraper()
        scraper.session = MagicMock()
        scraper.session.get.return_value = _json_response({
            "products": [
                {
                    "sku": 1,
                    "name": "Switch OLED",
                    "salePrice": 349.99,
                    "url": "https://www.bestbuy.com/site/1.p",
                    "onlineAvailability": True,
                },
                {
                    "sku": 2,
                    "name": "Switch Lite",
                    "salePrice": 199.99,
                    "url": "https://www.bestbuy.com/site/2.p",
                    "onlineAvailability": False,
                },
            ]
        })
        results = scraper.search("nintendo switch")

        self.assertEqual([r.marketplace for r in results], ["bestbuy"] * 2)
        self.assertTrue(results[0].in_stock)
        self.assertFalse(results[1].in_stock)
        args, kwargs = scraper.session.get.call_args
        self.assertIn("search=nintendo%20switch", args[0])
        self.assertEqual(kwargs["params"]["sort"], "salePrice.asc")
        self.assertEqual(kwargs["params"]["apiKey"], "bb-key")


class TestAmazonScraper(unittest.TestCase):
    """Search-page card parsing, gated on credentials."""

    @patch.object(Settings, "AMAZON_ACCESS_KEY", "ak")
    @patch.object(Settings, "AMAZON_SECRET_KEY", "sk")
    @patch.object(Settings, "AMAZON_PARTNER_TAG", "gift-20")
    def test_parses_cards(self) -> None:
        """Cards without a price are skipped; links carry the tag."""
        scraper = AmazonScraper()
        scraper.session = MagicMock()
        scraper.session.get.return_value = _html_response(
            AMAZON_SEARCH_HTML
        )
        results = scraper.search("lego")

        self.assertEqual(len(results), 2)
        self.assertEqual(results[0].name, "LEGO Classic Box")
        self.assertEqual(results[0].price, 34.99)
        self.assertEqual(
            results[0].url,
            "https://www.amazon.com/LEGO-Set/dp/B0001?tag=gift-20",
        )
        self.assertEqual(
            results[0].image_url, "https://m.media-amazon.com/1.jpg",
        )
        self.assertEqual(results[1].price, 1049.0)

    @patch.object(Settings, "AMAZON_ACCESS_KEY", "ak")
    @patch.object(Settings, "AMAZON_SECRET_KEY", "")
    def test_needs_both_keys(self) -> None:
        """Access key alone does not enable search."""
        self.assertFalse(AmazonScraper().is_configured())

    def test_search_page_url(self) -> None:
        """Search page is built from the product name."""
        self.assertEqual(
            AmazonScraper().search_page_url("lego set"),
            "https://www.amazon.com/s?k=lego+set",
        )


class TestTargetScraper(unittest.TestCase):
    """Target has a scrape path only."""

    def test_search_always_empty(self) -> None:
        """Search reports the source unavailable."""
        scraper = TargetScraper()
        scraper.session = MagicMock()
        self.assertEqual(scraper.search("lego"), [])
        scraper.session.get.assert_not_called()

    def test_scrape_reads_current_retail(self) -> None:
        """Embedded current_retail JSON is the first pattern."""
        scraper = TargetScraper()
        scraper.session = MagicMock()
        scraper.session.get.return_value = _html_response(
            '<script>{"current_retail": "24.99"}</script> $30.00'
        )
        result = scraper.scrape_by_url("https://www.target.com/p/-/A-1")
        self.assertTrue(result.success)
        self.assertEqual(result.price, 24.99)


class TestSerpApiSearch(unittest.TestCase):
    """Cross-marketplace Google Shopping search."""

    def test_marketplace_from_source(self) -> None:
        """Seller names map to marketplace ids."""
        self.assertEqual(marketplace_from_source("Amazon.com"), "amazon")
        self.assertEqual(marketplace_from_source("Best Buy"), "bestbuy")
        self.assertEqual(marketplace_from_source("Target"), "target")
        self.assertEqual(marketplace_from_source("eBay"), "other")
        self.assertEqual(marketplace_from_source(None), "other")

    @patch.object(Settings, "SERPAPI_KEY", "serp")
    def test_keeps_major_marketplaces_sorted(self) -> None:
        """Non-major sellers are dropped and results sorted by price."""
        scraper = SerpApiSearch()
        scraper.session = MagicMock()
        scraper.session.get.return_value = _json_response({
            "shopping_results": [
                {
                    "title": "Echo Dot",
                    "extracted_price": 49.99,
                    "source": "Best Buy",
                    "link": "https://bestbuy.com/x",
                },
                {
                    "title": "Echo Dot",
                    "extracted_price": 39.99,
                    "source": "eBay",
                },
                {
                    "title": "Echo Dot",
                    "price": "$44.99",
                    "source": "Walmart",
                    "thumbnail": "https://img/1.jpg",
                },
            ]
        })
        results = scraper.search("echo dot")

        self.assertEqual(
            [r.marketplace for r in results], ["walmart", "bestbuy"],
        )
        self.assertEqual(results[0].price, 44.99)
        self.assertEqual(results[0].image_url, "https://img/1.jpg")


class TestRegistry(unittest.TestCase):
    """Marketplace routing by host."""

    def test_routes_known_hosts(self) -> None:
        """Known domains get their dedicated adapter."""
        cases = {
            "https://www.amazon.com/dp/B0001": AmazonScraper,
            "https://www.walmart.com/ip/123": WalmartScraper,
            "https://www.target.com/p/-/A-1": TargetScraper,
            "https://www.bestbuy.com/site/1.p": BestBuyScraper,
        }
        for url, cls in cases.items():
            with self.subTest(url=url):
                self.assertIsInstance(scraper_for_url(url), cls)

    def test_unknown_host_is_generic(self) -> None:
        """Any other host uses the generic scraper."""
        self.assertIsInstance(
            scraper_for_url("https://shop.example.com/p/1"), GenericScraper,
        )

    def test_malformed_url_raises(self) -> None:
        """Routing a malformed URL raises InvalidUrl."""
        with self.assertRaises(InvalidUrl):
            scraper_for_url("amazon dot com")

    def test_create_scraper(self) -> None:
        """Unknown ids have no adapter."""
        self.assertIsInstance(create_scraper("walmart"), WalmartScraper)
        self.assertIsInstance(create_scraper("generic"), GenericScraper)
        self.assertIsNone(create_scraper("ebay"))


if __name__ == "__main__":
    unittest.main()
