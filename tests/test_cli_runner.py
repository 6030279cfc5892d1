# tests/test_cli_runner.py

"""Tests for the headless CLI commands and argument parsing."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from main import _build_parser
from pricewatch.cli import runner
from pricewatch.config.settings import Settings
from pricewatch.storage.price_store import PriceStore
from pricewatch.storage.result_cache import ResultCache


class TestResolveMarketplaces(unittest.TestCase):
    """Marketplace CSV handling."""

    def test_default_is_all_majors(self) -> None:
        self.assertEqual(
            runner.resolve_marketplaces(None), Settings.MAJOR_MARKETPLACES,
        )

    def test_csv_is_trimmed(self) -> None:
        self.assertEqual(
            runner.resolve_marketplaces(" amazon, bestbuy ,"),
            ["amazon", "bestbuy"],
        )

    def test_unknown_exits(self) -> None:
        with self.assertRaises(SystemExit):
            runner.resolve_marketplaces("amazon,ebay")


class TestParser(unittest.TestCase):
    """argparse wiring."""

    def test_search_defaults(self) -> None:
        args = _build_parser().parse_args(["search", "echo dot"])
        self.assertEqual(args.command, "search")
        self.assertTrue(args.use_cache)
        self.assertEqual(args.output_format, "json")
        self.assertEqual(args.max_results, Settings.DEFAULT_MAX_RESULTS)

    def test_add_flags(self) -> None:
        args = _build_parser().parse_args([
            "add", "Kindle", "79.5", "-u", "https://www.amazon.com/dp/B1",
            "--auto-update",
        ])
        self.assertEqual(args.target_price, 79.5)
        self.assertTrue(args.auto_update)


class TestRunAdd(unittest.TestCase):
    """Tracking a new product from the CLI."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "cli.db"
        self._patch = patch.object(Settings, "DB_PATH", self.db_path)
        self._patch.start()

    def tearDown(self) -> None:
        self._patch.stop()
        self._tmp.cleanup()

    def test_links_detected_marketplace(self) -> None:
        """The product URL becomes an observation for its marketplace."""
        code = runner.run_add(
            "Kindle", 79.0, "https://www.amazon.com/dp/B1", None, True,
        )
        self.assertEqual(code, 0)
        store = PriceStore(self.db_path)
        try:
            product = store.list_products()[0]
            self.assertTrue(product.auto_update_enabled)
            observations = store.get_observations(product.id)
            self.assertEqual(
                [o.marketplace for o in observations], ["amazon"],
            )
        finally:
            store.close()

    def test_tracking_params_stripped(self) -> None:
        """The stored observation URL has no tracking noise."""
        runner.run_add(
            "Kindle", 79.0,
            "https://www.amazon.com/dp/B1/ref=sr_1_3?ref_=abc&th=1",
            None, False,
        )
        store = PriceStore(self.db_path)
        try:
            product = store.list_products()[0]
            self.assertEqual(product.url, "https://www.amazon.com/dp/B1")
            observation = store.get_observations(product.id)[0]
            self.assertEqual(
                observation.product_url, "https://www.amazon.com/dp/B1",
            )
        finally:
            store.close()

    def test_invalid_url_rejected(self) -> None:
        """A malformed URL adds nothing."""
        self.assertEqual(
            runner.run_add("Kindle", 79.0, "kindle", None, False), 1,
        )
        store = PriceStore(self.db_path)
        try:
            self.assertEqual(store.list_products(), [])
        finally:
            store.close()

    def test_history_unknown_product(self) -> None:
        self.assertEqual(runner.run_history(404), 1)


@patch("pricewatch.cli.runner.ScreenshotPriceExtractor", MagicMock())
class TestUpdateCommands(unittest.IsolatedAsyncioTestCase):
    """Worker wiring for the update commands."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "cli.db"
        self._patch = patch.object(Settings, "DB_PATH", self.db_path)
        self._patch.start()

    def tearDown(self) -> None:
        self._patch.stop()
        self._tmp.cleanup()

    def test_worker_and_orchestrator_share_limiter_and_cache(self) -> None:
        """Scrapes and search fallback throttle through one limiter."""
        store = PriceStore(self.db_path)
        cache = ResultCache(self.db_path)
        try:
            worker = runner._build_worker(store, cache)
            self.assertIs(worker.rate_limiter, worker.orchestrator.rate_limiter)
            self.assertIs(worker.orchestrator.cache, cache)
        finally:
            cache.close()
            store.close()

    async def test_update_closes_cache(self) -> None:
        """The result cache is closed even when the product is missing."""
        with patch.object(ResultCache, "close", autospec=True) as close:
            self.assertEqual(await runner.run_update(404), 1)
        close.assert_called_once()

    async def test_auto_updates_close_cache(self) -> None:
        """An empty auto-update run still releases the cache."""
        with patch.object(ResultCache, "close", autospec=True) as close:
            self.assertEqual(await runner.run_auto_updates(), 0)
        close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
