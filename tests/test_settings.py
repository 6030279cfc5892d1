# tests/test_settings.py

"""Tests for the Settings configuration class."""

import json
import unittest
from pathlib import Path

from pricewatch.config.settings import Settings


class TestSettings(unittest.TestCase):
    """Verify Settings constants and the marketplace registry."""

    def test_request_timeout_is_positive_int(self) -> None:
        """REQUEST_TIMEOUT must be a positive integer."""
        self.assertIsInstance(Settings.REQUEST_TIMEOUT, int)
        self.assertGreater(Settings.REQUEST_TIMEOUT, 0)

    def test_max_retries_is_positive(self) -> None:
        """MAX_RETRIES must be >= 1."""
        self.assertGreaterEqual(Settings.MAX_RETRIES, 1)

    def test_rate_limit_and_cache_ttl(self) -> None:
        """Per-source delay defaults to 1s; cache entries live a day."""
        self.assertEqual(Settings.RATE_LIMIT_DELAY, 1.0)
        self.assertEqual(Settings.SEARCH_CACHE_TTL, 86400)

    def test_major_marketplaces(self) -> None:
        """The four majors, in display order."""
        self.assertEqual(
            Settings.MAJOR_MARKETPLACES,
            ["amazon", "walmart", "target", "bestbuy"],
        )

    def test_each_marketplace_has_required_keys(self) -> None:
        """Every marketplace has id, label, domain and scraper keys."""
        for mp in Settings.AVAILABLE_MARKETPLACES:
            with self.subTest(mp=mp.get("id", "?")):
                for key in ("id", "label", "domain", "scraper"):
                    self.assertIn(key, mp)

    def test_majors_are_registered(self) -> None:
        """Every major marketplace has an adapter entry."""
        ids = [m["id"] for m in Settings.AVAILABLE_MARKETPLACES]
        self.assertEqual(len(ids), len(set(ids)))
        for major in Settings.MAJOR_MARKETPLACES:
            self.assertIn(major, ids)

    def test_path_constants_are_paths(self) -> None:
        """Path-typed settings are Path instances."""
        self.assertIsInstance(Settings.BASE_DIR, Path)
        self.assertIsInstance(Settings.SOURCES_PATH, Path)
        self.assertIsInstance(Settings.LOGS_DIR, Path)
        self.assertIsInstance(Settings.DB_PATH, Path)

    def test_sources_file_lists_patterns(self) -> None:
        """sources.json exists and carries price patterns."""
        self.assertTrue(Settings.SOURCES_PATH.exists())
        data = json.loads(Settings.SOURCES_PATH.read_text(encoding="utf-8"))
        self.assertIn("generic", data)

    def test_default_headers_has_accept_language(self) -> None:
        """DEFAULT_HEADERS must include Accept-Language."""
        self.assertIn("Accept-Language", Settings.DEFAULT_HEADERS)


if __name__ == "__main__":
    unittest.main()
