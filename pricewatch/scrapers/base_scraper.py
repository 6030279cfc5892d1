# pricewatch/scrapers/base_scraper.py

"""Abstract base class for all marketplace adapters."""

import json
import logging
import math
import re
import time
from abc import ABC, abstractmethod
from typing import Any

from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from pricewatch.config.settings import Settings
from pricewatch.errors import (
    FetchFailed,
    PriceNotFound,
    PriceWatchError,
    SourceUnavailable,
)
from pricewatch.filters.url_tools import validate_url
from pricewatch.models.scrape_result import ScrapeResult
from pricewatch.models.search_result import SearchResult

_FLAG_MAP: dict[str, int] = {
    "i": re.IGNORECASE,
    "s": re.DOTALL,
    "m": re.MULTILINE,
}


class BaseScraper(ABC):
    """Abstract base class for all marketplace adapters.

    Every adapter supports two paths: ``search`` through the
    marketplace's structured API (only when credentials exist) and
    ``scrape_by_url`` which applies the adapter's ordered price
    patterns from ``sources.json`` to a fetched product page.
    """

    # Upper plausibility bound for extracted prices (None = unbounded)
    MAX_PLAUSIBLE_PRICE: float | None = None

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"pricewatch.{source_name}"
        )
        self.settings = Settings()
        self.config: dict[str, Any] = self._load_source_config()
        self.currency: str = self.config.get("currency", "USD")
        self.price_patterns: list[tuple[re.Pattern[str], int]] = (
            self._compile_patterns()
        )
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0
        self._request_timeout: int = (
            self.settings.REQUEST_TIMEOUT
        )

    def _load_source_config(self) -> dict[str, Any]:
        """Load patterns and selectors for this source from sources.json."""
        with open(self.settings.SOURCES_PATH, encoding="utf-8") as f:
            all_sources: dict[str, Any] = json.load(f)
        result: dict[str, Any] = all_sources.get(
            self.source_name, {}
        )
        return result

    def _compile_patterns(self) -> list[tuple[re.Pattern[str], int]]:
        """Compile the ordered (pattern, capture-group) list."""
        compiled: list[tuple[re.Pattern[str], int]] = []
        for entry in self.config.get("price_patterns", []):
            flags = 0
            for letter in entry.get("flags", ""):
                flags |= _FLAG_MAP.get(letter, 0)
            compiled.append(
                (re.compile(entry["pattern"], flags), int(entry.get("group", 1)))
            )
        return compiled

    def _wait(self) -> None:
        """Sleep the configured politeness delay."""
        time.sleep(self.settings.REQUEST_DELAY)

    # Challenge/interstitial markers (checked before keyword scan)
    _CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "px-captcha",
    ]

    def _validate_response(
        self, resp: curl_requests.Response,
    ) -> bool:
        """Return False for challenge pages and CAPTCHA walls."""
        text = resp.text
        if text.lstrip().startswith(("{", "[")):
            return True
        lower = text.lower()

        for marker in self._CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "[%s] Challenge page detected (marker: '%s')",
                    self.source_name,
                    marker,
                )
                return False

        # Skip the keyword scan on pages with real content to
        # avoid false positives from footer text
        has_body_content = (
            "<body" in lower and len(text) > 5000
        )
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "[%s] CAPTCHA keyword '%s' detected",
                        self.source_name,
                        keyword,
                    )
                    return False
        return True

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single probe request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.source_name,
                elapsed,
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        """Reset failure counters after a successful fetch."""
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0

    def _record_failure(self) -> None:
        """Track failure and open circuit breaker if needed."""
        self._consecutive_failures += 1
        threshold = self.settings.CIRCUIT_BREAKER_THRESHOLD
        if self._consecutive_failures >= threshold:
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened after %d "
                "consecutive failures",
                self.source_name,
                self._consecutive_failures,
            )

    def _fetch_get(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, str] | None = None,
    ) -> curl_requests.Response | None:
        """GET with bounded retries and circuit breaker.

        A block page is never retried: the caller falls back instead.
        """
        if self._check_circuit():
            return None
        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = self.session.get(
                    url,
                    headers=headers,
                    params=params,
                    timeout=self._request_timeout,
                )
                if 200 <= resp.status_code < 300:
                    if not self._validate_response(resp):
                        break
                    self._record_success()
                    return resp
                self.logger.warning(
                    "[%s] HTTP %d on attempt %d",
                    self.source_name,
                    resp.status_code,
                    attempt + 1,
                )
                if resp.status_code in (401, 403, 404):
                    break
            except Exception as exc:
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.source_name,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
            time.sleep(
                self.settings.REQUEST_DELAY * (attempt + 1)
            )
        self._record_failure()
        return None

    def _fetch_html(self, url: str) -> str:
        """Fetch a page body or raise ``FetchFailed``."""
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
        }
        self._wait()
        resp = self._fetch_get(url, headers)
        if resp is None:
            msg = "Failed to fetch page"
            raise FetchFailed(msg)
        return str(resp.text)

    def _fetch_json(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """GET a JSON API endpoint or raise ``FetchFailed``."""
        resp = self._fetch_get(
            url,
            {"Accept": "application/json", **(headers or {})},
            params,
        )
        if resp is None:
            msg = f"{self.source_name} API request failed"
            raise FetchFailed(msg)
        try:
            return resp.json()
        except ValueError as exc:
            msg = f"{self.source_name} API returned invalid JSON"
            raise FetchFailed(msg) from exc

    def _get_page(self, url: str) -> BeautifulSoup:
        """Fetch and parse a page with BeautifulSoup."""
        return BeautifulSoup(self._fetch_html(url), "lxml")

    # ── Price extraction ─────────────────────────────────

    @classmethod
    def parse_price(cls, text: str | None) -> float | None:
        """Parse a captured price string like '$1,234.56'.

        Every character that is not a digit or a dot is stripped.
        Returns ``None`` for non-finite, non-positive or (when the
        adapter sets a cap) implausibly large values.
        """
        if not text:
            return None
        cleaned = re.sub(r"[^0-9.]", "", text)
        try:
            price = float(cleaned)
        except ValueError:
            return None
        if not math.isfinite(price) or price <= 0:
            return None
        if (
            cls.MAX_PLAUSIBLE_PRICE is not None
            and price >= cls.MAX_PLAUSIBLE_PRICE
        ):
            return None
        return price

    def extract_price(self, html: str) -> float:
        """Apply the ordered pattern list; first valid price wins."""
        for pattern, group in self.price_patterns:
            match = pattern.search(html)
            if not match:
                continue
            price = self.parse_price(match.group(group))
            if price is not None:
                self.logger.debug(
                    "[%s] Price %.2f matched pattern %s",
                    self.source_name,
                    price,
                    pattern.pattern,
                )
                return price
        msg = "Price not found on page"
        raise PriceNotFound(msg)

    def scrape_by_url(self, url: str) -> ScrapeResult:
        """Fetch a product page and extract its price.

        Never raises: failures come back as a failed ``ScrapeResult``
        tagged with the taxonomy kind.
        """
        try:
            checked = validate_url(url)
            html = self._fetch_html(checked)
            price = self.extract_price(html)
        except PriceWatchError as exc:
            self.logger.warning(
                "[%s] Scrape failed for %s: %s",
                self.source_name,
                url,
                exc,
            )
            return ScrapeResult.failed(exc, source=self.source_name)
        self.logger.info(
            "[%s] Scraped %.2f from %s",
            self.source_name,
            price,
            url,
        )
        return ScrapeResult.ok(
            price, source=self.source_name, currency=self.currency,
        )

    # ── Structured search ────────────────────────────────

    def is_configured(self) -> bool:
        """True when credentials for the structured search path exist."""
        return False

    def search(
        self, query: str, max_results: int | None = None,
    ) -> list[SearchResult]:
        """Search this marketplace.

        Unconfigured sources return an empty list (SourceUnavailable is
        expected and not an error). ``FetchFailed`` propagates so the
        orchestrator can record it per marketplace.
        """
        limit = max_results or self.settings.DEFAULT_MAX_RESULTS
        try:
            if not self.is_configured():
                msg = "credentials not configured"
                raise SourceUnavailable(msg)
            results = self._search(query, limit)
        except SourceUnavailable as exc:
            self.logger.info(
                "[%s] Skipping search: %s", self.source_name, exc,
            )
            return []
        self.logger.info(
            "[%s] Search '%s' returned %d results",
            self.source_name,
            query,
            len(results),
        )
        return results[:limit]

    def _search(
        self, query: str, max_results: int,
    ) -> list[SearchResult]:
        """Marketplace-specific structured search."""
        msg = "no structured search available"
        raise SourceUnavailable(msg)

    @abstractmethod
    def _get_homepage(self) -> str:
        """Return the homepage URL for the Referer header."""
        ...

    @abstractmethod
    def search_page_url(self, query: str) -> str:
        """Return the public search-results page URL for a query."""
        ...
