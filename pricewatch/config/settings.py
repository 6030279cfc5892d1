# pricewatch/config/settings.py

"""Central configuration for the pricewatch engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the pricewatch engine."""

    # --- Credentials (absence disables the matching source) ---
    AMAZON_ACCESS_KEY: str = os.getenv("AMAZON_ACCESS_KEY", "")
    AMAZON_SECRET_KEY: str = os.getenv("AMAZON_SECRET_KEY", "")
    AMAZON_PARTNER_TAG: str = os.getenv("AMAZON_PARTNER_TAG", "")
    WALMART_API_KEY: str = os.getenv("WALMART_API_KEY", "")
    BESTBUY_API_KEY: str = os.getenv("BESTBUY_API_KEY", "")
    SERPAPI_KEY: str = os.getenv("SERPAPI_KEY", "")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    SCREENSHOT_API_KEY: str = os.getenv("SCREENSHOT_API_KEY", "")
    NOTIFY_WEBHOOK_URL: str = os.getenv("NOTIFY_WEBHOOK_URL", "")

    # --- Scraping ---
    REQUEST_DELAY: float = 0.5          # Seconds before each page fetch
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    MAX_RETRIES: int = 2                # Retry count on transient failures
    DEFAULT_MAX_RESULTS: int = 10       # Per-marketplace search cap

    # --- Rate limiting / caching ---
    RATE_LIMIT_DELAY: float = 1.0       # Seconds between calls per source
    SEARCH_CACHE_TTL: float = 24 * 60 * 60
    DEMO_DELAY: float = 0.5             # Simulated latency for demo data

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
        "robot check",
    ]

    # --- Price sanity ---
    GENERIC_MAX_PRICE: float = 1_000_000.0
    PRICE_CHECK_INTERVAL: float = 24 * 60 * 60
    PRICE_HISTORY_LIMIT: int = 30

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SOURCES_PATH: Path = BASE_DIR / "pricewatch" / "config" / "sources.json"
    DATA_DIR: Path = BASE_DIR / "data"
    LOGS_DIR: Path = BASE_DIR / "logs"
    DB_PATH: Path = Path(
        os.getenv("PRICEWATCH_DB_PATH", str(DATA_DIR / "pricewatch.db"))
    )

    # --- Marketplaces ---
    MAJOR_MARKETPLACES: list[str] = [
        "amazon", "walmart", "target", "bestbuy",
    ]
    AVAILABLE_MARKETPLACES: list[dict[str, str]] = [
        {
            "id": "amazon",
            "label": "Amazon",
            "domain": "amazon.com",
            "scraper": "pricewatch.scrapers.amazon_scraper.AmazonScraper",
        },
        {
            "id": "walmart",
            "label": "Walmart",
            "domain": "walmart.com",
            "scraper": "pricewatch.scrapers.walmart_scraper.WalmartScraper",
        },
        {
            "id": "target",
            "label": "Target",
            "domain": "target.com",
            "scraper": "pricewatch.scrapers.target_scraper.TargetScraper",
        },
        {
            "id": "bestbuy",
            "label": "Best Buy",
            "domain": "bestbuy.com",
            "scraper": "pricewatch.scrapers.bestbuy_scraper.BestBuyScraper",
        },
    ]
    GENERIC_SCRAPER: str = (
        "pricewatch.scrapers.generic_scraper.GenericScraper"
    )
