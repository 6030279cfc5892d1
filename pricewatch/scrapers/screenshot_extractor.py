# pricewatch/scrapers/screenshot_extractor.py

"""Last-resort price extraction from a page screenshot via a vision model."""

import base64
import logging

from curl_cffi import requests as curl_requests

from pricewatch.config.settings import Settings
from pricewatch.errors import FetchFailed, InvalidUrl
from pricewatch.filters.url_tools import validate_url
from pricewatch.scrapers.base_scraper import BaseScraper
from pricewatch.scrapers.registry import create_scraper
from pricewatch.services.vision_client import (
    GeminiVisionClient,
    VisionClient,
    VisionResult,
)

logger = logging.getLogger("pricewatch.screenshot")


class ScreenshotPriceExtractor:
    """Capture a page and let the vision collaborator read the price.

    For tracked products the captured page is the marketplace's
    search-results page built from the product name, not the product
    URL, since per-SKU pages are the ones most often walled off.
    """

    SCREENSHOT_API_URL = "https://shot.screenshotapi.net/screenshot"

    def __init__(
        self,
        vision_client: VisionClient | None = None,
        session: curl_requests.Session | None = None,
    ) -> None:
        self.settings = Settings()
        self.vision = vision_client or GeminiVisionClient()
        self.session = session or curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )

    def is_available(self) -> bool:
        """True when a vision backend is configured."""
        return self.vision.is_configured()

    def capture(self, page_url: str) -> str:
        """Render a page through the screenshot API; returns a data URL."""
        if not self.settings.SCREENSHOT_API_KEY:
            msg = "SCREENSHOT_API_KEY not configured"
            raise FetchFailed(msg)
        try:
            resp = self.session.get(
                self.SCREENSHOT_API_URL,
                params={
                    "url": page_url,
                    "token": self.settings.SCREENSHOT_API_KEY,
                    "output": "image",
                    "file_type": "png",
                    "wait_for_event": "load",
                    "delay": "2000",
                },
                timeout=self.settings.REQUEST_TIMEOUT * 4,
            )
        except Exception as exc:
            msg = f"Screenshot API request failed: {exc}"
            raise FetchFailed(msg) from exc
        if resp.status_code != 200:
            msg = f"Screenshot API failed: HTTP {resp.status_code}"
            raise FetchFailed(msg)
        encoded = base64.b64encode(resp.content).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def _to_image(self, target: str | bytes) -> str:
        """Normalise the input to a base64 image string."""
        if isinstance(target, bytes):
            return base64.b64encode(target).decode("ascii")
        if target.startswith("data:image"):
            return target
        if target.startswith(("http://", "https://")):
            return self.capture(validate_url(target))
        return target

    def extract(self, target: str | bytes) -> VisionResult:
        """Extract {name, price} from an image or a page URL.

        The collaborator's reply is validated with the same price
        policy as the scrapers before it is reported as a success.
        """
        if not self.is_available():
            return VisionResult(
                success=False, error="Vision extraction not configured",
            )
        try:
            image = self._to_image(target)
        except (FetchFailed, InvalidUrl) as exc:
            logger.warning("Screenshot capture failed: %s", exc)
            return VisionResult(success=False, error=str(exc))

        result = self.vision.extract(image)
        if not result.success:
            return result

        price = (
            BaseScraper.parse_price(str(result.price))
            if result.price is not None
            else None
        )
        if price is None:
            return VisionResult(
                success=False,
                name=result.name,
                error="No valid price in vision response",
            )
        name = result.name.strip() if result.name else None
        return VisionResult(success=True, name=name or None, price=price)

    def extract_for_product(
        self, product_name: str, marketplace: str,
    ) -> VisionResult:
        """Screenshot the marketplace's search page for a product name."""
        scraper = create_scraper(marketplace)
        if scraper is None:
            return VisionResult(
                success=False,
                error=f"Unsupported marketplace: {marketplace}",
            )
        page_url = scraper.search_page_url(product_name)
        logger.info(
            "[%s] Vision fallback on %s", marketplace, page_url,
        )
        return self.extract(page_url)
