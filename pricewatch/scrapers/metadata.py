# pricewatch/scrapers/metadata.py

"""Name / image / price capture from a product URL."""

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup

from pricewatch.errors import PriceNotFound, PriceWatchError
from pricewatch.filters.url_tools import retailer_name, validate_url
from pricewatch.scrapers.base_scraper import BaseScraper
from pricewatch.scrapers.registry import scraper_for_url

logger = logging.getLogger("pricewatch.metadata")

_NAME_TAGS: list[dict[str, str]] = [
    {"property": "og:title"},
    {"name": "twitter:title"},
]

_IMAGE_TAGS: list[dict[str, str]] = [
    {"property": "og:image"},
    {"name": "twitter:image"},
]


@dataclass
class ProductMetadata:
    """What could be read off a product page."""

    success: bool
    name: str | None = None
    image_url: str | None = None
    price: float | None = None
    retailer: str = ""
    error: str = ""


def _meta_content(
    soup: BeautifulSoup, candidates: list[dict[str, str]],
) -> str | None:
    """First non-empty ``content`` among the candidate meta tags."""
    for attrs in candidates:
        tag = soup.find("meta", attrs=attrs)
        if tag is None:
            continue
        content = tag.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
    return None


def parse_metadata(html: str) -> tuple[str | None, str | None]:
    """Return (name, image_url) from Open Graph, Twitter or <title>."""
    soup = BeautifulSoup(html, "lxml")
    name = _meta_content(soup, _NAME_TAGS)
    if name is None and soup.title and soup.title.string:
        name = soup.title.string.strip() or None
    image = _meta_content(soup, _IMAGE_TAGS)
    return name, image


def extract_product_metadata(
    url: str, scraper: BaseScraper | None = None,
) -> ProductMetadata:
    """Fetch a product page once and read its name, image and price.

    Succeeds when at least one of the three was found.
    """
    try:
        checked = validate_url(url)
        adapter = scraper or scraper_for_url(checked)
        html = adapter._fetch_html(checked)
    except PriceWatchError as exc:
        logger.warning("Metadata fetch failed for %s: %s", url, exc)
        return ProductMetadata(success=False, error=str(exc))

    name, image = parse_metadata(html)
    try:
        price: float | None = adapter.extract_price(html)
    except PriceNotFound:
        price = None

    found = bool(name or image or price)
    logger.info(
        "Metadata for %s: name=%s image=%s price=%s",
        checked,
        bool(name),
        bool(image),
        price,
    )
    return ProductMetadata(
        success=found,
        name=name,
        image_url=image,
        price=price,
        retailer=retailer_name(checked),
        error="" if found else "No product information found on page",
    )
