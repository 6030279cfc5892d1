# pricewatch/filters/url_tools.py

"""URL helpers: validation, normalisation and marketplace detection."""

import re
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from pricewatch.config.settings import Settings
from pricewatch.errors import InvalidUrl

# Tracking params that vary per session and never identify a product
_TRACKING_PARAMS: frozenset[str] = frozenset({
    "ref", "ref_", "dib", "dib_tag", "qid", "sr", "spc",
    "sp_csd", "xpid", "aref", "sp_cr", "psc", "keywords",
    "pd_rd_i", "pd_rd_r", "pd_rd_w", "pd_rd_wg", "pf_rd_i",
    "pf_rd_m", "pf_rd_p", "pf_rd_r", "pf_rd_s", "pf_rd_t",
    "th", "utm_source", "utm_medium", "utm_campaign",
    "utm_term", "utm_content", "athcpid", "athpgid", "irgwc",
})


def validate_url(raw_url: str | None) -> str:
    """Return the stripped URL or raise ``InvalidUrl``."""
    if not raw_url or not raw_url.strip():
        msg = "No URL provided"
        raise InvalidUrl(msg)
    url = raw_url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        msg = f"Invalid URL: {url}"
        raise InvalidUrl(msg)
    return url


def normalize_url(raw_url: str) -> str:
    """Strip tracking/session query params to get a stable product URL."""
    parsed = urlparse(raw_url)

    # Amazon path-based tracking (e.g. /ref=sr_1_243)
    path = re.sub(r"/ref=[^/]*", "", parsed.path)

    params = parse_qs(parsed.query, keep_blank_values=True)
    cleaned = {
        k: v for k, v in params.items()
        if k.lower() not in _TRACKING_PARAMS
    }
    new_query = urlencode(cleaned, doseq=True) if cleaned else ""
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        path,
        parsed.params,
        new_query,
        "",
    ))


def detect_marketplace(raw_url: str) -> str | None:
    """Map a product URL to a marketplace id, or ``None`` if unknown.

    Raises ``InvalidUrl`` when the URL cannot be parsed.
    """
    url = validate_url(raw_url)
    hostname = (urlparse(url).hostname or "").lower()
    for source in Settings.AVAILABLE_MARKETPLACES:
        domain = source["domain"]
        if hostname == domain or hostname.endswith("." + domain):
            return source["id"]
    return None


def is_supported_retailer(raw_url: str | None) -> bool:
    """True when the URL belongs to one of the dedicated adapters."""
    try:
        return detect_marketplace(raw_url or "") is not None
    except InvalidUrl:
        return False


def retailer_name(raw_url: str | None) -> str:
    """Human-readable retailer label for a URL."""
    try:
        marketplace = detect_marketplace(raw_url or "")
    except InvalidUrl:
        return "Unknown"
    if marketplace is not None:
        for source in Settings.AVAILABLE_MARKETPLACES:
            if source["id"] == marketplace:
                return source["label"]
    hostname = urlparse(raw_url or "").hostname or ""
    return hostname.removeprefix("www.")
