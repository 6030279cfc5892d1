# pricewatch/models/scrape_result.py

"""Outcome of scraping a single product page."""

from dataclasses import dataclass

from pricewatch.errors import PriceWatchError


@dataclass
class ScrapeResult:
    """Price extracted from a product URL, or the reason it was not."""

    success: bool
    price: float | None = None
    currency: str = "USD"
    source: str = ""
    error: str = ""
    error_kind: str = ""

    @classmethod
    def ok(
        cls, price: float, source: str, currency: str = "USD",
    ) -> "ScrapeResult":
        """Build a successful result."""
        return cls(
            success=True, price=price, currency=currency, source=source,
        )

    @classmethod
    def failed(
        cls, exc: PriceWatchError, source: str = "",
    ) -> "ScrapeResult":
        """Build a failed result from a taxonomy exception."""
        return cls(
            success=False,
            source=source,
            error=str(exc),
            error_kind=exc.kind,
        )
