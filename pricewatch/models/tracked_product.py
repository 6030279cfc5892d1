# pricewatch/models/tracked_product.py

"""Persisted product tracking models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TrackedProduct:
    """A product a user tracks against a target price.

    Price fields (``current_price``, extrema, ``primary_marketplace``,
    ``last_checked_at``) are only written by reconciliation.
    """

    id: int
    name: str
    target_price: float
    url: str | None = None
    current_price: float | None = None
    lowest_price_ever: float | None = None
    highest_price_ever: float | None = None
    primary_marketplace: str | None = None
    last_checked_at: datetime | None = None
    tracking_enabled: bool = True
    auto_update_enabled: bool = False
    owner: str | None = None


@dataclass
class MarketplaceObservation:
    """One marketplace's view of a tracked product."""

    product_id: int
    marketplace: str
    product_url: str
    price: float | None = None
    product_name: str | None = None
    image_url: str | None = None
    in_stock: bool = True
    confidence: float | None = None
    last_checked_at: datetime | None = None


@dataclass
class PriceHistoryEntry:
    """Append-only record of an observed price."""

    product_id: int
    price: float
    source: str
    checked_at: datetime


@dataclass
class PriceObservation:
    """Input to reconciliation: a freshly observed price."""

    marketplace: str
    price: float | None
    url: str = ""
    image_url: str | None = None
    in_stock: bool = True
    source: str = ""
    product_name: str | None = None
    confidence: float | None = None
