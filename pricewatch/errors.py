# pricewatch/errors.py

"""Failure taxonomy shared by adapters, storage and services."""


class PriceWatchError(Exception):
    """Base class for every pricewatch error."""

    kind: str = "error"


class SourceUnavailable(PriceWatchError):
    """Marketplace has no credentials or no supported search path."""

    kind = "source_unavailable"


class FetchFailed(PriceWatchError):
    """Network error, non-2xx status or a block page."""

    kind = "fetch_failed"


class PriceNotFound(PriceWatchError):
    """Page fetched but no extraction pattern produced a valid price."""

    kind = "price_not_found"


class InvalidUrl(PriceWatchError):
    """Malformed or empty product URL."""

    kind = "invalid_url"


class CacheError(PriceWatchError):
    """Search cache read/write failed (callers degrade to a miss)."""

    kind = "cache_error"


class NotificationError(PriceWatchError):
    """Notification could not be delivered."""

    kind = "notification_error"


class ProductNotFound(PriceWatchError):
    """Tracked product does not exist."""

    kind = "product_not_found"


class EmptyQueryError(PriceWatchError, ValueError):
    """Search invoked with a missing or blank query."""

    kind = "empty_query"
