# pricewatch/services/notifier.py

"""Price update and price-drop notifications for product owners."""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any

from curl_cffi import requests as curl_requests

from pricewatch.config.settings import Settings
from pricewatch.errors import NotificationError

logger = logging.getLogger("pricewatch.notifier")


@dataclass
class NotificationSummary:
    """Payload handed to a notifier."""

    kind: str
    product_id: int
    product_name: str
    subject: str
    message: str
    new_price: float | None = None
    old_price: float | None = None
    target_price: float | None = None
    marketplace: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialise for JSON transport."""
        return asdict(self)


@dataclass
class NotificationResult:
    """Delivery outcome."""

    success: bool
    channel: str = ""
    error: str = ""


def _money(value: float | None) -> str:
    return f"${value:,.2f}" if value is not None else "n/a"


def build_update_summary(
    product_id: int,
    product_name: str,
    new_price: float | None,
    old_price: float | None,
    marketplace: str | None,
    succeeded: int,
    attempted: int,
) -> NotificationSummary:
    """Completion summary sent after every update run."""
    if new_price is None:
        message = (
            f"Price check for {product_name} found no price "
            f"({succeeded}/{attempted} marketplaces succeeded)."
        )
    else:
        message = (
            f"{product_name} is {_money(new_price)} on {marketplace} "
            f"(was {_money(old_price)}; {succeeded}/{attempted} "
            "marketplaces succeeded)."
        )
    return NotificationSummary(
        kind="price_update",
        product_id=product_id,
        product_name=product_name,
        subject=f"Price check complete: {product_name}",
        message=message,
        new_price=new_price,
        old_price=old_price,
        marketplace=marketplace,
    )


def build_alert_summary(
    product_id: int,
    product_name: str,
    new_price: float,
    old_price: float | None,
    target_price: float,
    marketplace: str | None,
    url: str | None = None,
) -> NotificationSummary:
    """Price-drop alert sent when a price falls below the target."""
    savings = target_price - new_price
    return NotificationSummary(
        kind="price_alert",
        product_id=product_id,
        product_name=product_name,
        subject=(
            f"Price Drop Alert: {product_name} is now {_money(new_price)}!"
        ),
        message=(
            f"{product_name} dropped to {_money(new_price)} on "
            f"{marketplace}, {_money(savings)} under your target of "
            f"{_money(target_price)}."
        ),
        new_price=new_price,
        old_price=old_price,
        target_price=target_price,
        marketplace=marketplace,
        url=url,
    )


class Notifier(ABC):
    """Delivers summaries to a recipient.

    ``notify`` never raises: delivery problems come back as a failed
    ``NotificationResult`` and are logged.
    """

    channel: str = "notifier"

    def notify(
        self, recipient: str | None, summary: NotificationSummary,
    ) -> NotificationResult:
        """Send ``summary`` to ``recipient``."""
        try:
            self._deliver(recipient, summary)
        except NotificationError as exc:
            logger.error(
                "%s delivery of '%s' failed: %s",
                self.channel,
                summary.subject,
                exc,
                exc_info=True,
            )
            return NotificationResult(
                success=False, channel=self.channel, error=str(exc),
            )
        return NotificationResult(success=True, channel=self.channel)

    @abstractmethod
    def _deliver(
        self, recipient: str | None, summary: NotificationSummary,
    ) -> None:
        """Send or raise ``NotificationError``."""
        ...


class LogNotifier(Notifier):
    """Writes notifications to the application log."""

    channel = "log"

    def _deliver(
        self, recipient: str | None, summary: NotificationSummary,
    ) -> None:
        logger.info(
            "Notify %s: %s | %s",
            recipient or "<no owner>",
            summary.subject,
            summary.message,
        )


class WebhookNotifier(Notifier):
    """POSTs each summary as JSON to a webhook URL."""

    channel = "webhook"

    def __init__(
        self,
        url: str | None = None,
        session: curl_requests.Session | None = None,
    ) -> None:
        self.settings = Settings()
        self.url = url or self.settings.NOTIFY_WEBHOOK_URL
        self.session = session or curl_requests.Session()

    def _deliver(
        self, recipient: str | None, summary: NotificationSummary,
    ) -> None:
        if not self.url:
            msg = "NOTIFY_WEBHOOK_URL not configured"
            raise NotificationError(msg)
        try:
            resp = self.session.post(
                self.url,
                json={"recipient": recipient, **summary.to_dict()},
                timeout=self.settings.REQUEST_TIMEOUT,
            )
        except Exception as exc:
            msg = f"Webhook request failed: {exc}"
            raise NotificationError(msg) from exc
        if not 200 <= resp.status_code < 300:
            msg = f"Webhook returned HTTP {resp.status_code}"
            raise NotificationError(msg)
        logger.debug(
            "Webhook delivered '%s' to %s", summary.subject, recipient,
        )


def default_notifier() -> Notifier:
    """Webhook when configured, else the log."""
    if Settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier()
    return LogNotifier()
