# pricewatch/services/reconciliation.py

"""Turns a batch of fresh price observations into persisted state."""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from pricewatch.models.tracked_product import (
    MarketplaceObservation,
    PriceObservation,
)
from pricewatch.storage.price_store import PriceStore

logger = logging.getLogger("pricewatch.reconciliation")


@dataclass
class ReconciliationResult:
    """What one ``apply`` call changed."""

    updated_current_price: float | None = None
    best_marketplace: str | None = None
    history_entries_written: int = 0
    should_alert: bool = False
    previous_price: float | None = None

    @property
    def updated(self) -> bool:
        return self.updated_current_price is not None


def is_successful(obs: PriceObservation) -> bool:
    """An observation counts only with a finite, positive price."""
    return (
        obs.price is not None
        and math.isfinite(obs.price)
        and obs.price > 0
    )


def crosses_target(
    new_price: float,
    previous_price: float | None,
    target_price: float,
) -> bool:
    """True when a price newly drops below the target."""
    if new_price >= target_price:
        return False
    return previous_price is None or previous_price >= target_price


class ReconciliationEngine:
    """Decides the authoritative price and writes it atomically.

    The cheapest successful observation wins (ties go to the one
    supplied first). Extrema only ever widen, so
    ``lowest <= current <= highest`` holds after every apply. Each
    successful observation appends one history row. A batch with no
    successful observation writes nothing.
    """

    def __init__(
        self,
        store: PriceStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self._clock = clock or datetime.now

    def apply(
        self,
        product_id: int,
        observations: list[PriceObservation],
    ) -> ReconciliationResult:
        """Reconcile ``observations`` into the product's stored state.

        Raises ``ProductNotFound`` for an unknown product.
        """
        successes = [o for o in observations if is_successful(o)]

        with self.store.transaction():
            product = self.store.require_product(product_id)
            previous = product.current_price
            if not successes:
                logger.info(
                    "No successful observations for product %d, "
                    "nothing to apply",
                    product_id,
                )
                return ReconciliationResult(previous_price=previous)

            # min() keeps the first of equal prices
            best = min(successes, key=lambda o: float(o.price or 0.0))
            new_price = float(best.price or 0.0)

            lowest = (
                new_price
                if product.lowest_price_ever is None
                else min(product.lowest_price_ever, new_price)
            )
            highest = (
                new_price
                if product.highest_price_ever is None
                else max(product.highest_price_ever, new_price)
            )
            now = self._clock()

            self.store.update_price_fields(
                product_id,
                current_price=new_price,
                lowest_price_ever=lowest,
                highest_price_ever=highest,
                primary_marketplace=best.marketplace,
                checked_at=now,
            )
            for obs in successes:
                self.store.record_history(
                    product_id,
                    float(obs.price or 0.0),
                    obs.source or obs.marketplace,
                    now,
                )
                self._upsert(product_id, obs, now)

        should_alert = crosses_target(
            new_price, previous, product.target_price,
        )
        logger.info(
            "Product %d reconciled: %s -> %.2f on %s (%d observations)%s",
            product_id,
            f"{previous:.2f}" if previous is not None else "none",
            new_price,
            best.marketplace,
            len(successes),
            " [alert]" if should_alert else "",
        )
        return ReconciliationResult(
            updated_current_price=new_price,
            best_marketplace=best.marketplace,
            history_entries_written=len(successes),
            should_alert=should_alert,
            previous_price=previous,
        )

    def _upsert(
        self, product_id: int, obs: PriceObservation, now: datetime,
    ) -> None:
        """Refresh the observation row for this marketplace."""
        url = obs.url
        if not url:
            existing = self.store.get_observation(product_id, obs.marketplace)
            if existing is None:
                return
            url = existing.product_url
        self.store.upsert_observation(
            MarketplaceObservation(
                product_id=product_id,
                marketplace=obs.marketplace,
                product_url=url,
                price=obs.price,
                product_name=obs.product_name,
                image_url=obs.image_url,
                in_stock=obs.in_stock,
                confidence=obs.confidence,
                last_checked_at=now,
            )
        )
