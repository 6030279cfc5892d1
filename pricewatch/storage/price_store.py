# pricewatch/storage/price_store.py

"""SQLite-backed store for tracked products, observations and history."""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pricewatch.config.settings import Settings
from pricewatch.errors import ProductNotFound
from pricewatch.models.tracked_product import (
    MarketplaceObservation,
    PriceHistoryEntry,
    TrackedProduct,
)

logger = logging.getLogger("pricewatch.store")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS tracked_products (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT    NOT NULL,
    url                 TEXT,
    target_price        REAL    NOT NULL,
    current_price       REAL,
    lowest_price_ever   REAL,
    highest_price_ever  REAL,
    primary_marketplace TEXT,
    last_checked_at     TEXT,
    tracking_enabled    INTEGER NOT NULL DEFAULT 1,
    auto_update_enabled INTEGER NOT NULL DEFAULT 0,
    owner               TEXT,
    created_at          TEXT    NOT NULL,
    updated_at          TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS marketplace_observations (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id      INTEGER NOT NULL
                    REFERENCES tracked_products(id) ON DELETE CASCADE,
    marketplace     TEXT    NOT NULL,
    product_url     TEXT    NOT NULL,
    product_name    TEXT,
    image_url       TEXT,
    price           REAL,
    in_stock        INTEGER NOT NULL DEFAULT 1,
    confidence      REAL,
    last_checked_at TEXT,
    UNIQUE (product_id, marketplace)
);

CREATE TABLE IF NOT EXISTS price_history (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER NOT NULL
               REFERENCES tracked_products(id) ON DELETE CASCADE,
    price      REAL    NOT NULL,
    source     TEXT    NOT NULL,
    checked_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_product_date
    ON price_history(product_id, checked_at);
"""

_PRODUCT_COLUMNS = (
    "id, name, url, target_price, current_price, lowest_price_ever, "
    "highest_price_ever, primary_marketplace, last_checked_at, "
    "tracking_enabled, auto_update_enabled, owner"
)

_OBSERVATION_COLUMNS = (
    "product_id, marketplace, product_url, price, product_name, "
    "image_url, in_stock, confidence, last_checked_at"
)


def _parse_ts(value: str | None) -> datetime | None:
    """Parse a stored ISO timestamp."""
    return datetime.fromisoformat(value) if value else None


def _row_to_product(row: tuple[Any, ...]) -> TrackedProduct:
    """Map a ``tracked_products`` row to a TrackedProduct."""
    return TrackedProduct(
        id=row[0],
        name=row[1],
        url=row[2],
        target_price=row[3],
        current_price=row[4],
        lowest_price_ever=row[5],
        highest_price_ever=row[6],
        primary_marketplace=row[7],
        last_checked_at=_parse_ts(row[8]),
        tracking_enabled=bool(row[9]),
        auto_update_enabled=bool(row[10]),
        owner=row[11],
    )


def _row_to_observation(row: tuple[Any, ...]) -> MarketplaceObservation:
    """Map a ``marketplace_observations`` row."""
    return MarketplaceObservation(
        product_id=row[0],
        marketplace=row[1],
        product_url=row[2],
        price=row[3],
        product_name=row[4],
        image_url=row[5],
        in_stock=bool(row[6]),
        confidence=row[7],
        last_checked_at=_parse_ts(row[8]),
    )


class PriceStore:
    """Persistence for the reconciliation engine and update worker.

    All access goes through one re-entrant lock. ``transaction()``
    wraps a read-compute-write sequence in ``BEGIN IMMEDIATE`` so two
    overlapping updates of the same product cannot lose writes.
    """

    def __init__(
        self, db_path: Path | str | None = None,
    ) -> None:
        path = db_path if db_path is not None else Settings.DB_PATH
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False, isolation_level=None,
        )
        if str(path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("PriceStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator["PriceStore"]:
        """Run the enclosed calls as one atomic unit.

        Nested use joins the outer transaction.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0

    def _execute(
        self, sql: str, params: tuple[Any, ...] = (),
    ) -> sqlite3.Cursor:
        """Execute one statement under the store lock."""
        with self._lock:
            return self._conn.execute(sql, params)

    # ── Tracked products ─────────────────────────────────

    def add_product(
        self,
        name: str,
        target_price: float,
        url: str | None = None,
        owner: str | None = None,
        tracking_enabled: bool = True,
        auto_update_enabled: bool = False,
    ) -> TrackedProduct:
        """Insert a new tracked product and return it."""
        now = datetime.now().isoformat()
        cur = self._execute(
            "INSERT INTO tracked_products "
            "(name, url, target_price, tracking_enabled, "
            " auto_update_enabled, owner, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                name,
                url,
                target_price,
                int(tracking_enabled),
                int(auto_update_enabled),
                owner,
                now,
                now,
            ),
        )
        product_id = int(cur.lastrowid or 0)
        logger.info(
            "Tracking product %d '%s' (target %.2f)",
            product_id,
            name,
            target_price,
        )
        return self.require_product(product_id)

    def get_product(self, product_id: int) -> TrackedProduct | None:
        """Load a product, or ``None`` when it does not exist."""
        row = self._execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM tracked_products WHERE id = ?",
            (product_id,),
        ).fetchone()
        return _row_to_product(row) if row else None

    def require_product(self, product_id: int) -> TrackedProduct:
        """Load a product or raise ``ProductNotFound``."""
        product = self.get_product(product_id)
        if product is None:
            msg = f"Product {product_id} not found"
            raise ProductNotFound(msg)
        return product

    def list_products(self) -> list[TrackedProduct]:
        """Every tracked product, oldest first."""
        rows = self._execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM tracked_products ORDER BY id"
        ).fetchall()
        return [_row_to_product(r) for r in rows]

    def auto_update_products(self) -> list[TrackedProduct]:
        """Products opted in to background price updates."""
        rows = self._execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM tracked_products "
            "WHERE auto_update_enabled = 1 AND tracking_enabled = 1 "
            "ORDER BY id"
        ).fetchall()
        return [_row_to_product(r) for r in rows]

    def products_due_for_check(
        self,
        now: datetime | None = None,
        interval: float | None = None,
        limit: int = 100,
    ) -> list[TrackedProduct]:
        """Tracked products not checked within ``interval`` seconds."""
        current = now or datetime.now()
        window = (
            Settings.PRICE_CHECK_INTERVAL if interval is None else interval
        )
        cutoff = (current - timedelta(seconds=window)).isoformat()
        rows = self._execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM tracked_products "
            "WHERE tracking_enabled = 1 "
            "AND (last_checked_at IS NULL OR last_checked_at < ?) "
            "ORDER BY id LIMIT ?",
            (cutoff, limit),
        ).fetchall()
        return [_row_to_product(r) for r in rows]

    def set_target_price(self, product_id: int, target_price: float) -> None:
        """Change a product's target price."""
        self.require_product(product_id)
        self._execute(
            "UPDATE tracked_products SET target_price = ?, updated_at = ? "
            "WHERE id = ?",
            (target_price, datetime.now().isoformat(), product_id),
        )

    def set_flags(
        self,
        product_id: int,
        tracking_enabled: bool | None = None,
        auto_update_enabled: bool | None = None,
    ) -> None:
        """Toggle tracking / auto-update for a product."""
        product = self.require_product(product_id)
        tracking = (
            product.tracking_enabled
            if tracking_enabled is None
            else tracking_enabled
        )
        auto = (
            product.auto_update_enabled
            if auto_update_enabled is None
            else auto_update_enabled
        )
        self._execute(
            "UPDATE tracked_products SET tracking_enabled = ?, "
            "auto_update_enabled = ?, updated_at = ? WHERE id = ?",
            (int(tracking), int(auto), datetime.now().isoformat(), product_id),
        )

    def update_price_fields(
        self,
        product_id: int,
        current_price: float,
        lowest_price_ever: float,
        highest_price_ever: float,
        primary_marketplace: str | None,
        checked_at: datetime,
    ) -> None:
        """Write reconciled price fields (reconciliation only)."""
        self._execute(
            "UPDATE tracked_products SET current_price = ?, "
            "lowest_price_ever = ?, highest_price_ever = ?, "
            "primary_marketplace = ?, last_checked_at = ?, updated_at = ? "
            "WHERE id = ?",
            (
                current_price,
                lowest_price_ever,
                highest_price_ever,
                primary_marketplace,
                checked_at.isoformat(),
                checked_at.isoformat(),
                product_id,
            ),
        )

    # ── Marketplace observations ─────────────────────────

    def upsert_observation(self, obs: MarketplaceObservation) -> None:
        """Insert or update the row for (product_id, marketplace)."""
        checked = (
            obs.last_checked_at.isoformat() if obs.last_checked_at else None
        )
        self._execute(
            f"INSERT INTO marketplace_observations ({_OBSERVATION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(product_id, marketplace) DO UPDATE SET "
            "product_url = excluded.product_url, "
            "price = COALESCE(excluded.price, price), "
            "product_name = COALESCE(excluded.product_name, product_name), "
            "image_url = COALESCE(excluded.image_url, image_url), "
            "in_stock = excluded.in_stock, "
            "confidence = COALESCE(excluded.confidence, confidence), "
            "last_checked_at = COALESCE(excluded.last_checked_at, "
            "last_checked_at)",
            (
                obs.product_id,
                obs.marketplace,
                obs.product_url,
                obs.price,
                obs.product_name,
                obs.image_url,
                int(obs.in_stock),
                obs.confidence,
                checked,
            ),
        )

    def remove_observation(self, product_id: int, marketplace: str) -> bool:
        """Delete a marketplace link. Returns True if a row was removed."""
        cur = self._execute(
            "DELETE FROM marketplace_observations "
            "WHERE product_id = ? AND marketplace = ?",
            (product_id, marketplace),
        )
        return cur.rowcount > 0

    def get_observations(
        self, product_id: int,
    ) -> list[MarketplaceObservation]:
        """All marketplace observations for a product."""
        rows = self._execute(
            f"SELECT {_OBSERVATION_COLUMNS} FROM marketplace_observations "
            "WHERE product_id = ? ORDER BY id",
            (product_id,),
        ).fetchall()
        return [_row_to_observation(r) for r in rows]

    def get_observation(
        self, product_id: int, marketplace: str,
    ) -> MarketplaceObservation | None:
        """One marketplace observation, if present."""
        row = self._execute(
            f"SELECT {_OBSERVATION_COLUMNS} FROM marketplace_observations "
            "WHERE product_id = ? AND marketplace = ?",
            (product_id, marketplace),
        ).fetchone()
        return _row_to_observation(row) if row else None

    # ── Price history ────────────────────────────────────

    def record_history(
        self,
        product_id: int,
        price: float,
        source: str,
        checked_at: datetime | None = None,
    ) -> None:
        """Append one price history row."""
        ts = (checked_at or datetime.now()).isoformat()
        self._execute(
            "INSERT INTO price_history (product_id, price, source, checked_at) "
            "VALUES (?, ?, ?, ?)",
            (product_id, price, source, ts),
        )

    def get_price_history(
        self, product_id: int, limit: int | None = None,
    ) -> list[PriceHistoryEntry]:
        """Price history for a product, newest first."""
        max_rows = limit if limit is not None else -1
        rows = self._execute(
            "SELECT product_id, price, source, checked_at FROM price_history "
            "WHERE product_id = ? ORDER BY checked_at DESC, id DESC LIMIT ?",
            (product_id, max_rows),
        ).fetchall()
        return [
            PriceHistoryEntry(
                product_id=r[0],
                price=r[1],
                source=r[2],
                checked_at=datetime.fromisoformat(r[3]),
            )
            for r in rows
        ]

    def count_history(self, product_id: int) -> int:
        """Number of history rows for a product."""
        row = self._execute(
            "SELECT COUNT(id) FROM price_history WHERE product_id = ?",
            (product_id,),
        ).fetchone()
        return int(row[0]) if row else 0
