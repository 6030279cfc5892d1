# pricewatch/services/rate_limiter.py

"""Per-source request serialisation with a fixed inter-request delay."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pricewatch.config.settings import Settings

logger = logging.getLogger("pricewatch.rate_limiter")

T = TypeVar("T")


class RateLimiter:
    """Serialises calls per source key.

    At most one call per key is in flight. The next call for the same
    key starts no sooner than ``delay`` seconds after the previous one
    finished. Keys are independent and proceed in parallel. Waiters on
    a key are served in submission order (``asyncio.Lock`` wakes its
    waiters FIFO).
    """

    def __init__(self, delay: float | None = None) -> None:
        self.delay = (
            Settings.RATE_LIMIT_DELAY if delay is None else delay
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_finished: dict[str, float] = {}
        self._pending: dict[str, int] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        """Get or create the lock for a source key."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def pending(self, key: str) -> int:
        """Number of callers queued or running for a key."""
        return self._pending.get(key, 0)

    async def _respect_delay(self, key: str) -> None:
        """Sleep out whatever remains of the delay for a key."""
        last = self._last_finished.get(key)
        if last is None:
            return
        remaining = self.delay - (time.monotonic() - last)
        if remaining > 0:
            logger.debug(
                "[%s] Rate limit wait %.2fs", key, remaining,
            )
            await asyncio.sleep(remaining)

    async def execute(
        self,
        key: str,
        task: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``task`` under the key's queue and return its result.

        Exceptions raised by ``task`` propagate to this caller only;
        queued callers behind it still run.
        """
        self._pending[key] = self._pending.get(key, 0) + 1
        try:
            async with self._get_lock(key):
                await self._respect_delay(key)
                try:
                    return await task()
                finally:
                    self._last_finished[key] = time.monotonic()
        finally:
            self._pending[key] -= 1
