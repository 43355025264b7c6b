"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Mirrors the key-value semantics of the Redis store (expiry anchored at the
  first increment, self-expiring block markers) so tests can exercise the
  rate limiter service without a network dependency.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from app.adapters.rate_limit.base import AbstractCounterStore


@dataclass
class _Counter:
    count: int
    expires_at: float


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by process-local dictionaries.

    Expired entries are evicted lazily on access, the same way a key-value
    service hides keys whose time-to-live has elapsed.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source function returning seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._counters: dict[str, _Counter] = {}
        self._blocks: dict[str, float] = {}

    async def increment(self, key: str, window: timedelta) -> int:
        now = self._clock()
        with self._lock:
            counter = self._counters.get(key)
            if counter is None or counter.expires_at <= now:
                counter = _Counter(count=0, expires_at=now + window.total_seconds())
                self._counters[key] = counter
            counter.count += 1
            return counter.count

    async def is_blocked(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            expires_at = self._blocks.get(key)
            if expires_at is None:
                return False
            if expires_at <= now:
                del self._blocks[key]
                return False
            return True

    async def set_block(self, key: str, duration: timedelta) -> None:
        with self._lock:
            if duration <= timedelta(0):
                self._blocks.pop(key, None)
                return
            self._blocks[key] = self._clock() + duration.total_seconds()

    def counter_value(self, key: str) -> int | None:
        """Return the live counter value for ``key`` (None when absent)."""
        now = self._clock()
        with self._lock:
            counter = self._counters.get(key)
            if counter is None or counter.expires_at <= now:
                return None
            return counter.count

    async def close(self) -> None:
        with self._lock:
            self._counters.clear()
            self._blocks.clear()
