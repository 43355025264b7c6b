"""Counter store interface.

The rate limiter service depends on this abstraction (not the concrete
implementation) so the backing key-value service can be swapped without
touching the decision logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta


class AbstractCounterStore(ABC):
    """Interface for the shared store holding counters and block markers.

    Implementations raise ``StoreAppError`` on connectivity or protocol
    failures. They must not retry internally.
    """

    @abstractmethod
    async def increment(self, key: str, window: timedelta) -> int:
        """Atomically increment the counter at ``key``.

        The expiry is set to ``window`` only when the counter is created, so
        the window stays anchored at the first increment.

        Args:
            key: Counter key.
            window: Time-to-live applied on the first increment.

        Returns:
            The counter value after the increment.
        """
        raise NotImplementedError

    @abstractmethod
    async def is_blocked(self, key: str) -> bool:
        """Return whether a block marker currently exists at ``key``."""
        raise NotImplementedError

    @abstractmethod
    async def set_block(self, key: str, duration: timedelta) -> None:
        """Set a self-expiring block marker, or clear it when ``duration <= 0``.

        Args:
            key: Block marker key.
            duration: Marker lifetime. Zero or negative deletes the marker.
        """
        raise NotImplementedError

    async def ping(self) -> None:
        """Check connectivity with the backing service."""

    async def close(self) -> None:
        """Release resources held by the store."""
