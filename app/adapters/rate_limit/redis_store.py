"""Redis-backed counter store.

Counters and block markers live in Redis so every service instance shares the
same budget per identifier. The increment uses a MULTI/EXEC transaction of
``INCR`` and ``PEXPIRE ... NX``: the expiry is written only when the key has
none, which anchors the window at the first request (requires Redis >= 7.0).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.adapters.rate_limit.base import AbstractCounterStore
from app.core.config import RedisSettings
from app.core.errors import StoreAppError

logger = logging.getLogger(__name__)

BLOCK_SENTINEL = "1"


class RedisCounterStore(AbstractCounterStore):
    """Counter store using an asynchronous Redis client."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, redis_settings: RedisSettings) -> RedisCounterStore:
        """Build a store from Redis connection settings.

        Args:
            redis_settings: Host, port, credentials and socket timeouts.

        Returns:
            RedisCounterStore wrapping a lazily connected client.
        """
        client = Redis(
            host=redis_settings.host,
            port=redis_settings.port,
            password=redis_settings.password,
            db=redis_settings.db,
            socket_timeout=redis_settings.socket_timeout_seconds,
            socket_connect_timeout=redis_settings.socket_timeout_seconds,
            decode_responses=True,
        )
        return cls(client)

    @asynccontextmanager
    async def _translate_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as exc:
            logger.error(
                "counter_store.error",
                extra={
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            raise StoreAppError(
                code="store_unavailable",
                message=f"Counter store {operation} failed",
                details={"operation": operation},
            ) from exc

    async def increment(self, key: str, window: timedelta) -> int:
        async with self._translate_errors("increment"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.pexpire(key, window, nx=True)
                count, _ = await pipe.execute()
        return int(count)

    async def is_blocked(self, key: str) -> bool:
        async with self._translate_errors("is_blocked"):
            exists = await self._client.exists(key)
        return exists > 0

    async def set_block(self, key: str, duration: timedelta) -> None:
        async with self._translate_errors("set_block"):
            if duration <= timedelta(0):
                await self._client.delete(key)
                return
            await self._client.set(key, BLOCK_SENTINEL, px=duration)

    async def ping(self) -> None:
        async with self._translate_errors("ping"):
            await self._client.ping()

    async def close(self) -> None:
        await self._client.aclose()
        logger.debug("Redis connection closed")
