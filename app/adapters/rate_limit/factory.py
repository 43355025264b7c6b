"""Factory pattern for creating counter store instances."""

from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.in_memory import InMemoryCounterStore
from app.adapters.rate_limit.redis_store import RedisCounterStore
from app.core.config import Settings, settings as default_settings
from app.core.errors import ValidationAppError


def create_counter_store(app_settings: Settings | None = None) -> AbstractCounterStore:
    """Factory function to instantiate the counter store selected by STORAGE_TYPE.

    Args:
        app_settings: Settings to read from; defaults to the global settings.

    Returns:
        AbstractCounterStore: Configured store instance (not yet pinged).

    Raises:
        ValidationAppError: If the storage type is not supported.
    """
    cfg = app_settings or default_settings
    storage_type = cfg.storage.type.strip().lower()

    if storage_type == "redis":
        return RedisCounterStore.from_settings(cfg.redis)

    # Per-process only; useful for local development and tests
    if storage_type == "memory":
        return InMemoryCounterStore()

    raise ValidationAppError(
        code="unsupported_storage_type",
        message=f"unsupported storage type: '{storage_type}'. Supported types: redis, memory",
        details={"setting": "STORAGE_TYPE", "value": storage_type},
    )
