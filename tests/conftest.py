"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets environment defaults before settings are imported so no test needs
a running Redis instance.
"""

import os

import pytest

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("STORAGE_TYPE", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from app.adapters.rate_limit.in_memory import InMemoryCounterStore  # noqa: E402
from app.schemas.rate_limit import LimiterConfig  # noqa: E402
from app.services.rate_limiter_service import RateLimiterService  # noqa: E402


class FakeTime:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def memory_store(fake_time: FakeTime) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=fake_time.time)


@pytest.fixture
def make_limiter(memory_store: InMemoryCounterStore):
    """Build a RateLimiterService over the shared in-memory store."""

    def _make(**config_kwargs) -> RateLimiterService:
        return RateLimiterService(memory_store, LimiterConfig(**config_kwargs))

    return _make
