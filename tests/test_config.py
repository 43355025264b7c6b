"""Tests for rate limit configuration parsing and store selection."""

from datetime import timedelta

import pytest

from app.adapters.rate_limit.factory import create_counter_store
from app.adapters.rate_limit.in_memory import InMemoryCounterStore
from app.adapters.rate_limit.redis_store import RedisCounterStore
from app.core.config import (
    RateLimitSettings,
    Settings,
    StorageSettings,
    build_limiter_config,
    parse_exempt_paths,
    parse_token_overrides,
)
from app.core.errors import ValidationAppError
from app.schemas.rate_limit import RateLimitRule


class TestParseTokenOverrides:
    def test_parses_single_override(self) -> None:
        result = parse_token_overrides("abc123:100:1:5")

        assert result == {
            "abc123": RateLimitRule(
                requests=100,
                window=timedelta(seconds=1),
                block_duration=timedelta(minutes=5),
            )
        }

    def test_parses_multiple_overrides_with_whitespace(self) -> None:
        result = parse_token_overrides(" abc123:100:1:5 , xyz : 20 : 2 : 0 ")

        assert set(result) == {"abc123", "xyz"}
        assert result["xyz"].requests == 20
        assert result["xyz"].window == timedelta(seconds=2)
        assert result["xyz"].block_duration == timedelta(0)

    @pytest.mark.parametrize("raw", [None, "", "   ", " , "])
    def test_empty_input_returns_no_overrides(self, raw) -> None:
        assert parse_token_overrides(raw) == {}

    @pytest.mark.parametrize("raw", ["abc123:100:1", "abc123:100:1:5:9", ":1:1:1"])
    def test_rejects_wrong_shape(self, raw: str) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            parse_token_overrides(raw)

        assert exc_info.value.code == "invalid_token_override"

    def test_rejects_non_numeric_fields(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            parse_token_overrides("abc123:many:1:5")

        assert "abc123" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, ValueError)


class TestBuildLimiterConfig:
    def test_defaults_match_documented_values(self) -> None:
        config = build_limiter_config(RateLimitSettings())

        assert config.default_ip_rule == RateLimitRule(
            requests=10,
            window=timedelta(seconds=1),
            block_duration=timedelta(minutes=5),
        )
        assert config.default_token_rule.is_configured is False

    def test_default_token_rule_enabled_by_requests(self) -> None:
        config = build_limiter_config(
            RateLimitSettings(
                token_default_requests=50,
                token_default_window_seconds=2,
                token_default_block_duration_minutes=1,
            )
        )

        assert config.default_token_rule == RateLimitRule(
            requests=50,
            window=timedelta(seconds=2),
            block_duration=timedelta(minutes=1),
        )

    def test_token_overrides_come_from_tokens_env(self, monkeypatch) -> None:
        monkeypatch.setenv("TOKENS", "abc123:100:1:5")

        config = build_limiter_config(RateLimitSettings())

        assert config.token_rules["abc123"].requests == 100

    def test_ip_rule_from_prefixed_env(self, monkeypatch) -> None:
        monkeypatch.setenv("RATE_LIMIT_IP_REQUESTS", "3")
        monkeypatch.setenv("RATE_LIMIT_IP_WINDOW_SECONDS", "2")
        monkeypatch.setenv("RATE_LIMIT_IP_BLOCK_DURATION_MINUTES", "1")

        rule = build_limiter_config(RateLimitSettings()).default_ip_rule

        assert rule == RateLimitRule(
            requests=3,
            window=timedelta(seconds=2),
            block_duration=timedelta(minutes=1),
        )


def test_parse_exempt_paths() -> None:
    assert parse_exempt_paths("/health, /health/ready,,") == frozenset({"/health", "/health/ready"})
    assert parse_exempt_paths("") == frozenset()


class TestCreateCounterStore:
    def test_memory_store(self) -> None:
        store = create_counter_store(Settings(storage=StorageSettings(type="memory")))

        assert isinstance(store, InMemoryCounterStore)

    def test_redis_store_is_case_insensitive(self) -> None:
        store = create_counter_store(Settings(storage=StorageSettings(type=" Redis ")))

        assert isinstance(store, RedisCounterStore)

    def test_unsupported_type(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            create_counter_store(Settings(storage=StorageSettings(type="memcached")))

        assert exc_info.value.code == "unsupported_storage_type"
