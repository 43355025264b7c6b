"""HTTP-level tests for the rate limiting middleware."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.in_memory import InMemoryCounterStore
from app.core.app_factory import create_app
from app.core.config import RateLimitSettings, Settings, StorageSettings
from app.core.errors import StoreAppError, ValidationAppError
from app.core.rate_limit import RATE_LIMIT_EXCEEDED_MESSAGE, extract_client_ip


def _settings(**rate_limit) -> Settings:
    return Settings(
        storage=StorageSettings(type="memory"),
        rate_limit=RateLimitSettings(**rate_limit),
    )


@pytest.fixture
def store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


def _client(settings: Settings, store: AbstractCounterStore) -> TestClient:
    return TestClient(create_app(settings, store=store))


def test_blocks_fourth_request_from_same_ip(store) -> None:
    settings = _settings(ip_requests=3, ip_window_seconds=1, ip_block_duration_minutes=1)
    headers = {"X-Forwarded-For": "192.168.1.1, 10.0.0.1"}

    with _client(settings, store) as client:
        remaining = []
        for _ in range(3):
            resp = client.get("/test", headers=headers)
            assert resp.status_code == 200
            assert resp.json() == {"message": "Request successful"}
            remaining.append(resp.headers["X-RateLimit-Remaining"])

        blocked = client.get("/test", headers=headers)

    assert remaining == ["2", "1", "0"]
    assert blocked.status_code == 429
    assert blocked.text == RATE_LIMIT_EXCEEDED_MESSAGE
    assert blocked.headers["content-type"].startswith("text/plain")
    assert blocked.headers["Retry-After"] == "60"
    assert blocked.headers["X-RateLimit-Limit"] == "3"
    assert blocked.headers.get("X-Request-ID")


def test_different_ips_have_independent_budgets(store) -> None:
    settings = _settings(ip_requests=1, ip_window_seconds=60)

    with _client(settings, store) as client:
        assert client.get("/test", headers={"X-Real-IP": "10.0.0.1"}).status_code == 200
        assert client.get("/test", headers={"X-Real-IP": "10.0.0.1"}).status_code == 429
        assert client.get("/test", headers={"X-Real-IP": "10.0.0.2"}).status_code == 200


def test_token_override_takes_precedence_over_ip(store, monkeypatch) -> None:
    monkeypatch.setenv("TOKENS", "abc123:5:60:1")
    settings = _settings(ip_requests=1, ip_window_seconds=60)
    headers = {"X-Forwarded-For": "203.0.113.10", "API_KEY": "abc123"}

    with _client(settings, store) as client:
        statuses = [client.get("/test", headers=headers).status_code for _ in range(5)]
        sixth = client.get("/test", headers=headers)
        ip_count = store.counter_value("ratelimit:ip:203.0.113.10")
        token_count = store.counter_value("ratelimit:token:abc123")

    assert statuses == [200] * 5
    assert sixth.status_code == 429
    assert ip_count is None
    assert token_count == 6


def test_custom_token_header(store) -> None:
    settings = _settings(
        ip_requests=1,
        ip_window_seconds=60,
        token_default_requests=2,
        token_default_window_seconds=60,
        token_header="X-Client-Token",
    )

    with _client(settings, store) as client:
        for _ in range(2):
            resp = client.get("/test", headers={"X-Client-Token": "team-a"})
            assert resp.status_code == 200
            assert resp.headers["X-RateLimit-Limit"] == "2"

        assert client.get("/test", headers={"X-Client-Token": "team-a"}).status_code == 429
        assert store.counter_value("ratelimit:token:team-a") == 3


def test_health_is_exempt(store) -> None:
    settings = _settings(ip_requests=1, ip_window_seconds=60)

    with _client(settings, store) as client:
        statuses = [client.get("/health").status_code for _ in range(5)]
        ready = client.get("/health/ready")

    assert statuses == [200] * 5
    assert ready.json() == {"status": "ok", "rate_limiting": True}


def test_disabled_rate_limiting_fails_open(store) -> None:
    settings = _settings(enabled=False, ip_requests=1)

    with _client(settings, store) as client:
        statuses = [client.get("/test").status_code for _ in range(5)]
        ready = client.get("/health/ready")

    assert statuses == [200] * 5
    assert ready.json()["rate_limiting"] is False


def test_missing_limiter_passes_through(store) -> None:
    # Without entering the client context the lifespan never installs a limiter
    client = TestClient(create_app(_settings(ip_requests=1), store=store))

    assert client.get("/test").status_code == 200
    assert client.get("/test").status_code == 200


def test_store_failure_returns_generic_500() -> None:
    failing = AsyncMock(spec=AbstractCounterStore)
    failing.is_blocked.side_effect = StoreAppError(code="store_unavailable", message="down")

    with _client(_settings(), failing) as client:
        resp = client.get("/test", headers={"X-Real-IP": "10.0.0.1"})

    assert resp.status_code == 500
    assert resp.text == "Internal Server Error"
    failing.increment.assert_not_awaited()
    failing.close.assert_awaited_once()


def test_readiness_returns_503_when_store_unreachable() -> None:
    flaky = AsyncMock(spec=AbstractCounterStore)
    flaky.ping.side_effect = [
        None,
        StoreAppError(code="store_unavailable", message="Counter store ping failed"),
    ]

    with _client(_settings(), flaky) as client:
        resp = client.get("/health/ready")

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "store_unavailable"


def test_startup_ping_failure_closes_store() -> None:
    unreachable = AsyncMock(spec=AbstractCounterStore)
    unreachable.ping.side_effect = StoreAppError(code="store_unavailable", message="down")

    with pytest.raises(StoreAppError):
        with _client(_settings(), unreachable):
            pass

    unreachable.close.assert_awaited_once()


def test_invalid_rules_at_startup_close_store() -> None:
    mock_store = AsyncMock(spec=AbstractCounterStore)

    with pytest.raises(ValidationAppError) as exc_info:
        with _client(_settings(ip_requests=0), mock_store):
            pass

    assert exc_info.value.code == "invalid_default_ip_rule"
    mock_store.close.assert_awaited_once()


def test_custom_exempt_paths_are_parsed_once_at_startup(store) -> None:
    settings = _settings(ip_requests=1, ip_window_seconds=60, exempt_paths=" /test ,/health")

    with _client(settings, store) as client:
        statuses = [client.get("/test").status_code for _ in range(3)]
        exempt_paths = client.app.state.exempt_paths
        assert store.counter_value("ratelimit:ip:testclient") is None

    assert statuses == [200] * 3
    assert exempt_paths == frozenset({"/test", "/health"})


def test_headers_can_be_disabled(store) -> None:
    settings = _settings(ip_requests=1, ip_window_seconds=60, include_headers=False)

    with _client(settings, store) as client:
        allowed = client.get("/test")
        blocked = client.get("/test")

    assert "X-RateLimit-Limit" not in allowed.headers
    assert blocked.status_code == 429
    assert "Retry-After" not in blocked.headers


def test_openapi_documents_rate_limit(store) -> None:
    with _client(_settings(), store) as client:
        schema = client.get("/openapi.json").json()

    assert schema["components"]["securitySchemes"]["RateLimitToken"]["name"] == "API_KEY"
    assert "429" in schema["paths"]["/test"]["get"]["responses"]
    assert schema["paths"]["/health"]["get"]["security"] == []


def _request(headers: dict[str, str], client: tuple[str, int] | None = ("10.1.1.1", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/test",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


class TestExtractClientIp:
    def test_prefers_first_forwarded_for_entry(self) -> None:
        request = _request({"X-Forwarded-For": " 1.1.1.1 , 2.2.2.2", "X-Real-IP": "3.3.3.3"})

        assert extract_client_ip(request) == "1.1.1.1"

    def test_falls_back_to_real_ip(self) -> None:
        assert extract_client_ip(_request({"X-Real-IP": " 3.3.3.3 "})) == "3.3.3.3"

    def test_falls_back_to_peer_address(self) -> None:
        assert extract_client_ip(_request({})) == "10.1.1.1"

    def test_empty_when_nothing_known(self) -> None:
        assert extract_client_ip(_request({}, client=None)) == ""
