"""Rate limiting middleware for the HTTP layer.

This module wires the rate limiter service into the HTTP layer.

Behaviour:
- Client identity: first X-Forwarded-For entry, then X-Real-IP, then the
  transport peer address; the token comes from the configured header
  (``API_KEY`` by default).
- Allowed requests pass through, optionally annotated with X-RateLimit-*
  headers.
- Blocked requests get 429 with a fixed plain-text message.
- Any other limiter failure is logged and answered with a generic 500.
- Fail-open: when no limiter is configured (rate limiting disabled), requests
  pass through unthrottled.
"""

from __future__ import annotations

import hashlib
import logging
import math

from fastapi import Request, Response, status
from fastapi.responses import PlainTextResponse

from app.adapters.rate_limit.base import AbstractCounterStore
from app.core.config import Settings, build_limiter_config, parse_exempt_paths, settings
from app.core.errors import AppError, BlockedAppError
from app.schemas.rate_limit import Decision, RateLimitRequest
from app.services.rate_limiter_service import RateLimiterService

logger = logging.getLogger(__name__)

RATE_LIMIT_EXCEEDED_MESSAGE = (
    "you have reached the maximum number of requests or actions allowed "
    "within a certain time frame"
)


def build_rate_limiter(
    app_settings: Settings,
    store: AbstractCounterStore | None,
) -> RateLimiterService | None:
    """Build the limiter from settings, or None when rate limiting is disabled.

    Raises:
        ValidationAppError: If the rules are invalid or the store is missing.
    """
    if not app_settings.rate_limit.enabled:
        logger.warning("rate_limit.disabled", extra={"reason": "rate_limit_enabled_false"})
        return None

    return RateLimiterService(store, build_limiter_config(app_settings.rate_limit))


def extract_client_ip(request: Request) -> str:
    """Resolve the best-effort client IP for a request.

    Args:
        request: Incoming request.

    Returns:
        The first X-Forwarded-For entry, else X-Real-IP, else the peer host
        (empty string when none is known).
    """
    forwarded_for = request.headers.get("X-Forwarded-For", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip

    return request.client.host.strip() if request.client else ""


def _hash_identifier(identifier: str) -> str:
    """Hash the identifier for logging without exposing secrets."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


def _too_many_requests(decision: Decision | None, include_headers: bool) -> Response:
    headers: dict[str, str] = {}
    if include_headers and decision is not None:
        headers["X-RateLimit-Limit"] = str(decision.applied_rule.requests)
        headers["X-RateLimit-Remaining"] = "0"
        block_seconds = decision.applied_rule.block_duration.total_seconds()
        if block_seconds > 0:
            headers["Retry-After"] = str(math.ceil(block_seconds))

    return PlainTextResponse(
        RATE_LIMIT_EXCEEDED_MESSAGE,
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        headers=headers or None,
    )


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """HTTP middleware enforcing rate limits on every non-exempt request.

    The limiter and its HTTP options are read from ``request.app.state``
    (set by the application lifespan), falling back to the global settings.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response, a 429 when blocked, or a 500 when
            the limiter fails.
    """
    rl = getattr(request.app.state, "rate_limit_settings", None) or settings.rate_limit
    exempt_paths = getattr(request.app.state, "exempt_paths", None)
    if exempt_paths is None:
        exempt_paths = parse_exempt_paths(rl.exempt_paths)
    if request.url.path in exempt_paths:
        return await call_next(request)

    limiter: RateLimiterService | None = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return await call_next(request)

    token = request.headers.get(rl.token_header, "").strip()
    rate_limit_request = RateLimitRequest(ip=extract_client_ip(request), token=token)

    try:
        decision = await limiter.allow(rate_limit_request)
    except BlockedAppError as exc:
        decision = exc.decision
        logger.warning(
            "rate_limit.blocked",
            extra={
                "identifier_hash": _hash_identifier(decision.identifier) if decision else None,
                "limit": decision.applied_rule.requests if decision else None,
                "current_count": decision.current_count if decision else None,
                "path": request.url.path,
            },
        )
        return _too_many_requests(decision, rl.include_headers)
    except AppError as exc:
        logger.error(
            "rate_limit.failed",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "path": request.url.path,
            },
        )
        return PlainTextResponse(
            "Internal Server Error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.debug(
        "rate_limit.allowed",
        extra={
            "identifier_hash": _hash_identifier(decision.identifier),
            "limit": decision.applied_rule.requests,
            "remaining": decision.remaining,
        },
    )

    response: Response = await call_next(request)
    if rl.include_headers:
        response.headers["X-RateLimit-Limit"] = str(decision.applied_rule.requests)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    return response
