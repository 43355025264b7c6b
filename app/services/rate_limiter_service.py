"""Rate limiting decision logic.

Resolves which rule applies to a request, consults the shared counter store
and produces an allow/deny decision. The service keeps no per-client state;
all coordination between concurrent requests relies on the store's atomic
increment, so a single instance can be shared across every request task.
"""

from __future__ import annotations

import hashlib
import logging

from app.adapters.rate_limit.base import AbstractCounterStore
from app.core.errors import BlockedAppError, ValidationAppError
from app.schemas.rate_limit import (
    Decision,
    LimiterConfig,
    RateLimitRequest,
    RateLimitRule,
    ResolvedKeys,
)

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit"
CATEGORY_IP = "ip"
CATEGORY_TOKEN = "token"


def build_keys(category: str, identifier: str) -> ResolvedKeys:
    """Derive the counter and block keys for an identity.

    The identifier is trimmed and lowercased so that values differing only in
    case or surrounding whitespace share the same counters.

    Args:
        category: Identity category ("ip" or "token").
        identifier: Raw identifier value.

    Returns:
        ResolvedKeys with namespaced store keys.

    Examples:
        >>> build_keys("token", " ABC123 ").counter_key
        'ratelimit:token:abc123'
    """
    normalized = identifier.strip().lower()
    counter_key = f"{KEY_PREFIX}:{category}:{normalized}"
    return ResolvedKeys(
        counter_key=counter_key,
        block_key=f"{counter_key}:block",
        identifier=normalized,
    )


def _hash_identifier(identifier: str) -> str:
    """Hash the identifier for logging without exposing tokens."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


class RateLimiterService:
    """Fixed-window rate limiter keyed by IP address or API token."""

    def __init__(self, store: AbstractCounterStore | None, config: LimiterConfig) -> None:
        """Initialize the service.

        Args:
            store: Shared counter store.
            config: Immutable rule configuration.

        Raises:
            ValidationAppError: If the store is missing or the default IP rule
                has non-positive requests or window.
        """
        if store is None:
            raise ValidationAppError(
                code="store_required",
                message="counter store is required",
            )
        if not config.default_ip_rule.is_configured:
            raise ValidationAppError(
                code="invalid_default_ip_rule",
                message="default IP rule must have positive values",
                details={"setting": "RATE_LIMIT_IP_REQUESTS/RATE_LIMIT_IP_WINDOW_SECONDS"},
            )

        self._store = store
        self._config = config

    @property
    def config(self) -> LimiterConfig:
        return self._config

    def resolve(self, request: RateLimitRequest) -> tuple[RateLimitRule, ResolvedKeys]:
        """Pick the rule and store keys for a request.

        Precedence: explicit token override, then the default token rule (when
        configured), then the default IP rule.

        Raises:
            ValidationAppError: If no token rule applies and the IP is empty.
        """
        token = request.token.strip()
        if token:
            rule = self._config.token_rules.get(token)
            if rule is not None:
                return rule, build_keys(CATEGORY_TOKEN, token)
            if self._config.default_token_rule.is_configured:
                return self._config.default_token_rule, build_keys(CATEGORY_TOKEN, token)

        ip = request.ip.strip()
        if not ip:
            raise ValidationAppError(
                code="identity_required",
                message="ip address is required when token has no override",
            )

        return self._config.default_ip_rule, build_keys(CATEGORY_IP, ip)

    async def allow(self, request: RateLimitRequest) -> Decision:
        """Evaluate a request against its rule.

        Args:
            request: Client identity extracted by the caller.

        Returns:
            Decision with ``allowed=True`` when the request is within budget.

        Raises:
            BlockedAppError: The identifier is blocked, or this request pushed
                it over budget. ``exc.decision`` holds the rejected decision.
            ValidationAppError: Neither a usable token nor an IP was given.
            StoreAppError: The counter store failed.
        """
        rule, keys = self.resolve(request)

        if await self._store.is_blocked(keys.block_key):
            raise BlockedAppError(
                decision=Decision(
                    allowed=False,
                    identifier=keys.identifier,
                    applied_rule=rule,
                ),
            )

        current_count = await self._store.increment(keys.counter_key, rule.window)

        if current_count > rule.requests:
            await self._store.set_block(keys.block_key, rule.block_duration)
            logger.info(
                "rate_limit.block_set",
                extra={
                    "identifier_hash": _hash_identifier(keys.identifier),
                    "limit": rule.requests,
                    "current_count": current_count,
                    "block_s": rule.block_duration.total_seconds(),
                },
            )
            raise BlockedAppError(
                decision=Decision(
                    allowed=False,
                    identifier=keys.identifier,
                    applied_rule=rule,
                    current_count=current_count,
                ),
            )

        return Decision(
            allowed=True,
            identifier=keys.identifier,
            applied_rule=rule,
            current_count=current_count,
        )
