"""Value objects shared by the rate limiter service and its adapters.

All types here are immutable. Rules and the limiter configuration are built
once at startup; requests, resolved keys and decisions live for a single
request only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import Mapping

_ZERO = timedelta(0)


@dataclass(frozen=True)
class RateLimitRule:
    """Request budget applied to one identity.

    Attributes:
        requests: Maximum number of requests allowed per window.
        window: Length of the fixed counting window.
        block_duration: How long an identifier stays blocked after exceeding
            the budget. Zero or negative clears an existing block instead.
    """

    requests: int = 0
    window: timedelta = _ZERO
    block_duration: timedelta = _ZERO

    @classmethod
    def disabled(cls) -> RateLimitRule:
        """Zero-value rule meaning "not configured"."""
        return cls()

    @property
    def is_configured(self) -> bool:
        return self.requests > 0 and self.window > _ZERO


@dataclass(frozen=True)
class RateLimitRequest:
    """Identity extracted from an incoming request."""

    ip: str = ""
    token: str = ""


@dataclass(frozen=True)
class ResolvedKeys:
    """Store keys derived from an identity category and identifier."""

    counter_key: str
    block_key: str
    identifier: str


@dataclass(frozen=True)
class Decision:
    """Outcome of a rate limit evaluation.

    Attributes:
        allowed: Whether the request may proceed.
        identifier: Normalized identifier the decision applies to.
        applied_rule: Rule that was evaluated.
        current_count: Counter value after increment (0 when the request was
            rejected by an existing block).
    """

    allowed: bool
    identifier: str
    applied_rule: RateLimitRule
    current_count: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.applied_rule.requests - self.current_count)


@dataclass(frozen=True)
class LimiterConfig:
    """Rules consulted by the rate limiter service.

    Attributes:
        default_ip_rule: Rule used for IP based limiting. Must be configured.
        default_token_rule: Rule for tokens without an explicit override. A
            zero-value rule disables token based limiting for unknown tokens.
        token_rules: Per-token overrides keyed by the raw token value.
    """

    default_ip_rule: RateLimitRule
    default_token_rule: RateLimitRule = field(default_factory=RateLimitRule.disabled)
    token_rules: Mapping[str, RateLimitRule] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze overrides so callers cannot mutate them after construction.
        object.__setattr__(self, "token_rules", MappingProxyType(dict(self.token_rules)))
