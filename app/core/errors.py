"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypedDict

if TYPE_CHECKING:
    from app.schemas.rate_limit import Decision


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Attributes:
        setting: Name of the offending configuration variable.
        value: The rejected configuration value.
        operation: Counter store operation that failed.
    """

    setting: str
    value: str
    operation: str


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class StoreAppError(AppError):
    """Raised when the counter store cannot complete an operation."""


@dataclass
class BlockedAppError(AppError):
    """Raised when an identifier is currently rejected by the rate limiter.

    This is an expected outcome rather than a failure: callers catch it to
    answer with 429 instead of a generic server error.

    Attributes:
        decision: The rejected decision (identifier, rule, observed count).
    """

    code: str = "rate_limited"
    message: str = "identifier is blocked"
    details: ErrorDetails | None = None
    decision: Decision | None = None
