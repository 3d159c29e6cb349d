"""Application-level exception types.

Two failure classes exist around the rate limit middleware: configuration
errors raised once at construction time, and store errors raised per request
by the limiter adapter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability."""

    code: str
    message: str
    hint: str
    field: str
    algorithm: str
    error_type: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for limiter failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs and responses.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised when the middleware cannot be built from its configuration."""


class LimiterStoreAppError(AppError):
    """Raised when the shared counter store fails during a rate check."""
