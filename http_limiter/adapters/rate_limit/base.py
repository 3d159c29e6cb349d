"""Rate limiter interfaces.

The middleware depends on this abstraction, not on the Redis implementation,
so the algorithm and its store stay an exchangeable collaborator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum


class Algorithm(str, Enum):
    """Rate limiting algorithm applied by the limiter."""

    SLIDING_WINDOW = "sliding_window"
    GCRA = "gcra"


@dataclass(frozen=True)
class Limit:
    """Limit settings sent with every rate check.

    Attributes:
        period: Window (sliding window) or refill period (GCRA).
        algorithm: Which algorithm evaluates the request.
        rate: Requests allowed per period.
        burst: Extra allowance above the steady rate (GCRA only).
    """

    period: timedelta
    algorithm: Algorithm
    rate: int
    burst: int


@dataclass(frozen=True)
class LimitDecision:
    """Result of a single rate check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests still available (0 when blocked).
        reset_after: Time until the quota is fully restored.
        retry_after: Time until a retry can succeed; None when allowed.
    """

    allowed: bool
    remaining: int
    reset_after: timedelta
    retry_after: timedelta | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    async def allow(self, key: str, limit: Limit) -> LimitDecision:
        """Consume one unit of budget for ``key`` under ``limit``.

        Args:
            key: Namespaced store key (prefix plus client identity).
            limit: Limit settings to evaluate.

        Returns:
            LimitDecision describing whether the request was allowed.
        """
        raise NotImplementedError


def validate_limit(limit: Limit) -> None:
    """Check that ``limit`` can be evaluated by every limiter.

    Raises:
        ValueError: If a field is out of range for the selected algorithm.
    """
    if not isinstance(limit.algorithm, Algorithm):
        raise ValueError(f"unknown algorithm {limit.algorithm!r}")
    if limit.rate < 1:
        raise ValueError("rate must be >= 1")
    if limit.burst < 0:
        raise ValueError("burst must be >= 0")
    if limit.algorithm is Algorithm.GCRA and limit.burst < 1:
        raise ValueError("burst must be >= 1 for GCRA")
    # Both algorithms work in whole microseconds per request.
    if limit.period // timedelta(microseconds=1) < limit.rate:
        raise ValueError("period is too short for the configured rate")
