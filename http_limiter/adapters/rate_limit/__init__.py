"""Rate limiting adapters.

The middleware talks to an abstract limiter; the Redis implementation keeps
counters in a store shared by every worker process.
"""

from http_limiter.adapters.rate_limit.base import (
    AbstractRateLimiter,
    Algorithm,
    Limit,
    LimitDecision,
)
from http_limiter.adapters.rate_limit.redis_store import RedisRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "Algorithm",
    "Limit",
    "LimitDecision",
    "RedisRateLimiter",
]
