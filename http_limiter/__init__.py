"""Redis-backed HTTP rate limit middleware for FastAPI and Starlette."""

from http_limiter.adapters.rate_limit import Algorithm, LimitDecision, RedisRateLimiter
from http_limiter.core.client_ip import default_key, get_ip
from http_limiter.core.errors import ConfigurationAppError, LimiterStoreAppError
from http_limiter.core.middleware import (
    DEFAULT_CONFIG,
    RateLimitConfig,
    create_rate_limit_middleware,
    default_skipper,
    rate_limit_middleware,
)

__all__ = [
    "DEFAULT_CONFIG",
    "Algorithm",
    "ConfigurationAppError",
    "LimitDecision",
    "LimiterStoreAppError",
    "RateLimitConfig",
    "RedisRateLimiter",
    "create_rate_limit_middleware",
    "default_key",
    "default_skipper",
    "get_ip",
    "rate_limit_middleware",
]
