"""HTTP middleware enforcing a per-client request rate.

The middleware resolves a key for each request, asks the Redis-backed
limiter whether that key may proceed, and maps the decision onto HTTP:

- skipped: forwarded untouched, no headers
- allowed: forwarded, X-RateLimit-Limit/Remaining/Reset set
- rejected: reject handler response with Retry-After
- store error: error handler response, or forwarded when skip_on_error

Reset and Retry-After headers carry absolute UNIX timestamps in seconds.

Usage:
    config = RateLimitConfig(redis=client, max=3, burst=3, algorithm=Algorithm.GCRA)
    app.middleware("http")(create_rate_limit_middleware(config))
"""

from __future__ import annotations

import hashlib
import inspect
import logging
import time
from dataclasses import dataclass, fields, replace
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

from redis.asyncio import Redis
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from http_limiter.adapters.rate_limit.base import Algorithm, Limit, validate_limit
from http_limiter.adapters.rate_limit.redis_store import RedisRateLimiter
from http_limiter.core.client_ip import default_key
from http_limiter.core.errors import ConfigurationAppError, LimiterStoreAppError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Skipper = Callable[[Request], bool | Awaitable[bool]]
KeyFunc = Callable[[Request], str | Awaitable[str]]
RejectHandler = Callable[[Request], Response | Awaitable[Response]]
ErrorHandler = Callable[[Exception, Request], Response | Awaitable[Response]]
CallNext = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[Request, CallNext], Awaitable[Response]]


def default_skipper(request: Request) -> bool:
    """Never skip: every request goes through the limiter."""

    return False


@dataclass(frozen=True)
class RateLimitConfig:
    """Middleware configuration.

    Any field left at its zero value takes the value from ``DEFAULT_CONFIG``
    when the middleware is created.

    Attributes:
        skipper: Bypass limiting for requests where it returns True.
        redis: Async Redis client for the shared counters. Required.
        max: Requests allowed per period. Default 10.
        burst: Allowance above the steady rate (GCRA only). Default 10.
        status_code: Status of rejected responses. Default 429.
        message: Body of rejected responses.
        algorithm: Sliding window (default) or GCRA.
        prefix: Namespace prepended to every store key. Default "http_limiter".
        skip_on_error: Forward requests when the store fails. Default False.
        period: Rate window duration. Default one minute.
        key: Builds the client key from a request. Default: client IP.
        handler: Produces the response for rejected requests.
        error_handler: Produces the response when the store fails.
    """

    skipper: Skipper | None = None
    redis: Redis | None = None
    max: int = 0
    burst: int = 0
    status_code: int = 0
    message: str = ""
    algorithm: Algorithm | None = None
    prefix: str = ""
    skip_on_error: bool = False
    period: timedelta = timedelta(0)
    key: KeyFunc | None = None
    handler: RejectHandler | None = None
    error_handler: ErrorHandler | None = None


DEFAULT_CONFIG = RateLimitConfig(
    skipper=default_skipper,
    max=10,
    burst=10,
    status_code=429,
    message="Too many requests, please try again later.",
    algorithm=Algorithm.SLIDING_WINDOW,
    prefix="http_limiter",
    period=timedelta(minutes=1),
    key=default_key,
)


def _default_reject_handler(status_code: int, message: str) -> RejectHandler:
    def reject(request: Request) -> Response:
        return PlainTextResponse(message, status_code=status_code)

    return reject


def default_error_handler(exc: Exception, request: Request) -> Response:
    """Answer store failures with the error text and status 500."""

    return PlainTextResponse(str(exc), status_code=500)


def _limit_for(config: RateLimitConfig) -> Limit:
    return Limit(
        period=config.period,
        algorithm=config.algorithm,
        rate=config.max,
        burst=config.burst,
    )


def resolve_config(config: RateLimitConfig) -> RateLimitConfig:
    """Merge ``config`` with the defaults into a new, fully populated config.

    Args:
        config: Caller-supplied configuration.

    Returns:
        A new RateLimitConfig with no zero-valued fields.

    Raises:
        ConfigurationAppError: If the Redis client is missing, a numeric
            option is negative, or the limit cannot be evaluated.
    """

    if config.redis is None:
        raise ConfigurationAppError(
            code="redis_client_missing",
            message="redis client is missing",
            details={"field": "redis"},
        )

    for name in ("max", "burst", "status_code"):
        if getattr(config, name) < 0:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message=f"{name} must not be negative",
                details={"field": name},
            )
    if config.period < timedelta(0):
        raise ConfigurationAppError(
            code="invalid_rate_limit_config",
            message="period must not be negative",
            details={"field": "period"},
        )

    defaults: dict[str, Any] = {
        f.name: getattr(DEFAULT_CONFIG, f.name)
        for f in fields(RateLimitConfig)
        if f.name != "redis" and not getattr(config, f.name)
    }
    resolved = replace(config, **defaults)

    if not isinstance(resolved.algorithm, Algorithm):
        try:
            resolved = replace(resolved, algorithm=Algorithm(resolved.algorithm))
        except ValueError as exc:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message=f"unknown algorithm {resolved.algorithm!r}",
                details={"field": "algorithm"},
            ) from exc

    try:
        validate_limit(_limit_for(resolved))
    except ValueError as exc:
        raise ConfigurationAppError(
            code="invalid_rate_limit_config",
            message=str(exc),
            details={"field": "limit"},
        ) from exc

    if resolved.handler is None:
        resolved = replace(
            resolved,
            handler=_default_reject_handler(resolved.status_code, resolved.message),
        )
    if resolved.error_handler is None:
        resolved = replace(resolved, error_handler=default_error_handler)

    return resolved


async def _maybe_await(value: T | Awaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value


def _hash_limiter_key(key: str) -> str:
    """Hash the client key for logging without exposing client identity."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _unix_after(delta: timedelta) -> str:
    return str(int(time.time() + delta.total_seconds()))


def create_rate_limit_middleware(config: RateLimitConfig) -> Middleware:
    """Build the rate limit middleware for ``config``.

    The configuration is resolved once here; the returned middleware holds
    no mutable state and is safe to share across concurrent requests.

    Args:
        config: Middleware configuration. ``redis`` is required.

    Returns:
        An ``async (request, call_next)`` middleware for ``app.middleware("http")``.

    Raises:
        ConfigurationAppError: If the configuration cannot be resolved.
    """

    cfg = resolve_config(config)
    limiter = RedisRateLimiter(cfg.redis)
    limit = _limit_for(cfg)

    async def middleware(request: Request, call_next: CallNext) -> Response:
        if await _maybe_await(cfg.skipper(request)):
            logger.debug("rate_limit.skipped", extra={"path": request.url.path})
            return await call_next(request)

        key = await _maybe_await(cfg.key(request))
        key_hash = _hash_limiter_key(key)

        try:
            decision = await limiter.allow(f"{cfg.prefix}:{key}", limit)
        except LimiterStoreAppError as exc:
            log_extra = {
                "key_hash": key_hash,
                "algorithm": limit.algorithm.value,
                "error_code": exc.code,
                "error_message": exc.message,
            }
            if cfg.skip_on_error:
                logger.warning("rate_limit.store_error", extra={**log_extra, "skipped": True})
                return await call_next(request)
            logger.error("rate_limit.store_error", extra=log_extra)
            return await _maybe_await(cfg.error_handler(exc, request))

        if not decision.allowed:
            retry_after = decision.retry_after or timedelta(0)
            retry_at = _unix_after(retry_after)
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "key_hash": key_hash,
                    "algorithm": limit.algorithm.value,
                    "limit": cfg.max,
                    "remaining": decision.remaining,
                    "retry_after_s": retry_after.total_seconds(),
                },
            )
            response = await _maybe_await(cfg.handler(request))
            # Handlers may set their own Retry-After.
            response.headers.setdefault("Retry-After", retry_at)
            return response

        rate_limit_headers = {
            "X-RateLimit-Limit": str(cfg.max),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset": _unix_after(decision.reset_after),
        }
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "algorithm": limit.algorithm.value,
                "limit": cfg.max,
                "remaining": decision.remaining,
            },
        )
        response = await call_next(request)
        for name, value in rate_limit_headers.items():
            response.headers.setdefault(name, value)
        return response

    return middleware


def rate_limit_middleware(redis: Redis) -> Middleware:
    """Build the middleware with every option at its default."""

    return create_rate_limit_middleware(RateLimitConfig(redis=redis))
