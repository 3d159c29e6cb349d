"""Application factory for the demo service.

Builds a FastAPI app that answers on ``/`` behind the rate limit middleware,
with ``/health`` exempt, backed by the Redis instance from settings.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from fastapi import FastAPI, Request
from redis.asyncio import Redis

from http_limiter.api.routes import health_router, hello_router
from http_limiter.core.config import LimiterSettings, Settings, settings as default_settings
from http_limiter.core.logging import configure_logging
from http_limiter.core.middleware import RateLimitConfig, create_rate_limit_middleware


def build_rate_limit_config(limiter_settings: LimiterSettings, *, redis: Redis) -> RateLimitConfig:
    """Build the middleware config from environment settings.

    Paths listed in ``exempt_paths`` bypass the limiter.
    """

    exempt = limiter_settings.exempt_path_set

    def skip_exempt_paths(request: Request) -> bool:
        return request.url.path in exempt

    return RateLimitConfig(
        skipper=skip_exempt_paths,
        redis=redis,
        max=limiter_settings.max,
        burst=limiter_settings.burst,
        status_code=limiter_settings.status_code,
        message=limiter_settings.message,
        algorithm=limiter_settings.algorithm,
        prefix=limiter_settings.prefix,
        skip_on_error=limiter_settings.skip_on_error,
        period=timedelta(seconds=limiter_settings.period_seconds),
    )


def create_app(redis: Redis | None = None, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        redis: Optional Redis client. When omitted, one is created from
            ``settings.limiter.redis_url`` and closed on shutdown.
        settings: Optional settings; defaults to the global settings.

    Returns:
        Configured FastAPI app with the rate limit middleware installed.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    owns_client = redis is None
    client = redis if redis is not None else Redis.from_url(cfg.limiter.redis_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            if owns_client:
                await client.aclose()

    app = FastAPI(title="HTTP Limiter Demo", version="0.1.0", lifespan=lifespan)

    app.middleware("http")(
        create_rate_limit_middleware(build_rate_limit_config(cfg.limiter, redis=client))
    )

    app.include_router(hello_router)
    app.include_router(health_router)

    return app
