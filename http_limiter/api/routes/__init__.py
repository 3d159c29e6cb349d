from __future__ import annotations

from http_limiter.api.routes.health import router as health_router
from http_limiter.api.routes.hello import router as hello_router

__all__ = ["health_router", "hello_router"]
