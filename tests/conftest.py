"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import that builds settings, so
no .env file leaks into the test run.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")

from unittest.mock import AsyncMock, Mock

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server: fakeredis.FakeServer) -> fakeredis.FakeAsyncRedis:
    """Async client the limiter writes through."""
    return fakeredis.FakeAsyncRedis(server=redis_server)


@pytest.fixture
def redis_inspector(redis_server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    """Sync client on the same fake server, for asserting on stored keys."""
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def failing_redis() -> Mock:
    """Store handle whose every operation fails with a connection error."""
    store = Mock()
    store.pipeline.side_effect = RedisConnectionError("connection refused")
    store.register_script.return_value = AsyncMock(
        side_effect=RedisConnectionError("connection refused")
    )
    return store


def make_request(
    *,
    headers: dict[str, str] | None = None,
    client: tuple[str, int] | None = ("192.0.2.1", 54321),
    path: str = "/",
) -> Request:
    """Build a bare Starlette request for unit tests."""

    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "query_string": b"",
        "headers": [
            (name.lower().encode(), value.encode())
            for name, value in (headers or {}).items()
        ],
        "client": client,
        "server": ("testserver", 80),
    }
    return Request(scope)


@pytest.fixture
def request_factory():
    return make_request
