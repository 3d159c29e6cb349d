"""Tests for the demo service built by the application factory."""

from __future__ import annotations

import logging
from datetime import timedelta
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from http_limiter.adapters.rate_limit import Algorithm
from http_limiter.core.app_factory import build_rate_limit_config, create_app
from http_limiter.core.config import LimiterSettings, LogSettings, Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(
        limiter=LimiterSettings(max=3, burst=3, period_seconds=10, algorithm="gcra"),
        log=LogSettings(level="warning"),
    )


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_hello_endpoint_is_rate_limited(fake_redis, settings: Settings) -> None:
    app = create_app(redis=fake_redis, settings=settings)

    with TestClient(app) as client:
        responses = [client.get("/") for _ in range(4)]

    assert [r.status_code for r in responses] == [200, 200, 200, 429]
    assert responses[0].text == "hello world"
    assert responses[0].headers["X-RateLimit-Limit"] == "3"
    assert "Retry-After" in responses[3].headers


def test_health_is_exempt(fake_redis, settings: Settings) -> None:
    app = create_app(redis=fake_redis, settings=settings)

    with TestClient(app) as client:
        responses = [client.get("/health") for _ in range(5)]

    assert all(r.status_code == 200 for r in responses)
    assert responses[-1].json() == {"status": "ok"}
    assert "X-RateLimit-Limit" not in responses[-1].headers


def test_counters_live_in_shared_store(fake_redis, settings: Settings, redis_inspector) -> None:
    app = create_app(redis=fake_redis, settings=settings)

    with TestClient(app) as client:
        client.get("/")

    assert redis_inspector.exists("http_limiter:unknown") == 1


class TestBuildRateLimitConfig:
    def test_maps_settings(self) -> None:
        limiter_settings = LimiterSettings(
            max=3,
            burst=3,
            period_seconds=10,
            algorithm="gcra",
            prefix="demo",
            skip_on_error=True,
        )
        store = Mock()

        config = build_rate_limit_config(limiter_settings, redis=store)

        assert config.redis is store
        assert config.max == 3
        assert config.burst == 3
        assert config.period == timedelta(seconds=10)
        assert config.algorithm is Algorithm.GCRA
        assert config.prefix == "demo"
        assert config.skip_on_error is True

    def test_exempt_paths_become_skipper(self, request_factory) -> None:
        limiter_settings = LimiterSettings(exempt_paths="/health, /metrics")
        config = build_rate_limit_config(limiter_settings, redis=Mock())

        assert config.skipper(request_factory(path="/health")) is True
        assert config.skipper(request_factory(path="/metrics")) is True
        assert config.skipper(request_factory(path="/")) is False
