"""Redis-backed rate limiter shared by every worker process.

Notes:
- GCRA keeps one integer per key: the theoretical arrival time (TAT) in
  microseconds, updated under WATCH/MULTI and retried on contention.
- Sliding window keeps a sorted set of request timestamps per key, checked
  and updated by a single Lua script.
- Timestamps come from the local clock, so hosts sharing a store must keep
  their clocks in sync.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import timedelta
from typing import Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from http_limiter.adapters.rate_limit.base import (
    AbstractRateLimiter,
    Algorithm,
    Limit,
    LimitDecision,
    validate_limit,
)
from http_limiter.core.errors import LimiterStoreAppError

logger = logging.getLogger(__name__)

# Trim, count and record in one step so a rejected request never holds a
# slot. Scores are passed and returned as strings to keep microsecond
# precision out of Lua number formatting.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
redis.call("ZREMRANGEBYSCORE", key, "-inf", ARGV[2])
local count = redis.call("ZCARD", key)
local allowed = 0
if count < tonumber(ARGV[3]) then
    redis.call("ZADD", key, ARGV[1], ARGV[4])
    count = count + 1
    allowed = 1
end
redis.call("PEXPIRE", key, ARGV[5])
local oldest = redis.call("ZRANGE", key, 0, 0, "WITHSCORES")
local oldest_score = ARGV[1]
if #oldest > 0 then
    oldest_score = oldest[2]
end
return {allowed, count, oldest_score}
"""


def _to_micros(delta: timedelta) -> int:
    return delta // timedelta(microseconds=1)


def _from_micros(micros: int) -> timedelta:
    return timedelta(microseconds=max(0, micros))


def _ttl_millis(micros: int) -> int:
    """Round a microsecond duration up to a positive millisecond TTL."""
    return max(1, -(-micros // 1000))


class RedisRateLimiter(AbstractRateLimiter):
    """Rate limiter storing its counters in Redis.

    The Redis client is owned by the caller; this class never opens or
    closes connections.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        clock: Callable[[], float] = time.time,
        max_watch_retries: int = 10,
    ) -> None:
        """Initialize the limiter.

        Args:
            redis: Async Redis client used as the shared counter store.
            clock: Time source function returning UNIX time in seconds.
            max_watch_retries: Optimistic transaction attempts per GCRA check.

        Raises:
            ValueError: If max_watch_retries is invalid.
        """
        if max_watch_retries < 1:
            raise ValueError("max_watch_retries must be >= 1")

        self._redis = redis
        self._clock = clock
        self._max_watch_retries = max_watch_retries
        self._sliding_window_script = redis.register_script(SLIDING_WINDOW_SCRIPT)

    def _now_micros(self) -> int:
        return int(self._clock() * 1_000_000)

    async def allow(self, key: str, limit: Limit) -> LimitDecision:
        """Consume one request for ``key`` under ``limit``.

        Args:
            key: Namespaced store key.
            limit: Limit settings to evaluate.

        Returns:
            LimitDecision for this request.

        Raises:
            ValueError: If the key or limit is invalid.
            LimiterStoreAppError: If Redis fails or stays contended.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        validate_limit(limit)

        try:
            if limit.algorithm is Algorithm.GCRA:
                return await self._allow_gcra(key, limit)
            return await self._allow_sliding_window(key, limit)
        except RedisError as exc:
            raise LimiterStoreAppError(
                code="limiter_store_error",
                message=f"rate limiter store error: {exc}",
                details={
                    "algorithm": limit.algorithm.value,
                    "error_type": type(exc).__name__,
                },
            ) from exc

    async def _allow_gcra(self, key: str, limit: Limit) -> LimitDecision:
        emission_interval = _to_micros(limit.period) // limit.rate
        burst_offset = emission_interval * limit.burst

        for _ in range(self._max_watch_retries):
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    now = self._now_micros()
                    stored = await pipe.get(key)
                    tat = max(int(stored), now) if stored is not None else now

                    new_tat = tat + emission_interval
                    allow_at = new_tat - burst_offset
                    diff = now - allow_at
                    remaining = diff // emission_interval

                    if remaining < 0:
                        return LimitDecision(
                            allowed=False,
                            remaining=0,
                            reset_after=_from_micros(tat - now),
                            retry_after=_from_micros(-diff),
                        )

                    pipe.multi()
                    pipe.set(key, new_tat, px=_ttl_millis(new_tat - now))
                    await pipe.execute()
                    return LimitDecision(
                        allowed=True,
                        remaining=remaining,
                        reset_after=_from_micros(new_tat - now),
                        retry_after=None,
                    )
                except WatchError:
                    logger.debug("rate_limit.gcra_contention")
                    continue

        raise LimiterStoreAppError(
            code="limiter_contention",
            message=(
                f"rate limiter store error: key still contended after "
                f"{self._max_watch_retries} attempts"
            ),
            details={"algorithm": limit.algorithm.value},
        )

    async def _allow_sliding_window(self, key: str, limit: Limit) -> LimitDecision:
        period = _to_micros(limit.period)
        now = self._now_micros()
        member = f"{now}:{uuid.uuid4().hex}"

        allowed, count, oldest_score = await self._sliding_window_script(
            keys=[key],
            args=[now, now - period, limit.rate, member, _ttl_millis(period)],
        )

        oldest_at = int(float(oldest_score))
        reset_after = _from_micros(oldest_at + period - now)

        if not allowed:
            return LimitDecision(
                allowed=False,
                remaining=0,
                reset_after=reset_after,
                retry_after=reset_after,
            )

        return LimitDecision(
            allowed=True,
            remaining=limit.rate - int(count),
            reset_after=reset_after,
            retry_after=None,
        )
