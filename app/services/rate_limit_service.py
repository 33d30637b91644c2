"""Per-identity fixed-window rate limiting backed by Redis."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

RATE_LIMIT_PREFIX = "rate_limit:"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Admit at most ``max_requests`` per ``window_ms`` window."""

    name: str
    max_requests: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single admission check."""

    allowed: bool
    remaining: int
    reset_time: datetime


class RateLimiter:
    """Fixed-window admission counter keyed by identity and policy.

    The window is created, incremented and inspected inside one MULTI
    transaction, so concurrent checks for the same identity never lose an
    increment and never start two windows.
    """

    def __init__(self, redis_client: redis.Redis) -> None:  # type: ignore[type-arg]
        self._redis = redis_client

    async def check(self, identity: int | str, policy: RateLimitPolicy) -> RateLimitResult:
        """Count one request against ``policy`` and report whether it is admitted."""
        key = f"{RATE_LIMIT_PREFIX}{policy.name}:{identity}"
        now = datetime.now(UTC)

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, px=policy.window_ms, nx=True)
                pipe.incr(key)
                pipe.pttl(key)
                _, count, ttl_ms = await pipe.execute()
        except redis.RedisError:
            logger.warning(
                "Rate limiter unavailable, admitting request",
                policy=policy.name,
                identity=identity,
                exc_info=True,
            )
            return RateLimitResult(
                allowed=True,
                remaining=policy.max_requests - 1,
                reset_time=now + timedelta(milliseconds=policy.window_ms),
            )

        count = int(count)
        if ttl_ms is None or int(ttl_ms) < 0:
            ttl_ms = policy.window_ms
        reset_time = now + timedelta(milliseconds=int(ttl_ms))
        allowed = count <= policy.max_requests

        if not allowed:
            logger.info(
                "Rate limit exceeded",
                policy=policy.name,
                identity=identity,
                count=count,
                reset_time=reset_time.isoformat(),
            )

        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, policy.max_requests - count),
            reset_time=reset_time,
        )
