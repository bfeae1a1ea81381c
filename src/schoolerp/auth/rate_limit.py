"""
Failed-login rate limiting.

Counts failed logins per client IP over a fixed window. Successful logins are
not counted. Redis backs the counters when configured so every worker shares
them; otherwise they live in process memory.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from schoolerp.clock import SystemClock
from schoolerp.config import Settings

logger = structlog.get_logger()

KEY_PREFIX = "rl:login:"


@dataclass
class _Window:
    count: int
    resets_at: datetime


class MemoryStore:
    """Per-process fixed-window counters."""

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()
        self._windows: dict[str, _Window] = {}

    def _current(self, key: str) -> _Window | None:
        window = self._windows.get(key)
        if window and window.resets_at <= self.clock.now():
            del self._windows[key]
            return None
        return window

    async def get(self, key: str) -> int:
        window = self._current(key)
        return window.count if window else 0

    async def incr(self, key: str, window_seconds: int) -> int:
        window = self._current(key)
        if window is None:
            window = _Window(0, self.clock.now() + timedelta(seconds=window_seconds))
            self._windows[key] = window
        window.count += 1
        return window.count

    async def close(self) -> None:
        self._windows.clear()


class RedisStore:
    """Counters shared through Redis ``INCR`` with a TTL set on first hit."""

    def __init__(self, redis_url: str):
        self.client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
        )

    async def get(self, key: str) -> int:
        value = await self.client.get(key)
        return int(value) if value else 0

    async def incr(self, key: str, window_seconds: int) -> int:
        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, window_seconds)
        return count

    async def close(self) -> None:
        await self.client.aclose()


class LoginRateLimiter:
    """
    Fixed-window limiter for failed logins.

    Store errors never block a login; they are logged and the attempt is
    allowed through.
    """

    def __init__(self, store, window_seconds: int, max_failures: int):
        self.store = store
        self.window_seconds = window_seconds
        self.max_failures = max_failures

    @classmethod
    def from_settings(cls, settings: Settings, clock=None) -> "LoginRateLimiter":
        if settings.redis_url:
            store = RedisStore(settings.redis_url)
        else:
            store = MemoryStore(clock)
        return cls(
            store,
            window_seconds=settings.login_rate_limit_window_seconds,
            max_failures=settings.login_rate_limit_max,
        )

    @staticmethod
    def key_for(client_ip: str) -> str:
        return f"{KEY_PREFIX}{client_ip}"

    async def is_blocked(self, client_ip: str) -> bool:
        try:
            failures = await self.store.get(self.key_for(client_ip))
        except RedisError as e:
            logger.error("Rate limit store unavailable", error=str(e))
            return False
        return failures >= self.max_failures

    async def record_failure(self, client_ip: str) -> int:
        try:
            failures = await self.store.incr(self.key_for(client_ip), self.window_seconds)
        except RedisError as e:
            logger.error("Rate limit store unavailable", error=str(e))
            return 0
        if failures >= self.max_failures:
            logger.warning("Login rate limit reached", ip=client_ip, failures=failures)
        return failures

    async def close(self) -> None:
        await self.store.close()
