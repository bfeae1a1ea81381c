"""
Tests for failed-login rate limiting.
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from schoolerp.auth.rate_limit import KEY_PREFIX, LoginRateLimiter, MemoryStore
from schoolerp.clock import FrozenClock

from conftest import PASSWORD, make_settings


class BrokenStore:
    async def get(self, key):
        raise RedisConnectionError("down")

    async def incr(self, key, window_seconds):
        raise RedisConnectionError("down")

    async def close(self):
        pass


class TestMemoryStore:
    """Tests for the in-process counter store."""

    def setup_method(self):
        self.clock = FrozenClock()
        self.store = MemoryStore(self.clock)

    async def test_counts_within_window(self):
        assert await self.store.incr("k", 60) == 1
        assert await self.store.incr("k", 60) == 2
        assert await self.store.get("k") == 2
        assert await self.store.get("other") == 0

    async def test_window_resets(self):
        await self.store.incr("k", 60)
        self.clock.advance(seconds=61)

        assert await self.store.get("k") == 0
        assert await self.store.incr("k", 60) == 1


class TestLoginRateLimiter:
    """Tests for LoginRateLimiter."""

    def setup_method(self):
        self.clock = FrozenClock()
        self.limiter = LoginRateLimiter(MemoryStore(self.clock), window_seconds=900, max_failures=3)

    def test_key_prefix(self):
        assert LoginRateLimiter.key_for("10.0.0.1") == f"{KEY_PREFIX}10.0.0.1"

    async def test_blocks_after_max_failures(self):
        for _ in range(3):
            assert not await self.limiter.is_blocked("10.0.0.1")
            await self.limiter.record_failure("10.0.0.1")

        assert await self.limiter.is_blocked("10.0.0.1")
        assert not await self.limiter.is_blocked("10.0.0.2")

    async def test_unblocks_after_window(self):
        for _ in range(3):
            await self.limiter.record_failure("10.0.0.1")
        self.clock.advance(minutes=16)

        assert not await self.limiter.is_blocked("10.0.0.1")

    async def test_store_errors_allow_login(self):
        limiter = LoginRateLimiter(BrokenStore(), window_seconds=900, max_failures=1)

        assert await limiter.record_failure("10.0.0.1") == 0
        assert await limiter.is_blocked("10.0.0.1") is False

    def test_memory_store_without_redis(self, tmp_path):
        limiter = LoginRateLimiter.from_settings(make_settings(tmp_path), self.clock)

        assert isinstance(limiter.store, MemoryStore)
        assert limiter.max_failures == 5
        assert limiter.window_seconds == 900


class TestLoginEndpointLimit:
    """The login route refuses a client after repeated failures."""

    @pytest.fixture
    def settings(self, tmp_path):
        return make_settings(tmp_path, login_rate_limit_max=3)

    def attempt(self, client, password):
        return client.post(
            "/api/v1/auth/login",
            json={"email": "admin@school.edu", "password": password},
        )

    def test_locked_out_after_failures(self, client):
        for _ in range(3):
            assert self.attempt(client, "WrongPass1!").status_code == 401

        response = self.attempt(client, PASSWORD)

        assert response.status_code == 429
        assert response.json()["error"] == {
            "code": "TOO_MANY_REQUESTS",
            "message": "Too many failed login attempts. Try again later.",
        }

    def test_window_expiry_restores_access(self, client, clock):
        for _ in range(3):
            self.attempt(client, "WrongPass1!")
        clock.advance(minutes=16)

        assert self.attempt(client, PASSWORD).status_code == 200

    def test_successful_logins_are_not_counted(self, client):
        for _ in range(4):
            assert self.attempt(client, PASSWORD).status_code == 200
