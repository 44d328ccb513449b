"""
Integration Tests for RedisKeyedLock
====================================

Purpose
-------
Verify the distributed keyed lock against real Redis.

Test Coverage
-------------
- Same-key critical sections never overlap
- Different keys proceed independently
- Wait timeout raises LockAcquisitionError
- Lock released after the block, including on error
- Lease renewed while held; derived lease outlives bounded gateway calls

Testing Strategy
----------------
- Integration tests (testcontainers Redis)
- Keyspace flushed per test via the `redis_service` fixture
"""

import asyncio

import pytest

from notequiz.core.concurrency import RedisKeyedLock
from notequiz.core.exceptions import LockAcquisitionError


@pytest.fixture
def redis_locks(redis_service) -> RedisKeyedLock:
    return RedisKeyedLock(default_timeout=2.0, lease_seconds=5)


@pytest.mark.integration
@pytest.mark.redis
class TestRedisKeyedLock:
    async def test_same_key_serializes(self, redis_locks):
        # Arrange
        active = 0
        peak = 0

        async def critical():
            nonlocal active, peak
            async with redis_locks.acquire("quiz_session:a"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.02)
                active -= 1

        # Act
        await asyncio.gather(*(critical() for _ in range(4)))

        # Assert
        assert peak == 1

    async def test_different_keys_do_not_block(self, redis_locks):
        async with redis_locks.acquire("quiz_session:a"):
            async with redis_locks.acquire("quiz_session:b", timeout=0.2):
                pass

    async def test_timeout_raises(self, redis_locks):
        async with redis_locks.acquire("quiz_session:a"):
            with pytest.raises(LockAcquisitionError):
                async with redis_locks.acquire("quiz_session:a", timeout=0.1):
                    pass

    async def test_released_after_error(self, redis_locks, redis_service):
        with pytest.raises(ValueError):
            async with redis_locks.acquire("quiz_session:a"):
                raise ValueError("boom")

        assert await redis_service.client().exists("notequiz:lock:quiz_session:a") == 0
        async with redis_locks.acquire("quiz_session:a", timeout=0.1):
            pass

    async def test_lease_renewed_while_held(self, redis_service):
        # Arrange
        short = RedisKeyedLock(default_timeout=2.0, lease_seconds=1)
        key = "notequiz:lock:leaderboard:refresh"

        # Act / Assert
        async with short.acquire("leaderboard:refresh"):
            await asyncio.sleep(2.5)
            assert await redis_service.client().exists(key) == 1
            assert await redis_service.client().pttl(key) > 0
            with pytest.raises(LockAcquisitionError):
                async with short.acquire("leaderboard:refresh", timeout=0.1):
                    pass

        assert await redis_service.client().exists(key) == 0

    async def test_default_lease_outlives_bounded_gateway_calls(
        self, redis_service, config_manager
    ):
        config_manager.set_override("quiz.gateway_timeout_seconds", 5.0)
        locks = RedisKeyedLock(default_timeout=2.0)

        async with locks.acquire("quiz_session:a"):
            ttl = await redis_service.client().pttl("notequiz:lock:quiz_session:a")

        assert ttl > 3 * 5.0 * 1000
