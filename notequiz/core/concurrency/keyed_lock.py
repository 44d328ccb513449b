"""
Keyed mutex registry.

Purpose
-------
Serialize every mutating operation on one quiz session (and every incremental
leaderboard update for one user+configuration) while letting unrelated keys
proceed concurrently.

Backends
--------
- KeyedLockRegistry: in-process asyncio locks. Entries are reference counted
  and dropped once no task holds or awaits them, so the registry does not
  grow with the number of sessions ever played.
- RedisKeyedLock: the same interface backed by RedisService.acquire_lock, for
  deployments running several worker processes.

Both raise LockAcquisitionError when the wait timeout elapses.

Usage
-----
>>> locks = create_lock_registry()
>>> async with locks.acquire(f"quiz_session:{session_id}", timeout=5.0):
...     ...
"""

from __future__ import annotations

import asyncio
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncContextManager, AsyncIterator, Dict, Optional, Protocol

from notequiz.core.config.config import Config, LockBackend
from notequiz.core.config.manager import ConfigManager
from notequiz.core.exceptions import LockAcquisitionError
from notequiz.core.logging.logger import get_logger
from notequiz.core.redis.service import RedisService

logger = get_logger(__name__)


class KeyedLock(Protocol):
    """Anything that can serialize work per string key."""

    def acquire(
        self, key: str, timeout: Optional[float] = None
    ) -> AsyncContextManager[None]:  # pragma: no cover - protocol
        ...


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    refs: int = 0


class KeyedLockRegistry:
    """
    In-process keyed mutex registry.

    A key's entry exists only while some task holds or waits on it.
    """

    def __init__(self, default_timeout: Optional[float] = None) -> None:
        self._entries: Dict[str, _LockEntry] = {}
        self._default_timeout = default_timeout

    @asynccontextmanager
    async def acquire(self, key: str, timeout: Optional[float] = None) -> AsyncIterator[None]:
        wait = timeout if timeout is not None else self._default_timeout

        entry = self._entries.get(key)
        if entry is None:
            entry = _LockEntry()
            self._entries[key] = entry
        entry.refs += 1

        try:
            await self._wait_for_lock(entry.lock, key, wait)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.refs -= 1
            if entry.refs == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    @staticmethod
    async def _wait_for_lock(lock: asyncio.Lock, key: str, wait: Optional[float]) -> None:
        """
        Acquire `lock` within `wait` seconds.

        The acquire runs as its own task so a timeout or cancellation that
        races a successful acquire can hand the lock back instead of
        leaving it held with no owner.
        """
        if wait is None:
            await lock.acquire()
            return

        pending = asyncio.ensure_future(lock.acquire())
        try:
            done, _ = await asyncio.wait({pending}, timeout=wait)
        except BaseException:
            await KeyedLockRegistry._abandon(pending, lock)
            raise

        if not done:
            await KeyedLockRegistry._abandon(pending, lock)
            logger.warning(
                "Keyed lock wait timed out",
                extra={"lock_key": key, "wait_timeout_seconds": wait},
            )
            raise LockAcquisitionError(key, wait)

    @staticmethod
    async def _abandon(pending: asyncio.Future, lock: asyncio.Lock) -> None:
        pending.cancel()
        await asyncio.wait({pending})
        if not pending.cancelled() and pending.exception() is None:
            lock.release()

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)


class RedisKeyedLock:
    """
    Distributed keyed lock delegating to RedisService.acquire_lock.

    The lease outlives the longest bounded critical section: a session step
    makes up to `quiz.max_gateway_calls_per_lock` gateway calls, each bounded
    by `quiz.gateway_timeout_seconds`, plus `core.redis.lock.lease_margin_sec`.
    The lease is renewed every third of its length while held, so unbounded
    sections (a full leaderboard refresh) keep their lock too.
    """

    def __init__(
        self,
        default_timeout: Optional[float] = None,
        *,
        key_prefix: str = "notequiz:lock:",
        lease_seconds: Optional[int] = None,
    ) -> None:
        self._default_timeout = default_timeout
        self._key_prefix = key_prefix
        self._lease_seconds = lease_seconds

    @property
    def lease_seconds(self) -> int:
        if self._lease_seconds is not None:
            return self._lease_seconds
        calls = int(ConfigManager.get("quiz.max_gateway_calls_per_lock", 3))
        per_call = float(ConfigManager.get("quiz.gateway_timeout_seconds", 5.0))
        margin = float(ConfigManager.get("core.redis.lock.lease_margin_sec", 5))
        floor = int(ConfigManager.get("core.redis.lock.default_timeout_sec", 10))
        return max(floor, math.ceil(calls * per_call + margin))

    @asynccontextmanager
    async def acquire(self, key: str, timeout: Optional[float] = None) -> AsyncIterator[None]:
        wait = timeout if timeout is not None else self._default_timeout
        redis_key = f"{self._key_prefix}{key}"
        lease = self.lease_seconds

        entered = False
        try:
            async with RedisService.acquire_lock(
                redis_key,
                timeout=lease,
                wait_timeout=wait,
                renew_interval=lease / 3,
            ):
                entered = True
                yield
        except TimeoutError:
            if entered:
                raise
            raise LockAcquisitionError(key, wait if wait is not None else 0.0) from None


def create_lock_registry(default_timeout: Optional[float] = None) -> KeyedLock:
    """Build the lock backend selected by Config.LOCK_BACKEND."""
    if Config.LOCK_BACKEND == LockBackend.REDIS.value:
        logger.info("Using Redis keyed locks", extra={"lock_backend": Config.LOCK_BACKEND})
        return RedisKeyedLock(default_timeout)

    logger.info("Using in-process keyed locks", extra={"lock_backend": Config.LOCK_BACKEND})
    return KeyedLockRegistry(default_timeout)
