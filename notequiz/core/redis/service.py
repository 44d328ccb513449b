"""
RedisService: async Redis client and distributed locking.

Purpose
-------
Back the per-session and per-leaderboard-entry locks with Redis when the
quiz backend runs as more than one process. Single-process deployments use
the in-memory KeyedLockRegistry instead and never touch Redis.

Responsibilities
----------------
- Initialize and manage a singleton Redis connection pool
- Provide atomic distributed locking via SET NX + Lua compare-and-delete
- Expose a PING-based health check

Non-Responsibilities
--------------------
- Caching quiz state (sessions live in the persistence gateway)
- Business logic of any kind

Configuration
-------------
- Config.REDIS_URL / REDIS_SOCKET_TIMEOUT / REDIS_MAX_CONNECTIONS (environment)
- core.redis.lock.default_timeout_sec  : int (default 10)
- core.redis.lock.wait_timeout_sec     : float (default 5)
- core.redis.lock.retry_interval_sec   : float (default 0.05)
- core.redis.lock.lease_margin_sec     : float (default 5), read by RedisKeyedLock

Long critical sections pass `renew_interval` to acquire_lock; the lease is
then extended by a watchdog task for as long as the holder stays inside.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import ConnectionError as RedisConnError
from redis.exceptions import RedisError

from notequiz.core.config.config import Config
from notequiz.core.config.manager import ConfigManager
from notequiz.core.exceptions import RedisConnectionError
from notequiz.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    """Singleton async Redis client with token-safe distributed locks."""

    _client: Optional[AsyncRedis] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _is_healthy: bool = False

    # Atomic release: delete only if we still own the token.
    _LUA_UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    # Lease renewal: push the expiry out only while we still own the token.
    _LUA_EXTEND_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("PEXPIRE", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the singleton Redis client. Idempotent.

        Raises
        ------
        RedisConnectionError
            If the server cannot be reached.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with cls._init_lock:
            if cls._client is not None:
                return

            url = url or Config.REDIS_URL
            start_time = time.monotonic()
            client: Optional[AsyncRedis] = None

            try:
                client = AsyncRedis.from_url(
                    url,
                    socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=Config.REDIS_MAX_CONNECTIONS,
                    retry_on_timeout=False,
                )
                await client.ping()  # type: ignore[misc]

            except (RedisConnError, RedisError, OSError) as exc:
                if client is not None:
                    await client.aclose()
                cls._is_healthy = False
                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": url.split("://")[0] if "://" in url else "unknown",
                    },
                    exc_info=True,
                )
                raise RedisConnectionError("initialize", exc) from exc

            cls._client = client
            cls._is_healthy = True

            logger.info(
                "RedisService initialized successfully",
                extra={
                    "url_scheme": url.split("://")[0] if "://" in url else "unknown",
                    "socket_timeout_seconds": Config.REDIS_SOCKET_TIMEOUT,
                    "max_connections": Config.REDIS_MAX_CONNECTIONS,
                    "initialization_time_ms": round(
                        (time.monotonic() - start_time) * 1000, 2
                    ),
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Close the client. Safe to call even if not initialized."""
        client = cls._client
        cls._client = None
        cls._is_healthy = False

        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        try:
            await client.aclose()
            logger.info("RedisService shutdown complete")
        except RedisError as exc:
            logger.error(
                "Error during RedisService shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    # ═══════════════════════════════════════════════════════════════════════
    # HEALTH & CLIENT ACCESS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def health_check(cls) -> bool:
        """Verify Redis connectivity via PING."""
        if cls._client is None:
            logger.warning("Health check failed: RedisService not initialized")
            cls._is_healthy = False
            return False

        try:
            start_time = time.monotonic()
            pong = await cls._client.ping()  # type: ignore[misc]
            latency_ms = (time.monotonic() - start_time) * 1000
        except (RedisConnError, RedisError) as exc:
            cls._is_healthy = False
            logger.error(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            return False

        cls._is_healthy = bool(pong)
        logger.debug(
            "Redis health check complete",
            extra={"healthy": cls._is_healthy, "latency_ms": round(latency_ms, 2)},
        )
        return cls._is_healthy

    @classmethod
    def is_healthy(cls) -> bool:
        """Cached health status without performing I/O."""
        return cls._is_healthy

    @classmethod
    def client(cls) -> AsyncRedis:
        """
        Return the singleton Redis client.

        Raises
        ------
        RuntimeError
            If RedisService has not been initialized.
        """
        if cls._client is None:
            raise RuntimeError(
                "RedisService not initialized. "
                "Call `await RedisService.initialize()` first."
            )
        return cls._client

    # ═══════════════════════════════════════════════════════════════════════
    # DISTRIBUTED LOCKING
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    @asynccontextmanager
    async def acquire_lock(
        cls,
        key: str,
        timeout: Optional[int] = None,
        wait_timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
        renew_interval: Optional[float] = None,
    ) -> AsyncGenerator[None, None]:
        """
        Acquire a distributed lock using Redis SET NX with a unique token.

        The lock expires after `timeout` seconds if never released (crash
        safety). Release uses a Lua compare-and-delete so a holder whose lock
        expired cannot delete a successor's lock.

        With `renew_interval` set, a watchdog task re-arms the `timeout` lease
        every `renew_interval` seconds until the block exits, so the lease
        only bounds how long a crashed holder blocks others.

        Raises
        ------
        TimeoutError
            If the lock cannot be acquired within wait_timeout.

        Example
        -------
        >>> async with RedisService.acquire_lock(f"quiz_session:{session_id}"):
        ...     await engine_step()
        """
        client = cls.client()

        if timeout is None:
            timeout = cls._get_config_int("core.redis.lock.default_timeout_sec", 10)
        if wait_timeout is None:
            wait_timeout = cls._get_config_float("core.redis.lock.wait_timeout_sec", 5.0)
        if retry_interval is None:
            retry_interval = cls._get_config_float(
                "core.redis.lock.retry_interval_sec", 0.05
            )

        token = str(uuid.uuid4())
        lock_start_time = time.monotonic()
        deadline = lock_start_time + max(0.0, wait_timeout)
        acquired = False
        watchdog: Optional[asyncio.Task] = None

        try:
            while True:
                try:
                    acquired = bool(
                        await client.set(name=key, value=token, nx=True, ex=timeout)
                    )
                except (RedisConnError, RedisError) as exc:
                    logger.error(
                        "Redis lock acquisition error",
                        extra={
                            "lock_key": key,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                        exc_info=True,
                    )

                if acquired:
                    logger.debug(
                        "Redis lock acquired",
                        extra={
                            "lock_key": key,
                            "timeout_seconds": timeout,
                            "wait_ms": round((time.monotonic() - lock_start_time) * 1000, 2),
                        },
                    )
                    break

                if time.monotonic() >= deadline:
                    logger.warning(
                        "Failed to acquire Redis lock within timeout",
                        extra={"lock_key": key, "wait_timeout_seconds": wait_timeout},
                    )
                    raise TimeoutError(
                        f"Failed to acquire Redis lock '{key}' within {wait_timeout}s"
                    )

                await asyncio.sleep(retry_interval)

            if renew_interval is not None:
                watchdog = asyncio.create_task(
                    cls._renew_lease(key, token, timeout, renew_interval)
                )

            yield

        finally:
            if watchdog is not None:
                watchdog.cancel()
                try:
                    await watchdog
                except asyncio.CancelledError:
                    pass
            if acquired:
                try:
                    released = await client.eval(  # type: ignore[misc]
                        cls._LUA_UNLOCK_SCRIPT, 1, key, token
                    )
                    if released:
                        logger.debug("Redis lock released", extra={"lock_key": key})
                    else:
                        logger.warning(
                            "Redis lock already expired or stolen",
                            extra={"lock_key": key, "timeout_seconds": timeout},
                        )
                except (RedisConnError, RedisError) as exc:
                    logger.warning(
                        "Failed to release Redis lock (will expire automatically)",
                        extra={
                            "lock_key": key,
                            "timeout_seconds": timeout,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                        exc_info=True,
                    )

    @classmethod
    async def _renew_lease(
        cls, key: str, token: str, lease_seconds: int, interval: float
    ) -> None:
        """Extend the lease on `key` while `token` still owns it."""
        client = cls.client()
        lease_ms = int(lease_seconds * 1000)
        while True:
            await asyncio.sleep(interval)
            try:
                extended = await client.eval(  # type: ignore[misc]
                    cls._LUA_EXTEND_SCRIPT, 1, key, token, lease_ms
                )
            except (RedisConnError, RedisError) as exc:
                logger.warning(
                    "Failed to renew Redis lock lease",
                    extra={
                        "lock_key": key,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue
            if not extended:
                logger.error(
                    "Redis lock lost before release",
                    extra={"lock_key": key, "timeout_seconds": lease_seconds},
                )
                return
            logger.debug("Redis lock lease renewed", extra={"lock_key": key})

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION HELPERS
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _get_config_int(key: str, default: int) -> int:
        val: Any = ConfigManager.get(key, default)
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            return default
        return int(val)

    @staticmethod
    def _get_config_float(key: str, default: float) -> float:
        val: Any = ConfigManager.get(key, default)
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            return default
        return float(val)
