"""Per-key serialization primitives."""

from notequiz.core.concurrency.keyed_lock import (
    KeyedLock,
    KeyedLockRegistry,
    RedisKeyedLock,
    create_lock_registry,
)

__all__ = ["KeyedLock", "KeyedLockRegistry", "RedisKeyedLock", "create_lock_registry"]
