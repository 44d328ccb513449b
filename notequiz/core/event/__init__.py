"""
Event system.

In-process async pub/sub used to decouple session completion from
leaderboard recomputation.
"""

from .bus import EventBus
from .scheduler import EventScheduler
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventScheduler",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]
