"""
Async pub/sub EventBus with tiered concurrency.

Purpose
-------
Decouples the quiz engine from its downstream consumers. The engine publishes
"quiz.session_completed" and returns; the leaderboard aggregator subscribes at
LOW priority and recomputes in the background.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to all listeners registered for the exact event name
- Execute listeners via EventScheduler's tiered model
- Error isolation (one failing listener never blocks others or the publisher)
- Drain in-flight background listeners on shutdown

Design Notes
------------
- Instance-based: the service container owns one bus; tests build their own.
- Listener timeouts come from ConfigManager
  (`core.event.listener_timeout.*`), overridable per instance.
- Single event loop; registry mutations are atomic between awaits.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, List, Optional

from notequiz.core.event.scheduler import EventScheduler
from notequiz.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from notequiz.core.logging.logger import LogContext, get_logger

logger = get_logger(__name__)


class EventBus:
    """
    EventBus implementing the tiered concurrency model.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("quiz.session_completed", on_completed, priority=ListenerPriority.LOW)
    >>> await bus.publish("quiz.session_completed", {"session_id": "..."})
    """

    def __init__(
        self,
        config_manager: Optional[Any] = None,
        scheduler: Optional[EventScheduler] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._scheduler = scheduler or EventScheduler()
        self._listeners: Dict[str, List[EventListener]] = {}

        self._critical_timeout = self._load_timeout(
            key="core.event.listener_timeout.critical_seconds",
            override=critical_timeout_seconds,
            default=5.0,
        )
        self._high_timeout = self._load_timeout(
            key="core.event.listener_timeout.high_seconds",
            override=high_timeout_seconds,
            default=5.0,
        )

        logger.info(
            "EventBus initialized",
            extra={
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    # ------------------------------------------------------------------ #
    # Configuration Loading
    # ------------------------------------------------------------------ #

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: override, then config, then default."""
        if override is not None:
            return float(override)

        if self._config_manager is None:
            return float(default)

        value = self._config_manager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "config_value": repr(value), "default_value": default},
            )
            return float(default)

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Ensure the callback accepts exactly one parameter (the payload)."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # C-level callables may not expose a signature.
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or getattr(
                callback, "__name__", repr(callback)
            )
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event.

        Returns the listener identifier for later unsubscription. With
        allow_duplicates=False a second registration under the same identifier
        is ignored.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if not allow_duplicates and any(
            existing.identifier == listener.identifier for existing in bucket
        ):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        bucket.sort(key=lambda lst: lst.priority.value)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        """Remove a listener; returns True if one was removed."""
        bucket = self._listeners.get(event_name)
        if not bucket:
            return False

        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) != len(bucket)
        if remaining:
            self._listeners[event_name] = remaining
        else:
            del self._listeners[event_name]

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        """Remove all listeners from all events."""
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns results from CRITICAL/HIGH/NORMAL listeners. LOW-tier
        listeners run in the background and are not included.
        """
        bucket = self._listeners.get(event_name, [])
        listeners = list(bucket)

        # once=True listeners are pruned before they run.
        if any(lst.once for lst in listeners):
            kept = [lst for lst in bucket if not lst.once]
            if kept:
                self._listeners[event_name] = kept
            else:
                self._listeners.pop(event_name, None)

        if not listeners:
            logger.debug(
                "EventBus: no listeners for event",
                extra={"event_name": event_name},
            )
            return []

        async with LogContext(operation=f"event:{event_name}"):
            logger.debug(
                "EventBus: publishing event",
                extra={
                    "event_name": event_name,
                    "payload_keys": list(data.keys()),
                    "listener_count": len(listeners),
                },
            )

            return await self._scheduler.execute(
                event_name=event_name,
                payload=data,
                listeners=listeners,
                logger=logger,
                critical_timeout=self._critical_timeout,
                high_timeout=self._high_timeout,
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight LOW-tier listeners to finish."""
        await self._scheduler.drain(timeout=timeout)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is not None:
            return len(self._listeners.get(event_name, []))
        return sum(len(bucket) for bucket in self._listeners.values())

    def get_all_events(self) -> list[str]:
        return sorted(self._listeners)

    def get_background_task_count(self) -> int:
        return self._scheduler.get_background_task_count()
