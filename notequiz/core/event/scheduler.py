"""
Tiered listener execution for the EventBus.

- CRITICAL / HIGH: sequential, awaited, each bounded by a timeout
- NORMAL: concurrent via asyncio.gather, awaited
- LOW: fire-and-forget tasks, tracked so they are not garbage collected and
  so shutdown (or a test) can `drain()` them

Sync callbacks run inline on the loop and must stay short.

Listener failures are isolated: they are logged and swallowed here, never
propagated to the publisher.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, List, Optional, Set

from notequiz.core.event.types import EventListener, EventPayload, ListenerPriority


class EventScheduler:
    """Executes listeners according to the tiered concurrency model."""

    def __init__(self) -> None:
        self._background_tasks: Set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: List[EventListener],
        logger: Logger,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> List[Any]:
        """Run listeners; returns results of the awaited tiers only."""
        critical = [lst for lst in listeners if lst.priority == ListenerPriority.CRITICAL]
        high = [lst for lst in listeners if lst.priority == ListenerPriority.HIGH]
        normal = [lst for lst in listeners if lst.priority == ListenerPriority.NORMAL]
        low = [lst for lst in listeners if lst.priority == ListenerPriority.LOW]

        results: List[Any] = []

        for tier, timeout, group in (
            ("CRITICAL", critical_timeout, critical),
            ("HIGH", high_timeout, high),
        ):
            for listener in group:
                results.append(
                    await self._run_with_timeout(
                        listener=listener,
                        event_name=event_name,
                        payload=payload,
                        logger=logger,
                        tier=tier,
                        timeout=timeout,
                    )
                )

        if normal:
            results.extend(
                await asyncio.gather(
                    *[
                        self._run_listener(
                            listener=lst,
                            event_name=event_name,
                            payload=payload,
                            logger=logger,
                            tier="NORMAL",
                        )
                        for lst in normal
                    ]
                )
            )

        if low:
            loop = asyncio.get_running_loop()
            for listener in low:
                task = loop.create_task(
                    self._run_listener(
                        listener=listener,
                        event_name=event_name,
                        payload=payload,
                        logger=logger,
                        tier="LOW",
                    ),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        tier: str,
        timeout: Optional[float],
    ) -> Any:
        coro = self._run_listener(
            listener=listener,
            event_name=event_name,
            payload=payload,
            logger=logger,
            tier=tier,
        )
        if timeout is None or timeout <= 0:
            return await coro

        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "tier": tier,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        tier: str,
    ) -> Any:
        try:
            logger.debug(
                "EventBus: executing listener",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "tier": tier,
                },
            )

            result = listener.callback(payload)
            if inspect.isawaitable(result):
                return await result
            return result

        except Exception as exc:
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "tier": tier,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight LOW-tier tasks (shutdown and tests)."""
        while self._background_tasks:
            pending = list(self._background_tasks)
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                return

    def get_background_task_count(self) -> int:
        return len(self._background_tasks)
