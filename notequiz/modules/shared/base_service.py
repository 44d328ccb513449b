"""
Base Service Foundation

Purpose
-------
Common base for the quiz engine and the leaderboard aggregator. Services
implement business rules, raise domain exceptions and publish domain events;
they never touch drivers directly.

Design Notes
------------
This base class provides:
- Safe config access
- Event emission helpers, including publishing an aggregate's pending
  domain events after it has been persisted
- Structured operation / error logging
- `call_dependency()`: await a gateway or resolver call under a timeout,
  converting timeouts and infrastructure failures to DependencyError

What this class does NOT do:
- Manage database sessions (the persistence gateway does)
- Locking (each service picks its own keys)

Usage
-----
    class QuizSessionEngine(BaseService):
        def __init__(self, gateway, catalog, locks, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._gateway = gateway
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Dict, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from notequiz.core.exceptions import InfrastructureException
from notequiz.modules.shared.exceptions import DependencyError

T = TypeVar("T")

if TYPE_CHECKING:
    from logging import Logger

    from notequiz.core.config.manager import ConfigManager
    from notequiz.core.event.bus import EventBus
    from notequiz.domain.models.base import Entity


class BaseService:
    """
    Base class for domain services.

    Args:
        config_manager: Configuration source exposing `get(key, default)`
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        from notequiz.core.exceptions import ConfigurationError

        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._events.publish(event_type, {**data, **(context or {})})

    async def publish_domain_events(self, aggregate: Entity) -> int:
        """Publish and clear an aggregate's pending events; returns the count."""
        events = aggregate.clear_domain_events()
        for event in events:
            await self._events.publish(
                event.event_name,
                {**event.payload, "occurred_at": event.occurred_at.isoformat()},
            )
        return len(events)

    async def call_dependency(
        self,
        operation: str,
        awaitable: Awaitable[T],
        timeout: Optional[float] = None,
    ) -> T:
        """
        Await an external call bounded by `timeout`.

        Defaults to `quiz.gateway_timeout_seconds`. No retries.

        Raises:
            DependencyError: On timeout or infrastructure failure
        """
        bound = (
            float(timeout)
            if timeout is not None
            else float(self.get_config("quiz.gateway_timeout_seconds", 5.0))
        )
        try:
            return await asyncio.wait_for(awaitable, timeout=bound)
        except asyncio.TimeoutError as exc:
            self.log_error(operation, exc, timeout_seconds=bound)
            raise DependencyError(operation, exc, bound) from exc
        except (InfrastructureException, SQLAlchemyError, OSError) as exc:
            self.log_error(operation, exc, timeout_seconds=bound)
            raise DependencyError(operation, exc, bound) from exc

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        self.log.error(
            f"Service error during {operation}: {str(error)}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )
