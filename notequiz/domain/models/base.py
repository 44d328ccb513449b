"""
Base domain model classes.

Purpose
-------
Foundational abstractions for rich domain models that own their business
rules and state transitions, kept separate from the SQLAlchemy schema.

Responsibilities
----------------
- Entity: identity and equality semantics
- AggregateRoot: consistency boundary that records domain events
- DomainEvent: a state change to be published on the EventBus once the
  owning service has persisted the aggregate

Non-Responsibilities
--------------------
- Persistence (the persistence gateway)
- Service orchestration, locking, timeouts (service layer)

Usage Example
-------------
>>> session.complete(now)
>>> for event in session.clear_domain_events():
...     await event_bus.publish(event.event_name, event.payload)
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, List

from notequiz.modules.shared.exceptions import ValidationError


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


@dataclass
class DomainEvent:
    """
    A domain event that has occurred.

    Attributes
    ----------
    event_name : str
        Event name (e.g., "quiz.session_completed")
    payload : Dict[str, Any]
        Event payload; JSON-friendly values only
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# ENTITY
# ============================================================================


class Entity(ABC):
    """
    Base class for entities with identity.

    Two entities with the same id are the same entity even if their
    attributes differ.
    """

    def __init__(self, entity_id: Hashable) -> None:
        self._id = entity_id
        self._domain_events: List[DomainEvent] = []

    @property
    def id(self) -> Any:
        """Entity id (immutable)."""
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return False
        return type(self) is type(other) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def add_domain_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        """Record a domain event to be published after persistence."""
        self._domain_events.append(DomainEvent(event_name=event_name, payload=payload))

    def clear_domain_events(self) -> List[DomainEvent]:
        """Clear and return all recorded domain events."""
        events = self._domain_events.copy()
        self._domain_events.clear()
        return events

    def get_pending_events(self) -> List[DomainEvent]:
        return self._domain_events.copy()


# ============================================================================
# AGGREGATE ROOT
# ============================================================================


class AggregateRoot(Entity):
    """
    Base class for aggregate roots.

    The aggregate root is the only entry point for changes to the cluster of
    objects it owns; external code references it by id.
    """


# ============================================================================
# VALIDATION HELPERS
# ============================================================================


def validate_positive(value: int, field_name: str) -> None:
    if value <= 0:
        raise ValidationError(field_name, f"must be positive, got {value}")


def validate_non_negative(value: float, field_name: str) -> None:
    if value < 0:
        raise ValidationError(field_name, f"must be non-negative, got {value}")
