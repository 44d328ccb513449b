"""
Leaderboard value types.

Everything here is immutable: snapshots are replaced wholesale on
recomputation, never mutated in place.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Union

from notequiz.domain.models.quiz_session import ConfigurationKey


# ============================================================================
# SCOPES
# ============================================================================


@dataclass(frozen=True)
class GlobalScope:
    kind: str = field(default="global", init=False)

    @property
    def cache_key(self) -> str:
        return "global"


@dataclass(frozen=True)
class GroupScope:
    group_id: uuid.UUID
    kind: str = field(default="group", init=False)

    @property
    def cache_key(self) -> str:
        return f"group:{self.group_id}"


@dataclass(frozen=True)
class FriendsScope:
    user_id: uuid.UUID
    kind: str = field(default="friends", init=False)

    @property
    def cache_key(self) -> str:
        return f"friends:{self.user_id}"


LeaderboardScope = Union[GlobalScope, GroupScope, FriendsScope]


# ============================================================================
# AGGREGATES & ENTRIES
# ============================================================================


@dataclass(frozen=True)
class UserAggregate:
    """
    Per-(configuration, user) best record.

    best_accuracy and fastest_time both come from the session that backs
    best_score, so every ranking key traces to one real session.
    """

    user_id: uuid.UUID
    best_score: int
    best_accuracy: float
    fastest_time: int
    total_attempts: int
    average_score: float
    last_attempt: Optional[datetime]


@dataclass(frozen=True)
class LeaderboardEntry:
    """A UserAggregate with its rank inside one scope."""

    rank: int
    user_id: uuid.UUID
    best_score: int
    best_accuracy: float
    fastest_time: int
    total_attempts: int
    average_score: float
    last_attempt: Optional[datetime]

    @classmethod
    def from_aggregate(cls, rank: int, aggregate: UserAggregate) -> LeaderboardEntry:
        return cls(
            rank=rank,
            user_id=aggregate.user_id,
            best_score=aggregate.best_score,
            best_accuracy=aggregate.best_accuracy,
            fastest_time=aggregate.fastest_time,
            total_attempts=aggregate.total_attempts,
            average_score=aggregate.average_score,
            last_attempt=aggregate.last_attempt,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "user_id": str(self.user_id),
            "best_score": self.best_score,
            "best_accuracy": self.best_accuracy,
            "fastest_time": self.fastest_time,
            "total_attempts": self.total_attempts,
            "average_score": self.average_score,
            "last_attempt": self.last_attempt.isoformat() if self.last_attempt else None,
        }


@dataclass(frozen=True)
class LeaderboardSnapshot:
    """A ranked view of one configuration for one scope at one version."""

    configuration: ConfigurationKey
    scope: LeaderboardScope
    version: int
    entries: Tuple[LeaderboardEntry, ...]
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __len__(self) -> int:
        return len(self.entries)

    def page(self, limit: int, offset: int = 0) -> Tuple[LeaderboardEntry, ...]:
        return self.entries[offset : offset + limit]

    def entry_for(self, user_id: uuid.UUID) -> Optional[LeaderboardEntry]:
        for entry in self.entries:
            if entry.user_id == user_id:
                return entry
        return None
