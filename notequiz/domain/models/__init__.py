"""Rich domain models for quiz sessions and leaderboards."""

from notequiz.domain.models.base import AggregateRoot, DomainEvent, Entity
from notequiz.domain.models.leaderboard import (
    FriendsScope,
    GlobalScope,
    GroupScope,
    LeaderboardEntry,
    LeaderboardScope,
    LeaderboardSnapshot,
    UserAggregate,
)
from notequiz.domain.models.quiz_session import (
    SESSION_ABANDONED,
    SESSION_COMPLETED,
    SESSION_STARTED,
    ConfigurationKey,
    Question,
    QuizAnswer,
    QuizSession,
)

__all__ = [
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ConfigurationKey",
    "Question",
    "QuizAnswer",
    "QuizSession",
    "SESSION_STARTED",
    "SESSION_COMPLETED",
    "SESSION_ABANDONED",
    "GlobalScope",
    "GroupScope",
    "FriendsScope",
    "LeaderboardScope",
    "UserAggregate",
    "LeaderboardEntry",
    "LeaderboardSnapshot",
]
