"""
Database Models Package
=======================

SQLAlchemy ORM models for the quiz backend. Schema only: no business logic,
`Mapped[]` annotations with `mapped_column()`, shared mixins from
`notequiz.core.database.base`.

- quiz: quiz sessions and answers
- catalog: clef / duration / ledger-line option tables
- leaderboard: materialized leaderboard entries
- social: groups, memberships, friendships (read-only for this package)
- enums: shared enumerations
"""

from notequiz.core.database.base import Base

from .catalog import ClefType, DurationOption, LedgerLineOption
from .enums import ClefName, FriendshipStatus, GroupRole, SessionStatus
from .leaderboard import LeaderboardEntryRecord
from .quiz import QuizAnswerRecord, QuizSessionRecord
from .social import Friendship, GroupMembership, QuizGroup

__all__ = [
    "Base",
    "QuizSessionRecord",
    "QuizAnswerRecord",
    "ClefType",
    "DurationOption",
    "LedgerLineOption",
    "LeaderboardEntryRecord",
    "QuizGroup",
    "GroupMembership",
    "Friendship",
    "SessionStatus",
    "ClefName",
    "FriendshipStatus",
    "GroupRole",
]
