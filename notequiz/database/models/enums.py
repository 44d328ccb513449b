"""
Database Model Enums
====================

Type-safe constants for categorical columns. Stored as their string values
so the schema stays portable; service and domain layers reference these
enums instead of raw strings.
"""

from __future__ import annotations

import enum


class SessionStatus(str, enum.Enum):
    """Lifecycle state of a quiz session."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class ClefName(str, enum.Enum):
    """Clefs the note bank knows how to draw."""

    TREBLE = "treble"
    BASS = "bass"
    ALTO = "alto"
    TENOR = "tenor"


class FriendshipStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    BLOCKED = "blocked"


class GroupRole(str, enum.Enum):
    ADMIN = "admin"
    MEMBER = "member"
