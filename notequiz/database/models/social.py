"""
Groups, memberships and friendships, read by the leaderboard's membership
resolver. Managing them is outside this package.
Schema only.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notequiz.core.database.base import (
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    UuidPkMixin,
)
from .enums import FriendshipStatus, GroupRole


class QuizGroup(Base, UuidPkMixin, TimestampMixin):
    """A classroom or study group."""

    __tablename__ = "quiz_groups"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    join_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=100)


class GroupMembership(Base, UuidPkMixin, TimestampMixin, SoftDeleteMixin):
    """
    Membership row; leaving a group sets deleted_at so history is kept.
    created_at doubles as the join time.
    """

    __tablename__ = "group_memberships"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_memberships_group_user"),
    )

    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quiz_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=GroupRole.MEMBER.value)


class Friendship(Base, UuidPkMixin, TimestampMixin):
    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("requester_id", "addressee_id", name="uq_friendships_pair"),
        Index("ix_friendships_addressee_status", "addressee_id", "status"),
        Index("ix_friendships_requester_status", "requester_id", "status"),
    )

    requester_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    addressee_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FriendshipStatus.PENDING.value
    )
