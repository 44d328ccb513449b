"""
Membership resolvers for scoped leaderboards.

Groups and friendships are managed elsewhere; the leaderboard only reads
who belongs to a scope.
"""

from __future__ import annotations

import uuid
from typing import Protocol, Set

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from notequiz.core.database.service import DatabaseService
from notequiz.core.exceptions import DatabaseError
from notequiz.core.logging.logger import get_logger
from notequiz.database.models import (
    Friendship,
    FriendshipStatus,
    GroupMembership,
    QuizGroup,
)
from notequiz.modules.shared.exceptions import NotFoundError

logger = get_logger(__name__)


class MembershipResolver(Protocol):
    async def members_of(self, group_id: uuid.UUID) -> Set[uuid.UUID]: ...

    async def friends_of(self, user_id: uuid.UUID) -> Set[uuid.UUID]: ...


class SqlMembershipResolver:
    """
    MembershipResolver over the social tables.

    - members_of: current (non-deleted) members of an active group; an
      unknown or inactive group raises NotFoundError
    - friends_of: accepted friendships in either direction, excluding the
      user themself
    """

    async def members_of(self, group_id: uuid.UUID) -> Set[uuid.UUID]:
        try:
            async with DatabaseService.get_session() as session:
                group = await session.get(QuizGroup, group_id)
                if group is None or not group.is_active:
                    raise NotFoundError("Group", group_id)

                result = await session.execute(
                    select(GroupMembership.user_id).where(
                        GroupMembership.group_id == group_id,
                        GroupMembership.deleted_at.is_(None),
                    )
                )
                members = set(result.scalars().all())
        except SQLAlchemyError as exc:
            logger.error(
                "Group membership lookup failed",
                extra={"group_id": str(group_id), "error": str(exc)},
            )
            raise DatabaseError("members_of", exc) from exc

        logger.debug(
            "Group members resolved",
            extra={"group_id": str(group_id), "member_count": len(members)},
        )
        return members

    async def friends_of(self, user_id: uuid.UUID) -> Set[uuid.UUID]:
        stmt = select(Friendship.requester_id, Friendship.addressee_id).where(
            Friendship.status == FriendshipStatus.ACCEPTED.value,
            or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
        )
        try:
            async with DatabaseService.get_session() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            logger.error(
                "Friendship lookup failed",
                extra={"user_id": str(user_id), "error": str(exc)},
            )
            raise DatabaseError("friends_of", exc) from exc

        friends = {
            addressee if requester == user_id else requester
            for requester, addressee in rows
        }
        friends.discard(user_id)
        return friends
