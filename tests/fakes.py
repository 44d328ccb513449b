"""
In-memory collaborators for unit tests.

- InMemoryGateway: PersistenceGateway with failure and delay injection
- InMemoryMembershipResolver: MembershipResolver over plain dicts
- FakeClock: controllable UTC clock
- make_session: build a session in any state without driving the engine
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Set, Tuple

from notequiz.core.exceptions import DatabaseError
from notequiz.database.models.enums import SessionStatus
from notequiz.domain.models.leaderboard import LeaderboardEntry, UserAggregate
from notequiz.domain.models.quiz_session import ConfigurationKey, QuizAnswer, QuizSession
from notequiz.modules.shared.exceptions import NotFoundError

TREBLE_30 = ConfigurationKey("treble", 30, 0)
BASS_60 = ConfigurationKey("bass", 60, 1)

EPOCH = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class InMemoryGateway:
    """
    Stores copies, so nothing the engine holds aliases persisted state.

    `fail(operation)` makes every later call of that operation raise until
    `heal()`; `delay(operation, seconds)` makes it sleep first.
    """

    def __init__(self) -> None:
        self.sessions: Dict[uuid.UUID, QuizSession] = {}
        self.answers: Dict[Tuple[uuid.UUID, int], QuizAnswer] = {}
        self.leaderboard: Dict[ConfigurationKey, Dict[uuid.UUID, UserAggregate]] = {}
        self.ranks: Dict[ConfigurationKey, Dict[uuid.UUID, Optional[int]]] = {}
        self.versions: Dict[ConfigurationKey, int] = {}
        self.calls: List[str] = []
        self._failures: Dict[str, BaseException] = {}
        self._delays: Dict[str, float] = {}

    # -- injection ------------------------------------------------------

    def fail(self, operation: str, exc: Optional[BaseException] = None) -> None:
        self._failures[operation] = exc or DatabaseError(operation, RuntimeError("connection reset"))

    def delay(self, operation: str, seconds: float) -> None:
        self._delays[operation] = seconds

    def heal(self) -> None:
        self._failures.clear()
        self._delays.clear()

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        delay = self._delays.get(operation)
        if delay:
            await asyncio.sleep(delay)
        failure = self._failures.get(operation)
        if failure is not None:
            raise failure

    # -- sessions -------------------------------------------------------

    def put(self, session: QuizSession) -> QuizSession:
        self.sessions[session.id] = session.copy()
        return session

    async def load_session(self, session_id: uuid.UUID) -> Optional[QuizSession]:
        await self._enter("load_session")
        stored = self.sessions.get(session_id)
        return stored.copy() if stored is not None else None

    async def save_session(self, session: QuizSession) -> None:
        await self._enter("save_session")
        self.sessions[session.id] = session.copy()

    async def list_user_sessions(self, user_id: uuid.UUID, limit: int) -> List[QuizSession]:
        await self._enter("list_user_sessions")
        owned = [s for s in self.sessions.values() if s.user_id == user_id]
        owned.sort(key=lambda s: s.created_at, reverse=True)
        return [s.copy() for s in owned[:limit]]

    async def list_completed_sessions(
        self,
        configuration: ConfigurationKey,
        user_id: Optional[uuid.UUID] = None,
    ) -> List[QuizSession]:
        await self._enter("list_completed_sessions")
        return [
            s.copy()
            for s in self.sessions.values()
            if s.status == SessionStatus.COMPLETED
            and s.configuration == configuration
            and (user_id is None or s.user_id == user_id)
        ]

    async def snapshot_completed_sessions(self) -> List[QuizSession]:
        await self._enter("snapshot_completed_sessions")
        return [s.copy() for s in self.sessions.values() if s.status == SessionStatus.COMPLETED]

    # -- answers --------------------------------------------------------

    async def append_answer(self, answer: QuizAnswer) -> None:
        await self._enter("append_answer")
        self.answers[(answer.session_id, answer.question_number)] = answer

    async def list_answers(self, session_id: uuid.UUID) -> List[QuizAnswer]:
        await self._enter("list_answers")
        return sorted(
            (a for (sid, _), a in self.answers.items() if sid == session_id),
            key=lambda a: a.question_number,
        )

    # -- leaderboard ----------------------------------------------------

    async def load_leaderboard(self, configuration: ConfigurationKey) -> List[UserAggregate]:
        await self._enter("load_leaderboard")
        return list(self.leaderboard.get(configuration, {}).values())

    async def leaderboard_version(self, configuration: ConfigurationKey) -> int:
        await self._enter("leaderboard_version")
        return self.versions.get(configuration, 0)

    async def save_leaderboard_entry(
        self, configuration: ConfigurationKey, aggregate: UserAggregate, version: int
    ) -> None:
        await self._enter("save_leaderboard_entry")
        self.leaderboard.setdefault(configuration, {})[aggregate.user_id] = aggregate
        self.ranks.setdefault(configuration, {})[aggregate.user_id] = None
        self.versions[configuration] = max(self.versions.get(configuration, 0), version)

    async def replace_leaderboard(
        self,
        configuration: ConfigurationKey,
        entries: Sequence[LeaderboardEntry],
        version: int,
    ) -> None:
        await self._enter("replace_leaderboard")
        self.leaderboard[configuration] = {
            entry.user_id: UserAggregate(
                user_id=entry.user_id,
                best_score=entry.best_score,
                best_accuracy=entry.best_accuracy,
                fastest_time=entry.fastest_time,
                total_attempts=entry.total_attempts,
                average_score=entry.average_score,
                last_attempt=entry.last_attempt,
            )
            for entry in entries
        }
        self.ranks[configuration] = {entry.user_id: entry.rank for entry in entries}
        self.versions[configuration] = version


class InMemoryMembershipResolver:
    def __init__(self) -> None:
        self.groups: Dict[uuid.UUID, Set[uuid.UUID]] = {}
        self.friendships: Set[Tuple[uuid.UUID, uuid.UUID]] = set()
        self.calls: List[str] = []

    def add_group(self, *members: uuid.UUID) -> uuid.UUID:
        group_id = uuid.uuid4()
        self.groups[group_id] = set(members)
        return group_id

    def befriend(self, a: uuid.UUID, b: uuid.UUID) -> None:
        self.friendships.add((a, b))

    async def members_of(self, group_id: uuid.UUID) -> Set[uuid.UUID]:
        self.calls.append("members_of")
        if group_id not in self.groups:
            raise NotFoundError("Group", group_id)
        return set(self.groups[group_id])

    async def friends_of(self, user_id: uuid.UUID) -> Set[uuid.UUID]:
        self.calls.append("friends_of")
        return {b if a == user_id else a for a, b in self.friendships if user_id in (a, b)}


def make_session(
    user_id: Optional[uuid.UUID] = None,
    configuration: ConfigurationKey = TREBLE_30,
    *,
    score: int = 0,
    answered: Optional[int] = None,
    question_count: int = 10,
    time_taken_seconds: int = 30,
    status: SessionStatus = SessionStatus.COMPLETED,
    completed_at: datetime = EPOCH,
) -> QuizSession:
    """A session in an arbitrary state; completed with a full answer count by default."""
    answered = question_count if answered is None else answered
    terminal = status in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)
    return QuizSession(
        session_id=uuid.uuid4(),
        user_id=user_id or uuid.uuid4(),
        configuration=configuration,
        question_count=question_count,
        status=status,
        score=score,
        total_questions=answered,
        correct_answers=score,
        questions_issued=answered,
        time_taken_seconds=time_taken_seconds,
        started_at=completed_at - timedelta(seconds=time_taken_seconds),
        completed_at=completed_at if terminal else None,
        created_at=completed_at - timedelta(seconds=time_taken_seconds + 1),
    )
