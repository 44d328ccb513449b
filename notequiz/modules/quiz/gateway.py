"""
Persistence gateway contract.

The quiz engine and the leaderboard aggregator never touch a database
driver; they talk to an object satisfying `PersistenceGateway`. The
production implementation is `SqlPersistenceGateway`; tests use an
in-memory one.

Contract
--------
- Reads after writes are consistent within one call chain.
- Single-row writes are atomic. Nothing here spans rows transactionally
  except `replace_leaderboard`, which swaps one configuration's rows.
- `append_answer` is idempotent per (session_id, question_number): a
  retried write overwrites the earlier row instead of duplicating it.
- `leaderboard_version` is the highest version stamped on any of the
  configuration's materialized rows (0 when there are none); processes
  sharing the store poll it to notice each other's writes.
- Failures surface as `DatabaseError` (or any exception); callers bound
  every call with their own timeout.
"""

from __future__ import annotations

import uuid
from typing import List, Optional, Protocol, Sequence

from notequiz.domain.models.leaderboard import LeaderboardEntry, UserAggregate
from notequiz.domain.models.quiz_session import ConfigurationKey, QuizAnswer, QuizSession


class PersistenceGateway(Protocol):
    # Sessions
    async def load_session(self, session_id: uuid.UUID) -> Optional[QuizSession]: ...

    async def save_session(self, session: QuizSession) -> None: ...

    async def list_user_sessions(self, user_id: uuid.UUID, limit: int) -> List[QuizSession]: ...

    async def list_completed_sessions(
        self,
        configuration: ConfigurationKey,
        user_id: Optional[uuid.UUID] = None,
    ) -> List[QuizSession]: ...

    async def snapshot_completed_sessions(self) -> List[QuizSession]: ...

    # Answers
    async def append_answer(self, answer: QuizAnswer) -> None: ...

    async def list_answers(self, session_id: uuid.UUID) -> List[QuizAnswer]: ...

    # Materialized leaderboard
    async def load_leaderboard(self, configuration: ConfigurationKey) -> List[UserAggregate]: ...

    async def leaderboard_version(self, configuration: ConfigurationKey) -> int: ...

    async def save_leaderboard_entry(
        self,
        configuration: ConfigurationKey,
        aggregate: UserAggregate,
        version: int,
    ) -> None: ...

    async def replace_leaderboard(
        self,
        configuration: ConfigurationKey,
        entries: Sequence[LeaderboardEntry],
        version: int,
    ) -> None: ...
