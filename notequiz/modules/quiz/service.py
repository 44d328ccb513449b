"""
QuizSessionEngine: the quiz session lifecycle and scoring service.

Purpose
-------
Drive quiz sessions through pending -> in_progress -> completed/abandoned,
issue questions from each session's QuestionPool, score answers, and hand
completed sessions to the leaderboard through the event bus.

Responsibilities
----------------
- create_session: validate the configuration against the catalog
- start_session / complete_session / abandon_session: lifecycle transitions
- next_question: issue the next question from the session's seeded pool
- submit_answer: strict sequencing, scoring, auto-completion
- get_results / get_session / list_user_sessions / get_session_answers /
  calculate_session_score: read side

Concurrency
-----------
Every write for a session runs under the keyed lock
``quiz_session:<session_id>``. The session is reloaded from the gateway
inside the lock, so two near-simultaneous submissions for the same question
resolve deterministically: the first wins, the second sees OutOfOrderError.
With the Redis lock backend this holds across worker processes.

Failure Semantics
-----------------
Every gateway call is bounded by a timeout (caller supplied, else
`quiz.gateway_timeout_seconds`). Timeouts, database failures and lock wait
timeouts surface as DependencyError. Mutations are applied to a copy of
the session and only become visible once the save succeeded, so a failed
submission leaves the expected next question number unchanged and a retry
is safe. Nothing is retried here.

Question Pools
--------------
Pools are seeded from the session id. The engine keeps a bounded cache of
live pools and rebuilds a pool on demand by replaying the persisted
`questions_issued` count, so a restart or another worker produces the same
questions.

Events
------
- quiz.session_started
- quiz.session_completed (consumed by LeaderboardAggregator at LOW priority)
- quiz.session_abandoned
Events are published after the lock is released.
"""

from __future__ import annotations

import uuid
from collections import OrderedDict
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from notequiz.core.concurrency import KeyedLock
from notequiz.core.exceptions import LockAcquisitionError
from notequiz.core.logging.logger import LogContext, get_logger
from notequiz.core.validation import InputValidator
from notequiz.domain.models.quiz_session import (
    Question,
    QuizAnswer,
    QuizSession,
    utcnow,
)
from notequiz.modules.catalog.service import ConfigurationCatalog
from notequiz.modules.questions.pool import QuestionPool
from notequiz.modules.quiz.gateway import PersistenceGateway
from notequiz.modules.shared.base_service import BaseService
from notequiz.modules.shared.exceptions import (
    DependencyError,
    NotFoundError,
    SessionNotTerminalError,
)

T = TypeVar("T")


@dataclass
class _SessionRuntime:
    pool: QuestionPool
    questions: List[Question] = field(default_factory=list)


@dataclass(frozen=True)
class AnswerResult:
    """Outcome of one accepted submission."""

    answer: QuizAnswer
    session: QuizSession
    completed: bool

    @property
    def is_correct(self) -> bool:
        return self.answer.is_correct

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer.to_dict(),
            "session": self.session.to_dict(),
            "completed": self.completed,
        }


class QuizSessionEngine(BaseService):
    """
    Quiz session state machine over a persistence gateway.

    Args:
        gateway: PersistenceGateway implementation
        catalog: ConfigurationCatalog used to validate new sessions
        locks: KeyedLock used to serialize writes per session
        config_manager: Tunables source
        event_bus: EventBus receiving lifecycle events
        logger: Structured logger
        clock: Returns the current UTC time (injectable for tests)
    """

    LOCK_PREFIX = "quiz_session"

    def __init__(
        self,
        gateway: PersistenceGateway,
        catalog: ConfigurationCatalog,
        locks: KeyedLock,
        config_manager: Any,
        event_bus: Any,
        logger: Any = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._gateway = gateway
        self._catalog = catalog
        self._locks = locks
        self._clock = clock or utcnow
        self._runtime: "OrderedDict[uuid.UUID, _SessionRuntime]" = OrderedDict()

    # ========================================================================
    # INFRASTRUCTURE HELPERS
    # ========================================================================

    async def _gateway_call(
        self, operation: str, awaitable: Awaitable[T], timeout: Optional[float]
    ) -> T:
        return await self.call_dependency(f"gateway.{operation}", awaitable, timeout)

    @asynccontextmanager
    async def _session_lock(self, session_id: uuid.UUID) -> AsyncIterator[None]:
        key = f"{self.LOCK_PREFIX}:{session_id}"
        wait = float(self.get_config("quiz.lock_wait_timeout_seconds", 5.0))
        async with AsyncExitStack() as stack:
            try:
                await stack.enter_async_context(self._locks.acquire(key, timeout=wait))
            except LockAcquisitionError as exc:
                self.log_error("lock", exc, lock_key=key)
                raise DependencyError(f"lock.{key}", exc, wait) from exc
            yield

    async def _load(self, session_id: uuid.UUID, timeout: Optional[float]) -> QuizSession:
        session = await self._gateway_call(
            "load_session", self._gateway.load_session(session_id), timeout
        )
        if session is None:
            raise NotFoundError("QuizSession", session_id)
        return session

    async def _save(self, session: QuizSession, timeout: Optional[float]) -> None:
        await self._gateway_call("save_session", self._gateway.save_session(session), timeout)

    # ------------------------------------------------------------------ #
    # Question pools
    # ------------------------------------------------------------------ #

    def _build_pool(self, session: QuizSession) -> QuestionPool:
        return QuestionPool(
            session.configuration,
            total_questions=session.question_count,
            seed=session.id.int,
            choices=int(self.get_config("quiz.answer_choices", 4)),
        )

    def _remember(self, session_id: uuid.UUID, runtime: _SessionRuntime) -> None:
        self._runtime[session_id] = runtime
        self._runtime.move_to_end(session_id)
        capacity = int(self.get_config("quiz.runtime_cache_size", 1024))
        while len(self._runtime) > capacity:
            self._runtime.popitem(last=False)

    def _runtime_for(self, session: QuizSession) -> _SessionRuntime:
        """Live pool for `session`, rebuilt if missing or out of step."""
        runtime = self._runtime.get(session.id)
        if runtime is None or runtime.pool.issued != session.questions_issued:
            pool = self._build_pool(session)
            runtime = _SessionRuntime(pool, pool.replay(session.questions_issued))
            self.log.debug(
                "Question pool rebuilt",
                extra={
                    "session_id": str(session.id),
                    "replayed": session.questions_issued,
                },
            )
        self._remember(session.id, runtime)
        return runtime

    def _forget(self, session_id: uuid.UUID) -> None:
        self._runtime.pop(session_id, None)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def create_session(
        self,
        user_id: Any,
        clef: Any,
        duration_seconds: Any,
        max_ledger_lines: Any,
        *,
        timeout: Optional[float] = None,
    ) -> QuizSession:
        """
        Create a pending session for an available configuration.

        Raises:
            ValidationError: Malformed arguments
            UnavailableConfigurationError: Configuration cannot be played
            DependencyError: Catalog or gateway failure
        """
        user_id = InputValidator.validate_uuid(user_id, "user_id")
        clef = InputValidator.validate_string(clef, "clef", min_length=1, max_length=20).lower()
        duration_seconds = InputValidator.validate_positive_integer(
            duration_seconds, "duration_seconds"
        )
        max_ledger_lines = InputValidator.validate_non_negative_integer(
            max_ledger_lines, "max_ledger_lines"
        )

        async with LogContext(user_id=user_id, operation="create_session"):
            configuration = await self._catalog.require_available(
                clef, duration_seconds, max_ledger_lines
            )
            session = QuizSession.create(
                user_id,
                configuration,
                self._catalog.expected_question_count(configuration),
                now=self._clock(),
            )
            pool = self._build_pool(session)

            await self._save(session, timeout)
            self._remember(session.id, _SessionRuntime(pool))

            self.log_operation(
                "create_session",
                session_id=str(session.id),
                user_id=str(user_id),
                configuration=configuration.name,
                question_count=session.question_count,
            )
            return session.copy()

    async def start_session(
        self, session_id: Any, *, timeout: Optional[float] = None
    ) -> QuizSession:
        """
        pending -> in_progress; stamps started_at.

        Raises:
            InvalidTransitionError: Session is not pending
        """
        session_id = InputValidator.validate_uuid(session_id, "session_id")

        async with LogContext(session_id=session_id, operation="start_session"):
            async with self._session_lock(session_id):
                updated = (await self._load(session_id, timeout)).copy()
                updated.start(self._clock())
                await self._save(updated, timeout)

            self.log_operation(
                "start_session",
                session_id=str(session_id),
                configuration=updated.configuration.name,
            )
            await self.publish_domain_events(updated)
            return updated.copy()

    async def complete_session(
        self, session_id: Any, *, timeout: Optional[float] = None
    ) -> QuizSession:
        """
        Finish an in-progress session early.

        A session completed with fewer answers than its configuration expects
        keeps its score but never enters the leaderboard.
        """
        session_id = InputValidator.validate_uuid(session_id, "session_id")

        async with LogContext(session_id=session_id, operation="complete_session"):
            async with self._session_lock(session_id):
                updated = (await self._load(session_id, timeout)).copy()
                updated.complete(self._clock())
                await self._save(updated, timeout)
                self._forget(session_id)

            self.log_operation(
                "complete_session",
                session_id=str(session_id),
                score=updated.score,
                answered=updated.total_questions,
                question_count=updated.question_count,
            )
            await self.publish_domain_events(updated)
            return updated.copy()

    async def abandon_session(
        self, session_id: Any, *, timeout: Optional[float] = None
    ) -> QuizSession:
        """in_progress -> abandoned. Abandoned sessions never reach the leaderboard."""
        session_id = InputValidator.validate_uuid(session_id, "session_id")

        async with LogContext(session_id=session_id, operation="abandon_session"):
            async with self._session_lock(session_id):
                updated = (await self._load(session_id, timeout)).copy()
                updated.abandon(self._clock())
                await self._save(updated, timeout)
                self._forget(session_id)

            self.log_operation(
                "abandon_session",
                session_id=str(session_id),
                answered=updated.total_questions,
            )
            await self.publish_domain_events(updated)
            return updated.copy()

    # ========================================================================
    # QUESTIONS & ANSWERS
    # ========================================================================

    async def next_question(
        self, session_id: Any, *, timeout: Optional[float] = None
    ) -> Question:
        """
        Issue the next question from the session's pool.

        Raises:
            SessionNotActiveError: Session is not in progress
            PoolExhaustedError: Every configured question was already issued
        """
        session_id = InputValidator.validate_uuid(session_id, "session_id")

        async with LogContext(session_id=session_id, operation="next_question"):
            async with self._session_lock(session_id):
                session = await self._load(session_id, timeout)
                updated = session.copy()
                updated.issue_question()

                runtime = self._runtime_for(session)
                question = runtime.pool.next_question()
                try:
                    await self._save(updated, timeout)
                except DependencyError:
                    self._forget(session_id)
                    raise
                runtime.questions.append(question)

            self.log.debug(
                "Question issued",
                extra={
                    "session_id": str(session_id),
                    "question_number": question.question_number,
                    "question_count": updated.question_count,
                },
            )
            return question

    async def submit_answer(
        self,
        session_id: Any,
        question_number: Any,
        user_answer: Any,
        time_taken_ms: Any,
        *,
        timeout: Optional[float] = None,
    ) -> AnswerResult:
        """
        Score one answer and advance the session.

        The answer must be for the next expected question number, which must
        already have been issued. The last configured answer completes the
        session and publishes `quiz.session_completed`.

        `user_answer` must be non-blank after stripping. A client whose timer
        ran out before the player picked a note should submit a placeholder
        that matches no note name (for example "-"); it is recorded as a
        wrong answer and the session advances. A blank answer is rejected and
        the question stays unanswered.

        Raises:
            ValidationError: Malformed payload, including a blank answer
            SessionNotActiveError: Session is not in progress
            OutOfOrderError: Duplicate or skipped question number
            DependencyError: Gateway or lock failure; progress is unchanged
        """
        session_id = InputValidator.validate_uuid(session_id, "session_id")
        question_number = InputValidator.validate_positive_integer(
            question_number, "question_number"
        )
        user_answer = InputValidator.validate_string(
            user_answer,
            "user_answer",
            min_length=1,
            max_length=int(self.get_config("quiz.max_answer_length", 8)),
        )
        time_taken_ms = InputValidator.validate_non_negative_integer(
            time_taken_ms, "time_taken_ms"
        )

        async with LogContext(session_id=session_id, operation="submit_answer"):
            async with self._session_lock(session_id):
                session = await self._load(session_id, timeout)
                session.check_answer_order(question_number)

                question = self._runtime_for(session).questions[question_number - 1]
                is_correct = question.is_correct(user_answer)
                now = self._clock()

                updated = session.copy()
                completed = updated.record_answer(question_number, is_correct, now)
                answer = QuizAnswer(
                    session_id=session_id,
                    question_number=question_number,
                    note_image=question.note_image,
                    correct_note=question.correct_note,
                    user_answer=user_answer,
                    is_correct=is_correct,
                    time_taken_ms=time_taken_ms,
                    answered_at=now,
                )

                await self._gateway_call(
                    "append_answer", self._gateway.append_answer(answer), timeout
                )
                await self._save(updated, timeout)
                if completed:
                    self._forget(session_id)

            self.log.info(
                "Answer recorded",
                extra={
                    "session_id": str(session_id),
                    "question_number": question_number,
                    "is_correct": is_correct,
                    "score": updated.score,
                    "completed": completed,
                },
            )
            if completed:
                self.log_operation(
                    "session_completed",
                    session_id=str(session_id),
                    score=updated.score,
                    accuracy=updated.accuracy,
                    time_taken_seconds=updated.time_taken_seconds,
                )
            await self.publish_domain_events(updated)
            return AnswerResult(answer=answer, session=updated.copy(), completed=completed)

    # ========================================================================
    # READ SIDE
    # ========================================================================

    async def get_session(
        self, session_id: Any, *, timeout: Optional[float] = None
    ) -> QuizSession:
        session_id = InputValidator.validate_uuid(session_id, "session_id")
        return await self._load(session_id, timeout)

    async def get_results(
        self, session_id: Any, *, timeout: Optional[float] = None
    ) -> QuizSession:
        """
        Final session state.

        Raises:
            SessionNotTerminalError: Session is still pending or in progress
        """
        session_id = InputValidator.validate_uuid(session_id, "session_id")
        session = await self._load(session_id, timeout)
        if not session.is_terminal:
            raise SessionNotTerminalError(session_id, session.status.value)
        return session

    async def list_user_sessions(
        self,
        user_id: Any,
        limit: Any = None,
        *,
        timeout: Optional[float] = None,
    ) -> List[QuizSession]:
        """A user's sessions, newest first."""
        user_id = InputValidator.validate_uuid(user_id, "user_id")
        if limit is None:
            limit = self.get_config("quiz.history_default_limit", 20)
        limit = InputValidator.validate_positive_integer(
            limit, "limit", max_value=int(self.get_config("quiz.history_max_limit", 100))
        )
        return await self._gateway_call(
            "list_user_sessions", self._gateway.list_user_sessions(user_id, limit), timeout
        )

    async def get_session_answers(
        self, session_id: Any, *, timeout: Optional[float] = None
    ) -> List[QuizAnswer]:
        session_id = InputValidator.validate_uuid(session_id, "session_id")
        await self._load(session_id, timeout)
        return await self._gateway_call(
            "list_answers", self._gateway.list_answers(session_id), timeout
        )

    async def calculate_session_score(
        self, session_id: Any, *, timeout: Optional[float] = None
    ) -> Tuple[int, float]:
        """
        (score, accuracy) recomputed from the recorded answers.

        Matches the session's running totals; useful to audit them.
        """
        answers = await self.get_session_answers(session_id, timeout=timeout)
        score = sum(1 for answer in answers if answer.is_correct)
        accuracy = score / len(answers) * 100 if answers else 0.0
        return score, accuracy
