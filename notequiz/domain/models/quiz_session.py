"""
Quiz session domain model.

Purpose
-------
`QuizSession` is the aggregate that owns the lifecycle of one quiz attempt:

    pending --start()--> in_progress --record_answer()*--> in_progress
    in_progress --record_answer(last)--> completed   (auto-complete)
    in_progress --complete()--> completed
    in_progress --abandon()--> abandoned

Terminal states are final; any other transition raises InvalidTransitionError.

Also defines the value types that travel with a session: `ConfigurationKey`,
`Question` and `QuizAnswer`.

Non-Responsibilities
--------------------
- Deciding whether an answer is correct (the engine compares against the
  issued question)
- Persistence, locking and timeouts (QuizSessionEngine)
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from notequiz.database.models.enums import SessionStatus
from notequiz.domain.models.base import (
    AggregateRoot,
    validate_non_negative,
    validate_positive,
)
from notequiz.modules.shared.exceptions import (
    InvalidTransitionError,
    OutOfOrderError,
    PoolExhaustedError,
    SessionNotActiveError,
)

SESSION_STARTED = "quiz.session_started"
SESSION_COMPLETED = "quiz.session_completed"
SESSION_ABANDONED = "quiz.session_abandoned"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# VALUE OBJECTS
# ============================================================================


@dataclass(frozen=True, order=True)
class ConfigurationKey:
    """
    The (clef, duration, max ledger lines) triple that parameterizes a quiz.

    `name` is stable and used in lock keys, logs and event payloads, e.g.
    ``treble_30s_0ledger``.
    """

    clef: str
    duration_seconds: int
    max_ledger_lines: int

    @property
    def name(self) -> str:
        return f"{self.clef}_{self.duration_seconds}s_{self.max_ledger_lines}ledger"

    @classmethod
    def from_name(cls, name: str) -> ConfigurationKey:
        clef, duration, ledger = name.split("_")
        return cls(
            clef=clef,
            duration_seconds=int(duration.rstrip("s")),
            max_ledger_lines=int(ledger.replace("ledger", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clef": self.clef,
            "duration_seconds": self.duration_seconds,
            "max_ledger_lines": self.max_ledger_lines,
            "configuration_name": self.name,
        }

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Question:
    """
    One note-identification question.

    Attributes
    ----------
    question_number : int
        1-based position within the session
    note_image : str
        Image identifier shown to the user, e.g. ``treble_A4.png``
    correct_note : str
        Label of the correct answer, e.g. ``A4``
    answers : Tuple[str, ...]
        Multiple-choice labels (correct answer plus distractors), sorted by pitch
    """

    question_number: int
    note_image: str
    correct_note: str
    answers: Tuple[str, ...] = ()

    def is_correct(self, user_answer: str) -> bool:
        return user_answer.strip().casefold() == self.correct_note.strip().casefold()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_number": self.question_number,
            "note_image": self.note_image,
            "answers": list(self.answers),
        }


@dataclass(frozen=True)
class QuizAnswer:
    """An immutable record of one answered question."""

    session_id: uuid.UUID
    question_number: int
    note_image: str
    correct_note: str
    user_answer: Optional[str]
    is_correct: bool
    time_taken_ms: int
    answered_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": str(self.session_id),
            "question_number": self.question_number,
            "note_image": self.note_image,
            "correct_note": self.correct_note,
            "user_answer": self.user_answer,
            "is_correct": self.is_correct,
            "time_taken_ms": self.time_taken_ms,
            "answered_at": self.answered_at.isoformat(),
        }


# ============================================================================
# AGGREGATE
# ============================================================================


class QuizSession(AggregateRoot):
    """
    Rich domain model of a single quiz attempt.

    Progress fields
    ---------------
    - questions_issued: questions handed out by next_question
    - total_questions: questions answered so far
    - correct_answers / score: one point per correct answer
    - accuracy: derived, never stored independently

    Invariant: completed_at is set iff status is completed or abandoned.
    """

    def __init__(
        self,
        session_id: uuid.UUID,
        user_id: uuid.UUID,
        configuration: ConfigurationKey,
        question_count: int,
        *,
        status: SessionStatus = SessionStatus.PENDING,
        score: int = 0,
        total_questions: int = 0,
        correct_answers: int = 0,
        questions_issued: int = 0,
        time_taken_seconds: int = 0,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(session_id)
        validate_positive(question_count, "question_count")
        validate_non_negative(score, "score")
        validate_non_negative(total_questions, "total_questions")
        validate_non_negative(correct_answers, "correct_answers")
        validate_non_negative(questions_issued, "questions_issued")
        validate_non_negative(time_taken_seconds, "time_taken_seconds")

        self.user_id = user_id
        self.configuration = configuration
        self.question_count = question_count
        self.status = SessionStatus(status)
        self.score = score
        self.total_questions = total_questions
        self.correct_answers = correct_answers
        self.questions_issued = questions_issued
        self.time_taken_seconds = time_taken_seconds
        self.started_at = started_at
        self.completed_at = completed_at
        self.created_at = created_at or utcnow()

    @classmethod
    def create(
        cls,
        user_id: uuid.UUID,
        configuration: ConfigurationKey,
        question_count: int,
        now: Optional[datetime] = None,
    ) -> QuizSession:
        """New pending session with zeroed progress."""
        return cls(
            session_id=uuid.uuid4(),
            user_id=user_id,
            configuration=configuration,
            question_count=question_count,
            created_at=now or utcnow(),
        )

    # ------------------------------------------------------------------ #
    # Derived state
    # ------------------------------------------------------------------ #

    @property
    def accuracy(self) -> float:
        """correct_answers / total_questions * 100, or 0 with no answers."""
        if self.total_questions == 0:
            return 0.0
        return self.correct_answers / self.total_questions * 100

    @property
    def is_terminal(self) -> bool:
        return self.status in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.IN_PROGRESS

    @property
    def next_question_number(self) -> int:
        return self.total_questions + 1

    @property
    def clef(self) -> str:
        return self.configuration.clef

    @property
    def duration_seconds(self) -> int:
        return self.configuration.duration_seconds

    @property
    def max_ledger_lines(self) -> int:
        return self.configuration.max_ledger_lines

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def _require_active(self, action: str) -> None:
        if self.status != SessionStatus.IN_PROGRESS:
            raise SessionNotActiveError(self.id, self.status.value, action)

    def start(self, now: Optional[datetime] = None) -> None:
        if self.status != SessionStatus.PENDING:
            raise InvalidTransitionError(self.id, self.status.value, "start")

        self.status = SessionStatus.IN_PROGRESS
        self.started_at = now or utcnow()
        self.add_domain_event(
            SESSION_STARTED,
            {
                "session_id": str(self.id),
                "user_id": str(self.user_id),
                "configuration": self.configuration.name,
                "started_at": self.started_at.isoformat(),
            },
        )

    def issue_question(self) -> int:
        """Advance the issued counter; returns the issued question number."""
        self._require_active("next_question")
        if self.questions_issued >= self.question_count:
            raise PoolExhaustedError(self.question_count, self.id)

        self.questions_issued += 1
        return self.questions_issued

    def check_answer_order(self, question_number: int) -> None:
        """
        Raise unless `question_number` is the next expected answer.

        The expected number must also have been issued; answering a question
        that was never handed out counts as a skip.
        """
        self._require_active("submit_answer")
        expected = self.next_question_number
        if question_number != expected or question_number > self.questions_issued:
            raise OutOfOrderError(self.id, expected, question_number)

    def record_answer(
        self,
        question_number: int,
        is_correct: bool,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Apply one answer to the running totals.

        Returns True when this answer completed the session.
        """
        self.check_answer_order(question_number)

        self.total_questions += 1
        if is_correct:
            self.correct_answers += 1
            self.score += 1

        if self.total_questions >= self.question_count:
            self.complete(now)
            return True
        return False

    def complete(self, now: Optional[datetime] = None) -> None:
        if self.status != SessionStatus.IN_PROGRESS:
            raise InvalidTransitionError(self.id, self.status.value, "complete")

        self._finish(SessionStatus.COMPLETED, now or utcnow())
        self.add_domain_event(SESSION_COMPLETED, self.to_event_payload())

    def abandon(self, now: Optional[datetime] = None) -> None:
        if self.status != SessionStatus.IN_PROGRESS:
            raise InvalidTransitionError(self.id, self.status.value, "abandon")

        self._finish(SessionStatus.ABANDONED, now or utcnow())
        self.add_domain_event(SESSION_ABANDONED, self.to_event_payload())

    def _finish(self, status: SessionStatus, now: datetime) -> None:
        self.status = status
        self.completed_at = now
        if self.started_at is not None:
            elapsed = (now - self.started_at).total_seconds()
            self.time_taken_seconds = max(0, int(round(elapsed)))

    # ------------------------------------------------------------------ #
    # Copies & serialization
    # ------------------------------------------------------------------ #

    def copy(self) -> QuizSession:
        """Independent copy without pending domain events."""
        clone = copy.copy(self)
        clone._domain_events = []
        return clone

    def to_event_payload(self) -> Dict[str, Any]:
        return {
            "session_id": str(self.id),
            "user_id": str(self.user_id),
            "clef": self.clef,
            "duration_seconds": self.duration_seconds,
            "max_ledger_lines": self.max_ledger_lines,
            "configuration": self.configuration.name,
            "status": self.status.value,
            "score": self.score,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "time_taken_seconds": self.time_taken_seconds,
            "accuracy": self.accuracy,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_event_payload()
        data.update(
            {
                "question_count": self.question_count,
                "questions_issued": self.questions_issued,
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
                "created_at": self.created_at.isoformat(),
            }
        )
        return data

    def __repr__(self) -> str:
        return (
            f"QuizSession(id={self.id}, user_id={self.user_id}, "
            f"configuration={self.configuration.name}, status={self.status.value}, "
            f"answered={self.total_questions}/{self.question_count}, score={self.score})"
        )
