"""
Quiz sessions and answers.
Schema only.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from notequiz.core.database.base import Base, IdMixin, TimestampMixin, UuidPkMixin
from .enums import SessionStatus


class QuizSessionRecord(Base, UuidPkMixin, TimestampMixin):
    """
    One quiz attempt.

    The configuration triple is stored inline rather than referencing an
    option row, so history survives options being deactivated.
    """

    __tablename__ = "quiz_sessions"
    __table_args__ = (
        Index("ix_quiz_sessions_user_started", "user_id", "started_at"),
        Index(
            "ix_quiz_sessions_configuration_status",
            "clef",
            "duration_seconds",
            "max_ledger_lines",
            "status",
        ),
        CheckConstraint(
            "(completed_at IS NULL) = (status IN ('pending', 'in_progress'))",
            name="ck_quiz_sessions_completed_at_terminal",
        ),
        CheckConstraint("correct_answers <= total_questions", name="ck_quiz_sessions_correct"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    clef: Mapped[str] = mapped_column(String(20), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    max_ledger_lines: Mapped[int] = mapped_column(Integer, nullable=False)

    question_count: Mapped[int] = mapped_column(Integer, nullable=False)
    questions_issued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_taken_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SessionStatus.PENDING.value, index=True
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class QuizAnswerRecord(Base, IdMixin):
    """One answered question; (session_id, question_number) is unique."""

    __tablename__ = "quiz_answers"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "question_number", name="uq_quiz_answers_session_question"
        ),
        CheckConstraint("question_number >= 1", name="ck_quiz_answers_question_number"),
        CheckConstraint("time_taken_ms >= 0", name="ck_quiz_answers_time_taken"),
    )

    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quiz_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_number: Mapped[int] = mapped_column(Integer, nullable=False)
    note_image: Mapped[str] = mapped_column(String(100), nullable=False)
    correct_note: Mapped[str] = mapped_column(String(10), nullable=False)
    user_answer: Mapped[Optional[str]] = mapped_column(String(50))
    is_correct: Mapped[bool] = mapped_column(nullable=False, default=False)
    time_taken_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
