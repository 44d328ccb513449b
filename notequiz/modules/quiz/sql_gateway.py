"""
SqlPersistenceGateway: the persistence gateway over SQLAlchemy.

Purpose
-------
Map quiz sessions, answers and leaderboard aggregates between the domain
model and the ORM records, using DatabaseService sessions:

- writes run in `DatabaseService.get_transaction()` (commit or rollback)
- point and list reads use `DatabaseService.get_session()`
- the full-refresh read uses `DatabaseService.get_snapshot_session()` so it
  sees one consistent set of sessions without blocking writers

Error Handling
--------------
Every SQLAlchemyError is logged and re-raised as `DatabaseError` carrying
the gateway operation name. Callers decide on timeouts and on how to
present the failure.

Non-Responsibilities
--------------------
- Business rules (the engine validates before saving)
- Locking (callers serialize per key)
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from notequiz.core.database.service import DatabaseService
from notequiz.core.exceptions import DatabaseError
from notequiz.core.logging.logger import get_logger
from notequiz.database.models import (
    LeaderboardEntryRecord,
    QuizAnswerRecord,
    QuizSessionRecord,
    SessionStatus,
)
from notequiz.domain.models.leaderboard import LeaderboardEntry, UserAggregate
from notequiz.domain.models.quiz_session import ConfigurationKey, QuizAnswer, QuizSession

logger = get_logger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Drivers without timezone support hand back naive UTC values."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _configuration_filter(model: Any, configuration: ConfigurationKey) -> tuple:
    return (
        model.clef == configuration.clef,
        model.duration_seconds == configuration.duration_seconds,
        model.max_ledger_lines == configuration.max_ledger_lines,
    )


# ============================================================================
# RECORD <-> DOMAIN MAPPING
# ============================================================================


def session_from_record(record: QuizSessionRecord) -> QuizSession:
    return QuizSession(
        session_id=record.id,
        user_id=record.user_id,
        configuration=ConfigurationKey(
            record.clef, record.duration_seconds, record.max_ledger_lines
        ),
        question_count=record.question_count,
        status=SessionStatus(record.status),
        score=record.score,
        total_questions=record.total_questions,
        correct_answers=record.correct_answers,
        questions_issued=record.questions_issued,
        time_taken_seconds=record.time_taken_seconds,
        started_at=_aware(record.started_at),
        completed_at=_aware(record.completed_at),
        created_at=_aware(record.created_at),
    )


def apply_session(record: QuizSessionRecord, session: QuizSession) -> None:
    record.user_id = session.user_id
    record.clef = session.clef
    record.duration_seconds = session.duration_seconds
    record.max_ledger_lines = session.max_ledger_lines
    record.question_count = session.question_count
    record.questions_issued = session.questions_issued
    record.score = session.score
    record.total_questions = session.total_questions
    record.correct_answers = session.correct_answers
    record.time_taken_seconds = session.time_taken_seconds
    record.status = session.status.value
    record.started_at = session.started_at
    record.completed_at = session.completed_at


def answer_from_record(record: QuizAnswerRecord) -> QuizAnswer:
    return QuizAnswer(
        session_id=record.session_id,
        question_number=record.question_number,
        note_image=record.note_image,
        correct_note=record.correct_note,
        user_answer=record.user_answer,
        is_correct=record.is_correct,
        time_taken_ms=record.time_taken_ms,
        answered_at=_aware(record.answered_at),
    )


def aggregate_from_record(record: LeaderboardEntryRecord) -> UserAggregate:
    return UserAggregate(
        user_id=record.user_id,
        best_score=record.best_score,
        best_accuracy=record.best_accuracy,
        fastest_time=record.fastest_time,
        total_attempts=record.total_attempts,
        average_score=record.average_score,
        last_attempt=_aware(record.last_attempt),
    )


# ============================================================================
# GATEWAY
# ============================================================================


class SqlPersistenceGateway:
    """PersistenceGateway backed by DatabaseService."""

    def _fail(self, operation: str, exc: SQLAlchemyError, started: float) -> DatabaseError:
        logger.error(
            "Persistence gateway operation failed",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__,
                "error": str(exc),
                "duration_ms": (time.perf_counter() - started) * 1000.0,
            },
        )
        return DatabaseError(operation, exc)

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    async def load_session(self, session_id: uuid.UUID) -> Optional[QuizSession]:
        started = time.perf_counter()
        try:
            async with DatabaseService.get_session() as session:
                record = await session.get(QuizSessionRecord, session_id)
                return session_from_record(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise self._fail("load_session", exc, started) from exc

    async def save_session(self, quiz_session: QuizSession) -> None:
        started = time.perf_counter()
        try:
            async with DatabaseService.get_transaction() as session:
                record = await session.get(QuizSessionRecord, quiz_session.id)
                if record is None:
                    record = QuizSessionRecord(
                        id=quiz_session.id, created_at=quiz_session.created_at
                    )
                    session.add(record)
                apply_session(record, quiz_session)
        except SQLAlchemyError as exc:
            raise self._fail("save_session", exc, started) from exc

        logger.debug(
            "Quiz session saved",
            extra={
                "session_id": str(quiz_session.id),
                "status": quiz_session.status.value,
                "answered": quiz_session.total_questions,
            },
        )

    async def list_user_sessions(self, user_id: uuid.UUID, limit: int) -> List[QuizSession]:
        started = time.perf_counter()
        stmt = (
            select(QuizSessionRecord)
            .where(QuizSessionRecord.user_id == user_id)
            .order_by(QuizSessionRecord.created_at.desc(), QuizSessionRecord.id)
            .limit(limit)
        )
        try:
            async with DatabaseService.get_session() as session:
                records = (await session.execute(stmt)).scalars().all()
                return [session_from_record(record) for record in records]
        except SQLAlchemyError as exc:
            raise self._fail("list_user_sessions", exc, started) from exc

    async def list_completed_sessions(
        self,
        configuration: ConfigurationKey,
        user_id: Optional[uuid.UUID] = None,
    ) -> List[QuizSession]:
        started = time.perf_counter()
        stmt = select(QuizSessionRecord).where(
            QuizSessionRecord.status == SessionStatus.COMPLETED.value,
            *_configuration_filter(QuizSessionRecord, configuration),
        )
        if user_id is not None:
            stmt = stmt.where(QuizSessionRecord.user_id == user_id)
        stmt = stmt.order_by(QuizSessionRecord.completed_at, QuizSessionRecord.id)

        try:
            async with DatabaseService.get_session() as session:
                records = (await session.execute(stmt)).scalars().all()
                return [session_from_record(record) for record in records]
        except SQLAlchemyError as exc:
            raise self._fail("list_completed_sessions", exc, started) from exc

    async def snapshot_completed_sessions(self) -> List[QuizSession]:
        started = time.perf_counter()
        stmt = (
            select(QuizSessionRecord)
            .where(QuizSessionRecord.status == SessionStatus.COMPLETED.value)
            .order_by(QuizSessionRecord.completed_at, QuizSessionRecord.id)
        )
        try:
            async with DatabaseService.get_snapshot_session() as session:
                records = (await session.execute(stmt)).scalars().all()
                sessions = [session_from_record(record) for record in records]
        except SQLAlchemyError as exc:
            raise self._fail("snapshot_completed_sessions", exc, started) from exc

        logger.info(
            "Completed sessions snapshot read",
            extra={
                "session_count": len(sessions),
                "duration_ms": (time.perf_counter() - started) * 1000.0,
            },
        )
        return sessions

    # ------------------------------------------------------------------ #
    # Answers
    # ------------------------------------------------------------------ #

    async def append_answer(self, answer: QuizAnswer) -> None:
        started = time.perf_counter()
        stmt = select(QuizAnswerRecord).where(
            QuizAnswerRecord.session_id == answer.session_id,
            QuizAnswerRecord.question_number == answer.question_number,
        )
        try:
            async with DatabaseService.get_transaction() as session:
                record = (await session.execute(stmt)).scalar_one_or_none()
                if record is None:
                    record = QuizAnswerRecord(
                        session_id=answer.session_id,
                        question_number=answer.question_number,
                    )
                    session.add(record)
                record.note_image = answer.note_image
                record.correct_note = answer.correct_note
                record.user_answer = answer.user_answer
                record.is_correct = answer.is_correct
                record.time_taken_ms = answer.time_taken_ms
                record.answered_at = answer.answered_at
        except SQLAlchemyError as exc:
            raise self._fail("append_answer", exc, started) from exc

    async def list_answers(self, session_id: uuid.UUID) -> List[QuizAnswer]:
        started = time.perf_counter()
        stmt = (
            select(QuizAnswerRecord)
            .where(QuizAnswerRecord.session_id == session_id)
            .order_by(QuizAnswerRecord.question_number)
        )
        try:
            async with DatabaseService.get_session() as session:
                records = (await session.execute(stmt)).scalars().all()
                return [answer_from_record(record) for record in records]
        except SQLAlchemyError as exc:
            raise self._fail("list_answers", exc, started) from exc

    # ------------------------------------------------------------------ #
    # Materialized leaderboard
    # ------------------------------------------------------------------ #

    async def load_leaderboard(self, configuration: ConfigurationKey) -> List[UserAggregate]:
        started = time.perf_counter()
        stmt = select(LeaderboardEntryRecord).where(
            *_configuration_filter(LeaderboardEntryRecord, configuration)
        )
        try:
            async with DatabaseService.get_session() as session:
                records = (await session.execute(stmt)).scalars().all()
                return [aggregate_from_record(record) for record in records]
        except SQLAlchemyError as exc:
            raise self._fail("load_leaderboard", exc, started) from exc

    async def leaderboard_version(self, configuration: ConfigurationKey) -> int:
        started = time.perf_counter()
        stmt = select(func.max(LeaderboardEntryRecord.snapshot_version)).where(
            *_configuration_filter(LeaderboardEntryRecord, configuration)
        )
        try:
            async with DatabaseService.get_session() as session:
                return int((await session.execute(stmt)).scalar() or 0)
        except SQLAlchemyError as exc:
            raise self._fail("leaderboard_version", exc, started) from exc

    async def save_leaderboard_entry(
        self,
        configuration: ConfigurationKey,
        aggregate: UserAggregate,
        version: int,
    ) -> None:
        """Upsert one user's aggregate; its global rank waits for the next refresh."""
        started = time.perf_counter()
        stmt = select(LeaderboardEntryRecord).where(
            *_configuration_filter(LeaderboardEntryRecord, configuration),
            LeaderboardEntryRecord.user_id == aggregate.user_id,
        )
        try:
            async with DatabaseService.get_transaction() as session:
                record = (await session.execute(stmt)).scalar_one_or_none()
                if record is None:
                    record = LeaderboardEntryRecord(
                        clef=configuration.clef,
                        duration_seconds=configuration.duration_seconds,
                        max_ledger_lines=configuration.max_ledger_lines,
                        user_id=aggregate.user_id,
                    )
                    session.add(record)
                self._apply_aggregate(record, aggregate)
                record.global_rank = None
                record.snapshot_version = version
        except SQLAlchemyError as exc:
            raise self._fail("save_leaderboard_entry", exc, started) from exc

    async def replace_leaderboard(
        self,
        configuration: ConfigurationKey,
        entries: Sequence[LeaderboardEntry],
        version: int,
    ) -> None:
        """Swap every row of one configuration for a freshly ranked set."""
        started = time.perf_counter()
        try:
            async with DatabaseService.get_transaction() as session:
                await session.execute(
                    delete(LeaderboardEntryRecord).where(
                        *_configuration_filter(LeaderboardEntryRecord, configuration)
                    )
                )
                for entry in entries:
                    record = LeaderboardEntryRecord(
                        clef=configuration.clef,
                        duration_seconds=configuration.duration_seconds,
                        max_ledger_lines=configuration.max_ledger_lines,
                        user_id=entry.user_id,
                        global_rank=entry.rank,
                        snapshot_version=version,
                    )
                    self._apply_aggregate(record, entry)
                    session.add(record)
        except SQLAlchemyError as exc:
            raise self._fail("replace_leaderboard", exc, started) from exc

        logger.info(
            "Leaderboard replaced",
            extra={
                "configuration": configuration.name,
                "entry_count": len(entries),
                "snapshot_version": version,
                "duration_ms": (time.perf_counter() - started) * 1000.0,
            },
        )

    @staticmethod
    def _apply_aggregate(record: LeaderboardEntryRecord, aggregate: Any) -> None:
        record.best_score = aggregate.best_score
        record.best_accuracy = aggregate.best_accuracy
        record.fastest_time = aggregate.fastest_time
        record.total_attempts = aggregate.total_attempts
        record.average_score = aggregate.average_score
        record.last_attempt = aggregate.last_attempt
