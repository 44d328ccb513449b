"""
Integration Tests for DatabaseService
=====================================

Purpose
-------
Test DatabaseService against real PostgreSQL using testcontainers.

Test Coverage
-------------
- Connection and health check
- Schema creation
- Transaction commit and rollback
- Snapshot sessions
- Constraint enforcement on the quiz tables

Testing Strategy
----------------
- Integration tests (testcontainers PostgreSQL)
- Each test gets a freshly created schema via the `database` fixture
"""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from notequiz.core.database.service import DatabaseService
from notequiz.database.models import QuizAnswerRecord, QuizSessionRecord


def _session_record(**overrides) -> QuizSessionRecord:
    values = dict(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        clef="treble",
        duration_seconds=30,
        max_ledger_lines=0,
        question_count=10,
        status="pending",
    )
    values.update(overrides)
    return QuizSessionRecord(**values)


# ============================================================================
# CONNECTION & SCHEMA
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseConnection:
    async def test_health_check(self, database):
        assert await DatabaseService.health_check() is True

    async def test_schema_created(self, database):
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                text(
                    """
                    SELECT table_name
                    FROM information_schema.tables
                    WHERE table_schema = 'public'
                    """
                )
            )
            tables = {row.table_name for row in result.fetchall()}

        assert {
            "quiz_sessions",
            "quiz_answers",
            "leaderboard_entries",
            "clef_types",
            "duration_options",
            "ledger_line_options",
            "quiz_groups",
            "group_memberships",
            "friendships",
        } <= tables

    async def test_initialize_is_idempotent(self, database, postgres_container):
        await DatabaseService.initialize(postgres_container.get_connection_url())
        assert DatabaseService.is_initialized()


# ============================================================================
# TRANSACTIONS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseTransactions:
    async def test_transaction_commits(self, database):
        record = _session_record()

        async with DatabaseService.get_transaction() as session:
            session.add(record)

        async with DatabaseService.get_session() as session:
            found = await session.get(QuizSessionRecord, record.id)

        assert found is not None
        assert found.created_at is not None

    async def test_transaction_rolls_back_on_error(self, database):
        record = _session_record()

        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                session.add(record)
                await session.flush()
                raise RuntimeError("abort")

        async with DatabaseService.get_session() as session:
            assert await session.get(QuizSessionRecord, record.id) is None

    async def test_snapshot_session_reads(self, database):
        async with DatabaseService.get_transaction() as session:
            session.add(_session_record(status="completed", completed_at=datetime.now(timezone.utc)))

        async with DatabaseService.get_snapshot_session() as session:
            level = (await session.execute(text("SHOW transaction_isolation"))).scalar()
            count = len((await session.execute(select(QuizSessionRecord))).scalars().all())

        assert level == "repeatable read"
        assert count == 1


# ============================================================================
# CONSTRAINTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestConstraints:
    async def test_completed_at_required_for_terminal_status(self, database):
        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                session.add(_session_record(status="completed"))

    async def test_answer_per_question_is_unique(self, database):
        record = _session_record()
        async with DatabaseService.get_transaction() as session:
            session.add(record)

        def answer():
            return QuizAnswerRecord(
                session_id=record.id,
                question_number=1,
                note_image="treble_E4.png",
                correct_note="E4",
                user_answer="E4",
                is_correct=True,
                time_taken_ms=100,
                answered_at=datetime.now(timezone.utc),
            )

        async with DatabaseService.get_transaction() as session:
            session.add(answer())

        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                session.add(answer())
