"""
Integration Tests for SqlPersistenceGateway
===========================================

Purpose
-------
Verify the mapping between quiz domain objects and the PostgreSQL schema,
and the query semantics the engine and the leaderboard rely on.

Test Coverage
-------------
- Session save/load round trip and in-place updates
- Per-user history ordering and limits
- Completed-session queries by configuration and user
- Answer upserts and ordering
- Materialized leaderboard rows: incremental upsert, full replace, version
- DatabaseError wrapping

Testing Strategy
----------------
- Integration tests (testcontainers PostgreSQL)
- Fresh schema per test via the `database` fixture
"""

import uuid
from datetime import timedelta

import pytest

from notequiz.core.exceptions import DatabaseError
from notequiz.database.models import SessionStatus
from notequiz.domain.models.leaderboard import LeaderboardEntry, UserAggregate
from notequiz.domain.models.quiz_session import QuizAnswer, QuizSession
from notequiz.modules.quiz.sql_gateway import SqlPersistenceGateway
from tests.fakes import BASS_60, EPOCH, TREBLE_30, make_session


@pytest.fixture
def sql_gateway(database) -> SqlPersistenceGateway:
    return SqlPersistenceGateway()


def _answer(session_id, number, user_answer="E4", correct=True) -> QuizAnswer:
    return QuizAnswer(
        session_id=session_id,
        question_number=number,
        note_image="treble_E4.png",
        correct_note="E4",
        user_answer=user_answer,
        is_correct=correct,
        time_taken_ms=900,
        answered_at=EPOCH + timedelta(seconds=number),
    )


def _aggregate(user_id, best_score=8) -> UserAggregate:
    return UserAggregate(
        user_id=user_id,
        best_score=best_score,
        best_accuracy=best_score * 10.0,
        fastest_time=27,
        total_attempts=2,
        average_score=best_score - 0.5,
        last_attempt=EPOCH,
    )


# ============================================================================
# SESSIONS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestSessions:
    async def test_round_trip(self, sql_gateway):
        # Arrange
        session = make_session(score=7, configuration=BASS_60, question_count=20, answered=20)

        # Act
        await sql_gateway.save_session(session)
        loaded = await sql_gateway.load_session(session.id)

        # Assert
        assert loaded is not None
        assert loaded.id == session.id
        assert loaded.configuration == BASS_60
        assert loaded.status is SessionStatus.COMPLETED
        assert (loaded.score, loaded.total_questions, loaded.question_count) == (7, 20, 20)
        assert loaded.completed_at == EPOCH
        assert loaded.completed_at.tzinfo is not None

    async def test_unknown_session_loads_as_none(self, sql_gateway):
        assert await sql_gateway.load_session(uuid.uuid4()) is None

    async def test_save_updates_existing_row(self, sql_gateway):
        session = QuizSession.create(uuid.uuid4(), TREBLE_30, 10, now=EPOCH)
        await sql_gateway.save_session(session)

        session.start(EPOCH + timedelta(seconds=1))
        session.issue_question()
        await sql_gateway.save_session(session)
        loaded = await sql_gateway.load_session(session.id)

        assert loaded.status is SessionStatus.IN_PROGRESS
        assert loaded.questions_issued == 1
        assert loaded.started_at == EPOCH + timedelta(seconds=1)

    async def test_user_sessions_newest_first_with_limit(self, sql_gateway):
        user_id = uuid.uuid4()
        sessions = [
            QuizSession.create(user_id, TREBLE_30, 10, now=EPOCH + timedelta(minutes=i))
            for i in range(4)
        ]
        for session in sessions:
            await sql_gateway.save_session(session)
        await sql_gateway.save_session(QuizSession.create(uuid.uuid4(), TREBLE_30, 10))

        history = await sql_gateway.list_user_sessions(user_id, limit=3)

        assert [s.id for s in history] == [s.id for s in reversed(sessions)][:3]

    async def test_completed_sessions_filtered_by_configuration(self, sql_gateway):
        user_id = uuid.uuid4()
        wanted = make_session(user_id, score=5)
        await sql_gateway.save_session(wanted)
        await sql_gateway.save_session(make_session(user_id, BASS_60, score=9))
        await sql_gateway.save_session(
            make_session(user_id, score=9, status=SessionStatus.ABANDONED)
        )
        other = make_session(score=6, completed_at=EPOCH + timedelta(hours=1))
        await sql_gateway.save_session(other)

        everyone = await sql_gateway.list_completed_sessions(TREBLE_30)
        mine = await sql_gateway.list_completed_sessions(TREBLE_30, user_id)

        assert [s.id for s in everyone] == [wanted.id, other.id]
        assert [s.id for s in mine] == [wanted.id]

    async def test_snapshot_spans_configurations(self, sql_gateway):
        await sql_gateway.save_session(make_session(score=5))
        await sql_gateway.save_session(make_session(configuration=BASS_60, score=9))
        await sql_gateway.save_session(
            make_session(score=1, answered=1, status=SessionStatus.IN_PROGRESS)
        )

        snapshot = await sql_gateway.snapshot_completed_sessions()

        assert {s.configuration for s in snapshot} == {TREBLE_30, BASS_60}


# ============================================================================
# ANSWERS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestAnswers:
    async def test_answers_listed_in_question_order(self, sql_gateway):
        session = make_session(status=SessionStatus.IN_PROGRESS, answered=0)
        await sql_gateway.save_session(session)

        for number in (2, 1, 3):
            await sql_gateway.append_answer(_answer(session.id, number))
        answers = await sql_gateway.list_answers(session.id)

        assert [a.question_number for a in answers] == [1, 2, 3]
        assert answers[0].answered_at == EPOCH + timedelta(seconds=1)

    async def test_append_is_an_upsert(self, sql_gateway):
        session = make_session(status=SessionStatus.IN_PROGRESS, answered=0)
        await sql_gateway.save_session(session)

        await sql_gateway.append_answer(_answer(session.id, 1, "F4", correct=False))
        await sql_gateway.append_answer(_answer(session.id, 1, "E4", correct=True))
        answers = await sql_gateway.list_answers(session.id)

        assert len(answers) == 1
        assert answers[0].user_answer == "E4"
        assert answers[0].is_correct is True

    async def test_answer_for_missing_session_is_database_error(self, sql_gateway):
        with pytest.raises(DatabaseError) as exc_info:
            await sql_gateway.append_answer(_answer(uuid.uuid4(), 1))

        assert exc_info.value.details["operation"] == "append_answer"


# ============================================================================
# MATERIALIZED LEADERBOARD
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestLeaderboardRows:
    async def test_incremental_upsert(self, sql_gateway):
        user_id = uuid.uuid4()

        await sql_gateway.save_leaderboard_entry(TREBLE_30, _aggregate(user_id, 6), version=1)
        await sql_gateway.save_leaderboard_entry(TREBLE_30, _aggregate(user_id, 9), version=2)
        rows = await sql_gateway.load_leaderboard(TREBLE_30)

        assert rows == [_aggregate(user_id, 9)]
        assert await sql_gateway.load_leaderboard(BASS_60) == []

    async def test_replace_swaps_configuration_rows(self, sql_gateway):
        stale, a, b = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        untouched = uuid.uuid4()
        await sql_gateway.save_leaderboard_entry(TREBLE_30, _aggregate(stale), version=1)
        await sql_gateway.save_leaderboard_entry(BASS_60, _aggregate(untouched), version=1)

        entries = [
            LeaderboardEntry.from_aggregate(1, _aggregate(a, 9)),
            LeaderboardEntry.from_aggregate(2, _aggregate(b, 7)),
        ]
        await sql_gateway.replace_leaderboard(TREBLE_30, entries, version=3)

        rows = await sql_gateway.load_leaderboard(TREBLE_30)
        assert {row.user_id for row in rows} == {a, b}
        assert [row.user_id for row in await sql_gateway.load_leaderboard(BASS_60)] == [
            untouched
        ]

    async def test_version_is_highest_stamp_per_configuration(self, sql_gateway):
        assert await sql_gateway.leaderboard_version(TREBLE_30) == 0

        await sql_gateway.save_leaderboard_entry(TREBLE_30, _aggregate(uuid.uuid4()), version=4)
        await sql_gateway.save_leaderboard_entry(TREBLE_30, _aggregate(uuid.uuid4()), version=2)
        await sql_gateway.save_leaderboard_entry(BASS_60, _aggregate(uuid.uuid4()), version=9)

        assert await sql_gateway.leaderboard_version(TREBLE_30) == 4
        assert await sql_gateway.leaderboard_version(BASS_60) == 9

        await sql_gateway.replace_leaderboard(
            TREBLE_30, [LeaderboardEntry.from_aggregate(1, _aggregate(uuid.uuid4()))], version=5
        )
        assert await sql_gateway.leaderboard_version(TREBLE_30) == 5
