"""
Unit tests for the pure leaderboard ranking functions.
"""

import uuid
from datetime import timedelta

import pytest

from notequiz.database.models.enums import SessionStatus
from notequiz.modules.leaderboard.ranking import (
    aggregate_sessions,
    aggregate_user_sessions,
    is_eligible,
    rank_aggregates,
)
from tests.fakes import EPOCH, make_session

EXPECTED = 10


@pytest.mark.unit
class TestEligibility:
    def test_completed_full_session_counts(self):
        assert is_eligible(make_session(score=5), EXPECTED)

    def test_abandoned_session_never_counts(self):
        session = make_session(score=10, status=SessionStatus.ABANDONED)
        assert not is_eligible(session, EXPECTED)

    def test_short_session_never_counts(self):
        session = make_session(score=4, answered=4)
        assert not is_eligible(session, EXPECTED)

    def test_in_progress_session_never_counts(self):
        session = make_session(score=3, answered=3, status=SessionStatus.IN_PROGRESS)
        assert not is_eligible(session, EXPECTED)


@pytest.mark.unit
class TestAggregation:
    def test_best_and_average_over_attempts(self):
        user_id = uuid.uuid4()
        sessions = [
            make_session(user_id, score=9, completed_at=EPOCH),
            make_session(user_id, score=8, completed_at=EPOCH + timedelta(days=1)),
        ]

        aggregate = aggregate_user_sessions(user_id, sessions, EXPECTED)

        assert aggregate.best_score == 9
        assert aggregate.best_accuracy == 90.0
        assert aggregate.total_attempts == 2
        assert aggregate.average_score == 8.5
        assert aggregate.last_attempt == EPOCH + timedelta(days=1)

    def test_accuracy_and_time_come_from_best_session(self):
        user_id = uuid.uuid4()
        sessions = [
            make_session(user_id, score=9, time_taken_seconds=29),
            make_session(user_id, score=7, time_taken_seconds=12),
        ]

        aggregate = aggregate_user_sessions(user_id, sessions, EXPECTED)

        assert aggregate.best_score == 9
        assert aggregate.fastest_time == 29

    def test_equal_scores_prefer_faster_session(self):
        user_id = uuid.uuid4()
        sessions = [
            make_session(user_id, score=9, time_taken_seconds=29),
            make_session(user_id, score=9, time_taken_seconds=21),
        ]

        aggregate = aggregate_user_sessions(user_id, sessions, EXPECTED)

        assert aggregate.fastest_time == 21

    def test_abandoned_and_short_sessions_are_ignored(self):
        user_id = uuid.uuid4()
        sessions = [
            make_session(user_id, score=6),
            make_session(user_id, score=10, status=SessionStatus.ABANDONED),
            make_session(user_id, score=5, answered=5),
        ]

        aggregate = aggregate_user_sessions(user_id, sessions, EXPECTED)

        assert aggregate.best_score == 6
        assert aggregate.total_attempts == 1
        assert aggregate.average_score == 6.0

    def test_no_eligible_session_means_no_aggregate(self):
        user_id = uuid.uuid4()
        sessions = [make_session(user_id, score=10, status=SessionStatus.ABANDONED)]

        assert aggregate_user_sessions(user_id, sessions, EXPECTED) is None

    def test_other_users_sessions_are_ignored(self):
        user_id = uuid.uuid4()
        sessions = [make_session(user_id, score=3), make_session(score=10)]

        assert aggregate_user_sessions(user_id, sessions, EXPECTED).best_score == 3

    def test_aggregate_sessions_groups_by_user(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        sessions = [
            make_session(a, score=5),
            make_session(a, score=7),
            make_session(b, score=4),
            make_session(score=9, status=SessionStatus.ABANDONED),
        ]

        aggregates = {agg.user_id: agg for agg in aggregate_sessions(sessions, EXPECTED)}

        assert set(aggregates) == {a, b}
        assert aggregates[a].best_score == 7


@pytest.mark.unit
class TestRanking:
    def test_faster_time_breaks_score_tie(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        aggregates = aggregate_sessions(
            [
                make_session(a, score=9, time_taken_seconds=28),
                make_session(b, score=9, time_taken_seconds=25),
            ],
            EXPECTED,
        )

        entries = rank_aggregates(aggregates)

        assert [entry.user_id for entry in entries] == [b, a]
        assert [entry.rank for entry in entries] == [1, 2]

    def test_accuracy_breaks_score_tie_before_time(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        aggregates = aggregate_sessions(
            [
                make_session(a, score=9, question_count=10, time_taken_seconds=10),
                make_session(b, score=9, answered=9, question_count=9, time_taken_seconds=40),
            ],
            9,
        )

        entries = rank_aggregates(aggregates)

        assert entries[0].user_id == b

    def test_full_tie_is_ordered_by_user_id(self):
        ids = sorted((uuid.uuid4() for _ in range(3)), key=str)
        aggregates = aggregate_sessions(
            [make_session(user_id, score=7) for user_id in reversed(ids)], EXPECTED
        )

        entries = rank_aggregates(aggregates)

        assert [entry.user_id for entry in entries] == ids
        assert [entry.rank for entry in entries] == [1, 2, 3]

    def test_members_are_ranked_among_themselves(self):
        users = [uuid.uuid4() for _ in range(6)]
        aggregates = aggregate_sessions(
            [make_session(user_id, score=10 - i) for i, user_id in enumerate(users)],
            EXPECTED,
        )
        members = {users[1], users[3], users[5]}

        entries = rank_aggregates(aggregates, members)

        assert [entry.user_id for entry in entries] == [users[1], users[3], users[5]]
        assert [entry.rank for entry in entries] == [1, 2, 3]

    def test_members_without_results_are_absent(self):
        user_id = uuid.uuid4()
        aggregates = aggregate_sessions([make_session(user_id, score=5)], EXPECTED)

        entries = rank_aggregates(aggregates, {user_id, uuid.uuid4()})

        assert len(entries) == 1

    def test_empty_population(self):
        assert rank_aggregates([]) == ()
