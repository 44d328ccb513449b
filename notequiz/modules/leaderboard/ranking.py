"""
Pure leaderboard ranking.

No I/O and no state: given completed sessions, build per-user aggregates;
given aggregates (and optionally a member set), produce ranked entries.
Every scope goes through the same `rank_aggregates` call, only the member
set differs.

Eligibility
-----------
A session counts when it is completed, and answered at least the
configuration's expected number of questions. Abandoned and short sessions
never count, neither for the best record nor for attempts or the average.

Order
-----
Strict total order on (best_score desc, best_accuracy desc,
fastest_time asc, user id asc). Ranks are 1..n with no shared ranks.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from notequiz.database.models.enums import SessionStatus
from notequiz.domain.models.leaderboard import LeaderboardEntry, UserAggregate
from notequiz.domain.models.quiz_session import QuizSession


def is_eligible(session: QuizSession, expected_questions: int) -> bool:
    return (
        session.status == SessionStatus.COMPLETED
        and session.total_questions >= expected_questions
    )


def _representative_key(session: QuizSession) -> Tuple[int, float, int]:
    return (session.score, session.accuracy, -session.time_taken_seconds)


def aggregate_user_sessions(
    user_id: uuid.UUID,
    sessions: Iterable[QuizSession],
    expected_questions: int,
) -> Optional[UserAggregate]:
    """
    Best record for one user in one configuration, or None with no
    eligible session.

    The best session is the one with the highest score; ties go to the
    higher accuracy, then the shorter time. best_accuracy and fastest_time
    are that session's values.
    """
    eligible = [
        session
        for session in sessions
        if session.user_id == user_id and is_eligible(session, expected_questions)
    ]
    if not eligible:
        return None

    best = max(eligible, key=_representative_key)
    finished = [session.completed_at for session in eligible if session.completed_at]

    return UserAggregate(
        user_id=user_id,
        best_score=best.score,
        best_accuracy=best.accuracy,
        fastest_time=best.time_taken_seconds,
        total_attempts=len(eligible),
        average_score=sum(session.score for session in eligible) / len(eligible),
        last_attempt=max(finished) if finished else None,
    )


def aggregate_sessions(
    sessions: Iterable[QuizSession], expected_questions: int
) -> List[UserAggregate]:
    """Aggregates for every user appearing in `sessions`."""
    by_user: Dict[uuid.UUID, List[QuizSession]] = defaultdict(list)
    for session in sessions:
        by_user[session.user_id].append(session)

    aggregates = []
    for user_id, user_sessions in by_user.items():
        aggregate = aggregate_user_sessions(user_id, user_sessions, expected_questions)
        if aggregate is not None:
            aggregates.append(aggregate)
    return aggregates


def sort_key(aggregate: UserAggregate) -> Tuple[int, float, int, str]:
    return (
        -aggregate.best_score,
        -aggregate.best_accuracy,
        aggregate.fastest_time,
        str(aggregate.user_id),
    )


def rank_aggregates(
    aggregates: Iterable[UserAggregate],
    members: Optional[Set[uuid.UUID]] = None,
) -> Tuple[LeaderboardEntry, ...]:
    """
    Rank `aggregates`, restricted to `members` when given.

    Ranks are computed within the restricted population, never sliced from
    a wider ranking.
    """
    population = [
        aggregate
        for aggregate in aggregates
        if members is None or aggregate.user_id in members
    ]
    population.sort(key=sort_key)
    return tuple(
        LeaderboardEntry.from_aggregate(rank, aggregate)
        for rank, aggregate in enumerate(population, start=1)
    )
