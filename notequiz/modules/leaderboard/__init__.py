"""
Leaderboards: pure ranking, membership resolvers and the aggregator service.
"""

from notequiz.modules.leaderboard.ranking import (
    aggregate_sessions,
    aggregate_user_sessions,
    is_eligible,
    rank_aggregates,
    sort_key,
)
from notequiz.modules.leaderboard.resolvers import MembershipResolver, SqlMembershipResolver
from notequiz.modules.leaderboard.service import LeaderboardAggregator

__all__ = [
    "LeaderboardAggregator",
    "MembershipResolver",
    "SqlMembershipResolver",
    "aggregate_sessions",
    "aggregate_user_sessions",
    "is_eligible",
    "rank_aggregates",
    "sort_key",
]
