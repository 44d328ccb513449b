"""
LeaderboardEntryRecord: materialized per-(configuration, user) aggregate.
Schema only.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notequiz.core.database.base import Base, IdMixin, TimestampMixin


class LeaderboardEntryRecord(Base, IdMixin, TimestampMixin):
    """
    Row of the materialized global leaderboard.

    Rows are written by incremental updates (global_rank left to the next
    refresh) and replaced wholesale by a full refresh.
    """

    __tablename__ = "leaderboard_entries"
    __table_args__ = (
        UniqueConstraint(
            "clef",
            "duration_seconds",
            "max_ledger_lines",
            "user_id",
            name="uq_leaderboard_entries_configuration_user",
        ),
        Index(
            "ix_leaderboard_entries_configuration_rank",
            "clef",
            "duration_seconds",
            "max_ledger_lines",
            "global_rank",
        ),
    )

    clef: Mapped[str] = mapped_column(String(20), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    max_ledger_lines: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    best_score: Mapped[int] = mapped_column(Integer, nullable=False)
    best_accuracy: Mapped[float] = mapped_column(Float, nullable=False)
    fastest_time: Mapped[int] = mapped_column(Integer, nullable=False)
    total_attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    average_score: Mapped[float] = mapped_column(Float, nullable=False)
    last_attempt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    global_rank: Mapped[Optional[int]] = mapped_column(Integer)
    snapshot_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
