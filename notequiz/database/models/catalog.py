"""
Quiz option tables: clefs, durations, ledger-line limits.
Schema only.
"""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from notequiz.core.database.base import Base, IdMixin


class ClefType(Base, IdMixin):
    __tablename__ = "clef_types"

    name: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)


class DurationOption(Base, IdMixin):
    __tablename__ = "duration_options"

    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)


class LedgerLineOption(Base, IdMixin):
    __tablename__ = "ledger_line_options"

    max_lines: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
