"""Async SQLAlchemy engine, sessions and declarative base."""

from notequiz.core.database.base import (
    Base,
    IdMixin,
    SoftDeleteMixin,
    TimestampMixin,
    UuidPkMixin,
)
from notequiz.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "UuidPkMixin",
    "TimestampMixin",
    "SoftDeleteMixin",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
