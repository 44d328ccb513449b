"""
Catalog sources: where the quiz option listings come from.

- StaticCatalogSource reads `catalog.*` lists from ConfigManager (YAML).
- SqlCatalogSource reads the clef_types / duration_options /
  ledger_line_options tables through DatabaseService.

A source answers "is this triple offered right now?"; whether notes can
actually be drawn for it is the ConfigurationCatalog's concern.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from notequiz.core.database.service import DatabaseService
from notequiz.core.exceptions import DatabaseError
from notequiz.core.logging.logger import get_logger
from notequiz.database.models import ClefType, DurationOption, LedgerLineOption

logger = get_logger(__name__)


# ============================================================================
# Option values
# ============================================================================


@dataclass(frozen=True)
class ClefOption:
    name: str
    display_name: str
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "display_name": self.display_name, "is_active": self.is_active}


@dataclass(frozen=True)
class DurationChoice:
    duration_seconds: int
    display_name: str
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duration_seconds": self.duration_seconds,
            "display_name": self.display_name,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class LedgerLineChoice:
    max_lines: int
    display_name: str
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"max_lines": self.max_lines, "display_name": self.display_name, "is_active": self.is_active}


class CatalogSource(Protocol):
    async def list_clefs(self) -> List[ClefOption]: ...

    async def list_durations(self) -> List[DurationChoice]: ...

    async def list_ledger_line_options(self) -> List[LedgerLineChoice]: ...

    async def is_available(self, clef: str, duration_seconds: int, max_ledger_lines: int) -> bool: ...


async def _offered(
    source: CatalogSource, clef: str, duration_seconds: int, max_ledger_lines: int
) -> bool:
    clefs = await source.list_clefs()
    durations = await source.list_durations()
    ledger_lines = await source.list_ledger_line_options()
    return (
        any(option.name == clef and option.is_active for option in clefs)
        and any(
            option.duration_seconds == duration_seconds and option.is_active
            for option in durations
        )
        and any(
            option.max_lines == max_ledger_lines and option.is_active
            for option in ledger_lines
        )
    )


# ============================================================================
# Static (YAML) source
# ============================================================================


class StaticCatalogSource:
    """Option listings from `catalog.clefs|durations|ledger_lines`."""

    def __init__(self, config_manager: Any) -> None:
        self._config = config_manager

    def _entries(self, key: str) -> List[Dict[str, Any]]:
        raw = self._config.get(key, [])
        if not isinstance(raw, list):
            logger.warning(
                "Catalog config entry is not a list; ignoring",
                extra={"config_key": key, "config_type": type(raw).__name__},
            )
            return []
        return [entry for entry in raw if isinstance(entry, dict)]

    async def list_clefs(self) -> List[ClefOption]:
        return [
            ClefOption(
                name=str(entry["name"]),
                display_name=str(entry.get("display_name", entry["name"])),
                is_active=bool(entry.get("is_active", True)),
            )
            for entry in self._entries("catalog.clefs")
            if "name" in entry
        ]

    async def list_durations(self) -> List[DurationChoice]:
        return [
            DurationChoice(
                duration_seconds=int(entry["seconds"]),
                display_name=str(entry.get("display_name", f"{entry['seconds']} seconds")),
                is_active=bool(entry.get("is_active", True)),
            )
            for entry in self._entries("catalog.durations")
            if "seconds" in entry
        ]

    async def list_ledger_line_options(self) -> List[LedgerLineChoice]:
        return [
            LedgerLineChoice(
                max_lines=int(entry["max_lines"]),
                display_name=str(entry.get("display_name", f"Up to {entry['max_lines']} ledger lines")),
                is_active=bool(entry.get("is_active", True)),
            )
            for entry in self._entries("catalog.ledger_lines")
            if "max_lines" in entry
        ]

    async def is_available(self, clef: str, duration_seconds: int, max_ledger_lines: int) -> bool:
        return await _offered(self, clef, duration_seconds, max_ledger_lines)


# ============================================================================
# SQL source
# ============================================================================


class SqlCatalogSource:
    """Option listings from the option tables."""

    async def list_clefs(self) -> List[ClefOption]:
        rows = await self._fetch("list_clefs", select(ClefType).order_by(ClefType.id))
        return [ClefOption(row.name, row.display_name, row.is_active) for row in rows]

    async def list_durations(self) -> List[DurationChoice]:
        rows = await self._fetch(
            "list_durations",
            select(DurationOption).order_by(DurationOption.duration_seconds),
        )
        return [
            DurationChoice(row.duration_seconds, row.display_name, row.is_active)
            for row in rows
        ]

    async def list_ledger_line_options(self) -> List[LedgerLineChoice]:
        rows = await self._fetch(
            "list_ledger_line_options",
            select(LedgerLineOption).order_by(LedgerLineOption.max_lines),
        )
        return [
            LedgerLineChoice(row.max_lines, row.display_name, row.is_active)
            for row in rows
        ]

    async def is_available(self, clef: str, duration_seconds: int, max_ledger_lines: int) -> bool:
        return await _offered(self, clef, duration_seconds, max_ledger_lines)

    @staticmethod
    async def _fetch(operation: str, statement: Any) -> List[Any]:
        try:
            async with DatabaseService.get_session() as session:
                result = await session.execute(statement)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise DatabaseError(f"catalog.{operation}", exc) from exc
