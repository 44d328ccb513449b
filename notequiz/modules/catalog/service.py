"""
ConfigurationCatalog: the valid (clef, duration, max ledger lines) triples.

Purpose
-------
Tell callers which quiz configurations exist and which can be played right
now, and how many questions each one asks.

A configuration is available when
- its source offers all three options as active, and
- the note bank yields at least one note for (clef, max ledger lines).

Responsibilities
----------------
- Option listings for building a quiz picker
- Every combination with display labels, question count and availability
- `require_available()` raising UnavailableConfigurationError for the engine
- Expected question count per configuration (`quiz.question_counts.<duration>`,
  falling back to `quiz.questions_per_session`)

Source reads are bounded by `quiz.gateway_timeout_seconds`; timeouts and
database failures surface as DependencyError.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from notequiz.core.exceptions import DatabaseError
from notequiz.core.logging.logger import get_logger
from notequiz.domain.models.quiz_session import ConfigurationKey
from notequiz.modules.catalog.sources import (
    CatalogSource,
    ClefOption,
    DurationChoice,
    LedgerLineChoice,
)
from notequiz.modules.questions.notes import has_eligible_notes
from notequiz.modules.shared.exceptions import (
    DependencyError,
    UnavailableConfigurationError,
)

logger = get_logger(__name__)

T = TypeVar("T")


class ConfigurationCatalog:
    """
    Catalog of quiz configurations.

    Args:
        source: CatalogSource providing the option listings
        config_manager: Tunables source (`get(key, default)`)
    """

    def __init__(self, source: CatalogSource, config_manager: Any) -> None:
        self._source = source
        self._config = config_manager

    # ------------------------------------------------------------------ #
    # Source access
    # ------------------------------------------------------------------ #

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        timeout = float(self._config.get("quiz.gateway_timeout_seconds", 5.0))
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error(
                "Catalog source timed out",
                extra={"operation": operation, "timeout_seconds": timeout},
            )
            raise DependencyError(f"catalog.{operation}", exc, timeout) from exc
        except DatabaseError as exc:
            logger.error(
                "Catalog source failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise DependencyError(f"catalog.{operation}", exc, timeout) from exc

    # ------------------------------------------------------------------ #
    # Listings
    # ------------------------------------------------------------------ #

    async def list_clefs(self) -> List[ClefOption]:
        return await self._call("list_clefs", self._source.list_clefs())

    async def list_durations(self) -> List[DurationChoice]:
        return await self._call("list_durations", self._source.list_durations())

    async def list_ledger_line_options(self) -> List[LedgerLineChoice]:
        return await self._call(
            "list_ledger_line_options", self._source.list_ledger_line_options()
        )

    async def get_options(self) -> Dict[str, List[Dict[str, Any]]]:
        """The three option listings, as plain data."""
        return {
            "clefs": [option.to_dict() for option in await self.list_clefs()],
            "durations": [option.to_dict() for option in await self.list_durations()],
            "ledger_lines": [
                option.to_dict() for option in await self.list_ledger_line_options()
            ],
        }

    async def list_configurations(self, only_available: bool = False) -> List[Dict[str, Any]]:
        """Every clef x duration x ledger-line combination."""
        clefs = await self.list_clefs()
        durations = await self.list_durations()
        ledger_lines = await self.list_ledger_line_options()

        configurations: List[Dict[str, Any]] = []
        for clef in clefs:
            for duration in durations:
                for ledger in ledger_lines:
                    key = ConfigurationKey(clef.name, duration.duration_seconds, ledger.max_lines)
                    available = (
                        clef.is_active
                        and duration.is_active
                        and ledger.is_active
                        and has_eligible_notes(clef.name, ledger.max_lines)
                    )
                    if only_available and not available:
                        continue
                    configurations.append(
                        {
                            "configuration_name": key.name,
                            "clef": clef.name,
                            "clef_display": clef.display_name,
                            "duration_seconds": duration.duration_seconds,
                            "duration_display": duration.display_name,
                            "max_ledger_lines": ledger.max_lines,
                            "ledger_display": ledger.display_name,
                            "question_count": self.expected_question_count(key),
                            "is_available": available,
                        }
                    )
        return configurations

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    async def is_available(self, clef: str, duration_seconds: int, max_ledger_lines: int) -> bool:
        if not has_eligible_notes(clef, max_ledger_lines):
            return False
        return await self._call(
            "is_available",
            self._source.is_available(clef, duration_seconds, max_ledger_lines),
        )

    async def require_available(
        self, clef: str, duration_seconds: int, max_ledger_lines: int
    ) -> ConfigurationKey:
        """Return the configuration key, or raise UnavailableConfigurationError."""
        if not await self.is_available(clef, duration_seconds, max_ledger_lines):
            logger.info(
                "Unavailable configuration requested",
                extra={
                    "clef": clef,
                    "duration_seconds": duration_seconds,
                    "max_ledger_lines": max_ledger_lines,
                },
            )
            raise UnavailableConfigurationError(clef, duration_seconds, max_ledger_lines)
        return ConfigurationKey(clef, duration_seconds, max_ledger_lines)

    def expected_question_count(self, configuration: ConfigurationKey) -> int:
        default: Optional[Any] = self._config.get("quiz.questions_per_session", 10)
        value = self._config.get(
            f"quiz.question_counts.{configuration.duration_seconds}", default
        )
        try:
            count = int(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid question count in config, using 10",
                extra={"configuration": configuration.name, "config_value": repr(value)},
            )
            return 10
        return max(1, count)
