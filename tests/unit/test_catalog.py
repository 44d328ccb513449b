"""
Unit tests for ConfigurationCatalog over the YAML-backed source.
"""

import asyncio

import pytest

from notequiz.core.exceptions import DatabaseError
from notequiz.domain.models.quiz_session import ConfigurationKey
from notequiz.modules.catalog import ConfigurationCatalog, StaticCatalogSource
from notequiz.modules.shared.exceptions import (
    DependencyError,
    UnavailableConfigurationError,
)


@pytest.mark.unit
class TestListings:
    async def test_options_come_from_yaml(self, catalog):
        options = await catalog.get_options()

        assert [clef["name"] for clef in options["clefs"]] == ["treble", "bass", "alto", "tenor"]
        assert [d["duration_seconds"] for d in options["durations"]] == [30, 60, 120]
        assert [l["max_lines"] for l in options["ledger_lines"]] == [0, 1, 2, 3]

    async def test_configurations_cover_every_combination(self, catalog):
        configurations = await catalog.list_configurations()

        assert len(configurations) == 4 * 3 * 4
        assert all(configuration["is_available"] for configuration in configurations)

    async def test_inactive_option_makes_configurations_unavailable(self, catalog, config_manager):
        config_manager.set_override(
            "catalog.durations",
            [
                {"seconds": 30, "display_name": "30 seconds", "is_active": True},
                {"seconds": 60, "display_name": "1 minute", "is_active": False},
            ],
        )

        available = await catalog.list_configurations(only_available=True)
        everything = await catalog.list_configurations()

        assert {c["duration_seconds"] for c in available} == {30}
        assert len(everything) == 4 * 2 * 4

    async def test_configuration_rows_carry_question_count(self, catalog):
        configurations = await catalog.list_configurations()
        by_name = {c["configuration_name"]: c for c in configurations}

        assert by_name["treble_30s_0ledger"]["question_count"] == 10
        assert by_name["bass_60s_1ledger"]["question_count"] == 20


@pytest.mark.unit
class TestAvailability:
    async def test_require_available_returns_key(self, catalog):
        key = await catalog.require_available("treble", 30, 0)
        assert key == ConfigurationKey("treble", 30, 0)

    @pytest.mark.parametrize(
        "clef, duration, ledger",
        [("soprano", 30, 0), ("treble", 45, 0), ("treble", 30, 7)],
    )
    async def test_unknown_options_are_unavailable(self, catalog, clef, duration, ledger):
        assert not await catalog.is_available(clef, duration, ledger)
        with pytest.raises(UnavailableConfigurationError):
            await catalog.require_available(clef, duration, ledger)

    async def test_inactive_clef_is_unavailable(self, catalog, config_manager):
        config_manager.set_override(
            "catalog.clefs", [{"name": "treble", "display_name": "Treble", "is_active": False}]
        )
        with pytest.raises(UnavailableConfigurationError):
            await catalog.require_available("treble", 30, 0)

    async def test_offered_clef_without_notes_is_unavailable(self, catalog, config_manager):
        config_manager.set_override(
            "catalog.clefs", [{"name": "soprano", "display_name": "Soprano", "is_active": True}]
        )
        assert not await catalog.is_available("soprano", 30, 0)


@pytest.mark.unit
class TestQuestionCounts:
    def test_count_per_duration(self, catalog):
        assert catalog.expected_question_count(ConfigurationKey("treble", 30, 0)) == 10
        assert catalog.expected_question_count(ConfigurationKey("treble", 120, 0)) == 40

    def test_falls_back_to_questions_per_session(self, catalog):
        assert catalog.expected_question_count(ConfigurationKey("treble", 45, 0)) == 10

    def test_invalid_count_falls_back_to_ten(self, catalog, config_manager):
        config_manager.set_override("quiz.question_counts", {"30": "many"})
        assert catalog.expected_question_count(ConfigurationKey("treble", 30, 0)) == 10


class _FailingSource(StaticCatalogSource):
    async def list_clefs(self):
        raise DatabaseError("catalog.list_clefs", RuntimeError("down"))


class _SlowSource(StaticCatalogSource):
    async def list_clefs(self):
        await asyncio.sleep(1)
        return []


@pytest.mark.unit
class TestSourceFailures:
    async def test_database_failure_is_dependency_error(self, config_manager):
        catalog = ConfigurationCatalog(_FailingSource(config_manager), config_manager)

        with pytest.raises(DependencyError) as exc_info:
            await catalog.list_clefs()

        assert exc_info.value.operation == "catalog.list_clefs"
        assert exc_info.value.is_retryable

    async def test_timeout_is_dependency_error(self, config_manager):
        config_manager.set_override("quiz.gateway_timeout_seconds", 0.05)
        catalog = ConfigurationCatalog(_SlowSource(config_manager), config_manager)

        with pytest.raises(DependencyError):
            await catalog.list_clefs()
