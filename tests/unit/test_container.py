"""
Unit tests for ServiceContainer wiring.
"""

import uuid

import pytest

from notequiz.core.concurrency import KeyedLockRegistry
from notequiz.core.services import ServiceContainer
from notequiz.core.services.container import LEADERBOARD_LISTENER_ID
from notequiz.domain.models.quiz_session import SESSION_COMPLETED
from notequiz.modules.catalog import SqlCatalogSource, StaticCatalogSource
from notequiz.modules.catalog.service import ConfigurationCatalog


@pytest.fixture
def container(config_manager, event_bus, gateway, resolver):
    return ServiceContainer(
        config_manager,
        event_bus,
        gateway=gateway,
        resolver=resolver,
        locks=KeyedLockRegistry(),
    )


@pytest.mark.unit
class TestLifecycle:
    def test_services_guarded_before_initialize(self, container):
        assert not container.is_initialized
        with pytest.raises(RuntimeError):
            _ = container.quiz_engine

    async def test_initialize_wires_services(self, container, event_bus):
        await container.initialize()

        assert container.is_initialized
        assert isinstance(container.catalog, ConfigurationCatalog)
        assert event_bus.get_listener_count(SESSION_COMPLETED) == 1
        assert isinstance(container._catalog_source, StaticCatalogSource)

    async def test_initialize_is_idempotent(self, container, event_bus):
        await container.initialize()
        await container.initialize()

        assert event_bus.get_listener_count(SESSION_COMPLETED) == 1

    async def test_shutdown_detaches_listener(self, container, event_bus):
        await container.initialize()

        await container.shutdown()

        assert not container.is_initialized
        assert not event_bus.unsubscribe(SESSION_COMPLETED, LEADERBOARD_LISTENER_ID)
        with pytest.raises(RuntimeError):
            _ = container.leaderboard

    async def test_database_catalog_source_selected_by_config(self, container, config_manager):
        config_manager.set_override("catalog.source", "database")

        await container.initialize()

        assert isinstance(container._catalog_source, SqlCatalogSource)

    async def test_health_check(self, container):
        await container.initialize()

        report = await container.health_check()

        assert report["initialized"] is True
        assert report["service_count"] == 3
        assert report["background_tasks"] == 0


@pytest.mark.unit
class TestCompletedSessionFlow:
    async def test_completed_session_reaches_leaderboard(self, container, event_bus):
        await container.initialize()
        engine = container.quiz_engine
        user_id = uuid.uuid4()

        session = await engine.create_session(user_id, "bass", 30, 1)
        await engine.start_session(session.id)
        for number in range(1, session.question_count + 1):
            question = await engine.next_question(session.id)
            answer = question.correct_note if number % 2 else "X9"
            await engine.submit_answer(session.id, number, answer, 600)
        await event_bus.drain(timeout=2.0)

        entries = await container.leaderboard.get_global_leaderboard("bass", 30, 1)

        assert [(e.user_id, e.best_score, e.best_accuracy) for e in entries] == [
            (user_id, 5, 50.0)
        ]
