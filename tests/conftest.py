"""
Pytest Configuration and Fixtures for the notequiz Test Suite
=============================================================

Purpose
-------
Reusable fixtures for unit and integration tests.

Responsibilities
----------------
- Testing environment flags (set before any notequiz import)
- ConfigManager loaded from the repository's YAML, reset per test
- EventBus, keyed locks, in-memory gateway and resolver, a controllable clock
- Fully wired QuizSessionEngine / LeaderboardAggregator over the fakes
- Testcontainers for PostgreSQL and Redis in integration tests

Architecture Notes
------------------
- Unit tests run against in-memory fakes (fast, isolated)
- Integration tests use testcontainers (real PostgreSQL / Redis)
- Containers are session-scoped; DatabaseService and RedisService are
  initialized per test so each test gets a clean schema / keyspace
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOCK_BACKEND", "memory")

from pathlib import Path
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio

from notequiz.core.concurrency import KeyedLockRegistry
from notequiz.core.config.manager import ConfigManager
from notequiz.core.event import EventBus
from notequiz.core.logging.logger import get_logger
from notequiz.modules.catalog import ConfigurationCatalog, StaticCatalogSource
from notequiz.modules.leaderboard import LeaderboardAggregator
from notequiz.modules.quiz import QuizSessionEngine
from tests.fakes import FakeClock, InMemoryGateway, InMemoryMembershipResolver

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


@pytest.fixture
def config_manager() -> Generator[type, None, None]:
    """
    ConfigManager loaded from config/*.yaml.

    Scope: function (overrides never leak between tests)
    """
    ConfigManager.reset()
    ConfigManager.load(CONFIG_DIR)
    yield ConfigManager
    ConfigManager.reset()


# ============================================================================
# IN-MEMORY COLLABORATORS (Unit Tests)
# ============================================================================


@pytest_asyncio.fixture
async def event_bus(config_manager) -> AsyncGenerator[EventBus, None]:
    bus = EventBus(config_manager)
    yield bus
    await bus.drain(timeout=5.0)
    bus.clear()


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def resolver() -> InMemoryMembershipResolver:
    return InMemoryMembershipResolver()


@pytest.fixture
def locks() -> KeyedLockRegistry:
    return KeyedLockRegistry()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog(config_manager) -> ConfigurationCatalog:
    return ConfigurationCatalog(StaticCatalogSource(config_manager), config_manager)


@pytest.fixture
def quiz_engine(gateway, catalog, locks, config_manager, event_bus, clock) -> QuizSessionEngine:
    return QuizSessionEngine(
        gateway=gateway,
        catalog=catalog,
        locks=locks,
        config_manager=config_manager,
        event_bus=event_bus,
        logger=get_logger("tests.quiz_engine"),
        clock=clock,
    )


@pytest.fixture
def aggregator(
    gateway, catalog, resolver, locks, config_manager, event_bus, clock
) -> LeaderboardAggregator:
    return LeaderboardAggregator(
        gateway=gateway,
        catalog=catalog,
        resolver=resolver,
        locks=locks,
        config_manager=config_manager,
        event_bus=event_bus,
        logger=get_logger("tests.leaderboard"),
        clock=clock,
    )


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    from testcontainers.postgres import PostgresContainer

    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    container.start()
    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_container():
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    from testcontainers.redis import RedisContainer

    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    container.start()
    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def database(postgres_container, config_manager) -> AsyncGenerator[None, None]:
    """
    DatabaseService bound to the container, with a fresh schema.

    Scope: function (schema dropped after each test)
    """
    from notequiz.core.database.service import DatabaseService

    await DatabaseService.initialize(postgres_container.get_connection_url())
    await DatabaseService.drop_schema()
    await DatabaseService.create_schema()
    yield
    await DatabaseService.drop_schema()
    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def redis_service(redis_container, config_manager) -> AsyncGenerator[type, None]:
    """RedisService bound to the container, with an empty keyspace."""
    from notequiz.core.redis.service import RedisService

    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    await RedisService.initialize(f"redis://{host}:{port}/0")
    await RedisService.client().flushdb()
    yield RedisService
    await RedisService.shutdown()


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def assert_domain_event_emitted(domain_model, event_name: str) -> bool:
    """
    Usage:
        session.start()
        assert assert_domain_event_emitted(session, "quiz.session_started")
    """
    events = domain_model.get_pending_events()
    return any(event.event_name == event_name for event in events)


def get_domain_event_payload(domain_model, event_name: str) -> dict | None:
    events = domain_model.get_pending_events()
    for event in events:
        if event.event_name == event_name:
            return event.payload
    return None
