"""
Service Container
=================

Purpose
-------
Build and hold the quiz backend's services with their collaborators:
lock registry, persistence gateway, catalog, membership resolver, the quiz
engine and the leaderboard aggregator.

Responsibilities
----------------
- Construct services in dependency order
- Subscribe the aggregator to `quiz.session_completed` at LOW priority, so
  leaderboard updates never hold up an answer submission
- Drain background listeners and unsubscribe on shutdown
- Expose services through guarded properties

Non-Responsibilities
--------------------
- Infrastructure startup (DatabaseService, RedisService, ConfigManager);
  see `notequiz.main`
- Business logic

Architecture Notes
------------------
Collaborators can be injected (tests pass in-memory gateways and
resolvers); anything not injected gets its production implementation.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from notequiz.core.concurrency import KeyedLock, create_lock_registry
from notequiz.core.event.types import ListenerPriority
from notequiz.core.logging.logger import get_logger
from notequiz.domain.models.quiz_session import SESSION_COMPLETED
from notequiz.modules.catalog import (
    CatalogSource,
    ConfigurationCatalog,
    SqlCatalogSource,
    StaticCatalogSource,
)
from notequiz.modules.leaderboard import (
    LeaderboardAggregator,
    MembershipResolver,
    SqlMembershipResolver,
)
from notequiz.modules.quiz import (
    PersistenceGateway,
    QuizSessionEngine,
    SqlPersistenceGateway,
)

if TYPE_CHECKING:
    from logging import Logger

    from notequiz.core.config.manager import ConfigManager
    from notequiz.core.event.bus import EventBus

LEADERBOARD_LISTENER_ID = "leaderboard.on_session_completed"


class ServiceContainer:
    """
    Dependency container for the quiz backend.

    Usage:
        container = ServiceContainer(ConfigManager, event_bus, logger)
        await container.initialize()

        session = await container.quiz_engine.create_session(...)
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
        *,
        gateway: Optional[PersistenceGateway] = None,
        catalog_source: Optional[CatalogSource] = None,
        resolver: Optional[MembershipResolver] = None,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger or get_logger(__name__)

        self._gateway = gateway
        self._catalog_source = catalog_source
        self._resolver = resolver
        self._locks = locks

        self._catalog: Optional[ConfigurationCatalog] = None
        self._quiz_engine: Optional[QuizSessionEngine] = None
        self._leaderboard: Optional[LeaderboardAggregator] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def _build_catalog_source(self) -> CatalogSource:
        source = str(self._config_manager.get("catalog.source", "static")).lower()
        if source == "database":
            return SqlCatalogSource()
        return StaticCatalogSource(self._config_manager)

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            if self._locks is None:
                self._locks = create_lock_registry(
                    float(self._config_manager.get("quiz.lock_wait_timeout_seconds", 5.0))
                )
            if self._gateway is None:
                self._gateway = SqlPersistenceGateway()
            if self._catalog_source is None:
                self._catalog_source = self._build_catalog_source()
            if self._resolver is None:
                self._resolver = SqlMembershipResolver()

            step = time.perf_counter()
            self._catalog = ConfigurationCatalog(self._catalog_source, self._config_manager)
            self._service_init_times["catalog"] = time.perf_counter() - step

            step = time.perf_counter()
            self._quiz_engine = QuizSessionEngine(
                gateway=self._gateway,
                catalog=self._catalog,
                locks=self._locks,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(QuizSessionEngine.__module__),
            )
            self._service_init_times["quiz_engine"] = time.perf_counter() - step

            step = time.perf_counter()
            self._leaderboard = LeaderboardAggregator(
                gateway=self._gateway,
                catalog=self._catalog,
                resolver=self._resolver,
                locks=self._locks,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(LeaderboardAggregator.__module__),
            )
            self._service_init_times["leaderboard"] = time.perf_counter() - step

            self._event_bus.subscribe(
                SESSION_COMPLETED,
                self._leaderboard.on_session_completed,
                priority=ListenerPriority.LOW,
                identifier=LEADERBOARD_LISTENER_ID,
            )

        except Exception:
            self._logger.error("Service container initialization failed", exc_info=True)
            raise

        self._initialized = True
        self._logger.info(
            "Service container initialized",
            extra={
                "service_count": len(self._service_init_times),
                "duration_ms": (time.perf_counter() - start) * 1000.0,
            },
        )

    async def shutdown(self, drain_timeout: Optional[float] = 5.0) -> None:
        """Finish in-flight leaderboard updates, then detach listeners."""
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")
        await self._event_bus.drain(timeout=drain_timeout)
        self._event_bus.unsubscribe(SESSION_COMPLETED, LEADERBOARD_LISTENER_ID)

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "background_tasks": self._event_bus.get_background_task_count(),
        }

    # ========================================================================
    # Services
    # ========================================================================

    @property
    def catalog(self) -> ConfigurationCatalog:
        if not self._initialized or self._catalog is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._catalog

    @property
    def quiz_engine(self) -> QuizSessionEngine:
        if not self._initialized or self._quiz_engine is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._quiz_engine

    @property
    def leaderboard(self) -> LeaderboardAggregator:
        if not self._initialized or self._leaderboard is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._leaderboard

    @property
    def is_initialized(self) -> bool:
        return self._initialized
