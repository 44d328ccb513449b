"""
notequiz - Maintenance Entry Point
==================================

Bootstrap
---------
- Config validation
- Structured logging
- Database initialization (and Redis when LOCK_BACKEND=redis)
- ConfigManager initialization
- Service container initialization
- Graceful shutdown

Commands
--------
    python -m notequiz.main init-db    create tables
    python -m notequiz.main refresh    rebuild every leaderboard from sessions
    python -m notequiz.main health     infrastructure health snapshot
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from notequiz.core.config.config import Config
from notequiz.core.config.manager import ConfigManager
from notequiz.core.database.service import DatabaseService
from notequiz.core.event import EventBus
from notequiz.core.logging.logger import get_logger, setup_logging, shutdown_logging
from notequiz.core.redis.service import RedisService
from notequiz.core.services.container import ServiceContainer

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================

async def _startup() -> ServiceContainer:
    """Initialize infrastructure and services."""
    logger.info("========== NOTEQUIZ INITIALIZATION START ==========")

    try:
        Config.validate()
        logger.info("✓ Configuration validated", extra=Config.get_config_summary())
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    try:
        await DatabaseService.initialize()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    if Config.uses_redis_locks():
        try:
            await RedisService.initialize()
            logger.info("✓ Redis service initialized")
        except Exception as exc:
            logger.critical(f"Redis initialization failed: {exc}", exc_info=True)
            raise

    try:
        await ConfigManager.initialize()
        logger.info("✓ Config manager initialized")
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        raise

    try:
        container = ServiceContainer(
            config_manager=ConfigManager,
            event_bus=EventBus(ConfigManager),
            logger=get_logger("notequiz.core.services.container"),
        )
        await container.initialize()
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return container


# ============================================================================
# Application Shutdown
# ============================================================================

async def _shutdown(container: Optional[ServiceContainer]) -> None:
    logger.info("========== NOTEQUIZ SHUTDOWN START ==========")

    if container is not None:
        try:
            await container.shutdown()
            logger.info("✓ Service container shut down")
        except Exception as exc:
            logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    try:
        await RedisService.shutdown()
    except Exception as exc:
        logger.error(f"Redis service shutdown error: {exc}", exc_info=True)

    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Commands
# ============================================================================

async def cmd_init_db(container: ServiceContainer) -> int:
    await DatabaseService.create_schema()
    logger.info("Database schema created")
    return 0


async def cmd_refresh(container: ServiceContainer) -> int:
    counts = await container.leaderboard.refresh_leaderboards()
    print(json.dumps(counts, indent=2, sort_keys=True))
    return 0


async def cmd_health(container: ServiceContainer) -> int:
    report = {
        "database": await DatabaseService.health_check(),
        "redis": await RedisService.health_check() if Config.uses_redis_locks() else None,
        "services": await container.health_check(),
    }
    print(json.dumps(report, indent=2, default=str))
    return 0 if report["database"] else 1


COMMANDS = {
    "init-db": cmd_init_db,
    "refresh": cmd_refresh,
    "health": cmd_health,
}


async def main(command: str) -> int:
    container: Optional[ServiceContainer] = None
    try:
        container = await _startup()
        return await COMMANDS[command](container)
    finally:
        await _shutdown(container)


def run(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="notequiz maintenance commands")
    parser.add_argument("command", choices=sorted(COMMANDS))
    args = parser.parse_args(argv)

    setup_logging()
    try:
        exit_code = asyncio.run(main(args.command))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        exit_code = 130
    except Exception as exc:
        logger.critical(f"Fatal error: {exc}", exc_info=True)
        exit_code = 1
    finally:
        shutdown_logging()
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
