"""
repute.__main__ — Entry point for ``python -m repute``
======================================================

Wiring:
1. Load .env (``DATABASE_URL``).
2. Load config.yaml (infrastructure settings) and set the log level.
3. Create the SQLAlchemy engine, ensure tables exist, seed default settings.
4. Build and load the ConfigCache (scoring policy from the DB).
5. Create the CommunityMemoryService on the wall-clock scheduler.
6. Start it (cache warm-up + maintenance jobs) and run until interrupted.

Run with::

    python -m repute
"""

from __future__ import annotations

import asyncio
import logging
import sys

from dotenv import load_dotenv

from repute.config import load_config
from repute.database.engine import create_db_engine, init_db
from repute.engine.cache import ConfigCache
from repute.services.capabilities import ServiceRegistry
from repute.services.memory_service import CommunityMemoryService
from repute.services.scheduler import AsyncioScheduler

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("repute")


async def serve(service: CommunityMemoryService) -> None:
    """Run *service* until cancelled."""
    await service.start()
    try:
        await asyncio.Event().wait()
    finally:
        await service.stop()


def main() -> None:
    """Bootstrap and run the reputation service."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Infrastructure configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, KeyError, ValueError) as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(1)
    logging.getLogger().setLevel(cfg.log_level)
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)

    # 4. Scoring policy.
    cache = ConfigCache(engine)
    cache.load_all()

    # 5. Service.
    service = CommunityMemoryService(engine, cache, cfg, scheduler=AsyncioScheduler())
    registry = ServiceRegistry()
    service.register(registry)

    # 6. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting reputation service…")
    try:
        asyncio.run(serve(service))
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
