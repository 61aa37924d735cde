"""
repute.database.engine — Durable Store Connection & Async Bridge
=================================================================

The engine is driven from asyncio (the hosting conversational runtime awaits
every call), while SQLAlchemy + psycopg2 is synchronous.  Every durable-store
function in :mod:`repute.services` is therefore written as a plain sync
function taking an :class:`Engine`, and async callers ship it to a worker
thread with :func:`run_db`::

    from repute.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS + seed

    rows = await run_db(fetch_recent_interactions, engine, user_id, 200)

Only single-row atomicity is assumed of the store; multi-row steps
(consolidation's archive-then-delete) are sequenced by the callers.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from repute.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` for *url* or ``DATABASE_URL``.

    PostgreSQL gets a small persistent pool (5 + 10 overflow, 10 s checkout
    timeout, hourly recycle).  SQLite URLs (dev and tests) skip the pool
    sizing, which SQLite's pools do not accept.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.host or engine.url.database)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed the default scoring settings.

    Safe on every startup.  Production schemas are owned by Alembic
    (``alembic upgrade head``); ``create_all`` covers dev/test databases
    where migrations have not run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from repute.database.seed import seed_default_settings

    seed_default_settings(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success, rolls back on error.

    The exception is re-raised after rollback; write paths rely on that to
    surface durable-store failures to their callers.
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a synchronous store function on the default thread pool.

    Exceptions raised by *func* propagate to the awaiting caller unchanged.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
