"""
Database layer — async SQLite via SQLAlchemy 2.0 + aiosqlite.

Provides:
    • Async engine factory with WAL journalling for SQLite files
    • Base model for ORM entities
    • Schema creation that is safe to run on every start

Usage:
    from alertcrawler.core.database import create_engine_for, init_db

    engine = create_engine_for("sqlite+aiosqlite:///./cache/database.db")
    await init_db(engine)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def _enable_wal(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


# ── Engine ──
def create_engine_for(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    For file-backed SQLite the parent directory is created and the
    connection is switched to WAL mode so exporters can read while the
    crawler writes.
    """
    url = make_url(database_url)
    is_sqlite_file = url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:")

    if is_sqlite_file:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(database_url, echo=echo, future=True)

    if is_sqlite_file:
        event.listen(engine.sync_engine, "connect", _enable_wal)

    return engine


# ── Lifecycle ──
async def init_db(engine: AsyncEngine) -> None:
    """Create all tables if they do not exist."""
    # Registers the ORM tables on Base.metadata
    from alertcrawler.storage import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def close_db(engine: Optional[AsyncEngine]) -> None:
    """Dispose engine connections."""
    if engine is None:
        return
    await engine.dispose()
    logger.info("Database connections closed")
