"""
alert_store.py — Persistent, uuid-keyed alert table with insert-if-absent writes.

The crawler revisits the same area every cycle and the feed keeps reporting
an alert for as long as it is active, so the same uuid arrives many times.
Writes therefore use SQLite's `INSERT ... ON CONFLICT DO NOTHING`: the first
observation of a uuid is stored, later ones are no-ops, and a duplicate key
is never reported to the caller as an error.

Records are never updated or deleted here.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from alertcrawler.core.config import Settings
from alertcrawler.core.database import close_db, create_engine_for, init_db
from alertcrawler.core.errors import StorageError
from alertcrawler.ingestion.models import AlertRecord
from alertcrawler.storage.models import AlertRow

logger = logging.getLogger(__name__)


def _insert_if_absent(record: AlertRecord):
    return (
        sqlite_insert(AlertRow.__table__)
        .values({
            AlertRow.uuid: record.uuid,
            AlertRow.type: record.type,
            AlertRow.pub_millis: record.pub_millis,
            AlertRow.latitude: record.latitude,
            AlertRow.longitude: record.longitude,
        })
        .on_conflict_do_nothing(index_elements=[AlertRow.uuid])
    )


class AlertStore:
    """
    Async access to the alert table.

    Usage:
        store = AlertStore.from_settings(settings)
        await store.init_schema()
        inserted = await store.upsert_many(records)
        await store.close()
    """

    def __init__(self, engine: AsyncEngine, *, location: str = ""):
        self.engine = engine
        self.location = location or str(engine.url)
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, database_url: str) -> "AlertStore":
        return cls(create_engine_for(database_url), location=database_url)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlertStore":
        return cls(create_engine_for(settings.database_url), location=settings.DB_PATH)

    async def init_schema(self) -> None:
        """Create the table if missing. Safe on every start."""
        try:
            await init_db(self.engine)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(self.location, str(e)) from e

    async def upsert_if_absent(self, record: AlertRecord) -> bool:
        """Store `record` unless its uuid is already present. Returns True if written."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(_insert_if_absent(record))
        return result.rowcount == 1

    async def upsert_many(self, records: Iterable[AlertRecord]) -> int:
        """Insert-if-absent for a batch in one transaction. Returns the number of new rows."""
        records = list(records)
        inserted = 0
        async with self._session_factory() as session:
            async with session.begin():
                for record in records:
                    result = await session.execute(_insert_if_absent(record))
                    inserted += result.rowcount
        logger.debug("Stored %d new of %d alerts", inserted, len(records))
        return inserted

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(AlertRow))
            return int(result.scalar_one())

    async def get(self, uuid: str) -> Optional[AlertRecord]:
        async with self._session_factory() as session:
            row = await session.get(AlertRow, uuid)
            return row.to_record() if row else None

    async def fetch_all(self) -> List[AlertRecord]:
        """All stored alerts, oldest publication first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(AlertRow).order_by(AlertRow.pub_millis, AlertRow.uuid)
            )
            return [row.to_record() for row in result.scalars()]

    async def close(self) -> None:
        await close_db(self.engine)
