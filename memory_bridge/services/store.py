"""
Durable memory storage.

All mutation goes through one INSERT ... ON CONFLICT (text_norm) statement,
so the unique constraint, not an application-level check, decides which
of two concurrent ingests of the same text creates the row.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import cast, delete, desc, func, select, true
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from memory_bridge.core.database import (
    check_database_connection, create_session_factory, init_database, session_scope
)
from memory_bridge.core.exceptions import StorageError
from memory_bridge.models.memory import Memory, new_memory_id, utcnow

logger = logging.getLogger(__name__)

# Columns an upsert may refresh on an existing row
MUTABLE_COLUMNS = ("tags", "type", "source", "ts", "last_updated")


@dataclass
class MemoryRecord:
    """Values for a memory about to be written."""
    text: str
    text_norm: str
    type: str = "note"
    tags: Sequence[str] = ()
    source: str = "manual"
    ts: Optional[datetime] = None
    embedding: Optional[List[float]] = None


@dataclass
class UpsertResult:
    id: str
    last_updated: datetime
    created: bool


@dataclass
class EmbeddedMemory:
    """Row projection used by the semantic duplicate scan."""
    id: str
    text: str
    embedding: List[float]


def day_bounds_utc(tz_name: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Naive-UTC bounds of the current calendar day in the given time zone.

    Args:
        tz_name: IANA time zone name
        now: Reference instant (aware, or naive UTC); defaults to the current time

    Returns:
        Tuple[datetime, datetime]: [start, end) as naive UTC datetimes
    """
    tz = ZoneInfo(tz_name)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    local_day: date = now.astimezone(tz).date()
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)

    def to_naive_utc(value: datetime) -> datetime:
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    return to_naive_utc(start), to_naive_utc(end)


class MemoryStore:
    """
    Memory persistence over a SQLAlchemy async engine.

    Works against PostgreSQL (asyncpg) and SQLite (aiosqlite); the only
    dialect-specific parts are the upsert statement and tag containment.
    """

    def __init__(self, engine: AsyncEngine, timezone_name: str = "UTC"):
        """
        Initialize the store.

        Args:
            engine: Async engine, created once at process start
            timezone_name: Zone that defines "today" for list_created_today
        """
        self.engine = engine
        self.session_factory = create_session_factory(engine)
        self.timezone_name = timezone_name
        self.dialect = engine.dialect.name

    async def init_schema(self) -> None:
        try:
            await init_database(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Schema creation failed: {e}", operation="init_schema")

    async def ping(self) -> bool:
        return await check_database_connection(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database connections closed")

    def _insert(self):
        if self.dialect == "postgresql":
            return pg_insert(Memory)
        if self.dialect == "sqlite":
            return sqlite_insert(Memory)
        raise StorageError(f"Unsupported database dialect: {self.dialect}", operation="upsert")

    async def upsert(self, record: MemoryRecord, update_existing: bool = True) -> UpsertResult:
        """
        Insert a memory, resolving a text_norm conflict inside the statement.

        Args:
            record: Values to write
            update_existing: On conflict, refresh tags/type/source/ts/last_updated
                of the surviving row. When False the conflict is a no-op that
                still returns the surviving row.

        Returns:
            UpsertResult: Surviving row id and last_updated; created is True
            only when this call inserted the row

        Raises:
            StorageError: On any database failure
        """
        now = utcnow()
        memory_id = new_memory_id()

        stmt = self._insert().values(
            id=memory_id,
            text=record.text,
            text_norm=record.text_norm,
            type=record.type,
            tags=list(record.tags),
            source=record.source,
            ts=record.ts,
            created_at=now,
            last_updated=now,
            embedding=record.embedding,
        )

        if update_existing:
            set_ = {column: stmt.excluded[column] for column in MUTABLE_COLUMNS}
        else:
            # No-op update so RETURNING still yields the existing row
            set_ = {"text_norm": stmt.excluded.text_norm}

        stmt = stmt.on_conflict_do_update(
            index_elements=[Memory.text_norm],
            set_=set_,
        ).returning(Memory.id, Memory.last_updated)

        try:
            async with session_scope(self.session_factory) as session:
                row = (await session.execute(stmt)).one()
        except SQLAlchemyError as e:
            raise StorageError(f"Upsert failed: {e}", operation="upsert")

        created = row.id == memory_id
        if created:
            logger.info(f"Created memory {row.id}")
        else:
            logger.info(f"Resolved ingest to existing memory {row.id} (updated={update_existing})")

        return UpsertResult(id=row.id, last_updated=row.last_updated, created=created)

    async def _fetch(self, stmt, operation: str) -> List[Memory]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(f"Query failed: {e}", operation=operation)

    @staticmethod
    def _recency(stmt):
        return stmt.order_by(desc(Memory.last_updated), desc(Memory.created_at), Memory.id)

    async def get_by_id(self, memory_id: str) -> Optional[Memory]:
        rows = await self._fetch(select(Memory).where(Memory.id == memory_id), "get_by_id")
        return rows[0] if rows else None

    async def get_by_text_norm(self, text_norm: str) -> Optional[Memory]:
        rows = await self._fetch(select(Memory).where(Memory.text_norm == text_norm), "get_by_text_norm")
        return rows[0] if rows else None

    async def delete_by_id(self, memory_id: str) -> bool:
        """
        Delete one memory.

        Returns:
            bool: True if a row was removed
        """
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(delete(Memory).where(Memory.id == memory_id))
                deleted = result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Delete failed: {e}", operation="delete_by_id")

        if deleted:
            logger.info(f"Deleted memory {memory_id}")
        return deleted

    async def list_all(self, limit: int) -> List[Memory]:
        return await self._fetch(self._recency(select(Memory)).limit(limit), "list_all")

    async def list_by_tag(self, tag: str, limit: Optional[int] = None) -> List[Memory]:
        """Memories whose tags contain the given tag."""
        if self.dialect == "postgresql":
            stmt = select(Memory).where(cast(Memory.tags, JSONB).contains([tag]))
        else:
            tag_values = func.json_each(Memory.tags).table_valued("value")
            stmt = select(Memory).join(tag_values, true()).where(tag_values.c.value == tag)

        stmt = self._recency(stmt)
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch(stmt, "list_by_tag")

    async def list_by_type(self, memory_type: str, limit: Optional[int] = None) -> List[Memory]:
        stmt = self._recency(select(Memory).where(Memory.type == memory_type))
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch(stmt, "list_by_type")

    async def list_created_today(self, now: Optional[datetime] = None) -> List[Memory]:
        """Memories created during the current calendar day of the configured zone."""
        start, end = day_bounds_utc(self.timezone_name, now)
        stmt = self._recency(
            select(Memory).where(Memory.created_at >= start, Memory.created_at < end)
        )
        return await self._fetch(stmt, "list_created_today")

    async def search_text_norm(self, fragment: str, limit: int) -> List[Memory]:
        """Memories whose text_norm contains the fragment literally."""
        stmt = self._recency(
            select(Memory).where(Memory.text_norm.contains(fragment, autoescape=True))
        ).limit(limit)
        return await self._fetch(stmt, "search_text_norm")

    async def list_all_embedded(self) -> List[EmbeddedMemory]:
        """
        Snapshot of every memory that carries an embedding.

        Used only by the semantic duplicate scan.
        """
        stmt = select(Memory.id, Memory.text, Memory.embedding).where(Memory.embedding.isnot(None))
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Query failed: {e}", operation="list_all_embedded")

        return [
            EmbeddedMemory(id=row.id, text=row.text, embedding=[float(x) for x in row.embedding])
            for row in rows
            if row.embedding
        ]
