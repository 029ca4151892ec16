"""
Relational storage for entity records and accumulated stats.

Two tables, named after the configured prefix:

- ``<prefix>PlayerData``: one row per entity with its JSON payload, the
  time of the last write and the server that made it.
- ``<prefix>PlayerStats``: accumulating counters, present only when
  telemetry is enabled.

Every SQLAlchemy failure surfaces as ``StoreError`` so callers can tell a
store outage apart from a bad document.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from entsync.core.types import (
    COUNTER_FIELDS,
    EntityDataError,
    EntityRecord,
    StatsRecord,
    StoreError,
    utc_now,
)

logger = logging.getLogger(__name__)

STATS_FIELDS: tuple[str, ...] = ("playtime_seconds", *COUNTER_FIELDS)


def build_tables(prefix: str = "KOTH_") -> tuple[MetaData, Table, Table]:
    """Build table definitions for the given name prefix."""
    metadata = MetaData()
    entities = Table(
        f"{prefix}PlayerData",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("player_id", String(64), unique=True, nullable=False),
        Column("lastsave", DateTime),
        Column("serversave", Integer),
        Column("playerdata", JSON),
    )
    stats = Table(
        f"{prefix}PlayerStats",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("player_id", String(64), unique=True, nullable=False),
        Column("playtime_seconds", Integer, nullable=False, default=0),
        Column("kills", Integer, nullable=False, default=0),
        Column("deaths", Integer, nullable=False, default=0),
        Column("captures", Integer, nullable=False, default=0),
        Column("last_updated", DateTime),
    )
    return metadata, entities, stats


def decode_payload(raw: Any, entity_id: str | None = None) -> Any:
    """Some engines hand JSON columns back as text; decode those."""
    if isinstance(raw, (str, bytes)):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise EntityDataError(
                f"Stored payload for {entity_id} is not valid JSON: {e}",
                entity_id=entity_id,
                source="store",
            ) from e
    return raw


class Database:
    """
    Async engine plus table definitions shared by the entity and stats stores.

    Usage:
        db = Database("sqlite+aiosqlite:///koth.db")
        await db.init_db()
        ...
        await db.close()
    """

    def __init__(
        self,
        database_url: str | None = None,
        table_prefix: str = "KOTH_",
        engine: AsyncEngine | None = None,
        with_stats: bool = False,
    ):
        if engine is None and not database_url:
            raise ValueError("Database requires a database_url or an engine")
        self.database_url = database_url
        self.engine = engine or create_async_engine(database_url, echo=False)
        self.async_session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self.with_stats = with_stats
        self.metadata, self.entities, self.stats = build_tables(table_prefix)

    async def init_db(self) -> None:
        """Create tables if they don't exist."""
        tables = [self.entities]
        if self.with_stats:
            tables.append(self.stats)
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(self.metadata.create_all, tables=tables)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create tables: {e}")
            raise StoreError(f"Failed to create tables: {e}") from e
        logger.info(f"Initialized tables: {', '.join(t.name for t in tables)}")

    async def close(self) -> None:
        """Close the database connection."""
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self):
        """Session that commits on success and maps engine errors to StoreError."""
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreError(str(e)) from e
            except Exception:
                await session.rollback()
                raise


class EntityStore:
    """Find, list and upsert entity records keyed by entity id."""

    def __init__(self, db: Database, server_id: int = 0):
        self.db = db
        self.server_id = server_id
        self._table = db.entities

    def _to_record(self, row: Mapping[str, Any]) -> EntityRecord:
        return EntityRecord(
            entity_id=row["player_id"],
            last_save=row["lastsave"],
            owning_server=row["serversave"],
            payload=row["playerdata"],
        )

    async def find_one(self, entity_id: str) -> EntityRecord | None:
        async with self.db.session() as session:
            result = await session.execute(
                select(self._table).where(self._table.c.player_id == entity_id)
            )
            row = result.mappings().first()
        return self._to_record(row) if row else None

    async def find_all(self) -> list[EntityRecord]:
        async with self.db.session() as session:
            result = await session.execute(select(self._table).order_by(self._table.c.id))
            rows = result.mappings().all()
        return [self._to_record(row) for row in rows]

    async def upsert(
        self,
        entity_id: str,
        payload: Any,
        last_save: datetime | None = None,
    ) -> EntityRecord:
        """
        Create or overwrite the record for ``entity_id``.

        ``last_save`` defaults to now and ``owning_server`` is always this
        server. A concurrent insert from another instance turns into an
        update on retry.
        """
        values = {
            "lastsave": last_save or utc_now(),
            "serversave": self.server_id,
            "playerdata": payload,
        }
        for attempt in (1, 2):
            try:
                async with self.db.session() as session:
                    result = await session.execute(
                        update(self._table)
                        .where(self._table.c.player_id == entity_id)
                        .values(**values)
                    )
                    if result.rowcount == 0:
                        await session.execute(
                            insert(self._table).values(player_id=entity_id, **values)
                        )
                break
            except StoreError as e:
                if attempt == 2 or not isinstance(e.__cause__, IntegrityError):
                    raise
                logger.debug(f"[{entity_id}] insert raced another writer, retrying as update")

        return EntityRecord(
            entity_id=entity_id,
            last_save=values["lastsave"],
            owning_server=self.server_id,
            payload=payload,
        )


class StatsStore:
    """Accumulating counters, updated with field-level increments only."""

    def __init__(self, db: Database):
        self.db = db
        self._table = db.stats

    def _to_record(self, row: Mapping[str, Any]) -> StatsRecord:
        return StatsRecord(
            entity_id=row["player_id"],
            playtime_seconds=row["playtime_seconds"] or 0,
            kills=row["kills"] or 0,
            deaths=row["deaths"] or 0,
            captures=row["captures"] or 0,
            last_updated=row["last_updated"],
        )

    async def get(self, entity_id: str) -> StatsRecord | None:
        async with self.db.session() as session:
            result = await session.execute(
                select(self._table).where(self._table.c.player_id == entity_id)
            )
            row = result.mappings().first()
        return self._to_record(row) if row else None

    async def _ensure_row(self, entity_id: str) -> bool:
        """Insert a zeroed row if none exists. Returns True if one was created."""
        async with self.db.session() as session:
            exists = await session.execute(
                select(self._table.c.id).where(self._table.c.player_id == entity_id)
            )
            if exists.first() is not None:
                return False
        try:
            async with self.db.session() as session:
                await session.execute(
                    insert(self._table).values(
                        player_id=entity_id,
                        playtime_seconds=0,
                        kills=0,
                        deaths=0,
                        captures=0,
                        last_updated=utc_now(),
                    )
                )
        except StoreError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            # Another instance created it first.
            return False
        return True

    async def ensure(self, entity_id: str) -> StatsRecord:
        """Return the stats row, creating a zeroed one if absent."""
        if await self._ensure_row(entity_id):
            logger.debug(f"[{entity_id}] created stats row")
        return await self.get(entity_id)

    async def add(self, entity_id: str, increments: Mapping[str, int]) -> None:
        """
        Atomically add ``increments`` to the named counters.

        Runs as ``SET field = field + n`` so concurrent writers on other
        instances never lose each other's updates.
        """
        unknown = set(increments) - set(STATS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown stats fields: {sorted(unknown)}")
        deltas = {name: int(n) for name, n in increments.items() if n}
        if not deltas:
            return

        values: dict[str, Any] = {
            name: self._table.c[name] + n for name, n in deltas.items()
        }
        values["last_updated"] = utc_now()
        await self._ensure_row(entity_id)
        async with self.db.session() as session:
            await session.execute(
                update(self._table)
                .where(self._table.c.player_id == entity_id)
                .values(**values)
            )

    async def increment(self, entity_id: str, field: str, amount: int = 1) -> None:
        await self.add(entity_id, {field: amount})
