"""
Incremental sync driven by entities arriving and leaving.

- Arrival trusts the store: the record overwrites the local file.
- Departure trusts the file: the file overwrites the record.

Neither compares timestamps. With telemetry enabled, arrival also opens a
session and departure credits its duration to ``playtime_seconds``.
Sessions live only in this process; a restart between arrival and
departure loses that interval.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from entsync.core.identity import EntityResolver, default_resolver
from entsync.core.types import EntityDataError, FileStoreError, utc_now
from entsync.storage.entity_store import EntityStore, StatsStore, decode_payload
from entsync.storage.file_store import FileStore
from entsync.sync.counters import CounterDelta
from entsync.sync.locks import EntityLocks

logger = logging.getLogger(__name__)


class SessionTracker:
    """Join times of entities currently present, keyed by entity id."""

    def __init__(self):
        self._sessions: dict[str, datetime] = {}

    def open(self, entity_id: str, joined_at: datetime) -> None:
        if entity_id in self._sessions:
            logger.debug(f"[{entity_id}] arrival with a session already open, restarting it")
        self._sessions[entity_id] = joined_at

    def close(self, entity_id: str) -> datetime | None:
        """Remove and return the join time, if a session was open."""
        return self._sessions.pop(entity_id, None)

    def get(self, entity_id: str) -> datetime | None:
        return self._sessions.get(entity_id)

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class LifecycleSync:
    """Arrival and departure handlers for one data directory and store."""

    def __init__(
        self,
        files: FileStore,
        entities: EntityStore,
        stats: StatsStore | None = None,
        locks: EntityLocks | None = None,
        resolver: EntityResolver = default_resolver,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.files = files
        self.entities = entities
        self.stats = stats
        self.locks = locks or EntityLocks()
        self.resolver = resolver
        self.clock = clock
        self.sessions = SessionTracker()

    def _resolve(self, handle: Any, event: str) -> str | None:
        entity_id = self.resolver(handle)
        if not entity_id:
            logger.debug(f"{event}: could not resolve entity id from {handle!r}")
        return entity_id

    async def arrival(self, handle: Any) -> bool:
        """
        Load the stored state into the local file.

        Returns True if the file was written.
        """
        entity_id = self._resolve(handle, "arrival")
        if not entity_id:
            return False

        written = False
        async with self.locks.hold(entity_id):
            record = await self.entities.find_one(entity_id)
            if record is None:
                logger.debug(f"[{entity_id}] arrival with no stored record, keeping local file")
            else:
                try:
                    path = self.files.write(entity_id, decode_payload(record.payload, entity_id))
                    written = True
                    logger.info(f"[{entity_id}] loaded stored state into {path.name}")
                except (FileStoreError, EntityDataError) as e:
                    logger.warning(f"[{entity_id}] could not load stored state on arrival: {e}")

            if self.stats is not None:
                await self.stats.ensure(entity_id)
                self.sessions.open(entity_id, self.clock())

        return written

    async def departure(self, handle: Any) -> bool:
        """
        Save the local file into the store and close the session.

        Returns True if the store was written.
        """
        entity_id = self._resolve(handle, "departure")
        if not entity_id:
            return False

        saved = False
        async with self.locks.hold(entity_id):
            joined_at = self.sessions.close(entity_id)
            try:
                if self.files.file_exists(entity_id):
                    document = self.files.read(entity_id)
                    await self.entities.upsert(entity_id, document)
                    saved = True
                    logger.info(f"[{entity_id}] saved local state to store")
                else:
                    logger.debug(f"[{entity_id}] departure with no local file")
            except (FileStoreError, EntityDataError) as e:
                logger.warning(f"[{entity_id}] could not save local state on departure: {e}")

            if self.stats is not None and joined_at is not None:
                seconds = int((self.clock() - joined_at).total_seconds())
                delta = CounterDelta(playtime_seconds=max(seconds, 0))
                if not delta.is_zero():
                    await self.stats.add(entity_id, delta.increments())
                    logger.debug(f"[{entity_id}] credited {seconds}s playtime")

        return saved
