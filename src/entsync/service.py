"""
SyncService - main orchestrator for entsync.

Builds the stores and sync components from ``Settings`` and wires them to
the host's event bus.

Usage:
======

    from entsync.core.config import get_settings
    from entsync.events import EventBus, EntityEvent, ENTITY_ARRIVED
    from entsync.service import SyncService

    bus = EventBus()
    service = SyncService(get_settings(), bus=bus)

    # Create tables, run the initial sweep, start the schedule, subscribe handlers
    await service.mount()

    # Host side
    await bus.emit(EntityEvent(ENTITY_ARRIVED, entity="76561198000000001"))

    # Unsubscribe handlers and stop the schedule
    await service.close()

A missing data directory leaves the service dormant: nothing is
scheduled or subscribed, and the host keeps running.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from entsync.core.config import Settings
from entsync.core.identity import EntityResolver, IdentityPolicy, default_resolver
from entsync.core.types import SweepResult
from entsync.events.bus import (
    ENTITY_ARRIVED,
    ENTITY_ELIMINATED,
    ENTITY_LEFT,
    OBJECTIVE_CAPTURED,
    EntityEvent,
    EventBus,
)
from entsync.storage.entity_store import Database, EntityStore, StatsStore
from entsync.storage.file_store import FileStore
from entsync.sync.lifecycle import LifecycleSync
from entsync.sync.locks import EntityLocks
from entsync.sync.scheduler import SweepScheduler
from entsync.sync.sweep import DirectorySweep
from entsync.sync.telemetry import TelemetryAccumulator

logger = logging.getLogger(__name__)


class SyncService:
    """
    Owns one data directory, one database and the handlers between them.

    Telemetry components exist only when ``settings.telemetry_enabled``.
    """

    def __init__(
        self,
        settings: Settings,
        bus: EventBus | None = None,
        resolver: EntityResolver = default_resolver,
        sweep_gate: Callable[[], bool] | None = None,
        engine: AsyncEngine | None = None,
    ):
        self.settings = settings
        self.bus = bus
        self._prepared = False
        self._mounted = False
        self._dormant = False

        self.db = Database(
            settings.database_url,
            table_prefix=settings.table_prefix,
            engine=engine,
            with_stats=settings.telemetry_enabled,
        )
        self.files = FileStore(
            settings.data_dir,
            settings_filename=settings.settings_filename,
            allow_list_filename=settings.allow_list_filename,
            pretty=settings.pretty_json,
        )
        self.entities = EntityStore(self.db, server_id=settings.server_id)
        self.stats = StatsStore(self.db) if settings.telemetry_enabled else None
        self.identity = IdentityPolicy(
            pattern=settings.entity_id_pattern or None,
            settings_id=settings.settings_entity_id,
        )
        self.locks = EntityLocks()

        self.sweep = DirectorySweep(
            self.files,
            self.entities,
            identity=self.identity,
            stats=self.stats,
            locks=self.locks,
            gate_threshold=(
                settings.settings_gate_threshold if settings.settings_gate_enabled else None
            ),
        )
        self.lifecycle = LifecycleSync(
            self.files,
            self.entities,
            stats=self.stats,
            locks=self.locks,
            resolver=resolver,
        )
        self.telemetry = (
            TelemetryAccumulator(self.stats, resolver=resolver) if self.stats is not None else None
        )
        self.scheduler = SweepScheduler(
            self.sweep.run,
            interval_seconds=settings.sync_interval,
            gate=sweep_gate,
        )

    # ==================== Lifecycle ====================

    async def prepare(self) -> None:
        """Create tables. Raises StoreError if the schema cannot be created."""
        if self._prepared:
            return
        await self.db.init_db()
        self._prepared = True

    async def mount(self) -> bool:
        """
        Start syncing.

        Returns False if the data directory is missing and the service stays dormant.
        """
        if self._mounted:
            return True

        await self.prepare()

        if not self.files.exists():
            if not self._dormant:
                logger.warning(
                    f"Data path {self.files.directory} does not exist, sync shall remain dormant"
                )
            self._dormant = True
            return False
        self._dormant = False
        logger.info(f"Data path exists at {self.files.directory}")

        await self.scheduler.run_once()

        if self.settings.sync_enabled:
            await self.scheduler.start()
        else:
            logger.info("Periodic sync disabled")

        self._subscribe()
        self._mounted = True
        return True

    async def unmount(self) -> None:
        """Unsubscribe handlers and stop periodic sweeps."""
        self._unsubscribe()
        if self.scheduler.is_running:
            await self.scheduler.stop()
        self._mounted = False

    async def close(self) -> None:
        await self.unmount()
        self.lifecycle.sessions.clear()
        await self.db.close()

    async def run_sweep(self) -> SweepResult | None:
        """Run one sweep now; None if one is already in progress."""
        await self.prepare()
        return await self.scheduler.run_once()

    # ==================== Event wiring ====================

    def _handlers(self) -> list[tuple[str, Callable[[EntityEvent], Any]]]:
        handlers = [
            (ENTITY_ARRIVED, self._on_arrived),
            (ENTITY_LEFT, self._on_left),
        ]
        if self.telemetry is not None:
            handlers += [
                (ENTITY_ELIMINATED, self._on_eliminated),
                (OBJECTIVE_CAPTURED, self._on_captured),
            ]
        return handlers

    def _subscribe(self) -> None:
        if self.bus is None:
            return
        for topic, handler in self._handlers():
            self.bus.subscribe(topic, handler)
        logger.info(f"Subscribed {len(self._handlers())} event handlers")

    def _unsubscribe(self) -> None:
        if self.bus is None:
            return
        for _, handler in self._handlers():
            self.bus.unsubscribe(handler)

    async def _on_arrived(self, event: EntityEvent) -> None:
        await self.lifecycle.arrival(event.entity)

    async def _on_left(self, event: EntityEvent) -> None:
        await self.lifecycle.departure(event.entity)

    async def _on_eliminated(self, event: EntityEvent) -> None:
        await self.telemetry.elimination(killer=event.killer, victim=event.victim)

    async def _on_captured(self, event: EntityEvent) -> None:
        await self.telemetry.objective_capture(event.entity)

    # ==================== Status ====================

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    @property
    def is_dormant(self) -> bool:
        return self._dormant

    def status(self) -> dict[str, Any]:
        last = self.scheduler.last_result
        return {
            "mounted": self._mounted,
            "dormant": self._dormant,
            "data_dir": str(self.files.directory),
            "sync_enabled": self.settings.sync_enabled,
            "sync_interval": self.settings.sync_interval,
            "telemetry_enabled": self.stats is not None,
            "sweeps_run": self.scheduler.runs,
            "ticks_skipped": self.scheduler.skipped_ticks,
            "open_sessions": len(self.lifecycle.sessions),
            "last_sweep": last.to_dict() if last else None,
        }
