"""
Core data types for entsync.

Records mirror the relational rows, results summarize a reconciliation
pass, and the exception hierarchy separates per-entity failures (which a
sweep absorbs) from store failures (which abort the pass).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

COUNTER_FIELDS: tuple[str, ...] = ("kills", "deaths", "captures")


def utc_now() -> datetime:
    """Naive UTC now, matching the stored column type."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Enums

class SyncAction(str, Enum):
    """Outcome of the freshness comparison for one entity."""
    PUSH_FILE_TO_STORE = "push_file_to_store"
    PUSH_STORE_TO_FILE = "push_store_to_file"
    MATERIALIZE = "materialize"
    NOOP = "noop"


# Records

@dataclass
class EntityRecord:
    """One row of the entity table."""
    entity_id: str
    last_save: datetime | None
    owning_server: int | None
    payload: Any


@dataclass
class StatsRecord:
    """Accumulated counters for one entity."""
    entity_id: str
    playtime_seconds: int = 0
    kills: int = 0
    deaths: int = 0
    captures: int = 0
    last_updated: datetime | None = None

    def counters(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in COUNTER_FIELDS}


@dataclass
class SweepResult:
    """Best-effort summary of one sweep pass."""
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None
    dormant: bool = False
    aborted: bool = False
    settings_pushed: bool = False
    pushed_to_store: int = 0
    pushed_to_file: int = 0
    materialized: int = 0
    stats_merged: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.pushed_to_store + self.pushed_to_file

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "dormant": self.dormant,
            "aborted": self.aborted,
            "settings_pushed": self.settings_pushed,
            "pushed_to_store": self.pushed_to_store,
            "pushed_to_file": self.pushed_to_file,
            "materialized": self.materialized,
            "stats_merged": self.stats_merged,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


# Exceptions

class EntSyncError(Exception):
    """Base class for entsync errors."""


class FileStoreError(EntSyncError):
    """An entity file could not be read, listed or written."""

    def __init__(self, message: str, entity_id: str | None = None, path: Any = None):
        super().__init__(message)
        self.entity_id = entity_id
        self.path = path


class EntityDataError(EntSyncError):
    """A document on either side is not valid JSON."""

    def __init__(self, message: str, entity_id: str | None = None, source: str = "file"):
        super().__init__(message)
        self.entity_id = entity_id
        self.source = source


class StoreError(EntSyncError):
    """The relational store failed; the current pass or handler is abandoned."""
