"""Core configuration, types and identity rules for entsync."""

from entsync.core.config import Settings, get_settings, load_settings_from_yaml, reset_settings
from entsync.core.identity import IdentityPolicy, default_resolver, is_settings_id
from entsync.core.types import (
    COUNTER_FIELDS,
    EntityDataError,
    EntityRecord,
    EntSyncError,
    FileStoreError,
    StatsRecord,
    StoreError,
    SweepResult,
    SyncAction,
    utc_now,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "load_settings_from_yaml",
    "reset_settings",
    # Identity
    "IdentityPolicy",
    "default_resolver",
    "is_settings_id",
    # Types
    "COUNTER_FIELDS",
    "EntityRecord",
    "StatsRecord",
    "SweepResult",
    "SyncAction",
    "utc_now",
    # Errors
    "EntSyncError",
    "FileStoreError",
    "EntityDataError",
    "StoreError",
]
