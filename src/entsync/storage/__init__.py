"""Storage providers for entsync: the relational table and the JSON directory."""

from entsync.storage.entity_store import (
    STATS_FIELDS,
    Database,
    EntityStore,
    StatsStore,
    build_tables,
    decode_payload,
)
from entsync.storage.file_store import FileStore, dump_json

__all__ = [
    "Database",
    "EntityStore",
    "StatsStore",
    "STATS_FIELDS",
    "build_tables",
    "decode_payload",
    "FileStore",
    "dump_json",
]
