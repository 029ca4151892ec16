"""
entsync - two-way reconciliation of per-entity JSON files with a relational table.

Whichever side holds the more recently modified state of an entity is
propagated to the other; stats counters are accumulated rather than
overwritten.
"""

__version__ = "0.3.0"

from entsync.core.config import Settings, get_settings
from entsync.events.bus import EntityEvent, EventBus
from entsync.service import SyncService

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "EventBus",
    "EntityEvent",
    "SyncService",
]
