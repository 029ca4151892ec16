"""Host event plumbing."""

from entsync.events.bus import (
    ENTITY_ARRIVED,
    ENTITY_ELIMINATED,
    ENTITY_LEFT,
    OBJECTIVE_CAPTURED,
    EntityEvent,
    EventBus,
)

__all__ = [
    "EventBus",
    "EntityEvent",
    "ENTITY_ARRIVED",
    "ENTITY_LEFT",
    "ENTITY_ELIMINATED",
    "OBJECTIVE_CAPTURED",
]
