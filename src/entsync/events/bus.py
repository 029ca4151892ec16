"""EventBus: async in-process pub/sub for host lifecycle notifications."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from entsync.core.types import utc_now

logger = logging.getLogger(__name__)

ENTITY_ARRIVED = "entity.arrived"
ENTITY_LEFT = "entity.left"
ENTITY_ELIMINATED = "entity.eliminated"
OBJECTIVE_CAPTURED = "objective.captured"


@dataclass
class EntityEvent:
    """A notification from the host. Handles are resolved to ids by the consumers."""
    topic: str
    entity: Any = None
    killer: Any = None
    victim: Any = None
    timestamp: datetime = field(default_factory=utc_now)


Callback = Callable[[EntityEvent], Any]


class EventBus:
    """In-process event bus.

    Subscribers register with topic patterns (glob-style).
    ``emit()`` is async; ``emit_sync()`` schedules onto the registered
    loop from host threads via ``call_soon_threadsafe``.
    A failing subscriber is logged and never propagates into the host.
    """

    def __init__(self) -> None:
        self._subscribers: list[tuple[str, Callback]] = []
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    # -- publish --

    async def emit(self, event: EntityEvent) -> None:
        """Emit an event (async context)."""
        await self._notify(event)

    def emit_sync(self, event: EntityEvent) -> bool:
        """Emit from synchronous host code.

        Returns False (and drops the event) when no running loop is registered.
        """
        loop = self._loop
        if loop is not None and loop.is_running():
            loop.call_soon_threadsafe(asyncio.ensure_future, self._notify(event))
            return True
        logger.warning(f"No running event loop, dropped {event.topic} event")
        return False

    # -- subscribe --

    def subscribe(self, topic_pattern: str, callback: Callback) -> None:
        """Subscribe to events matching *topic_pattern* (fnmatch glob)."""
        with self._lock:
            self._subscribers.append((topic_pattern, callback))

    def unsubscribe(self, callback: Callback) -> None:
        with self._lock:
            self._subscribers = [
                (p, cb) for p, cb in self._subscribers if cb != callback
            ]

    def subscriber_count(self, topic: str | None = None) -> int:
        with self._lock:
            if topic is None:
                return len(self._subscribers)
            return sum(1 for p, _ in self._subscribers if fnmatch.fnmatch(topic, p))

    # -- lifecycle --

    def set_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    # -- internals --

    async def _notify(self, event: EntityEvent) -> None:
        with self._lock:
            subs = list(self._subscribers)
        for pattern, cb in subs:
            if fnmatch.fnmatch(event.topic, pattern):
                try:
                    result = cb(event)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception:
                    logger.exception("Subscriber error for topic=%s", event.topic)
