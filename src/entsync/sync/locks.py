"""Per-entity asyncio locks so a sweep and a lifecycle event never interleave on one entity."""

import asyncio
from contextlib import asynccontextmanager


class EntityLocks:
    """Lazily created lock per entity id, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, entity_id: str):
        lock = self._locks.setdefault(entity_id, asyncio.Lock())
        self._waiters[entity_id] = self._waiters.get(entity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[entity_id] -= 1
            if self._waiters[entity_id] == 0:
                del self._waiters[entity_id]
                del self._locks[entity_id]

    def __len__(self) -> int:
        return len(self._locks)
