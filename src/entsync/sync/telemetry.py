"""Kill, death and capture counters fed by host events."""

from __future__ import annotations

import logging
from typing import Any

from entsync.core.identity import EntityResolver, default_resolver
from entsync.storage.entity_store import StatsStore

logger = logging.getLogger(__name__)


class TelemetryAccumulator:
    """
    Increments counters in response to domain events.

    Each increment is a single ``field = field + 1`` statement, so other
    server instances writing the same rows never lose updates.
    """

    def __init__(self, stats: StatsStore, resolver: EntityResolver = default_resolver):
        self.stats = stats
        self.resolver = resolver

    async def elimination(self, killer: Any = None, victim: Any = None) -> dict[str, str]:
        """
        Credit a kill to the killer and a death to the victim.

        Either side may be unknown; only the identified ones are counted.
        Returns the fields incremented, keyed by entity id.
        """
        applied = {}
        killer_id = self.resolver(killer) if killer is not None else None
        victim_id = self.resolver(victim) if victim is not None else None

        if killer_id:
            await self.stats.increment(killer_id, "kills")
            applied[killer_id] = "kills"
        if victim_id:
            await self.stats.increment(victim_id, "deaths")
            # A suicide credits both on the same id.
            applied[victim_id] = "deaths" if victim_id != killer_id else "kills,deaths"

        logger.debug(f"Elimination: killer={killer_id} victim={victim_id}")
        return applied

    async def objective_capture(self, entity: Any = None) -> str | None:
        entity_id = self.resolver(entity) if entity is not None else None
        if not entity_id:
            logger.debug("Objective capture without an identifiable entity")
            return None
        await self.stats.increment(entity_id, "captures")
        logger.debug(f"[{entity_id}] objective captured")
        return entity_id
