"""
Counter accumulation.

Entity files report *session increments* in an optional ``stats``
sub-document. They are added to the stored totals, never assigned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from entsync.core.types import COUNTER_FIELDS, StatsRecord, utc_now

logger = logging.getLogger(__name__)

STATS_KEY = "stats"


@dataclass(frozen=True)
class CounterDelta:
    """Increments to add to an entity's stats row."""
    playtime_seconds: int = 0
    kills: int = 0
    deaths: int = 0
    captures: int = 0

    def __add__(self, other: CounterDelta) -> CounterDelta:
        if not isinstance(other, CounterDelta):
            return NotImplemented
        return CounterDelta(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })

    def is_zero(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def increments(self) -> dict[str, int]:
        """Non-zero fields, as expected by ``StatsStore.add``."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}

    @classmethod
    def from_document(cls, document: Any) -> CounterDelta | None:
        """
        Extract the ``stats`` sub-document of an entity file.

        Returns None when there is no ``stats`` object. Missing or
        non-integer fields count as zero.
        """
        if not isinstance(document, dict):
            return None
        stats = document.get(STATS_KEY)
        if not isinstance(stats, dict):
            return None
        values = {}
        for name in COUNTER_FIELDS:
            value = stats.get(name, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                if value not in (0, None):
                    logger.debug(f"Ignoring non-integer stats field {name}={value!r}")
                value = 0
            values[name] = value
        return cls(**values)


def merge_counters(
    current: StatsRecord | None,
    delta: CounterDelta,
    entity_id: str | None = None,
    now: datetime | None = None,
) -> StatsRecord:
    """Accumulated totals after adding ``delta``; zero defaults when no row existed."""
    base = current or StatsRecord(entity_id=entity_id or "")
    return StatsRecord(
        entity_id=base.entity_id or (entity_id or ""),
        playtime_seconds=base.playtime_seconds + delta.playtime_seconds,
        kills=base.kills + delta.kills,
        deaths=base.deaths + delta.deaths,
        captures=base.captures + delta.captures,
        last_updated=now or utc_now(),
    )
