"""
Reconciliation engine.

- policy: file-vs-record freshness decision
- counters: additive merge of reported stats deltas
- sweep: full-directory pass
- lifecycle: arrival/departure incremental sync with sessions
- telemetry: event-driven counter increments
- scheduler: periodic sweep driver
"""

from entsync.sync.counters import CounterDelta, merge_counters
from entsync.sync.lifecycle import LifecycleSync, SessionTracker
from entsync.sync.locks import EntityLocks
from entsync.sync.policy import decide
from entsync.sync.scheduler import SweepScheduler
from entsync.sync.sweep import DirectorySweep
from entsync.sync.telemetry import TelemetryAccumulator

__all__ = [
    "decide",
    "CounterDelta",
    "merge_counters",
    "EntityLocks",
    "DirectorySweep",
    "LifecycleSync",
    "SessionTracker",
    "TelemetryAccumulator",
    "SweepScheduler",
]
