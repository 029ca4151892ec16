"""
Periodic sweep driver.

Runs a sweep every ``interval_seconds``. A tick that fires while a sweep
is still running is skipped, so two sweeps never overlap on one
directory. An optional gate callable can hold sweeps back (for example
while the host server is not live).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from entsync.core.types import SweepResult

logger = logging.getLogger(__name__)


class SweepScheduler:
    """
    Background task that triggers sweeps on a fixed period.

    Usage:
        scheduler = SweepScheduler(sweep.run, interval_seconds=60)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        sweep: Callable[[], Awaitable[SweepResult]],
        interval_seconds: float = 60.0,
        gate: Callable[[], bool] | None = None,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._sweep = sweep
        self.interval_seconds = interval_seconds
        self._gate = gate
        self._lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None
        self.last_result: SweepResult | None = None
        self.runs = 0
        self.skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def sweep_in_progress(self) -> bool:
        return self._lock.locked()

    async def start(self) -> None:
        """Start periodic sweeps."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Started periodic sync every {self.interval_seconds} seconds")

    async def stop(self) -> None:
        """Stop periodic sweeps; a sweep in progress is cancelled."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Stopped periodic sync")

    async def run_once(self) -> SweepResult | None:
        """
        Run a sweep now unless one is already running.

        Returns the sweep result, or None when skipped.
        """
        if self._lock.locked():
            self.skipped_ticks += 1
            logger.info("Previous sweep still running, skipping this tick")
            return None

        async with self._lock:
            result = await self._sweep()
            self.runs += 1
            self.last_result = result
            return result

    async def _loop(self) -> None:
        """Background loop for periodic sweeps."""
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if self._gate is not None and not self._gate():
                    self.skipped_ticks += 1
                    logger.debug("Sweep gate closed, skipping this tick")
                    continue

                await self.run_once()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Periodic sync error: {e}", exc_info=True)
