"""
Full-directory reconciliation pass.

One sweep:

1. Does nothing if the data directory is missing (dormant).
2. Pushes the settings sentinel record to its file, one-way, optionally
   gated on the number of ids in the allow-list.
3. Reconciles every entity file with its record, newest side wins,
   equal timestamps go to the store.
4. Adds the file's ``stats`` deltas to the accumulated counters when
   telemetry is enabled.
5. Materializes records that have no file yet.

Per-entity I/O and parse failures are logged and skipped; a store failure
abandons the rest of the pass. The next pass retries either way.

Host contract: the ``stats`` sub-document is read but never cleared here.
The host must reset it once reported, otherwise the same increments are
added again on the next pass.
"""

from __future__ import annotations

import logging

from entsync.core.identity import IdentityPolicy
from entsync.core.types import (
    EntityDataError,
    FileStoreError,
    StoreError,
    SweepResult,
    SyncAction,
    utc_now,
)
from entsync.storage.entity_store import EntityStore, StatsStore, decode_payload
from entsync.storage.file_store import FileStore
from entsync.sync.counters import CounterDelta
from entsync.sync.locks import EntityLocks
from entsync.sync.policy import decide

logger = logging.getLogger(__name__)


class DirectorySweep:
    """
    Reconciles a directory of entity files with the entity table.

    Usage:
        sweep = DirectorySweep(files, entities, identity=IdentityPolicy())
        result = await sweep.run()
    """

    def __init__(
        self,
        files: FileStore,
        entities: EntityStore,
        identity: IdentityPolicy | None = None,
        stats: StatsStore | None = None,
        locks: EntityLocks | None = None,
        gate_threshold: int | None = None,
    ):
        self.files = files
        self.entities = entities
        self.identity = identity or IdentityPolicy()
        self.stats = stats
        self.locks = locks or EntityLocks()
        self.gate_threshold = gate_threshold

    @property
    def settings_id(self) -> str:
        return self.identity.settings_id

    async def run(self) -> SweepResult:
        """Run one pass to completion and return its summary."""
        result = SweepResult()

        if not self.files.exists():
            result.dormant = True
            result.finished_at = utc_now()
            logger.debug(f"Data directory {self.files.directory} missing, sweep skipped")
            return result

        try:
            await self._push_settings(result)
            processed = await self._sync_files(result)
            await self._materialize_missing(processed, result)
        except StoreError as e:
            result.aborted = True
            result.errors.append(f"store: {e}")
            logger.error(f"Sweep aborted by store failure: {e}")
        except FileStoreError as e:
            result.aborted = True
            result.errors.append(f"directory: {e}")
            logger.error(f"Sweep aborted, cannot list data directory: {e}")

        result.finished_at = utc_now()
        logger.info(
            f"Sweep completed: {result.pushed_to_store} to store, "
            f"{result.pushed_to_file} to file, {result.materialized} materialized, "
            f"{result.stats_merged} stats merged, {result.failed} failed"
            + (" (aborted)" if result.aborted else "")
        )
        return result

    # ==================== Settings ====================

    async def _push_settings(self, result: SweepResult) -> None:
        record = await self.entities.find_one(self.settings_id)
        if record is None:
            logger.debug(f"No {self.settings_id} record in store, skipping push")
            return

        if self.gate_threshold is not None:
            active = len(self.files.read_allow_list())
            if active < self.gate_threshold:
                logger.info(
                    f"Skipping {self.settings_id} push: {active} active, "
                    f"need {self.gate_threshold}"
                )
                return

        try:
            payload = decode_payload(record.payload, self.settings_id)
            self.files.write_settings(payload)
        except (FileStoreError, EntityDataError) as e:
            result.failed += 1
            result.errors.append(f"{self.settings_id}: {e}")
            logger.warning(f"Failed to push {self.settings_id}: {e}")
            return

        result.settings_pushed = True
        logger.info(f"Pushed {self.files.settings_filename} from store")

    # ==================== Files ====================

    async def _sync_files(self, result: SweepResult) -> set[str]:
        processed: set[str] = set()
        for entity_id in self.files.list_entity_ids():
            # Counted even on failure so the catch-up pass never clobbers a broken file.
            processed.add(entity_id)
            async with self.locks.hold(entity_id):
                try:
                    await self.sync_entity(entity_id, result)
                except (FileStoreError, EntityDataError) as e:
                    result.failed += 1
                    result.errors.append(f"{entity_id}: {e}")
                    logger.warning(f"[{entity_id}] skipped: {e}")
        return processed

    async def sync_entity(self, entity_id: str, result: SweepResult | None = None) -> SyncAction:
        """
        Reconcile one entity whose file exists.

        The caller is expected to hold the entity's lock.
        """
        result = result if result is not None else SweepResult()

        file_mtime = self.files.mtime(entity_id)
        if file_mtime is None:
            result.skipped += 1
            logger.debug(f"[{entity_id}] file disappeared, skipping")
            return SyncAction.NOOP

        record = await self.entities.find_one(entity_id)
        action = decide(
            file_exists=True,
            file_mtime=file_mtime,
            record_exists=record is not None,
            record_last_save=record.last_save if record else None,
        )

        document = None
        parse_error: EntityDataError | None = None
        if action is SyncAction.PUSH_FILE_TO_STORE or self.stats is not None:
            try:
                document = self.files.read(entity_id)
            except EntityDataError as e:
                parse_error = e

        if action is SyncAction.PUSH_FILE_TO_STORE:
            if parse_error is not None:
                raise parse_error
            await self.entities.upsert(entity_id, document)
            result.pushed_to_store += 1
            logger.debug(f"[{entity_id}] file is newer than store, saved to store")
        else:
            payload = decode_payload(record.payload, entity_id)
            self.files.write(entity_id, payload)
            result.pushed_to_file += 1
            if parse_error is not None:
                logger.warning(f"[{entity_id}] replaced unparseable file from store: {parse_error}")
            else:
                logger.debug(f"[{entity_id}] store is newer than file, wrote file")

        if self.stats is not None and document is not None:
            delta = CounterDelta.from_document(document)
            if delta is not None and not delta.is_zero():
                await self.stats.add(entity_id, delta.increments())
                result.stats_merged += 1
                logger.debug(f"[{entity_id}] merged stats {delta.increments()}")

        return action

    # ==================== Store catch-up ====================

    async def _materialize_missing(self, processed: set[str], result: SweepResult) -> None:
        for record in await self.entities.find_all():
            entity_id = record.entity_id
            if entity_id in processed:
                continue
            if not self.identity.is_valid(entity_id):
                result.skipped += 1
                logger.debug(f"[{entity_id}] skipped invalid id in store")
                continue

            async with self.locks.hold(entity_id):
                try:
                    if self.files.file_exists(entity_id):
                        # Created since the listing; the next pass reconciles it.
                        result.skipped += 1
                        continue
                    self.files.write(entity_id, decode_payload(record.payload, entity_id))
                except (FileStoreError, EntityDataError) as e:
                    result.failed += 1
                    result.errors.append(f"{entity_id}: {e}")
                    logger.warning(f"[{entity_id}] could not materialize: {e}")
                    continue

            result.materialized += 1
            logger.debug(f"[{entity_id}] no file, created from store")
