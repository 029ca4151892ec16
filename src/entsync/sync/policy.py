"""
Freshness comparison between an entity file and its store record.

| file | record | comparison          | action              |
|------|--------|---------------------|---------------------|
| yes  | no     |                     | PUSH_FILE_TO_STORE  |
| yes  | yes    | file_mtime > saved  | PUSH_FILE_TO_STORE  |
| yes  | yes    | file_mtime <= saved | PUSH_STORE_TO_FILE  |
| no   | yes    |                     | MATERIALIZE         |
| no   | no     |                     | NOOP                |

Equal timestamps go to the store.
"""

from datetime import datetime

from entsync.core.types import SyncAction


def decide(
    file_exists: bool,
    file_mtime: datetime | None,
    record_exists: bool,
    record_last_save: datetime | None,
) -> SyncAction:
    if file_exists and not record_exists:
        return SyncAction.PUSH_FILE_TO_STORE
    if file_exists and record_exists:
        # A record that was never stamped cannot be fresher than any file.
        if record_last_save is None:
            return SyncAction.PUSH_FILE_TO_STORE
        if file_mtime is not None and file_mtime > record_last_save:
            return SyncAction.PUSH_FILE_TO_STORE
        return SyncAction.PUSH_STORE_TO_FILE
    if record_exists:
        return SyncAction.MATERIALIZE
    return SyncAction.NOOP
