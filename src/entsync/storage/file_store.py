"""
Directory-backed storage for entity documents.

Layout:
    <data_dir>/<entity_id>.json     one document per entity
    <data_dir>/ServerSettings.json  settings sentinel, written one-way from the store
    <data_dir>/PlayerList.json      allow-list of active ids, read-only here

Writes go through a temp file + rename so the host process never reads a
half-written document.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from entsync.core.identity import is_filename_safe
from entsync.core.types import EntityDataError, FileStoreError

logger = logging.getLogger(__name__)

ENTITY_SUFFIX = ".json"


def dump_json(payload: Any, pretty: bool = True) -> str:
    if pretty:
        return json.dumps(payload, indent=2)
    return json.dumps(payload, separators=(",", ":"))


class FileStore:
    """One JSON file per entity inside a single directory."""

    def __init__(
        self,
        directory: Path | str,
        settings_filename: str = "ServerSettings.json",
        allow_list_filename: str = "PlayerList.json",
        pretty: bool = True,
    ):
        self.directory = Path(directory)
        self.settings_filename = settings_filename
        self.allow_list_filename = allow_list_filename
        self.pretty = pretty
        self._reserved = {settings_filename.lower(), allow_list_filename.lower()}

    def exists(self) -> bool:
        """Whether the data directory is present."""
        return self.directory.is_dir()

    def path_for(self, entity_id: str) -> Path:
        if not is_filename_safe(entity_id):
            raise FileStoreError(f"Unsafe entity id: {entity_id!r}", entity_id=entity_id)
        return self.directory / f"{entity_id}{ENTITY_SUFFIX}"

    def list_entity_ids(self) -> list[str]:
        """Ids of every entity file, skipping reserved and non-JSON names."""
        try:
            names = sorted(os.listdir(self.directory))
        except OSError as e:
            raise FileStoreError(f"Cannot list {self.directory}: {e}", path=self.directory) from e

        ids = []
        for name in names:
            if not name.endswith(ENTITY_SUFFIX):
                continue
            if name.lower() in self._reserved:
                logger.debug(f"[{name}] Skipped reserved file")
                continue
            entity_id = name[: -len(ENTITY_SUFFIX)]
            if not entity_id or not (self.directory / name).is_file():
                continue
            ids.append(entity_id)
        return ids

    def file_exists(self, entity_id: str) -> bool:
        return self.path_for(entity_id).is_file()

    def mtime(self, entity_id: str) -> datetime | None:
        """Modification time as naive UTC, or None when the file is missing."""
        path = self.path_for(entity_id)
        try:
            stamp = path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FileStoreError(f"Cannot stat {path}: {e}", entity_id=entity_id, path=path) from e
        return datetime.fromtimestamp(stamp, tz=timezone.utc).replace(tzinfo=None)

    def _read_path(self, path: Path, entity_id: str | None) -> Any:
        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise EntityDataError(
                f"{path.name} is not valid UTF-8: {e}", entity_id=entity_id, source="file"
            ) from e
        except OSError as e:
            raise FileStoreError(f"Cannot read {path}: {e}", entity_id=entity_id, path=path) from e
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise EntityDataError(
                f"Invalid JSON in {path.name}: {e}", entity_id=entity_id, source="file"
            ) from e

    def read(self, entity_id: str) -> Any:
        """Parse one entity document."""
        return self._read_path(self.path_for(entity_id), entity_id)

    def _write_path(self, path: Path, payload: Any, entity_id: str | None) -> None:
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(dump_json(payload, self.pretty))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise FileStoreError(f"Cannot write {path}: {e}", entity_id=entity_id, path=path) from e

    def write(self, entity_id: str, payload: Any) -> Path:
        """Serialize ``payload`` to the entity's file, replacing any previous content."""
        path = self.path_for(entity_id)
        self._write_path(path, payload, entity_id)
        return path

    def write_settings(self, payload: Any) -> Path:
        path = self.directory / self.settings_filename
        self._write_path(path, payload, None)
        return path

    def read_allow_list(self) -> list[str]:
        """
        Active entity ids from the allow-list file.

        A missing or malformed file, or one without a ``players`` list,
        counts as empty.
        """
        path = self.directory / self.allow_list_filename
        if not path.is_file():
            return []
        try:
            document = self._read_path(path, None)
        except (FileStoreError, EntityDataError) as e:
            logger.warning(f"Ignoring unreadable allow-list {path.name}: {e}")
            return []
        players = document.get("players") if isinstance(document, dict) else None
        if not isinstance(players, list):
            return []
        return [str(p) for p in players]
