"""
Entity identity helpers.

The host hands over its own player handles; a resolver maps them to the
``entity_id`` used as both the file stem and the table key. Resolvers are
injectable so hosts with a different identity scheme can plug theirs in.
"""

import re
from collections.abc import Callable
from typing import Any

EntityResolver = Callable[[Any], "str | None"]

_UNSAFE_CHARS = re.compile(r"[\\/\x00]")


def default_resolver(handle: Any) -> str | None:
    """
    Resolve a host handle to an entity id.

    Accepts a plain id string, a mapping with ``entity_id`` or ``steam_id``,
    or an object exposing one of those attributes.
    """
    if handle is None:
        return None
    if isinstance(handle, str):
        return handle or None
    for key in ("entity_id", "steam_id", "steamID"):
        if isinstance(handle, dict):
            value = handle.get(key)
        else:
            value = getattr(handle, key, None)
        if value:
            return str(value)
    return None


def is_settings_id(entity_id: str, settings_id: str = "ServerSettings") -> bool:
    return entity_id.lower() == settings_id.lower()


def is_filename_safe(entity_id: str) -> bool:
    if not entity_id or entity_id in (".", ".."):
        return False
    return _UNSAFE_CHARS.search(entity_id) is None


class IdentityPolicy:
    """Decides which ids may be materialized as ordinary entity files."""

    def __init__(self, pattern: str | None = r"^\d{17}$", settings_id: str = "ServerSettings"):
        self.settings_id = settings_id
        self._pattern = re.compile(pattern) if pattern else None

    def is_valid(self, entity_id: str | None) -> bool:
        if not entity_id or not isinstance(entity_id, str):
            return False
        if is_settings_id(entity_id, self.settings_id):
            return False
        if not is_filename_safe(entity_id):
            return False
        if self._pattern is not None and not self._pattern.fullmatch(entity_id):
            return False
        return True
