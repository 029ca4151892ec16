"""
Configuration management for entsync.

Uses pydantic-settings for environment variable support.
"""

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "ENTSYNC_"

LOG_LEVELS: frozenset[str] = frozenset([
    "CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG",
])


class Settings(BaseSettings):
    """entsync configuration with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===================
    # Locations
    # ===================
    data_dir: Path = Field(
        default=Path("./SquadGame/Saved/KOTH/"),
        description="Directory holding one <entity_id>.json file per entity",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///entsync.db",
        description="SQLAlchemy async database URL",
    )
    table_prefix: str = Field(
        default="KOTH_",
        description="Prefix for the entity and stats table names",
    )
    server_id: int = Field(
        default=0,
        description="Identifier stamped as owning_server on every write",
    )

    # ===================
    # Sweep
    # ===================
    sync_interval: float = Field(
        default=60.0,
        description="Interval for periodic sweeps in seconds",
    )
    sync_enabled: bool = Field(
        default=True,
        description="Whether periodic sweeps run after the initial one",
    )
    pretty_json: bool = Field(
        default=True,
        description="Indent JSON files written from the store",
    )
    entity_id_pattern: str = Field(
        default=r"^\d{17}$",
        description="Regex an id must match to be materialized from the store. "
                    "Empty string accepts any filename-safe id.",
    )

    # ===================
    # Settings sentinel
    # ===================
    settings_entity_id: str = Field(
        default="ServerSettings",
        description="Reserved id pushed one-way from store to file",
    )
    allow_list_filename: str = Field(
        default="PlayerList.json",
        description="File listing currently active entity ids",
    )
    settings_gate_enabled: bool = Field(
        default=False,
        description="Only push the settings record when enough entities are active",
    )
    settings_gate_threshold: int = Field(
        default=50,
        description="Minimum active entity count for the settings push when gated",
    )

    # ===================
    # Telemetry
    # ===================
    telemetry_enabled: bool = Field(
        default=False,
        description="Track playtime and kill/death/capture counters",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level used by the CLI",
    )

    @field_validator("sync_interval")
    @classmethod
    def validate_sync_interval(cls, v: float) -> float:
        if v < 1:
            raise ValueError(f"sync_interval must be at least 1 second, got {v}")
        return v

    @field_validator("settings_gate_threshold")
    @classmethod
    def validate_gate_threshold(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"settings_gate_threshold must be >= 0, got {v}")
        return v

    @field_validator("entity_id_pattern")
    @classmethod
    def validate_entity_id_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"entity_id_pattern is not a valid regex: {e}") from e
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}, got {v}")
        return level

    @property
    def settings_filename(self) -> str:
        return f"{self.settings_entity_id}.json"

    def log_config_info(self) -> None:
        """Log the effective configuration."""
        logger.info("entsync Configuration:")
        logger.info(f"  Data directory: {self.data_dir}")
        logger.info(f"  Database: {self.database_url}")
        logger.info(f"  Server ID: {self.server_id}")
        logger.info(f"  Sync: enabled={self.sync_enabled} interval={self.sync_interval}s")
        logger.info(f"  Telemetry: {self.telemetry_enabled}")
        if self.settings_gate_enabled:
            logger.info(f"  Settings gate: >= {self.settings_gate_threshold} active")


def _find_config_file() -> Path | None:
    """
    Find YAML config file in standard locations.

    Search order:
    1. ENTSYNC_CONFIG_FILE environment variable
    2. ./entsync.yaml or ./entsync.yml (current directory)
    3. ~/.entsync/config.yaml (user home)
    4. /etc/entsync/config.yaml (system-wide)

    Returns:
        Path to config file if found, None otherwise
    """
    env_config = os.getenv(f"{ENV_PREFIX}CONFIG_FILE")
    if env_config:
        path = Path(env_config).expanduser()
        if path.exists():
            return path
        logger.warning(f"Config file from {ENV_PREFIX}CONFIG_FILE not found: {path}")

    search_paths = [
        Path("entsync.yaml"),
        Path("entsync.yml"),
        Path.home() / ".entsync" / "config.yaml",
        Path("/etc/entsync/config.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            logger.debug(f"Found config file: {path}")
            return path

    return None


def _load_yaml_config(path: Path) -> dict:
    """
    Load configuration from YAML file.

    Raises:
        ValueError: If YAML file is invalid
    """
    import yaml

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file {path}: {e}") from e

    if not isinstance(config, dict):
        raise ValueError(f"Config file must contain a dictionary, got {type(config).__name__}")

    logger.info(f"Loaded configuration from: {path}")
    return config


def _without_env_overrides(yaml_config: dict[str, Any]) -> dict[str, Any]:
    """Drop YAML keys that an ENTSYNC_* environment variable overrides."""
    filtered = {}
    for key, value in yaml_config.items():
        env_key = f"{ENV_PREFIX}{key.upper()}"
        if os.getenv(env_key) is None:
            filtered[key] = value
        else:
            logger.debug(f"Skipping YAML key '{key}' - overridden by {env_key}")
    return filtered


def load_settings_from_yaml(config_path: Path | str | None = None) -> Settings:
    """
    Load Settings from YAML file with environment variable overrides.

    Env vars always take precedence over YAML values.

    Args:
        config_path: Path to YAML config file. If None, searches standard locations.

    Example YAML config:
        ```yaml
        data_dir: /srv/squad/SquadGame/Saved/KOTH
        database_url: sqlite+aiosqlite:////srv/squad/koth.db
        server_id: 2
        sync_interval: 90
        telemetry_enabled: true
        ```
    """
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
    else:
        path = _find_config_file()

    yaml_config = {}
    if path:
        yaml_config = _load_yaml_config(path)

    return Settings(**_without_env_overrides(yaml_config))


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded from (in order of precedence):
    1. Environment variables (ENTSYNC_* prefix)
    2. YAML config file (if found)
    3. Default values
    """
    return load_settings_from_yaml()


def reset_settings() -> None:
    """Clear the cached settings, forcing reload on next get_settings() call."""
    get_settings.cache_clear()
