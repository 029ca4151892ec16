"""
Pytest Configuration for entsync Tests.

Provides fixtures for a temporary data directory, a throwaway SQLite
database and test isolation of settings.
"""

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from dotenv import load_dotenv

from entsync.core.identity import IdentityPolicy
from entsync.storage.entity_store import Database, EntityStore, StatsStore
from entsync.storage.file_store import FileStore

# Load .env file for environment variables
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

SERVER_ID = 7


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture(autouse=True, scope="function")
def isolate_settings(monkeypatch):
    """Clear cached settings and any ENTSYNC_* variables from the environment."""
    from entsync.core.config import reset_settings

    for key in list(os.environ):
        if key.startswith("ENTSYNC_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


def set_mtime(path: Path, when: datetime) -> None:
    """Set a file's mtime from a naive UTC datetime."""
    stamp = when.replace(tzinfo=timezone.utc).timestamp()
    os.utime(path, (stamp, stamp))


@pytest.fixture
def touch():
    return set_mtime


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "KOTH"
    path.mkdir()
    return path


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'entsync.db'}"


@pytest_asyncio.fixture
async def db(database_url):
    database = Database(database_url, with_stats=True)
    await database.init_db()
    yield database
    await database.close()


@pytest.fixture
def entity_store(db):
    return EntityStore(db, server_id=SERVER_ID)


@pytest.fixture
def stats_store(db):
    return StatsStore(db)


@pytest.fixture
def file_store(data_dir):
    return FileStore(data_dir)


@pytest.fixture
def open_identity():
    """Identity policy accepting any filename-safe id."""
    return IdentityPolicy(pattern=None)
