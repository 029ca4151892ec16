"""
Tests for arrival/departure sync and session accounting.
"""

import json
from datetime import datetime, timedelta

import pytest

from entsync.sync.lifecycle import LifecycleSync, SessionTracker

T0 = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    """Deterministic clock for session durations."""

    def __init__(self, start: datetime):
        self.now = start

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def lifecycle(file_store, entity_store):
    return LifecycleSync(file_store, entity_store)


@pytest.fixture
def tracked(file_store, entity_store, stats_store, clock):
    return LifecycleSync(file_store, entity_store, stats=stats_store, clock=clock)


class TestSessionTracker:
    """Tests for SessionTracker."""

    def test_open_close(self):
        sessions = SessionTracker()
        sessions.open("alice", T0)
        assert "alice" in sessions
        assert sessions.close("alice") == T0
        assert sessions.close("alice") is None
        assert len(sessions) == 0

    def test_reopen_restarts(self):
        sessions = SessionTracker()
        sessions.open("alice", T0)
        sessions.open("alice", T0 + timedelta(hours=1))
        assert sessions.get("alice") == T0 + timedelta(hours=1)


class TestArrival:
    """Arrival trusts the store."""

    @pytest.mark.asyncio
    async def test_overwrites_newer_local_file(self, data_dir, lifecycle, entity_store, touch):
        await entity_store.upsert("alice", {"hp": 10}, last_save=T0)
        (data_dir / "alice.json").write_text(json.dumps({"hp": 99}))
        touch(data_dir / "alice.json", T0 + timedelta(days=1))

        assert await lifecycle.arrival("alice") is True
        assert json.loads((data_dir / "alice.json").read_text()) == {"hp": 10}

    @pytest.mark.asyncio
    async def test_local_file_survives_without_record(self, data_dir, lifecycle):
        (data_dir / "alice.json").write_text(json.dumps({"hp": 99}))

        assert await lifecycle.arrival("alice") is False
        assert json.loads((data_dir / "alice.json").read_text()) == {"hp": 99}

    @pytest.mark.asyncio
    async def test_opens_session_and_stats_row(self, tracked, stats_store):
        await tracked.arrival("alice")

        assert tracked.sessions.get("alice") == T0
        assert (await stats_store.get("alice")).playtime_seconds == 0

    @pytest.mark.asyncio
    async def test_no_session_without_telemetry(self, lifecycle):
        await lifecycle.arrival("alice")
        assert len(lifecycle.sessions) == 0

    @pytest.mark.asyncio
    async def test_unresolvable_handle(self, lifecycle):
        assert await lifecycle.arrival(None) is False

    @pytest.mark.asyncio
    async def test_custom_resolver(self, data_dir, file_store, entity_store):
        await entity_store.upsert("alice", {"hp": 10})
        sync = LifecycleSync(file_store, entity_store, resolver=lambda handle: handle["name"])

        await sync.arrival({"name": "alice"})

        assert (data_dir / "alice.json").exists()


class TestDeparture:
    """Departure trusts the file."""

    @pytest.mark.asyncio
    async def test_overwrites_newer_record(self, data_dir, lifecycle, entity_store, touch):
        await entity_store.upsert("alice", {"hp": 10}, last_save=T0 + timedelta(days=1))
        (data_dir / "alice.json").write_text(json.dumps({"hp": 55}))
        touch(data_dir / "alice.json", T0)

        assert await lifecycle.departure("alice") is True
        assert (await entity_store.find_one("alice")).payload == {"hp": 55}

    @pytest.mark.asyncio
    async def test_credits_playtime(self, tracked, stats_store, clock):
        await tracked.arrival("alice")
        clock.advance(125)
        await tracked.departure("alice")

        assert (await stats_store.get("alice")).playtime_seconds == 125
        assert "alice" not in tracked.sessions

    @pytest.mark.asyncio
    async def test_playtime_accumulates_across_sessions(self, tracked, stats_store, clock):
        for seconds in (60, 40):
            await tracked.arrival("alice")
            clock.advance(seconds)
            await tracked.departure("alice")

        assert (await stats_store.get("alice")).playtime_seconds == 100

    @pytest.mark.asyncio
    async def test_without_arrival(self, tracked, stats_store):
        """No open session means no playtime and no error."""
        assert await tracked.departure("alice") is False
        assert await stats_store.get("alice") is None

    @pytest.mark.asyncio
    async def test_malformed_file_still_closes_session(self, data_dir, tracked, entity_store, stats_store, clock):
        await tracked.arrival("alice")
        (data_dir / "alice.json").write_text("{not json")
        clock.advance(30)

        assert await tracked.departure("alice") is False

        assert await entity_store.find_one("alice") is None
        assert "alice" not in tracked.sessions
        assert (await stats_store.get("alice")).playtime_seconds == 30

    @pytest.mark.asyncio
    async def test_undecodable_file_still_credits_playtime(self, data_dir, tracked, entity_store, stats_store, clock):
        await tracked.arrival("alice")
        (data_dir / "alice.json").write_bytes(b'{"hp": "\xff\xfe"}')
        clock.advance(45)

        assert await tracked.departure("alice") is False

        assert await entity_store.find_one("alice") is None
        assert (await stats_store.get("alice")).playtime_seconds == 45

    @pytest.mark.asyncio
    async def test_missing_file_closes_session(self, tracked):
        await tracked.arrival("alice")
        await tracked.departure("alice")
        assert len(tracked.sessions) == 0
