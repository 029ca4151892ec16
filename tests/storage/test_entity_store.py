"""
Tests for the relational entity and stats stores.
"""

from datetime import datetime, timedelta

import pytest

from entsync.core.types import EntityDataError, StoreError, utc_now
from entsync.storage.entity_store import Database, EntityStore, StatsStore, decode_payload


class TestEntityStore:
    """Tests for EntityStore."""

    @pytest.mark.asyncio
    async def test_find_missing(self, entity_store):
        assert await entity_store.find_one("alice") is None

    @pytest.mark.asyncio
    async def test_upsert_creates(self, entity_store):
        """First upsert creates the row stamped with this server and now."""
        before = utc_now()
        await entity_store.upsert("alice", {"hp": 100})

        record = await entity_store.find_one("alice")
        assert record.payload == {"hp": 100}
        assert record.owning_server == entity_store.server_id
        assert record.last_save >= before - timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_upsert_overwrites(self, entity_store):
        """A second upsert replaces the payload and keeps one row."""
        await entity_store.upsert("alice", {"hp": 100})
        await entity_store.upsert("alice", {"hp": 40})

        records = await entity_store.find_all()
        assert len(records) == 1
        assert records[0].payload == {"hp": 40}

    @pytest.mark.asyncio
    async def test_explicit_last_save(self, entity_store):
        stamp = datetime(2026, 1, 1, 12, 0, 0)
        await entity_store.upsert("bob", {"score": 5}, last_save=stamp)
        assert (await entity_store.find_one("bob")).last_save == stamp

    @pytest.mark.asyncio
    async def test_find_all_in_insert_order(self, entity_store):
        for name in ("carol", "alice", "bob"):
            await entity_store.upsert(name, {})
        assert [r.entity_id for r in await entity_store.find_all()] == ["carol", "alice", "bob"]

    @pytest.mark.asyncio
    async def test_missing_table_raises_store_error(self, database_url):
        """Engine failures surface as StoreError."""
        db = Database(database_url, table_prefix="NOPE_")
        try:
            with pytest.raises(StoreError):
                await EntityStore(db).find_one("alice")
        finally:
            await db.close()


class TestStatsStore:
    """Tests for StatsStore."""

    @pytest.mark.asyncio
    async def test_ensure_creates_zeroed_row(self, stats_store):
        record = await stats_store.ensure("alice")
        assert record.counters() == {"kills": 0, "deaths": 0, "captures": 0}
        assert record.playtime_seconds == 0

    @pytest.mark.asyncio
    async def test_ensure_keeps_existing(self, stats_store):
        await stats_store.increment("alice", "kills")
        record = await stats_store.ensure("alice")
        assert record.kills == 1

    @pytest.mark.asyncio
    async def test_add_accumulates(self, stats_store):
        """Increments add to the existing totals."""
        await stats_store.add("alice", {"kills": 2, "deaths": 1})
        await stats_store.add("alice", {"kills": 3, "playtime_seconds": 60})

        record = await stats_store.get("alice")
        assert record.kills == 5
        assert record.deaths == 1
        assert record.captures == 0
        assert record.playtime_seconds == 60
        assert record.last_updated is not None

    @pytest.mark.asyncio
    async def test_add_nothing_creates_nothing(self, stats_store):
        await stats_store.add("alice", {"kills": 0})
        assert await stats_store.get("alice") is None

    @pytest.mark.asyncio
    async def test_unknown_field(self, stats_store):
        with pytest.raises(ValueError, match="Unknown stats fields"):
            await stats_store.add("alice", {"score": 1})


class TestDecodePayload:
    """Tests for payload decoding."""

    def test_passes_objects_through(self):
        assert decode_payload({"a": 1}) == {"a": 1}

    def test_decodes_text(self):
        assert decode_payload('{"a": 1}') == {"a": 1}

    def test_invalid_text(self):
        with pytest.raises(EntityDataError) as exc:
            decode_payload("{oops", entity_id="alice")
        assert exc.value.source == "store"
        assert exc.value.entity_id == "alice"
