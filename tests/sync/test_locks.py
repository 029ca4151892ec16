"""
Tests for per-entity locks.
"""

import asyncio

import pytest

from entsync.sync.locks import EntityLocks


class TestEntityLocks:
    """Tests for EntityLocks."""

    @pytest.mark.asyncio
    async def test_serializes_same_entity(self):
        locks = EntityLocks()
        order = []

        async def worker(name, delay):
            async with locks.hold("alice"):
                order.append(f"{name}-in")
                await asyncio.sleep(delay)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a", 0.02), worker("b", 0))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_entities_do_not_block(self):
        locks = EntityLocks()
        async with locks.hold("alice"):
            await asyncio.wait_for(self._enter(locks, "bob"), timeout=1)

    @pytest.mark.asyncio
    async def test_released_locks_are_dropped(self):
        locks = EntityLocks()
        async with locks.hold("alice"):
            assert len(locks) == 1
        assert len(locks) == 0

    @staticmethod
    async def _enter(locks, entity_id):
        async with locks.hold(entity_id):
            return True
