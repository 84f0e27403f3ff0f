"""
Unit Tests for ConnectionPoolTracker

Tests slot accounting, exhaustion and idle reclamation.
"""

import asyncio

import pytest

from recordlink.core.exceptions import ConnectionPoolError, NoSlotsAvailableError
from recordlink.core.resilience.connection_pool_tracker import ConnectionPoolSlot, ConnectionPoolTracker


@pytest.fixture
def pool(fake_clock):
    return ConnectionPoolTracker(size=3, idle_timeout=300.0, clock=fake_clock)


@pytest.mark.unit
class TestConnectionPoolTracker:
    """Test suite for ConnectionPoolTracker."""

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, pool):
        slot = await pool.acquire()

        assert slot.in_use
        assert pool.get_stats() == {"total": 3, "active": 1, "idle": 2, "utilization": "33.33%"}

        await pool.release(slot)
        assert pool.active_count == 0

    @pytest.mark.asyncio
    async def test_exhaustion(self, pool):
        for _ in range(3):
            await pool.acquire()

        with pytest.raises(NoSlotsAvailableError):
            await pool.acquire()
        assert pool.get_stats()["utilization"] == "100.00%"

    @pytest.mark.asyncio
    async def test_concurrent_acquire_never_oversubscribes(self, pool):
        results = await asyncio.gather(*(pool.acquire() for _ in range(5)), return_exceptions=True)

        slots = [r for r in results if isinstance(r, ConnectionPoolSlot)]
        assert len(slots) == 3
        assert len({slot.slot_id for slot in slots}) == 3
        assert sum(isinstance(r, NoSlotsAvailableError) for r in results) == 2

    @pytest.mark.asyncio
    async def test_release_idle_slot_is_noop(self, pool):
        slot = await pool.acquire()
        await pool.release(slot)
        await pool.release(slot)

        assert pool.active_count == 0

    @pytest.mark.asyncio
    async def test_release_foreign_slot_rejected(self, pool):
        with pytest.raises(ConnectionPoolError):
            await pool.release(ConnectionPoolSlot(slot_id=0, in_use=True))

    @pytest.mark.asyncio
    async def test_slot_context_manager_releases_on_error(self, pool):
        with pytest.raises(RuntimeError):
            async with pool.slot():
                assert pool.active_count == 1
                raise RuntimeError("boom")

        assert pool.active_count == 0

    @pytest.mark.asyncio
    async def test_cleanup_reclaims_idle_slots_once(self, pool, fake_clock):
        busy = await pool.acquire()
        fake_clock.advance(301.0)

        assert await pool.cleanup_idle_connections() == 2
        assert await pool.cleanup_idle_connections() == 0
        assert busy.in_use

    @pytest.mark.asyncio
    async def test_reclaimed_slot_is_reusable(self, pool, fake_clock):
        fake_clock.advance(301.0)
        await pool.cleanup_idle_connections()

        slot = await pool.acquire()
        assert not slot.reclaimed

    @pytest.mark.asyncio
    async def test_recently_used_slots_are_kept(self, pool, fake_clock):
        slot = await pool.acquire()
        fake_clock.advance(200.0)
        await pool.release(slot)
        fake_clock.advance(200.0)

        assert await pool.cleanup_idle_connections() == 2

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            ConnectionPoolTracker(size=0)
