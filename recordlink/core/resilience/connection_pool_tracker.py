"""
Connection Pool Tracker for Logical Backend Slots.

This module provides a fixed-size logical concurrency budget:
- Fixed slot set created at construction, never resized
- Atomic acquire/release under one asyncio lock
- Idle slot reclamation (bookkeeping only)
- Utilization reporting

The tracker does not own sockets; httpx pools the real connections.

STAGE-POOL: Connection Pool Tracking
------------------------------------
POOL.1: Slot acquisition
POOL.2: Slot release
POOL.3: Idle sweep
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from recordlink.core.config.constants import CONNECTION_POOL_SIZE, IDLE_CONNECTION_TIMEOUT
from recordlink.core.exceptions.connection_pool import ConnectionPoolError, NoSlotsAvailableError
from recordlink.core.logging.logger import get_logger
from recordlink.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


@dataclass
class ConnectionPoolSlot:
    """One logical slot."""

    slot_id: int
    in_use: bool = False
    last_used: float = 0.0
    reclaimed: bool = False


class ConnectionPoolTracker:
    """
    Fixed-size logical connection pool.

    STAGE-POOL.0: Connection Pool Tracker Initialization

    Usage:
        async with pool.slot() as slot:
            await client.list_records("posts")
    """

    def __init__(
        self,
        size: int = CONNECTION_POOL_SIZE,
        idle_timeout: float = IDLE_CONNECTION_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize connection pool tracker.

        Args:
            size: Number of slots
            idle_timeout: Seconds of idleness before a slot is reclaimed
            clock: Monotonic clock (injectable for tests)
        """
        if size < 1:
            raise ValueError(f"size must be >= 1, got {size}")

        self.size = size
        self.idle_timeout = idle_timeout
        self._clock = clock
        now = clock()
        self._slots = [ConnectionPoolSlot(slot_id=i, last_used=now) for i in range(size)]

        # Thread safety
        self._lock = asyncio.Lock()
        self._metrics = get_metrics_collector()

        logger.info(
            "Connection pool tracker initialized",
            stage="POOL.0",
            size=size,
            idle_timeout=idle_timeout,
        )

    @property
    def slots(self) -> list[ConnectionPoolSlot]:
        return list(self._slots)

    @property
    def active_count(self) -> int:
        return sum(1 for slot in self._slots if slot.in_use)

    async def acquire(self) -> ConnectionPoolSlot:
        """
        Acquire a free slot.

        STAGE-POOL.1: Slot Acquisition

        Raises:
            NoSlotsAvailableError: Every slot is in use
        """
        async with self._lock:
            for slot in self._slots:
                if not slot.in_use:
                    slot.in_use = True
                    slot.reclaimed = False
                    slot.last_used = self._clock()
                    self._metrics.set_pool_in_use(self.active_count)
                    logger.debug("Slot acquired", stage="POOL.1", slot_id=slot.slot_id)
                    return slot

            logger.warning("No available connections in pool", stage="POOL.1", size=self.size)
            raise NoSlotsAvailableError(self.size)

    async def release(self, slot: ConnectionPoolSlot) -> None:
        """
        Return a slot to the pool.

        STAGE-POOL.2: Slot Release

        Raises:
            ConnectionPoolError: The slot does not belong to this pool
        """
        async with self._lock:
            if not (0 <= slot.slot_id < self.size) or self._slots[slot.slot_id] is not slot:
                raise ConnectionPoolError(
                    "Slot does not belong to this pool", details={"slot_id": slot.slot_id}
                )

            if not slot.in_use:
                logger.warning("Releasing a slot that is not in use", stage="POOL.2", slot_id=slot.slot_id)
                return

            slot.in_use = False
            slot.last_used = self._clock()
            self._metrics.set_pool_in_use(self.active_count)
            logger.debug("Slot released", stage="POOL.2", slot_id=slot.slot_id)

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[ConnectionPoolSlot]:
        acquired = await self.acquire()
        try:
            yield acquired
        finally:
            await self.release(acquired)

    async def cleanup_idle_connections(self) -> int:
        """
        Reclaim slots idle longer than ``idle_timeout``.

        STAGE-POOL.3: Idle Sweep

        Returns:
            Number of slots reclaimed by this sweep
        """
        async with self._lock:
            now = self._clock()
            reclaimed = 0
            for slot in self._slots:
                if not slot.in_use and not slot.reclaimed and now - slot.last_used > self.idle_timeout:
                    slot.reclaimed = True
                    reclaimed += 1

        if reclaimed:
            self._metrics.record_pool_reclaimed(reclaimed)
            logger.info("Cleaned up idle connections", stage="POOL.3", reclaimed=reclaimed)
        return reclaimed

    def get_stats(self) -> dict[str, Any]:
        active = self.active_count
        return {
            "total": self.size,
            "active": active,
            "idle": self.size - active,
            "utilization": f"{active / self.size * 100:.2f}%",
        }
