"""
Retry Queue - Deferred Replay of Mutations

Holds mutating operations that failed transiently while the backend was
unreachable and replays them once connectivity returns.

Queue Contract:
    - Bounded FIFO; enqueueing past ``max_size`` evicts the oldest item
    - A drain only runs while connected and never overlaps another drain
    - Expired items (``now - added_at > max_age``) are purged unexecuted
    - Up to ``batch_size`` items are replayed per drain, oldest first
    - A failed replay increments ``attempts``; at ``max_attempts`` the item
      is dropped
    - Replay is best effort: no ordering or exactly-once guarantee relative
      to new traffic
"""

import asyncio
import itertools
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from recordlink.core.config.constants import (
    QUERY_TIMEOUT,
    RETRY_QUEUE_BATCH_SIZE,
    RETRY_QUEUE_MAX_AGE,
    RETRY_QUEUE_MAX_ATTEMPTS,
    RETRY_QUEUE_MAX_SIZE,
    Stage,
)
from recordlink.core.logging.logger import get_logger
from recordlink.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

_STAGE = Stage.RETRY_QUEUE.value

Operation = Callable[[], Awaitable[Any]]


@dataclass
class RetryQueueItem:
    """A queued operation awaiting replay."""

    item_id: int
    operation: Operation
    operation_name: str
    max_age: float
    added_at: float
    attempts: int = 0
    last_error: str | None = field(default=None, repr=False)

    def is_expired(self, now: float) -> bool:
        return now - self.added_at > self.max_age


class RetryQueue:
    """
    Bounded FIFO of deferred mutations.

    STAGE-RQ: Retry queue

    Usage:
        queue = RetryQueue(is_connected=lambda: monitor.is_connected)
        queue.enqueue(create_post, operation_name="posts.create")
        await queue.drain()
    """

    def __init__(
        self,
        is_connected: Callable[[], bool],
        max_size: int = RETRY_QUEUE_MAX_SIZE,
        batch_size: int = RETRY_QUEUE_BATCH_SIZE,
        max_attempts: int = RETRY_QUEUE_MAX_ATTEMPTS,
        default_max_age: float = RETRY_QUEUE_MAX_AGE,
        operation_timeout: float = QUERY_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize retry queue.

        Args:
            is_connected: Current connectivity, consulted before each drain
            max_size: Queue bound; the oldest item is evicted past it
            batch_size: Items replayed per drain
            max_attempts: Failed replays before an item is dropped
            default_max_age: Item lifetime in seconds when none is given
            operation_timeout: Budget for a single replay in seconds
            clock: Wall clock in seconds (injectable for tests)
        """
        self._is_connected = is_connected
        self.max_size = max_size
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.default_max_age = default_max_age
        self.operation_timeout = operation_timeout
        self._clock = clock
        self._items: deque[RetryQueueItem] = deque()
        self._ids = itertools.count(1)
        self._draining = False
        self._drain_task: asyncio.Task | None = None
        self._metrics = get_metrics_collector()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def size(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[RetryQueueItem]:
        """Copy of the pending items, oldest first."""
        return list(self._items)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def enqueue(
        self,
        operation: Operation,
        operation_name: str = "unknown",
        max_age: float | None = None,
    ) -> RetryQueueItem:
        """
        Append an operation, evicting the oldest item when full.

        STAGE-RQ.1: Enqueue
        """
        item = RetryQueueItem(
            item_id=next(self._ids),
            operation=operation,
            operation_name=operation_name,
            max_age=self.default_max_age if max_age is None else max_age,
            added_at=self._clock(),
        )
        self._items.append(item)
        self._metrics.record_retry_queue_event("enqueued")

        while len(self._items) > self.max_size:
            evicted = self._items.popleft()
            self._metrics.record_retry_queue_event("evicted")
            logger.warning(
                "Retry queue full, evicted oldest item",
                stage=f"{_STAGE}.1",
                evicted_item=evicted.item_id,
                operation=evicted.operation_name,
                max_size=self.max_size,
            )

        self._metrics.set_retry_queue_depth(len(self._items))
        logger.info(
            "Operation queued for retry",
            stage=f"{_STAGE}.1",
            item_id=item.item_id,
            operation=operation_name,
            queue_size=len(self._items),
        )
        return item

    def purge_expired(self) -> int:
        """
        Drop every expired item without executing it.

        STAGE-RQ.2: Expiry purge

        Returns:
            Number of purged items
        """
        now = self._clock()
        kept = deque(item for item in self._items if not item.is_expired(now))
        purged = len(self._items) - len(kept)
        if purged:
            self._items = kept
            self._metrics.record_retry_queue_event("expired", purged)
            self._metrics.set_retry_queue_depth(len(self._items))
            logger.info("Expired retry items purged", stage=f"{_STAGE}.2", purged=purged)
        return purged

    async def drain(self) -> int:
        """
        Replay one batch of queued operations.

        STAGE-RQ.3: Replay

        Returns:
            Number of items replayed successfully
        """
        if self._draining or not self._items or not self._is_connected():
            return 0

        self._draining = True
        try:
            self.purge_expired()
            batch = list(itertools.islice(self._items, self.batch_size))
            if not batch:
                return 0

            logger.info(
                "Draining retry queue",
                stage=f"{_STAGE}.3",
                batch=len(batch),
                queue_size=len(self._items),
            )

            replayed = 0
            for item in batch:
                if await self._replay(item):
                    replayed += 1
            return replayed
        finally:
            self._draining = False
            self._metrics.set_retry_queue_depth(len(self._items))

    async def _replay(self, item: RetryQueueItem) -> bool:
        try:
            await asyncio.wait_for(item.operation(), timeout=self.operation_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            item.attempts += 1
            item.last_error = str(e) or type(e).__name__
            self._metrics.record_retry_queue_event("failed")

            if item.attempts >= self.max_attempts:
                self._remove(item)
                self._metrics.record_retry_queue_event("dropped")
                logger.warning(
                    "Retry item dropped after max attempts",
                    stage=f"{_STAGE}.4",
                    item_id=item.item_id,
                    operation=item.operation_name,
                    attempts=item.attempts,
                    error=item.last_error,
                )
            else:
                logger.debug(
                    "Retry item replay failed",
                    stage=f"{_STAGE}.3",
                    item_id=item.item_id,
                    attempts=item.attempts,
                    error=item.last_error,
                )
            return False

        self._remove(item)
        self._metrics.record_retry_queue_event("replayed")
        logger.info(
            "Retry item replayed",
            stage=f"{_STAGE}.3",
            item_id=item.item_id,
            operation=item.operation_name,
        )
        return True

    def _remove(self, item: RetryQueueItem) -> None:
        # The item may already be gone if clear() ran during the replay
        try:
            self._items.remove(item)
        except ValueError:
            pass

    def schedule_drain(self) -> asyncio.Task | None:
        """
        Start a drain in the background unless one is already scheduled.

        Returns:
            The drain task, or None when nothing was scheduled
        """
        if self._drain_task is not None and not self._drain_task.done():
            return None
        self._drain_task = asyncio.create_task(self.drain(), name="retry-queue-drain")
        return self._drain_task

    def clear(self) -> int:
        """Drop every pending item."""
        cleared = len(self._items)
        self._items.clear()
        self._metrics.record_retry_queue_event("cleared", cleared)
        self._metrics.set_retry_queue_depth(0)
        logger.info("Retry queue cleared", stage=f"{_STAGE}.5", cleared=cleared)
        return cleared

    def snapshot(self) -> dict[str, Any]:
        oldest = self._items[0].added_at if self._items else None
        return {
            "size": len(self._items),
            "oldest_item": (
                datetime.fromtimestamp(oldest, tz=timezone.utc).isoformat() if oldest is not None else None
            ),
        }

    async def stop(self) -> None:
        """Cancel a scheduled background drain."""
        task = self._drain_task
        self._drain_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
