"""
Periodic Task - Background Job Scheduling

Runs a callable every ``interval`` seconds until stopped. Each background job
of the connection service (ping, health check, retry queue drain, pool sweep,
query timeout scan, activity update) is one ``PeriodicTask``, so each can be
started and stopped independently.

Scheduling Contract:
    - The first run happens one interval after ``start()``
    - A tick is skipped while the previous run is still in flight, so a slow
      job never overlaps itself
    - A run that raises is logged; the schedule continues
    - ``stop()`` cancels the schedule and any in-flight run
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from recordlink.core.logging.logger import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Fixed-interval background job.

    Usage:
        task = PeriodicTask("ping", 30.0, monitor.ping_database)
        task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Any],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize periodic task.

        Args:
            name: Job name used in logs
            interval: Seconds between ticks
            func: Sync or async callable run on each tick
            sleep: Sleep coroutine (injectable for tests)
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self.name = name
        self.interval = interval
        self._func = func
        self._sleep = sleep
        self._loop_task: asyncio.Task | None = None
        self._run_task: asyncio.Task | None = None
        self.runs = 0
        self.skipped = 0

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    def start(self) -> None:
        """Start the schedule. Calling it on a running task is a no-op."""
        if self.is_running:
            return

        self._loop_task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info(
            "Periodic task started",
            stage="S.0",
            task=self.name,
            interval=self.interval,
        )

    async def _loop(self) -> None:
        try:
            while True:
                await self._sleep(self.interval)
                self.tick()
        except asyncio.CancelledError:
            logger.debug("Periodic task loop cancelled", stage="S.3", task=self.name)
            raise

    def tick(self) -> asyncio.Task | None:
        """
        Launch one run unless the previous one is still in flight.

        Returns:
            The spawned run task, or None when the tick was skipped
        """
        if self.in_flight:
            self.skipped += 1
            logger.debug(
                "Periodic task tick skipped, previous run in flight",
                stage="S.1",
                task=self.name,
            )
            return None

        self._run_task = asyncio.create_task(self._run_once(), name=f"periodic-run:{self.name}")
        return self._run_task

    async def _run_once(self) -> None:
        self.runs += 1
        try:
            result = self._func()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Periodic task run failed",
                stage="S.2",
                task=self.name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    async def stop(self) -> None:
        """Cancel the schedule and any in-flight run, then wait for both."""
        tasks = [t for t in (self._loop_task, self._run_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._loop_task is not None:
            logger.info("Periodic task stopped", stage="S.4", task=self.name)

        self._loop_task = None
        self._run_task = None
