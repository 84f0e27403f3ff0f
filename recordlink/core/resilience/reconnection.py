"""
Reconnection Coordinator

Bounded exponential-backoff reconnection, driven by connection events.

State Machine:
    IDLE ──connectionLost──> RECONNECTING ──probe ok──> IDLE
                                  │
                                  └──max attempts──> EXHAUSTED ──force_reconnect()──> RECONNECTING
                                                     └──connectionRestored──> IDLE

- ``connectionLost`` starts a loop only from IDLE; repeated losses while a
  loop runs are no-ops
- ``connectionRestored`` seen from the outside (the periodic ping got there
  first) ends a sleeping loop
- EXHAUSTED never starts a loop on its own; a later restoration re-arms it
  (back to IDLE) and ``force_reconnect()`` restarts it directly
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from recordlink.core.config.constants import (
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DELAY,
    ReconnectionPhase,
    Stage,
)
from recordlink.core.logging.logger import get_logger
from recordlink.core.observability.event_bus import (
    ConnectionEvent,
    EventBus,
    ReconnectionFailed,
)
from recordlink.core.resilience.connection_monitor import ConnectionMonitor
from recordlink.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

_STAGE = Stage.RECONNECTION.value


@dataclass(frozen=True)
class ReconnectionPolicy:
    """
    Backoff configuration.

    delay(n) = min(base_delay * backoff_factor ** (n - 1), max_delay)

    With the defaults: 5.0, 7.5, 11.25, 16.875, 25.3125, ... capped at 60.
    """

    base_delay: float = RECONNECT_BASE_DELAY
    backoff_factor: float = RECONNECT_BACKOFF_FACTOR
    max_delay: float = RECONNECT_MAX_DELAY
    max_attempts: int = MAX_RECONNECT_ATTEMPTS

    def next_delay(self, attempt: int) -> float:
        """Delay after the failed ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)


class ReconnectionCoordinator:
    """
    Runs the reconnection loop.

    STAGE-RC: Reconnection

    Usage:
        coordinator = ReconnectionCoordinator(monitor, event_bus, ReconnectionPolicy())
        # loops start automatically on connectionLost
        restored = await coordinator.force_reconnect()
    """

    def __init__(
        self,
        monitor: ConnectionMonitor,
        event_bus: EventBus,
        policy: ReconnectionPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._monitor = monitor
        self._events = event_bus
        self.policy = policy or ReconnectionPolicy()
        self._sleep = sleep
        self._phase = ReconnectionPhase.IDLE
        self._task: asyncio.Task | None = None
        self._metrics = get_metrics_collector()

        event_bus.on(ConnectionEvent.CONNECTION_LOST, self._on_connection_lost)
        event_bus.on(ConnectionEvent.CONNECTION_RESTORED, self._on_connection_restored)

    @property
    def phase(self) -> ReconnectionPhase:
        return self._phase

    @property
    def is_reconnecting(self) -> bool:
        return self._phase == ReconnectionPhase.RECONNECTING

    def _on_connection_lost(self, event) -> None:
        self.start()

    def _on_connection_restored(self, event) -> None:
        if self._phase == ReconnectionPhase.EXHAUSTED:
            logger.info("Connection restored after exhaustion, reconnection re-armed", stage=f"{_STAGE}.4")
            self._phase = ReconnectionPhase.IDLE
            return

        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return

        logger.info("Connection restored externally, ending reconnection loop", stage=f"{_STAGE}.4")
        task.cancel()
        self._task = None
        self._phase = ReconnectionPhase.IDLE

    def start(self) -> asyncio.Task | None:
        """
        Start a reconnection loop if none is running.

        Returns:
            The loop task, or None when already RECONNECTING or EXHAUSTED
        """
        if self._phase != ReconnectionPhase.IDLE:
            logger.debug(
                "Reconnection start ignored",
                stage=f"{_STAGE}.0",
                phase=self._phase.value,
            )
            return None

        return self._launch()

    def _launch(self) -> asyncio.Task:
        self._phase = ReconnectionPhase.RECONNECTING
        self._task = asyncio.create_task(self._run(), name="reconnection-loop")
        logger.info(
            "Reconnection loop started",
            stage=f"{_STAGE}.0",
            max_attempts=self.policy.max_attempts,
        )
        return self._task

    async def _run(self) -> bool:
        """
        STAGE-RC.1: Reconnection loop
        """
        max_attempts = self.policy.max_attempts

        while True:
            attempt = self._monitor.record_reconnect_attempt()
            self._metrics.record_reconnect_attempt()
            logger.info(
                "Reconnection attempt",
                stage=f"{_STAGE}.1",
                attempt=attempt,
                max_attempts=max_attempts,
            )

            if await self._monitor.check_connection():
                self._phase = ReconnectionPhase.IDLE
                self._task = None
                logger.info("Reconnection succeeded", stage=f"{_STAGE}.2", attempt=attempt)
                self._monitor.handle_restore()
                return True

            if attempt >= max_attempts:
                break

            delay = self.policy.next_delay(attempt)
            logger.debug(
                "Reconnection attempt failed, backing off",
                stage=f"{_STAGE}.1",
                attempt=attempt,
                delay=delay,
                error=self._monitor.state.last_error,
            )
            await self._sleep(delay)

        self._phase = ReconnectionPhase.EXHAUSTED
        self._task = None
        state = self._monitor.state
        logger.error(
            "Max reconnection attempts reached",
            stage=f"{_STAGE}.3",
            attempts=state.reconnect_attempts,
            last_error=state.last_error,
        )
        self._metrics.record_reconnection_failed()
        self._events.emit(ReconnectionFailed(state=state, max_attempts=max_attempts))
        return False

    async def _cancel_running(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def force_reconnect(self) -> bool:
        """
        Restart reconnection from any phase and wait for the outcome.

        STAGE-RC.5: Manual reconnection

        Returns:
            True if the connection was restored
        """
        logger.info("Force reconnect requested", stage=f"{_STAGE}.5", phase=self._phase.value)
        await self._cancel_running()

        self._monitor.mark_disconnected("Manual reconnection requested")
        self._monitor.reset_reconnect_attempts()

        task = self._launch()
        await asyncio.wait({task})
        if task.cancelled():
            # Ended by an externally detected restoration
            return self._monitor.is_connected
        return task.result()

    async def stop(self) -> None:
        """Cancel any running loop and return to IDLE."""
        await self._cancel_running()
        self._phase = ReconnectionPhase.IDLE
