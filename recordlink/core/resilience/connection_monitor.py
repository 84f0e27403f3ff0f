"""
Connection Monitor

Owns the live ``ConnectionState`` and turns probe outcomes into lifecycle
events. It is the only writer of connection state; reconnection and the
service facade go through its methods.

Flow:
    check_connection()   probe with timeout, update state, emit stateChange on a flip
    ping_database()      check_connection() + lost/restored transition handling
    handle_restore()     reset reconnect counter, emit connectionRestored

Lost/restored transitions are measured against the last *reported*
connectivity rather than the raw state, so a flip observed by both the ping
and the reconnection loop is reported once.
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone

from recordlink.core.config.constants import CONNECTION_TIMEOUT, Stage
from recordlink.core.logging.logger import get_logger
from recordlink.core.observability.event_bus import (
    ConnectionLost,
    ConnectionRestored,
    ConnectionStateChanged,
    EventBus,
)
from recordlink.core.resilience.connection_state import ConnectionState
from recordlink.infrastructure.monitoring.health_probe import HealthProbe
from recordlink.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

_STAGE = Stage.MONITOR.value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionMonitor:
    """
    Tracks backend reachability.

    STAGE-MON: Connection monitoring

    Usage:
        monitor = ConnectionMonitor(probe, event_bus)
        connected = await monitor.check_connection()
        await monitor.ping_database()   # periodic job
    """

    def __init__(
        self,
        probe: HealthProbe,
        event_bus: EventBus,
        connection_timeout: float = CONNECTION_TIMEOUT,
        now: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize connection monitor.

        Args:
            probe: Probe used for reachability checks
            event_bus: Bus receiving connection events
            connection_timeout: Probe budget in seconds
            now: UTC clock (injectable for tests)
        """
        self._probe = probe
        self._events = event_bus
        self.connection_timeout = connection_timeout
        self._now = now
        self._state = ConnectionState()
        self._reported_connected = False
        self._metrics = get_metrics_collector()

    @property
    def state(self) -> ConnectionState:
        """Independent snapshot of the current state."""
        return self._state.snapshot()

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    async def initialize(self) -> bool:
        """
        Initial probe at startup.

        STAGE-MON.0: Baseline

        Sets the reported baseline without emitting lost/restored events.
        """
        connected = await self.check_connection()
        self._reported_connected = connected
        logger.info(
            "Connection monitor initialized",
            stage=f"{_STAGE}.0",
            is_connected=connected,
            error=self._state.last_error,
        )
        return connected

    async def check_connection(self) -> bool:
        """
        Probe the backend once and record the outcome.

        STAGE-MON.1: Reachability probe

        Never raises for probe failures; they are recorded in the state.

        Returns:
            True if the backend answered within ``connection_timeout``
        """
        start = time.perf_counter()
        try:
            await asyncio.wait_for(self._probe.check_reachability(), timeout=self.connection_timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            self._record_failure(f"Connection check timed out after {self.connection_timeout}s")
            return False
        except Exception as e:
            self._record_failure(str(e) or type(e).__name__)
            return False

        self._record_success(time.perf_counter() - start)
        return True

    def _record_success(self, response_time: float) -> None:
        previous = self._state.is_connected
        self._state.is_connected = True
        self._state.last_ping = self._now()
        self._state.last_error = None
        self._state.consecutive_failures = 0
        self._state.response_time = response_time

        self._metrics.record_probe_latency(response_time)
        self._metrics.set_connection_state(True)
        logger.debug(
            "Connection check succeeded",
            stage=f"{_STAGE}.1",
            response_time_ms=round(response_time * 1000, 2),
        )

        if not previous:
            self._emit_state_change(previous, None)

    def _record_failure(self, error: str) -> None:
        previous = self._state.is_connected
        self._state.is_connected = False
        self._state.last_ping = self._now()
        self._state.last_error = error
        self._state.consecutive_failures += 1

        self._metrics.set_connection_state(False)
        logger.debug(
            "Connection check failed",
            stage=f"{_STAGE}.1",
            error=error,
            consecutive_failures=self._state.consecutive_failures,
        )

        if previous:
            self._emit_state_change(previous, error)

    def _emit_state_change(self, previous: bool, error: str | None) -> None:
        self._events.emit(
            ConnectionStateChanged(
                is_connected=self._state.is_connected,
                previous_state=previous,
                error=error,
            )
        )

    async def ping_database(self) -> bool:
        """
        Periodic probe with lost/restored transition handling.

        STAGE-MON.2: Ping and transition detection

        Returns:
            Current connectivity after the probe
        """
        connected = await self.check_connection()

        if self._reported_connected and not connected:
            self._handle_loss()
        elif not self._reported_connected and connected:
            self.handle_restore()

        return connected

    def _handle_loss(self) -> None:
        self._reported_connected = False
        logger.warning(
            "Database connection lost",
            stage=f"{_STAGE}.2",
            error=self._state.last_error,
        )
        self._metrics.record_connection_transition("lost")
        self._events.emit(ConnectionLost(state=self.state))

    def handle_restore(self) -> bool:
        """
        Record a disconnected -> connected transition.

        STAGE-MON.3: Connection restored

        Resets the reconnect counter and emits ``connectionRestored``. Called
        by ``ping_database()`` and by the reconnection loop on success.

        Returns:
            False if the restoration had already been reported
        """
        self._state.reconnect_attempts = 0
        if self._reported_connected:
            return False

        self._reported_connected = True
        logger.info(
            "Database connection restored",
            stage=f"{_STAGE}.3",
            response_time=self._state.response_time,
        )
        self._metrics.record_connection_transition("restored")
        self._events.emit(ConnectionRestored(state=self.state))
        return True

    def record_reconnect_attempt(self) -> int:
        """Increment and return the reconnect attempt counter."""
        self._state.reconnect_attempts += 1
        return self._state.reconnect_attempts

    def reset_reconnect_attempts(self) -> None:
        self._state.reconnect_attempts = 0

    def mark_disconnected(self, reason: str | None = None) -> None:
        """
        Force the state to disconnected without probing.

        STAGE-MON.4: Manual disconnect (used by force_reconnect)

        No ``connectionLost`` is emitted; the next successful probe reports
        a restoration.
        """
        previous = self._state.is_connected
        self._state.is_connected = False
        self._reported_connected = False
        if reason:
            self._state.last_error = reason
        self._metrics.set_connection_state(False)

        logger.info("Connection marked disconnected", stage=f"{_STAGE}.4", reason=reason)
        if previous:
            self._emit_state_change(previous, reason)
