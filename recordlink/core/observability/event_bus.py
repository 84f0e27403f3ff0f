"""
Event Bus - Typed Lifecycle Events

Synchronous publish/subscribe used to distribute connection lifecycle and
health events to observers (UI adapters, logging, alerting).

Events:
    connectionStateChange  every flip of ConnectionState.is_connected
    connectionLost         connected -> disconnected transition
    connectionRestored     disconnected -> connected transition
    reconnectionFailed     reconnection loop reached its attempt cap
    healthCheck            a new HealthReport was produced

Dispatch Contract:
    - Listeners are plain callables receiving the event dataclass
    - Dispatch happens inline, in subscription order
    - A listener that raises is logged and skipped; the others still run
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from recordlink.core.logging.logger import get_logger

if TYPE_CHECKING:
    from recordlink.core.resilience.connection_state import ConnectionState
    from recordlink.infrastructure.monitoring.health_checker import HealthReport

logger = get_logger(__name__)


class ConnectionEvent(str, Enum):
    """Enumerated event kinds."""

    CONNECTION_STATE_CHANGE = "connectionStateChange"
    CONNECTION_LOST = "connectionLost"
    CONNECTION_RESTORED = "connectionRestored"
    RECONNECTION_FAILED = "reconnectionFailed"
    HEALTH_CHECK = "healthCheck"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """Base class for all bus events. ``kind`` tags the concrete type."""

    kind: ClassVar[ConnectionEvent]


@dataclass(frozen=True)
class ConnectionStateChanged(Event):
    kind: ClassVar[ConnectionEvent] = ConnectionEvent.CONNECTION_STATE_CHANGE

    is_connected: bool
    previous_state: bool
    error: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ConnectionLost(Event):
    kind: ClassVar[ConnectionEvent] = ConnectionEvent.CONNECTION_LOST

    state: "ConnectionState"


@dataclass(frozen=True)
class ConnectionRestored(Event):
    kind: ClassVar[ConnectionEvent] = ConnectionEvent.CONNECTION_RESTORED

    state: "ConnectionState"


@dataclass(frozen=True)
class ReconnectionFailed(Event):
    kind: ClassVar[ConnectionEvent] = ConnectionEvent.RECONNECTION_FAILED

    state: "ConnectionState"
    max_attempts: int


@dataclass(frozen=True)
class HealthCheckCompleted(Event):
    kind: ClassVar[ConnectionEvent] = ConnectionEvent.HEALTH_CHECK

    report: "HealthReport"


Listener = Callable[[Any], Any]


class EventBus:
    """
    Synchronous publish/subscribe bus keyed by ``ConnectionEvent``.

    Usage:
        bus = EventBus()
        bus.on("connectionLost", lambda event: print(event.state.last_error))
        bus.emit(ConnectionLost(state=snapshot))
    """

    def __init__(self):
        self._listeners: dict[ConnectionEvent, list[Listener]] = {
            kind: [] for kind in ConnectionEvent
        }

    @staticmethod
    def _resolve(event: ConnectionEvent | str) -> ConnectionEvent:
        try:
            return ConnectionEvent(event)
        except ValueError:
            raise ValueError(
                f"Unknown event '{event}', expected one of {[e.value for e in ConnectionEvent]}"
            ) from None

    def on(self, event: ConnectionEvent | str, listener: Listener) -> None:
        """Subscribe ``listener`` to ``event``."""
        self._listeners[self._resolve(event)].append(listener)

    def off(self, event: ConnectionEvent | str, listener: Listener) -> None:
        """Unsubscribe ``listener``; unknown listeners are ignored."""
        listeners = self._listeners[self._resolve(event)]
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: ConnectionEvent | str) -> int:
        return len(self._listeners[self._resolve(event)])

    def emit(self, event: Event) -> int:
        """
        Deliver ``event`` to every listener of its kind.

        Returns:
            Number of listeners that handled the event without raising
        """
        delivered = 0
        # Copy so listeners may unsubscribe while being dispatched
        for listener in list(self._listeners[event.kind]):
            try:
                listener(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Event listener error",
                    stage="EV.1",
                    event_kind=event.kind.value,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return delivered

    def clear(self) -> None:
        """Remove every listener."""
        for listeners in self._listeners.values():
            listeners.clear()
