"""
Observability Module

Typed connection lifecycle events and their synchronous dispatch.
"""

from .event_bus import (
    ConnectionEvent,
    ConnectionLost,
    ConnectionRestored,
    ConnectionStateChanged,
    Event,
    EventBus,
    HealthCheckCompleted,
    ReconnectionFailed,
)

__all__ = [
    "ConnectionEvent",
    "ConnectionLost",
    "ConnectionRestored",
    "ConnectionStateChanged",
    "Event",
    "EventBus",
    "HealthCheckCompleted",
    "ReconnectionFailed",
]
