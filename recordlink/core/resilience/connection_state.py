"""
Connection State - Reachability Snapshot

Holds what the connection monitor currently knows about the backend. Only
``ConnectionMonitor`` mutates the live instance; every other component reads
copies obtained through ``snapshot()``.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any


@dataclass
class ConnectionState:
    """
    Current reachability of the record API.

    Attributes:
        is_connected: Result of the latest probe
        last_ping: UTC time of the latest probe
        last_error: Error text of the latest failed probe
        consecutive_failures: Failed probes since the last success
        reconnect_attempts: Probes issued by the current reconnection loop
        response_time: Latency of the latest successful probe (seconds)
    """

    is_connected: bool = False
    last_ping: datetime | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    reconnect_attempts: int = 0
    response_time: float | None = None

    def snapshot(self) -> "ConnectionState":
        """Return an independent copy."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_ping"] = self.last_ping.isoformat() if self.last_ping else None
        return data
