"""
Connection Service - Resilience Facade

Single entry point applications hold on to. Wires the resilience components
around one backend client and runs their background jobs.

ARCHITECTURE:
=============
    execute() ──> QueryExecutor ──> AdmissionController
                       │                 (cap, active set)
                       └──> RetryQueue (mutations failing while offline)

    PeriodicTask "ping" ──> ConnectionMonitor ──connectionLost──> ReconnectionCoordinator
                                   │
                                   └──connectionRestored──> RetryQueue.schedule_drain()

BACKGROUND JOBS:
================
- ping                  ConnectionMonitor.ping_database
- health_check          HealthChecker.perform_health_check
- retry_queue_drain     RetryQueue.drain
- pool_idle_sweep       ConnectionPoolTracker.cleanup_idle_connections
- query_timeout_scan    QueryExecutor.check_query_timeouts
- connection_activity   ConnectionService.update_connection_activity

One instance per process, constructed at startup and passed by reference.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from recordlink.core.config.constants import Stage
from recordlink.core.config.settings import Settings, get_settings
from recordlink.core.logging.logger import get_logger
from recordlink.core.observability.event_bus import ConnectionEvent, EventBus
from recordlink.core.resilience.connection_monitor import ConnectionMonitor
from recordlink.core.resilience.connection_pool_tracker import (
    ConnectionPoolSlot,
    ConnectionPoolTracker,
)
from recordlink.core.resilience.connection_state import ConnectionState
from recordlink.core.resilience.periodic_task import PeriodicTask
from recordlink.core.resilience.query_executor import (
    AdmissionController,
    ExecuteOptions,
    QueryExecutor,
)
from recordlink.core.resilience.reconnection import ReconnectionCoordinator, ReconnectionPolicy
from recordlink.core.resilience.retry_queue import RetryQueue
from recordlink.infrastructure.backend.base import BackendClient
from recordlink.infrastructure.backend.http_client import HttpBackendClient
from recordlink.infrastructure.monitoring.health_checker import HealthChecker, HealthReport
from recordlink.infrastructure.monitoring.health_probe import HealthProbe

logger = get_logger(__name__)

_STAGE = Stage.SERVICE.value


def _iso(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class ConnectionService:
    """
    Connection resilience facade.

    STAGE-SVC: Connection service

    Usage:
        service = ConnectionService.from_settings(get_settings())
        async with service:
            record = await service.execute(
                lambda: service.backend.create_record("posts", payload),
                operation_name="posts.create",
                mutation=True,
            )
            metrics = service.get_health_metrics()
    """

    def __init__(
        self,
        backend: BackendClient,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        owns_backend: bool = False,
    ):
        """
        Initialize connection service.

        Args:
            backend: Record API client
            settings: Configuration (global settings when omitted)
            sleep: Sleep used for reconnection and retry backoff
            owns_backend: Close ``backend`` on ``stop()``
        """
        self.settings = settings or get_settings()
        self.backend = backend
        self._owns_backend = owns_backend
        s = self.settings

        self.events = EventBus()
        self.probe = HealthProbe(
            backend,
            auth_collection=s.BACKEND_AUTH_COLLECTION,
            probe_collection=s.BACKEND_PROBE_COLLECTION,
        )
        self.monitor = ConnectionMonitor(self.probe, self.events, connection_timeout=s.CONNECTION_TIMEOUT)
        self.reconnection = ReconnectionCoordinator(
            self.monitor,
            self.events,
            ReconnectionPolicy(
                base_delay=s.RECONNECT_BASE_DELAY,
                backoff_factor=s.RECONNECT_BACKOFF_FACTOR,
                max_delay=s.RECONNECT_MAX_DELAY,
                max_attempts=s.MAX_RECONNECT_ATTEMPTS,
            ),
            sleep=sleep,
        )
        self.retry_queue = RetryQueue(
            is_connected=lambda: self.monitor.is_connected,
            max_size=s.RETRY_QUEUE_MAX_SIZE,
            batch_size=s.RETRY_QUEUE_BATCH_SIZE,
            max_attempts=s.RETRY_QUEUE_MAX_ATTEMPTS,
            default_max_age=s.RETRY_QUEUE_MAX_AGE,
            operation_timeout=s.QUERY_TIMEOUT,
        )
        self.pool = ConnectionPoolTracker(size=s.CONNECTION_POOL_SIZE, idle_timeout=s.IDLE_CONNECTION_TIMEOUT)
        self.executor = QueryExecutor(
            AdmissionController(max_concurrent=s.MAX_CONCURRENT_QUERIES),
            retry_queue=self.retry_queue,
            is_connected=lambda: self.monitor.is_connected,
            query_timeout=s.QUERY_TIMEOUT,
            sleep=sleep,
        )
        self.health_checker = HealthChecker(self.probe, self.events, check_timeout=s.HEALTH_CHECK_TIMEOUT)

        self.events.on(ConnectionEvent.CONNECTION_RESTORED, self._on_connection_restored)

        self.tasks: dict[str, PeriodicTask] = {
            task.name: task
            for task in (
                PeriodicTask("ping", s.PING_INTERVAL, self.monitor.ping_database),
                PeriodicTask("health_check", s.HEALTH_CHECK_INTERVAL, self.health_checker.perform_health_check),
                PeriodicTask("retry_queue_drain", s.RETRY_QUEUE_DRAIN_INTERVAL, self.retry_queue.drain),
                PeriodicTask("pool_idle_sweep", s.POOL_CLEANUP_INTERVAL, self.pool.cleanup_idle_connections),
                PeriodicTask("query_timeout_scan", s.QUERY_TIMEOUT_SCAN_INTERVAL, self.executor.check_query_timeouts),
                PeriodicTask("connection_activity", s.ACTIVITY_UPDATE_INTERVAL, self.update_connection_activity),
            )
        }

        self._started = False
        self._last_activity: float | None = None

        logger.info(
            "Connection service initialized",
            stage=f"{_STAGE}.0",
            resilience_enabled=s.RESILIENCE_ENABLED,
            max_concurrent_queries=s.MAX_CONCURRENT_QUERIES,
            query_timeout=s.QUERY_TIMEOUT,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, backend: BackendClient | None = None) -> "ConnectionService":
        """
        Build a service, creating an ``HttpBackendClient`` when none is given.
        """
        settings = settings or get_settings()
        owns_backend = backend is None
        if backend is None:
            backend = HttpBackendClient(
                settings.BACKEND_URL,
                auth_token=settings.BACKEND_AUTH_TOKEN,
                timeout=settings.BACKEND_REQUEST_TIMEOUT,
            )
        return cls(backend, settings, owns_backend=owns_backend)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """
        Run the initial connection check and start the background jobs.

        STAGE-SVC.1: Startup

        Background jobs are skipped when ``RESILIENCE_ENABLED`` is false.
        """
        if self._started:
            return

        await self.monitor.initialize()
        if self.settings.RESILIENCE_ENABLED:
            for task in self.tasks.values():
                task.start()

        self._started = True
        logger.info(
            "Connection service started",
            stage=f"{_STAGE}.1",
            is_connected=self.monitor.is_connected,
            background_jobs=list(self.tasks) if self.settings.RESILIENCE_ENABLED else [],
        )

    async def stop(self) -> None:
        """
        Stop background jobs, cancel in-flight work and release the backend.

        STAGE-SVC.2: Shutdown
        """
        await asyncio.gather(*(task.stop() for task in self.tasks.values()))
        await self.reconnection.stop()
        await self.retry_queue.stop()
        cancelled = self.executor.cancel_all()

        if self._owns_backend:
            await self.backend.aclose()

        self._started = False
        logger.info("Connection service stopped", stage=f"{_STAGE}.2", cancelled_queries=cancelled)

    async def __aenter__(self) -> "ConnectionService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def _on_connection_restored(self, event) -> None:
        if len(self.retry_queue):
            logger.info(
                "Connection restored, draining retry queue",
                stage=f"{_STAGE}.3",
                queue_size=len(self.retry_queue),
            )
            self.retry_queue.schedule_drain()

    # =========================================================================
    # Query Execution
    # =========================================================================

    async def execute(self, operation: Callable[[], Awaitable[Any]], options: ExecuteOptions | None = None, **overrides) -> Any:
        """
        Run a backend operation with admission control, timeout and retries.

        See ``QueryExecutor.execute``.
        """
        return await self.executor.execute(operation, options, **overrides)

    async def execute_query(self, fn: Callable[[], Awaitable[Any]], operation_name: str = "unknown") -> Any:
        """Shorthand for ``execute(fn, operation_name=operation_name)``."""
        return await self.execute(fn, operation_name=operation_name)

    # =========================================================================
    # Connection
    # =========================================================================

    async def check_connection(self) -> bool:
        return await self.monitor.check_connection()

    def get_connection_state(self) -> ConnectionState:
        """Independent copy of the connection state."""
        return self.monitor.state

    async def force_reconnect(self) -> bool:
        return await self.reconnection.force_reconnect()

    def on(self, event: ConnectionEvent | str, listener: Callable[[Any], Any]) -> None:
        self.events.on(event, listener)

    def off(self, event: ConnectionEvent | str, listener: Callable[[Any], Any]) -> None:
        self.events.off(event, listener)

    # =========================================================================
    # Retry Queue
    # =========================================================================

    def clear_retry_queue(self) -> int:
        return self.retry_queue.clear()

    def get_retry_queue_size(self) -> int:
        return len(self.retry_queue)

    # =========================================================================
    # Pool
    # =========================================================================

    async def acquire_connection(self) -> ConnectionPoolSlot:
        return await self.pool.acquire()

    async def release_connection(self, slot: ConnectionPoolSlot) -> None:
        await self.pool.release(slot)

    # =========================================================================
    # Health
    # =========================================================================

    async def perform_health_check(self) -> HealthReport:
        return await self.health_checker.perform_health_check()

    @property
    def last_activity(self) -> float | None:
        """Latest of the activity heartbeat and the last completed query."""
        candidates = [t for t in (self._last_activity, self.executor.last_activity) if t is not None]
        return max(candidates) if candidates else None

    def update_connection_activity(self) -> None:
        """
        Record activity and log pool status.

        STAGE-SVC.4: Activity heartbeat
        """
        self._last_activity = time.time()
        stats = self.pool.get_stats()
        logger.debug(
            "Connection pool status",
            stage=f"{_STAGE}.4",
            active=stats["active"],
            idle=stats["idle"],
            active_queries=self.executor.active_count,
            total=stats["total"],
        )

    def get_health_metrics(self) -> dict[str, Any]:
        """
        Aggregated status for dashboards and health endpoints.

        Returns:
            Dict with connection, retry_queue, connection_pool, queries,
            performance, config and the latest health report
        """
        s = self.settings
        connection = self.monitor.state.to_dict()
        connection["is_reconnecting"] = self.reconnection.is_reconnecting
        connection["reconnection_phase"] = self.reconnection.phase.value

        last_report = self.health_checker.last_report
        return {
            "connection": connection,
            "retry_queue": self.retry_queue.snapshot(),
            "connection_pool": self.pool.get_stats(),
            "queries": {
                "active": self.executor.active_count,
                "total": self.executor.total_queries,
                "max_concurrent": s.MAX_CONCURRENT_QUERIES,
            },
            "performance": {
                "last_activity": _iso(self.last_activity),
                "query_timeout": s.QUERY_TIMEOUT,
                "idle_timeout": s.IDLE_CONNECTION_TIMEOUT,
            },
            "config": {
                "enabled": s.RESILIENCE_ENABLED,
                "ping_interval": s.PING_INTERVAL,
                "connection_timeout": s.CONNECTION_TIMEOUT,
                "max_reconnect_attempts": s.MAX_RECONNECT_ATTEMPTS,
                "reconnect_base_delay": s.RECONNECT_BASE_DELAY,
                "reconnect_backoff_factor": s.RECONNECT_BACKOFF_FACTOR,
                "reconnect_max_delay": s.RECONNECT_MAX_DELAY,
                "health_check_interval": s.HEALTH_CHECK_INTERVAL,
                "max_concurrent_queries": s.MAX_CONCURRENT_QUERIES,
                "connection_pool_size": s.CONNECTION_POOL_SIZE,
            },
            "health": last_report.to_dict() if last_report else None,
        }
