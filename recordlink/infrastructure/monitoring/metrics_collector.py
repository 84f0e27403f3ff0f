#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

This module provides metrics for the resilience layer:
- Query outcomes, latency and admission rejections
- Connection state, transitions and probe latency
- Reconnection attempts and exhaustion
- Retry queue depth and replay outcomes
- Logical pool utilization and health status

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards and alerting rules
- Alerting on connection loss or reconnection exhaustion is done from these
  series rather than from in-process hooks
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from recordlink.core.config.settings import get_settings
from recordlink.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# Query metrics
QUERY_COUNT = Counter(
    'recordlink_queries_total',
    'Total executed operations by outcome',
    ['status', 'operation']
)

QUERY_DURATION = Histogram(
    'recordlink_query_duration_seconds',
    'Operation duration in seconds, retries included',
    ['operation'],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

ACTIVE_QUERIES = Gauge(
    'recordlink_active_queries',
    'Number of admitted, unfinished operations'
)

QUERY_RETRIES = Counter(
    'recordlink_query_retries_total',
    'Retry attempts after retryable failures',
    ['operation']
)

ADMISSION_REJECTIONS = Counter(
    'recordlink_admission_rejections_total',
    'Operations rejected by the concurrency cap'
)

QUERY_TIMEOUTS = Counter(
    'recordlink_query_timeouts_total',
    'Operations cancelled for exceeding the query timeout',
    ['operation']
)

# Connection metrics
CONNECTION_STATE = Gauge(
    'recordlink_connection_up',
    'Backend reachability (1=connected, 0=disconnected)'
)

CONNECTION_TRANSITIONS = Counter(
    'recordlink_connection_transitions_total',
    'Connection lost/restored transitions',
    ['direction']  # lost, restored
)

PROBE_LATENCY = Histogram(
    'recordlink_probe_latency_seconds',
    'Reachability probe latency',
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

RECONNECT_ATTEMPTS = Counter(
    'recordlink_reconnect_attempts_total',
    'Reconnection probes issued by the coordinator'
)

RECONNECTION_FAILURES = Counter(
    'recordlink_reconnection_exhausted_total',
    'Reconnection loops that reached the attempt cap'
)

# Retry queue metrics
RETRY_QUEUE_DEPTH = Gauge(
    'recordlink_retry_queue_depth',
    'Pending queued mutations'
)

RETRY_QUEUE_EVENTS = Counter(
    'recordlink_retry_queue_events_total',
    'Retry queue item lifecycle events',
    ['event']  # enqueued, evicted, expired, replayed, failed, dropped, cleared
)

# Pool metrics
POOL_SLOTS_IN_USE = Gauge(
    'recordlink_pool_slots_in_use',
    'Logical connection slots currently acquired'
)

POOL_RECLAIMED = Counter(
    'recordlink_pool_reclaimed_total',
    'Idle slots reclaimed by the cleanup sweep'
)

# Health metrics
HEALTH_STATUS = Gauge(
    'recordlink_health_status',
    'Latest health report (0=healthy, 1=degraded, 2=unhealthy)'
)

HEALTH_CHECK_DURATION = Histogram(
    'recordlink_health_check_duration_seconds',
    'Health check duration',
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

# App info
APP_INFO = Info(
    'recordlink_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_query("success", "posts.create", 0.042)
        metrics.set_connection_state(False)
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        """Initialize metrics collector."""
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Query Metrics
    # =========================================================================

    def record_query(self, status: str, operation: str, duration_seconds: float) -> None:
        """Record a finished operation."""
        QUERY_COUNT.labels(status=status, operation=operation).inc()
        QUERY_DURATION.labels(operation=operation).observe(duration_seconds)

    def set_active_queries(self, count: int) -> None:
        """Set the number of active operations."""
        ACTIVE_QUERIES.set(count)

    def record_query_retry(self, operation: str) -> None:
        """Record a retry after a retryable failure."""
        QUERY_RETRIES.labels(operation=operation).inc()

    def record_admission_rejection(self) -> None:
        """Record an admission rejection."""
        ADMISSION_REJECTIONS.inc()

    def record_query_timeout(self, operation: str) -> None:
        """Record a query timeout."""
        QUERY_TIMEOUTS.labels(operation=operation).inc()

    # =========================================================================
    # Connection Metrics
    # =========================================================================

    def set_connection_state(self, is_connected: bool) -> None:
        """Set current reachability."""
        CONNECTION_STATE.set(1 if is_connected else 0)

    def record_connection_transition(self, direction: str) -> None:
        """Record a lost/restored transition."""
        CONNECTION_TRANSITIONS.labels(direction=direction).inc()

    def record_probe_latency(self, duration_seconds: float) -> None:
        """Record reachability probe latency."""
        PROBE_LATENCY.observe(duration_seconds)

    def record_reconnect_attempt(self) -> None:
        """Record a reconnection probe."""
        RECONNECT_ATTEMPTS.inc()

    def record_reconnection_failed(self) -> None:
        """Record reconnection exhaustion."""
        RECONNECTION_FAILURES.inc()

    # =========================================================================
    # Retry Queue Metrics
    # =========================================================================

    def set_retry_queue_depth(self, depth: int) -> None:
        """Set retry queue depth."""
        RETRY_QUEUE_DEPTH.set(depth)

    def record_retry_queue_event(self, event: str, count: int = 1) -> None:
        """Record retry queue item events."""
        if count > 0:
            RETRY_QUEUE_EVENTS.labels(event=event).inc(count)

    # =========================================================================
    # Pool Metrics
    # =========================================================================

    def set_pool_in_use(self, count: int) -> None:
        """Set acquired slot count."""
        POOL_SLOTS_IN_USE.set(count)

    def record_pool_reclaimed(self, count: int) -> None:
        """Record reclaimed idle slots."""
        if count > 0:
            POOL_RECLAIMED.inc(count)

    # =========================================================================
    # Health Metrics
    # =========================================================================

    def record_health_check(self, status: str, duration_seconds: float) -> None:
        """Record a health report."""
        status_value = {"healthy": 0, "degraded": 1, "unhealthy": 2}.get(status, 2)
        HEALTH_STATUS.set(status_value)
        HEALTH_CHECK_DURATION.observe(duration_seconds)

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
