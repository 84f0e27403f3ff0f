from .health_checker import HealthChecker, HealthReport, HealthStatus, aggregate_status
from .health_probe import HealthProbe
from .metrics_collector import MetricsCollector, get_metrics_collector

__all__ = [
    "HealthChecker",
    "HealthProbe",
    "HealthReport",
    "HealthStatus",
    "MetricsCollector",
    "aggregate_status",
    "get_metrics_collector",
]
