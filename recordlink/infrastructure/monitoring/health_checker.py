#!/usr/bin/env python3
"""
Health Checker Module

Runs the three backend sub-checks concurrently and aggregates them:

    all pass  -> healthy
    all fail  -> unhealthy
    otherwise -> degraded

Only the latest report is kept. Every report is emitted on the event bus as
a ``healthCheck`` event.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from recordlink.core.config.constants import (
    HEALTH_CHECK_AUTHENTICATION,
    HEALTH_CHECK_COLLECTIONS,
    HEALTH_CHECK_DATABASE,
    HEALTH_CHECK_TIMEOUT,
)
from recordlink.core.logging.logger import get_logger
from recordlink.core.observability.event_bus import EventBus, HealthCheckCompleted
from recordlink.infrastructure.monitoring.health_probe import HealthProbe
from recordlink.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthReport:
    """Result of one health check run."""

    overall: HealthStatus
    checks: dict[str, HealthStatus]
    duration: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "overall": self.overall.value,
            "checks": {name: status.value for name, status in self.checks.items()},
            "duration": round(self.duration, 6),
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error:
            data["error"] = self.error
        return data


def aggregate_status(checks: dict[str, HealthStatus]) -> HealthStatus:
    """
    Combine sub-check results into an overall status.

    An empty check set is reported unhealthy.
    """
    failed = sum(1 for status in checks.values() if status != HealthStatus.HEALTHY)
    if not checks or failed == len(checks):
        return HealthStatus.UNHEALTHY
    if failed:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthChecker:
    """
    Health checker for the record API.

    STAGE-H: Health check orchestration

    Usage:
        checker = HealthChecker(probe, event_bus)
        report = await checker.perform_health_check()
        report.overall  # HealthStatus.DEGRADED
    """

    def __init__(
        self,
        probe: HealthProbe,
        event_bus: EventBus | None = None,
        check_timeout: float = HEALTH_CHECK_TIMEOUT,
    ):
        """
        Initialize health checker.

        Args:
            probe: Probe issuing the backend requests
            event_bus: Bus receiving ``healthCheck`` events (optional)
            check_timeout: Budget for each sub-check in seconds
        """
        self._probe = probe
        self._events = event_bus
        self.check_timeout = check_timeout
        self.last_report: HealthReport | None = None
        self._metrics = get_metrics_collector()

        logger.info("Health checker initialized", stage="H.0", check_timeout=check_timeout)

    async def _run_check(self, name: str, check) -> HealthStatus:
        try:
            await asyncio.wait_for(check(), timeout=self.check_timeout)
            return HealthStatus.HEALTHY
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(
                "Health sub-check failed",
                stage="H.1.1",
                check=name,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            return HealthStatus.UNHEALTHY

    async def perform_health_check(self) -> HealthReport:
        """
        Run all sub-checks concurrently and aggregate them.

        STAGE-H.1: Health check run

        Returns:
            HealthReport (never raises for backend failures)
        """
        start = time.perf_counter()
        checks = {
            HEALTH_CHECK_DATABASE: self._probe.check_reachability,
            HEALTH_CHECK_AUTHENTICATION: self._probe.check_auth,
            HEALTH_CHECK_COLLECTIONS: self._probe.check_resource,
        }

        try:
            results = await asyncio.gather(
                *(self._run_check(name, check) for name, check in checks.items())
            )
            statuses = dict(zip(checks.keys(), results))
            report = HealthReport(
                overall=aggregate_status(statuses),
                checks=statuses,
                duration=time.perf_counter() - start,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Health check failed: {e}", stage="H.1.ERROR", error=str(e))
            report = HealthReport(
                overall=HealthStatus.UNHEALTHY,
                checks={},
                duration=time.perf_counter() - start,
                error=str(e),
            )

        self.last_report = report
        self._metrics.record_health_check(report.overall.value, report.duration)

        if self._events is not None:
            self._events.emit(HealthCheckCompleted(report=report))

        logger.debug("Health check completed", stage="H.1.2", **report.to_dict())
        return report
