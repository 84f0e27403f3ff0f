"""
Health-check command line tool.

Probes a record API the same way the connection service does and reports
the aggregated status. Suitable for cron jobs, container health checks and
deployment gates.

Exit codes:
    0  healthy
    1  degraded
    2  unhealthy (or the check itself could not run)
"""

import argparse
import asyncio
import json
import sys
from enum import Enum

import httpx

from recordlink.core.config.settings import get_settings
from recordlink.core.exceptions import ConfigurationError
from recordlink.core.logging.logger import get_logger, setup_logging
from recordlink.infrastructure.backend.http_client import HttpBackendClient
from recordlink.infrastructure.monitoring.health_checker import (
    HealthChecker,
    HealthReport,
    HealthStatus,
)
from recordlink.infrastructure.monitoring.health_probe import HealthProbe

logger = get_logger(__name__)


class ExitCode(Enum):
    HEALTHY = 0
    DEGRADED = 1
    UNHEALTHY = 2


_EXIT_CODES = {
    HealthStatus.HEALTHY: ExitCode.HEALTHY,
    HealthStatus.DEGRADED: ExitCode.DEGRADED,
    HealthStatus.UNHEALTHY: ExitCode.UNHEALTHY,
}


def exit_code_for(report: HealthReport) -> int:
    return _EXIT_CODES[report.overall].value


def format_report(report: HealthReport, output_format: str = "text") -> str:
    """Render a report as JSON or as a short text table."""
    if output_format == "json":
        return json.dumps(report.to_dict(), indent=2)

    lines = [
        "=" * 60,
        f"RECORD API HEALTH: {report.overall.value.upper()}",
        "=" * 60,
    ]
    for name, status in report.checks.items():
        icon = "[OK]" if status == HealthStatus.HEALTHY else "[X]"
        lines.append(f"  {icon} {name:<20} {status.value}")
    if report.error:
        lines.append(f"  -> {report.error}")
    lines.append(f"  duration: {report.duration * 1000:.1f} ms")
    lines.append("=" * 60)
    return "\n".join(lines)


async def run_health_check(
    url: str,
    timeout: float,
    auth_token: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HealthReport:
    """Run one health check against ``url``."""
    settings = get_settings()
    async with HttpBackendClient(url, auth_token=auth_token, timeout=timeout, transport=transport) as backend:
        probe = HealthProbe(
            backend,
            auth_collection=settings.BACKEND_AUTH_COLLECTION,
            probe_collection=settings.BACKEND_PROBE_COLLECTION,
        )
        checker = HealthChecker(probe, check_timeout=timeout)
        return await checker.perform_health_check()


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="recordlink-health",
        description="Check the health of a record API backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # Check BACKEND_URL once
  %(prog)s --url http://db.internal:8090     # Check a specific backend
  %(prog)s --watch 30 --format json          # Re-check every 30 seconds
        """,
    )
    parser.add_argument(
        "--url",
        default=settings.BACKEND_URL,
        help=f"Record API base URL (default: {settings.BACKEND_URL})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.HEALTH_CHECK_TIMEOUT,
        metavar="SECONDS",
        help=f"Per-check timeout in seconds (default: {settings.HEALTH_CHECK_TIMEOUT})",
    )
    parser.add_argument(
        "--watch",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Repeat the check every SECONDS until interrupted",
    )
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        dest="output_format",
        help="Output format (default: text)",
    )
    return parser


async def _run(args: argparse.Namespace) -> int:
    token = get_settings().BACKEND_AUTH_TOKEN
    while True:
        report = await run_health_check(args.url, args.timeout, auth_token=token)
        print(format_report(report, args.output_format), flush=True)
        if not args.watch:
            return exit_code_for(report)
        await asyncio.sleep(args.watch)


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    try:
        parser = create_parser()
    except ConfigurationError as e:
        print(f"{e.message}: {', '.join(e.details.get('fields', []))}", file=sys.stderr)
        return ExitCode.UNHEALTHY.value

    args = parser.parse_args(argv)
    if args.watch is not None and args.watch <= 0:
        parser.error("--watch must be positive")

    # Warnings only, so log lines do not drown the report
    setup_logging(log_level="WARNING", log_format="console")

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        # Interrupting --watch is the normal way to end it
        return ExitCode.HEALTHY.value if args.watch else ExitCode.UNHEALTHY.value
    except Exception as e:
        logger.critical(f"Health check could not run: {e}", stage="CLI.ERROR")
        return ExitCode.UNHEALTHY.value


if __name__ == "__main__":
    sys.exit(main())
