"""
Unit Tests for the Health-Check CLI

Tests argument parsing, report rendering and exit codes.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from recordlink import cli
from recordlink.core.exceptions import ConfigurationError
from recordlink.infrastructure.monitoring.health_checker import HealthReport, HealthStatus

H = HealthStatus.HEALTHY
U = HealthStatus.UNHEALTHY


def report(overall, **checks):
    return HealthReport(overall=overall, checks=checks, duration=0.012)


@pytest.mark.unit
class TestParser:
    def test_defaults(self):
        args = cli.create_parser().parse_args([])

        assert args.url == "http://localhost:8090"
        assert args.watch is None
        assert args.output_format == "text"

    def test_options(self):
        args = cli.create_parser().parse_args(
            ["--url", "http://db:8090", "--timeout", "2.5", "--watch", "30", "--format", "json"]
        )

        assert args.url == "http://db:8090"
        assert args.timeout == 2.5
        assert args.watch == 30.0
        assert args.output_format == "json"

    def test_rejects_unknown_format(self):
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args(["--format", "yaml"])


@pytest.mark.unit
class TestFormatting:
    def test_text(self):
        text = cli.format_report(report(HealthStatus.DEGRADED, database=H, collections=U))

        assert "RECORD API HEALTH: DEGRADED" in text
        assert "[OK] database" in text
        assert "[X] collections" in text

    def test_json(self):
        data = json.loads(cli.format_report(report(HealthStatus.HEALTHY, database=H), "json"))

        assert data["overall"] == "healthy"
        assert data["checks"] == {"database": "healthy"}

    @pytest.mark.parametrize(
        "overall,code",
        [(HealthStatus.HEALTHY, 0), (HealthStatus.DEGRADED, 1), (HealthStatus.UNHEALTHY, 2)],
    )
    def test_exit_codes(self, overall, code):
        assert cli.exit_code_for(report(overall)) == code


@pytest.mark.unit
class TestRunHealthCheck:
    @pytest.mark.asyncio
    async def test_against_mock_backend(self):
        def handler(request):
            if request.url.path == "/api/health":
                return httpx.Response(200, json={"code": 200})
            return httpx.Response(503)

        result = await cli.run_health_check("http://db.test", 1.0, transport=httpx.MockTransport(handler))

        assert result.overall == HealthStatus.DEGRADED
        assert result.checks["database"] == H
        assert result.checks["collections"] == U


@pytest.mark.unit
class TestMain:
    def test_single_check_exit_code(self, capsys):
        with patch.object(cli, "run_health_check", AsyncMock(return_value=report(HealthStatus.DEGRADED, database=H))):
            code = cli.main(["--url", "http://db:8090", "--format", "json"])

        assert code == 1
        assert json.loads(capsys.readouterr().out)["overall"] == "degraded"

    def test_unexpected_error_is_unhealthy(self):
        with patch.object(cli, "run_health_check", AsyncMock(side_effect=RuntimeError("boom"))):
            assert cli.main([]) == 2

    def test_watch_must_be_positive(self):
        with pytest.raises(SystemExit):
            cli.main(["--watch", "0"])

    def test_invalid_configuration_is_reported(self, capsys):
        error = ConfigurationError("Invalid configuration: 1 error(s)", details={"fields": ["QUERY_TIMEOUT"]})
        with patch.object(cli, "get_settings", side_effect=error):
            assert cli.main([]) == 2

        assert "QUERY_TIMEOUT" in capsys.readouterr().err
