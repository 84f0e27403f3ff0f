"""
Unit Tests for Configuration Constants

Tests the timing defaults and enumerations.
"""

import pytest

from recordlink.core.config.constants import (
    CONNECTION_TIMEOUT,
    HEALTH_CHECK_AUTHENTICATION,
    HEALTH_CHECK_COLLECTIONS,
    HEALTH_CHECK_DATABASE,
    MAX_CONCURRENT_QUERIES,
    MAX_RECONNECT_ATTEMPTS,
    PING_INTERVAL,
    QUERY_TIMEOUT,
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DELAY,
    RETRY_QUEUE_MAX_AGE,
    RETRY_QUEUE_MAX_SIZE,
    QueryStatus,
    ReconnectionPhase,
    Stage,
)


@pytest.mark.unit
class TestTimingConstants:
    """Test timing defaults."""

    def test_documented_defaults(self):
        assert PING_INTERVAL == 30.0
        assert CONNECTION_TIMEOUT == 10.0
        assert QUERY_TIMEOUT == 30.0
        assert MAX_CONCURRENT_QUERIES == 50
        assert RETRY_QUEUE_MAX_SIZE == 100
        assert RETRY_QUEUE_MAX_AGE == 300.0

    def test_reconnect_backoff_is_bounded(self):
        assert MAX_RECONNECT_ATTEMPTS == 10
        assert RECONNECT_BACKOFF_FACTOR >= 1
        assert 0 < RECONNECT_BASE_DELAY <= RECONNECT_MAX_DELAY

    def test_probe_timeout_shorter_than_interval(self):
        assert CONNECTION_TIMEOUT < PING_INTERVAL


@pytest.mark.unit
class TestEnums:
    """Test enumeration values."""

    def test_stage_prefixes_are_unique(self):
        values = [stage.value for stage in Stage]
        assert len(set(values)) == len(values)

    def test_stage_is_string(self):
        assert f"{Stage.MONITOR.value}.2" == "MON.2"

    def test_reconnection_phases(self):
        assert {phase.value for phase in ReconnectionPhase} == {"idle", "reconnecting", "exhausted"}

    def test_query_status_values(self):
        assert QueryStatus.REJECTED.value == "rejected"
        assert QueryStatus("timeout") is QueryStatus.TIMEOUT

    def test_health_check_names_are_unique(self):
        names = [HEALTH_CHECK_DATABASE, HEALTH_CHECK_AUTHENTICATION, HEALTH_CHECK_COLLECTIONS]
        assert len(set(names)) == 3
