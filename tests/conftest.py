"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from recordlink.core.config.settings import Settings  # noqa: E402
from recordlink.core.observability.event_bus import EventBus  # noqa: E402
from recordlink.core.resilience.connection_monitor import ConnectionMonitor  # noqa: E402
from recordlink.infrastructure.monitoring.health_probe import HealthProbe  # noqa: E402
from tests.test_fixtures.backend_factory import (  # noqa: E402
    EventRecorder,
    FakeBackend,
    FakeClock,
    RecordingSleep,
)

# pytest-asyncio runs in auto mode (see pyproject.toml); no event_loop fixture


# ============================================================================
# Backend Fixtures
# ============================================================================


@pytest.fixture
def fake_backend():
    """Reachable, signed-out in-memory record API."""
    return FakeBackend()


@pytest.fixture
def probe(fake_backend):
    return HealthProbe(fake_backend)


# ============================================================================
# Event Fixtures
# ============================================================================


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    """Records every event emitted on ``event_bus``."""
    return EventRecorder(event_bus)


@pytest.fixture
def monitor(probe, event_bus):
    return ConnectionMonitor(probe, event_bus, connection_timeout=0.5)


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    """Sleep that records delays without waiting."""
    return RecordingSleep()


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """
    Settings with short intervals for service tests.

    Built directly rather than through get_settings() so tests never share
    state through the singleton.
    """
    return Settings(
        PING_INTERVAL=0.05,
        CONNECTION_TIMEOUT=0.5,
        MAX_RECONNECT_ATTEMPTS=3,
        RECONNECT_BASE_DELAY=0.01,
        RECONNECT_MAX_DELAY=0.05,
        QUERY_TIMEOUT=1.0,
        MAX_CONCURRENT_QUERIES=5,
        QUERY_TIMEOUT_SCAN_INTERVAL=0.05,
        RETRY_QUEUE_DRAIN_INTERVAL=0.05,
        POOL_CLEANUP_INTERVAL=0.05,
        ACTIVITY_UPDATE_INTERVAL=0.05,
        HEALTH_CHECK_INTERVAL=0.05,
        HEALTH_CHECK_TIMEOUT=0.5,
        CONNECTION_POOL_SIZE=3,
        RESILIENCE_ENABLED=True,
    )
