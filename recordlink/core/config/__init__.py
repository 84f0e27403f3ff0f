"""
Configuration Module

Centralized, type-safe configuration for the resilience layer.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Timing defaults, limits and enums

Usage:
------
```python
from recordlink.core.config import get_settings
from recordlink.core.config.constants import ReconnectionPhase

settings = get_settings()
settings.reconnect.RECONNECT_BASE_DELAY   # 5.0
settings.query.MAX_CONCURRENT_QUERIES     # 50
```

Environment Variables:
---------------------
```bash
BACKEND_URL=https://records.example.com
PING_INTERVAL=30
MAX_RECONNECT_ATTEMPTS=10
QUERY_TIMEOUT=30
LOG_LEVEL=INFO
LOG_FORMAT=json
```

Testing:
-------
```python
import os
from recordlink.core.config import reload_settings

os.environ["PING_INTERVAL"] = "1"
settings = reload_settings()
assert settings.monitor.PING_INTERVAL == 1.0
```
"""

from recordlink.core.config.constants import (
    CONNECTION_POOL_SIZE,
    CONNECTION_TIMEOUT,
    HEALTH_CHECK_INTERVAL,
    HEALTH_CHECK_TIMEOUT,
    IDLE_CONNECTION_TIMEOUT,
    MAX_CONCURRENT_QUERIES,
    MAX_RECONNECT_ATTEMPTS,
    MAX_RETRIES,
    PING_INTERVAL,
    QUERY_TIMEOUT,
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DELAY,
    RETRY_BACKOFF_FACTOR,
    RETRY_BASE_DELAY,
    RETRY_QUEUE_MAX_AGE,
    RETRY_QUEUE_MAX_SIZE,
    QueryStatus,
    ReconnectionPhase,
    Stage,
)
from recordlink.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "Stage",
    "ReconnectionPhase",
    "QueryStatus",
    # Monitor
    "PING_INTERVAL",
    "CONNECTION_TIMEOUT",
    # Reconnection
    "MAX_RECONNECT_ATTEMPTS",
    "RECONNECT_BASE_DELAY",
    "RECONNECT_BACKOFF_FACTOR",
    "RECONNECT_MAX_DELAY",
    # Queries
    "QUERY_TIMEOUT",
    "MAX_CONCURRENT_QUERIES",
    "MAX_RETRIES",
    "RETRY_BASE_DELAY",
    "RETRY_BACKOFF_FACTOR",
    # Retry queue
    "RETRY_QUEUE_MAX_SIZE",
    "RETRY_QUEUE_MAX_AGE",
    # Pool
    "CONNECTION_POOL_SIZE",
    "IDLE_CONNECTION_TIMEOUT",
    # Health
    "HEALTH_CHECK_INTERVAL",
    "HEALTH_CHECK_TIMEOUT",
]
