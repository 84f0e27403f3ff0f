"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the record API resilience layer.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for timing defaults and limits
- Type-safe enums for state management
- Easy to update and track changes

All durations are expressed in seconds.
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Subsystem stage prefixes used in the ``stage=`` field of log entries.

    Format: {PREFIX}.{SUB_STAGE}

    Sub-stages append a number to the prefix, e.g. ``MON.2`` for the loss path
    of the connection monitor or ``RQ.3`` for a retry queue replay.
    """

    SERVICE = "SVC"
    MONITOR = "MON"
    RECONNECTION = "RC"
    QUERY = "QE"
    RETRY_QUEUE = "RQ"
    POOL = "POOL"
    HEALTH = "H"
    EVENTS = "EV"
    BACKEND = "B"
    SCHEDULER = "S"
    LOGGING = "L"


# ============================================================================
# Reconnection States
# ============================================================================


class ReconnectionPhase(str, Enum):
    """
    Reconnection coordinator states.

    IDLE: No reconnection loop running
    RECONNECTING: Backoff loop in progress
    EXHAUSTED: Attempt cap reached, waiting for force_reconnect()
    """

    IDLE = "idle"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"


# ============================================================================
# Query Status
# ============================================================================


class QueryStatus(str, Enum):
    """
    Final outcome of an executed operation.
    """

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# ============================================================================
# Connection Monitor
# ============================================================================

PING_INTERVAL = 30.0  # Reachability probe every 30s
CONNECTION_TIMEOUT = 10.0  # Single probe budget

# ============================================================================
# Reconnection
# ============================================================================

MAX_RECONNECT_ATTEMPTS = 10
RECONNECT_BASE_DELAY = 5.0
RECONNECT_BACKOFF_FACTOR = 1.5
RECONNECT_MAX_DELAY = 60.0

# ============================================================================
# Query Execution
# ============================================================================

QUERY_TIMEOUT = 30.0  # Total budget per execute() call
MAX_CONCURRENT_QUERIES = 50  # Admission cap, excess calls are rejected
QUERY_TIMEOUT_SCAN_INTERVAL = 5.0

MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0
RETRY_BACKOFF_FACTOR = 2.0

# ============================================================================
# Retry Queue
# ============================================================================

RETRY_QUEUE_MAX_SIZE = 100  # Oldest item evicted past this bound
RETRY_QUEUE_BATCH_SIZE = 5  # Items replayed per drain cycle
RETRY_QUEUE_MAX_ATTEMPTS = 3  # Replays before an item is dropped
RETRY_QUEUE_MAX_AGE = 300.0  # 5 minutes
RETRY_QUEUE_DRAIN_INTERVAL = 5.0

# ============================================================================
# Connection Pool
# ============================================================================

CONNECTION_POOL_SIZE = 10
IDLE_CONNECTION_TIMEOUT = 300.0  # 5 minutes
POOL_CLEANUP_INTERVAL = 60.0
ACTIVITY_UPDATE_INTERVAL = 30.0

# ============================================================================
# Health Checks
# ============================================================================

HEALTH_CHECK_INTERVAL = 60.0
HEALTH_CHECK_TIMEOUT = 5.0  # Per sub-check

HEALTH_CHECK_DATABASE = "database"
HEALTH_CHECK_AUTHENTICATION = "authentication"
HEALTH_CHECK_COLLECTIONS = "collections"

# ============================================================================
# Backend API
# ============================================================================

BACKEND_HEALTH_PATH = "/api/health"
BACKEND_AUTH_COLLECTION = "users"
BACKEND_PROBE_COLLECTION = "users"
BACKEND_REQUEST_TIMEOUT = 10.0

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_AUTHORIZATION = "Authorization"
