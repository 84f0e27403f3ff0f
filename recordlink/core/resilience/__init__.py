"""
Resilience Module - Core Resilience Components

COMPONENTS:
===========
- ConnectionMonitor: periodic reachability probe, lost/restored detection
- ReconnectionCoordinator: bounded exponential-backoff reconnection
- QueryExecutor / AdmissionController: concurrency cap, timeout budget, retries
- RetryQueue: deferred replay of mutations made while offline
- ConnectionPoolTracker: logical slot budget with idle reclamation
- PeriodicTask: independently cancellable background jobs
"""

from .connection_monitor import ConnectionMonitor
from .connection_pool_tracker import ConnectionPoolSlot, ConnectionPoolTracker
from .connection_state import ConnectionState
from .periodic_task import PeriodicTask
from .query_executor import (
    ActiveQueryRecord,
    AdmissionController,
    CancellationHandle,
    ExecuteOptions,
    QueryExecutor,
    default_retry_condition,
)
from .reconnection import ReconnectionCoordinator, ReconnectionPolicy
from .retry_queue import RetryQueue, RetryQueueItem

__all__ = [
    "ActiveQueryRecord",
    "AdmissionController",
    "CancellationHandle",
    "ConnectionMonitor",
    "ConnectionPoolSlot",
    "ConnectionPoolTracker",
    "ConnectionState",
    "ExecuteOptions",
    "PeriodicTask",
    "QueryExecutor",
    "ReconnectionCoordinator",
    "ReconnectionPolicy",
    "RetryQueue",
    "RetryQueueItem",
    "default_retry_condition",
]
