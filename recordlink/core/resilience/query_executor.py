"""
Query Executor

Runs caller-supplied backend operations under the resilience policy:

    admit -> record -> attempt (timeout budget) -> retry (tenacity) -> queue or raise

Admission:
    ``AdmissionController.admit()`` is synchronous and runs before any await,
    so the concurrency cap cannot be overshot by callers racing each other.
    Rejected calls never occupy a slot and are never retried or queued.

Timeouts:
    ``query_timeout`` is a total budget per ``execute()`` call, measured from
    admission. Each attempt and each backoff wait gets whatever is left of
    it. A timed-out call is never retried locally.

Retries:
    Retryable failures (``retry_condition``) wait
    ``retry_delay * backoff_factor ** attempt`` (attempt 0-based) and run
    again, up to ``max_retries`` extra attempts. ``cancel()`` interrupts a backoff
    wait as well as a running attempt.

Deferred replay:
    A mutation whose final failure is transient while the backend is
    unreachable is handed to the retry queue. The caller still gets the error.
"""

import asyncio
import functools
import itertools
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from recordlink.core.config.constants import (
    MAX_CONCURRENT_QUERIES,
    MAX_RETRIES,
    QUERY_TIMEOUT,
    RETRY_BACKOFF_FACTOR,
    RETRY_BASE_DELAY,
    RETRY_QUEUE_MAX_AGE,
    QueryStatus,
    Stage,
)
from recordlink.core.exceptions import (
    AdmissionDeniedError,
    NetworkError,
    QueryCancelledError,
    QueryError,
    QueryTimeoutError,
    ServerError,
)
from recordlink.core.logging.logger import clear_query_id, get_logger, set_query_id
from recordlink.core.resilience.retry_queue import RetryQueue
from recordlink.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

_STAGE = Stage.QUERY.value

CANCEL_REASON_TIMEOUT = "timeout"
CANCEL_REASON_CANCELLED = "cancelled"
CANCEL_REASON_SHUTDOWN = "shutdown"

Operation = Callable[[], Awaitable[Any]]


def default_retry_condition(exc: BaseException) -> bool:
    """
    Transient failures: network errors, 5xx answers, builtin connection and
    timeout errors, or anything carrying ``status_code >= 500``.
    """
    if isinstance(exc, (NetworkError, ServerError, ConnectionError, TimeoutError)):
        return True
    status_code = getattr(exc, "status_code", None)
    return isinstance(status_code, int) and status_code >= 500


@dataclass(frozen=True)
class ExecuteOptions:
    """Per-call execution options."""

    max_retries: int = MAX_RETRIES
    retry_delay: float = RETRY_BASE_DELAY
    backoff_factor: float = RETRY_BACKOFF_FACTOR
    retry_condition: Callable[[BaseException], bool] = default_retry_condition
    operation_name: str = "unknown"
    mutation: bool = False
    max_age: float = RETRY_QUEUE_MAX_AGE

    def merge(self, **overrides) -> "ExecuteOptions":
        """Copy with the non-None ``overrides`` applied."""
        overrides = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **overrides) if overrides else self


class CancellationHandle:
    """Cancels the attempt task currently bound to an active query."""

    def __init__(self):
        self.reason: str | None = None
        self._task: asyncio.Future | None = None

    def bind(self, task: asyncio.Future) -> None:
        self._task = task
        if self.reason is not None:
            task.cancel()

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    def cancel(self, reason: str = CANCEL_REASON_CANCELLED) -> None:
        if self.reason is None:
            self.reason = reason
        if self._task is not None and not self._task.done():
            self._task.cancel()


@dataclass
class ActiveQueryRecord:
    """An admitted, unfinished ``execute()`` call."""

    query_id: int
    operation_name: str
    start_time: float
    handle: CancellationHandle = field(default_factory=CancellationHandle)

    def age(self, now: float) -> float:
        return now - self.start_time


class AdmissionController:
    """
    Concurrency cap for active queries.

    Holds the active set; ``admit()`` either creates a record or raises.
    """

    def __init__(
        self,
        max_concurrent: int = MAX_CONCURRENT_QUERIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_concurrent = max_concurrent
        self._clock = clock
        self._active: dict[int, ActiveQueryRecord] = {}
        self._ids = itertools.count(1)
        self._metrics = get_metrics_collector()

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def active(self) -> list[ActiveQueryRecord]:
        return list(self._active.values())

    def get(self, query_id: int) -> ActiveQueryRecord | None:
        return self._active.get(query_id)

    def admit(self, operation_name: str) -> ActiveQueryRecord:
        """
        Admit a call or reject it.

        STAGE-QE.0: Admission

        Raises:
            AdmissionDeniedError: The active set is at capacity
        """
        if len(self._active) >= self.max_concurrent:
            self._metrics.record_admission_rejection()
            logger.warning(
                "Admission denied, too many concurrent queries",
                stage=f"{_STAGE}.0",
                active=len(self._active),
                limit=self.max_concurrent,
                operation=operation_name,
            )
            raise AdmissionDeniedError(len(self._active), self.max_concurrent, operation_name)

        record = ActiveQueryRecord(
            query_id=next(self._ids),
            operation_name=operation_name,
            start_time=self._clock(),
        )
        self._active[record.query_id] = record
        self._metrics.set_active_queries(len(self._active))
        return record

    def release(self, record: ActiveQueryRecord) -> None:
        self._active.pop(record.query_id, None)
        self._metrics.set_active_queries(len(self._active))


class QueryExecutor:
    """
    Executes operations with admission, timeouts, retries and deferred replay.

    STAGE-QE: Query execution

    Usage:
        executor = QueryExecutor(admission, retry_queue, is_connected=lambda: monitor.is_connected)
        record = await executor.execute(
            lambda: client.create_record("posts", payload),
            ExecuteOptions(operation_name="posts.create", mutation=True),
        )
    """

    def __init__(
        self,
        admission: AdmissionController,
        retry_queue: RetryQueue | None = None,
        is_connected: Callable[[], bool] = lambda: True,
        query_timeout: float = QUERY_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize query executor.

        Args:
            admission: Concurrency cap and active set
            retry_queue: Destination for deferred mutations (optional)
            is_connected: Current connectivity
            query_timeout: Total budget per call in seconds
            clock: Monotonic clock, must match the admission controller's
            sleep: Sleep used between retries (injectable for tests)
        """
        self.admission = admission
        self.retry_queue = retry_queue
        self._is_connected = is_connected
        self.query_timeout = query_timeout
        self._clock = clock
        self._sleep = sleep
        self.total_queries = 0
        self.last_activity: float | None = None
        self._metrics = get_metrics_collector()

    @property
    def active_count(self) -> int:
        return self.admission.active_count

    async def execute(self, operation: Operation, options: ExecuteOptions | None = None, **overrides) -> Any:
        """
        Run ``operation`` under the resilience policy.

        Args:
            operation: Zero-argument coroutine function performing the call
            options: Execution options (defaults when omitted)
            **overrides: Individual ``ExecuteOptions`` fields

        Returns:
            The operation's result

        Raises:
            AdmissionDeniedError: Concurrency cap reached
            QueryTimeoutError: Timeout budget exhausted
            QueryCancelledError: Cancelled through ``cancel()``/``cancel_all()``
            Exception: The operation's last error after retries
        """
        options = (options or ExecuteOptions()).merge(**overrides)
        try:
            record = self.admission.admit(options.operation_name)
        except AdmissionDeniedError:
            self._metrics.record_query(QueryStatus.REJECTED.value, options.operation_name, 0.0)
            raise

        self.total_queries += 1
        set_query_id(record.query_id)
        status = QueryStatus.FAILURE
        try:
            logger.debug(
                "Query started",
                stage=f"{_STAGE}.1",
                operation=options.operation_name,
                active=self.admission.active_count,
            )
            result = await self._execute_with_retry(record, operation, options)
            status = QueryStatus.SUCCESS
            return result
        except QueryTimeoutError as e:
            status = QueryStatus.TIMEOUT
            e.query_id = record.query_id
            self._metrics.record_query_timeout(options.operation_name)
            logger.warning(
                "Query timed out",
                stage=f"{_STAGE}.3",
                operation=options.operation_name,
                timeout=self.query_timeout,
            )
            self._maybe_enqueue(operation, options, e)
            raise
        except QueryCancelledError as e:
            status = QueryStatus.CANCELLED
            e.query_id = record.query_id
            raise
        except asyncio.CancelledError:
            status = QueryStatus.CANCELLED
            raise
        except Exception as e:
            logger.warning(
                "Query failed",
                stage=f"{_STAGE}.4",
                operation=options.operation_name,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            self._maybe_enqueue(operation, options, e)
            raise
        finally:
            duration = self._clock() - record.start_time
            self.admission.release(record)
            self.last_activity = time.time()
            self._metrics.record_query(status.value, options.operation_name, duration)
            clear_query_id()

    async def _execute_with_retry(self, record: ActiveQueryRecord, operation: Operation, options: ExecuteOptions):
        """
        STAGE-QE.2: Retry loop
        """

        def should_retry(exc: BaseException) -> bool:
            if isinstance(exc, (QueryError, asyncio.CancelledError)):
                return False
            return options.retry_condition(exc)

        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else None
            self._metrics.record_query_retry(options.operation_name)
            logger.info(
                "Retrying query",
                stage=f"{_STAGE}.2",
                operation=options.operation_name,
                attempt=retry_state.attempt_number,
                max_retries=options.max_retries,
                delay=delay,
                error=str(exc) if exc else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(options.max_retries + 1),
            wait=wait_exponential(multiplier=options.retry_delay, exp_base=options.backoff_factor),
            retry=retry_if_exception(should_retry),
            before_sleep=before_sleep,
            sleep=functools.partial(self._backoff_sleep, record),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                result = await self._run_attempt(record, operation)
        return result

    async def _run_attempt(self, record: ActiveQueryRecord, operation: Operation) -> Any:
        remaining = record.start_time + self.query_timeout - self._clock()
        if remaining <= 0:
            raise QueryTimeoutError(f"Query timeout after {self.query_timeout}s")
        if record.handle.cancelled:
            raise self._cancellation_error(record.handle.reason)

        task = asyncio.ensure_future(operation())
        record.handle.bind(task)
        try:
            return await asyncio.wait_for(task, timeout=remaining)
        except asyncio.TimeoutError:
            if task.done() and not task.cancelled():
                # Raised by the operation itself, not by the budget
                raise
            raise QueryTimeoutError(f"Query timeout after {self.query_timeout}s") from None
        except asyncio.CancelledError:
            if record.handle.reason is None:
                raise
            raise self._cancellation_error(record.handle.reason) from None

    async def _backoff_sleep(self, record: ActiveQueryRecord, delay: float) -> None:
        """Wait between attempts, bound to the cancellation handle and capped by the budget."""
        remaining = record.start_time + self.query_timeout - self._clock()
        if remaining <= 0:
            raise QueryTimeoutError(f"Query timeout after {self.query_timeout}s")
        if record.handle.cancelled:
            raise self._cancellation_error(record.handle.reason)

        task = asyncio.ensure_future(self._sleep(min(delay, remaining)))
        record.handle.bind(task)
        try:
            await task
        except asyncio.CancelledError:
            if record.handle.reason is None:
                raise
            raise self._cancellation_error(record.handle.reason) from None

        if delay >= remaining:
            # The budget ran out while backing off
            raise QueryTimeoutError(f"Query timeout after {self.query_timeout}s")

    def _cancellation_error(self, reason: str) -> QueryError:
        if reason == CANCEL_REASON_TIMEOUT:
            return QueryTimeoutError(f"Query timeout after {self.query_timeout}s")
        return QueryCancelledError(f"Query {reason}", details={"reason": reason})

    def _maybe_enqueue(self, operation: Operation, options: ExecuteOptions, exc: BaseException) -> None:
        if not options.mutation or self.retry_queue is None or self._is_connected():
            return

        transient = isinstance(exc, QueryTimeoutError) or (
            not isinstance(exc, QueryError) and options.retry_condition(exc)
        )
        if transient:
            self.retry_queue.enqueue(operation, operation_name=options.operation_name, max_age=options.max_age)

    def cancel(self, query_id: int, reason: str = CANCEL_REASON_CANCELLED) -> bool:
        """
        Cancel one active query.

        Returns:
            False if the query is not active
        """
        record = self.admission.get(query_id)
        if record is None:
            return False
        record.handle.cancel(reason)
        logger.info("Query cancelled", stage=f"{_STAGE}.5", query_id=query_id, reason=reason)
        return True

    def cancel_all(self, reason: str = CANCEL_REASON_SHUTDOWN) -> int:
        """Cancel every active query."""
        records = self.admission.active
        for record in records:
            record.handle.cancel(reason)
        if records:
            logger.info("All active queries cancelled", stage=f"{_STAGE}.5", count=len(records), reason=reason)
        return len(records)

    def check_query_timeouts(self) -> int:
        """
        Cancel and remove queries older than ``query_timeout``.

        STAGE-QE.6: Timeout scan (backstop for the per-attempt budget)

        Returns:
            Number of timed-out queries
        """
        now = self._clock()
        expired = [r for r in self.admission.active if r.age(now) > self.query_timeout]
        for record in expired:
            record.handle.cancel(CANCEL_REASON_TIMEOUT)
            self.admission.release(record)
            logger.warning(
                "Query timeout detected by scan",
                stage=f"{_STAGE}.6",
                query_id=record.query_id,
                operation=record.operation_name,
                age=round(record.age(now), 3),
            )
        return len(expired)
