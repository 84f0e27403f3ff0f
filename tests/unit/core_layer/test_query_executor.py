"""
Unit Tests for Query Execution

Tests admission control, retries, timeouts, cancellation and deferred replay.
"""

import asyncio

import pytest

from recordlink.core.exceptions import (
    AdmissionDeniedError,
    ClientError,
    NetworkError,
    QueryCancelledError,
    QueryTimeoutError,
    ServerError,
)
from recordlink.core.resilience.query_executor import (
    AdmissionController,
    ExecuteOptions,
    QueryExecutor,
    default_retry_condition,
)
from recordlink.core.resilience.retry_queue import RetryQueue


class Flaky:
    """Operation failing with ``errors`` in order, then returning ``result``."""

    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class Connectivity:
    def __init__(self, connected=True):
        self.connected = connected

    def __call__(self):
        return self.connected


@pytest.fixture
def connectivity():
    return Connectivity()


@pytest.fixture
def retry_queue(connectivity):
    return RetryQueue(is_connected=connectivity)


@pytest.fixture
def executor(retry_queue, connectivity, recording_sleep):
    return QueryExecutor(
        AdmissionController(max_concurrent=50),
        retry_queue=retry_queue,
        is_connected=connectivity,
        query_timeout=5.0,
        sleep=recording_sleep,
    )


@pytest.mark.unit
class TestRetryCondition:
    """Test the default transient failure classification."""

    @pytest.mark.parametrize(
        "exc,expected",
        [
            (NetworkError("down"), True),
            (ServerError("503", status_code=503), True),
            (ConnectionResetError(), True),
            (TimeoutError(), True),
            (ClientError("404", status_code=404), False),
            (ValueError("bad"), False),
        ],
    )
    def test_classification(self, exc, expected):
        assert default_retry_condition(exc) is expected

    def test_status_code_attribute(self):
        class ApiError(Exception):
            status_code = 502

        assert default_retry_condition(ApiError()) is True


@pytest.mark.unit
class TestExecuteOptions:
    def test_merge_applies_non_none_overrides(self):
        options = ExecuteOptions(operation_name="posts.list").merge(max_retries=1, mutation=None)

        assert options.max_retries == 1
        assert options.mutation is False
        assert options.operation_name == "posts.list"

    def test_merge_without_overrides_returns_same(self):
        options = ExecuteOptions()
        assert options.merge() is options


@pytest.mark.unit
class TestQueryExecutor:
    """Test suite for QueryExecutor."""

    @pytest.mark.asyncio
    async def test_success(self, executor):
        result = await executor.execute(Flaky(result={"id": "abc"}), operation_name="posts.get")

        assert result == {"id": "abc"}
        assert executor.active_count == 0
        assert executor.total_queries == 1
        assert executor.last_activity is not None

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried_with_backoff(self, executor, recording_sleep):
        operation = Flaky(NetworkError("reset"), ServerError("503", status_code=503))

        assert await executor.execute(operation) == "ok"
        assert operation.calls == 3
        assert recording_sleep.delays == pytest.approx([1.0, 2.0])

    @pytest.mark.asyncio
    async def test_retries_exhausted_raises_last_error(self, executor, recording_sleep):
        errors = [ServerError(f"503 #{i}", status_code=503) for i in range(4)]
        operation = Flaky(*errors)

        with pytest.raises(ServerError, match="#3"):
            await executor.execute(operation)

        assert operation.calls == 4
        assert recording_sleep.delays == pytest.approx([1.0, 2.0, 4.0])
        assert executor.active_count == 0

    @pytest.mark.asyncio
    async def test_custom_backoff(self, executor, recording_sleep):
        operation = Flaky(NetworkError("a"), NetworkError("b"))

        await executor.execute(operation, retry_delay=0.5, backoff_factor=3.0)

        assert recording_sleep.delays == pytest.approx([0.5, 1.5])

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, executor, recording_sleep):
        operation = Flaky(ClientError("not found", status_code=404))

        with pytest.raises(ClientError):
            await executor.execute(operation)

        assert operation.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_custom_retry_condition(self, executor):
        operation = Flaky(ValueError("flaky parse"))

        result = await executor.execute(operation, retry_condition=lambda e: isinstance(e, ValueError))

        assert result == "ok"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_timeout_removes_record_and_is_not_retried(self, retry_queue, connectivity, recording_sleep):
        executor = QueryExecutor(
            AdmissionController(),
            retry_queue=retry_queue,
            is_connected=connectivity,
            query_timeout=0.05,
            sleep=recording_sleep,
        )
        calls = []

        async def slow():
            calls.append(1)
            await asyncio.sleep(1.0)

        with pytest.raises(QueryTimeoutError) as exc_info:
            await executor.execute(slow, operation_name="posts.list")

        assert exc_info.value.query_id == 1
        assert executor.active_count == 0
        assert calls == [1]
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_admission_cap(self, executor):
        gate = asyncio.Event()

        async def wait_for_gate():
            await gate.wait()
            return "done"

        tasks = [asyncio.create_task(executor.execute(wait_for_gate)) for _ in range(51)]
        await asyncio.sleep(0.01)
        assert executor.active_count == 50

        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        denied = [r for r in results if isinstance(r, AdmissionDeniedError)]
        assert len(denied) == 1
        assert results.count("done") == 50
        assert executor.active_count == 0

    @pytest.mark.asyncio
    async def test_admission_denied_is_never_queued(self, executor, retry_queue, connectivity):
        connectivity.connected = False
        executor.admission.max_concurrent = 0

        with pytest.raises(AdmissionDeniedError):
            await executor.execute(Flaky(), mutation=True)

        assert len(retry_queue) == 0
        assert executor.total_queries == 0

    @pytest.mark.asyncio
    async def test_cancel_query(self, executor):
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(executor.execute(hang))
        await started.wait()
        query_id = executor.admission.active[0].query_id

        assert executor.cancel(query_id) is True
        with pytest.raises(QueryCancelledError):
            await task
        assert executor.active_count == 0

    @pytest.mark.asyncio
    async def test_cancel_unknown_query(self, executor):
        assert executor.cancel(12345) is False

    @pytest.mark.asyncio
    async def test_cancel_all(self, executor):
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.sleep(10)

        tasks = [asyncio.create_task(executor.execute(hang)) for _ in range(3)]
        await started.wait()
        await asyncio.sleep(0)

        assert executor.cancel_all() == 3
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, QueryCancelledError) for r in results)

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self, executor):
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(executor.execute(hang))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert executor.active_count == 0

    @pytest.mark.asyncio
    async def test_cancel_interrupts_backoff(self):
        executor = QueryExecutor(AdmissionController(), query_timeout=30.0)
        failed = asyncio.Event()
        calls = []

        async def always_down():
            calls.append(1)
            failed.set()
            raise NetworkError("connection refused")

        task = asyncio.create_task(executor.execute(always_down, retry_delay=5.0, max_retries=3))
        await failed.wait()
        await asyncio.sleep(0.01)

        assert executor.cancel(1) is True
        with pytest.raises(QueryCancelledError):
            await asyncio.wait_for(task, timeout=1.0)
        assert calls == [1]
        assert executor.active_count == 0

    @pytest.mark.asyncio
    async def test_backoff_is_capped_by_timeout_budget(self):
        executor = QueryExecutor(AdmissionController(), query_timeout=0.1)
        calls = []

        async def always_down():
            calls.append(1)
            raise NetworkError("connection refused")

        with pytest.raises(QueryTimeoutError):
            await asyncio.wait_for(executor.execute(always_down, retry_delay=5.0, max_retries=3), timeout=1.0)
        assert calls == [1]
        assert executor.active_count == 0

    @pytest.mark.asyncio
    async def test_timeout_scan_cancels_stale_queries(self, fake_clock, recording_sleep):
        admission = AdmissionController(clock=fake_clock)
        executor = QueryExecutor(admission, query_timeout=30.0, clock=fake_clock, sleep=recording_sleep)
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(executor.execute(hang, operation_name="posts.search"))
        await started.wait()

        assert executor.check_query_timeouts() == 0
        fake_clock.advance(31.0)
        assert executor.check_query_timeouts() == 1
        assert executor.active_count == 0

        with pytest.raises(QueryTimeoutError):
            await task


@pytest.mark.unit
class TestDeferredReplay:
    """Test hand-off of failed mutations to the retry queue."""

    @pytest.mark.asyncio
    async def test_transient_mutation_failure_while_offline_is_queued(self, executor, retry_queue, connectivity):
        connectivity.connected = False
        operation = Flaky(NetworkError("down"))

        with pytest.raises(NetworkError):
            await executor.execute(operation, operation_name="posts.create", mutation=True, max_retries=0)

        assert len(retry_queue) == 1
        assert retry_queue.items[0].operation is operation
        assert retry_queue.items[0].operation_name == "posts.create"

    @pytest.mark.asyncio
    async def test_not_queued_while_connected(self, executor, retry_queue):
        with pytest.raises(NetworkError):
            await executor.execute(Flaky(NetworkError("down")), mutation=True, max_retries=0)

        assert len(retry_queue) == 0

    @pytest.mark.asyncio
    async def test_reads_are_not_queued(self, executor, retry_queue, connectivity):
        connectivity.connected = False

        with pytest.raises(NetworkError):
            await executor.execute(Flaky(NetworkError("down")), max_retries=0)

        assert len(retry_queue) == 0

    @pytest.mark.asyncio
    async def test_permanent_failures_are_not_queued(self, executor, retry_queue, connectivity):
        connectivity.connected = False

        with pytest.raises(ClientError):
            await executor.execute(Flaky(ClientError("bad", status_code=400)), mutation=True)

        assert len(retry_queue) == 0

    @pytest.mark.asyncio
    async def test_timed_out_mutation_is_queued(self, retry_queue, connectivity):
        connectivity.connected = False
        executor = QueryExecutor(
            AdmissionController(), retry_queue=retry_queue, is_connected=connectivity, query_timeout=0.05
        )

        async def slow():
            await asyncio.sleep(1.0)

        with pytest.raises(QueryTimeoutError):
            await executor.execute(slow, mutation=True, max_age=60.0)

        assert len(retry_queue) == 1
        assert retry_queue.items[0].max_age == 60.0
