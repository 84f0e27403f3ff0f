"""
Unit Tests for the Retry Queue

Tests bounded FIFO behavior, expiry, batch replay and attempt limits.
"""

import asyncio

import pytest

from recordlink.core.exceptions import NetworkError
from recordlink.core.resilience.retry_queue import RetryQueue


class Recorder:
    """Replayable operation that records each run."""

    def __init__(self, name, log, fail=False):
        self.name = name
        self.log = log
        self.fail = fail

    async def __call__(self):
        self.log.append(self.name)
        if self.fail:
            raise NetworkError(f"{self.name} failed")
        return self.name


@pytest.fixture
def online():
    return {"connected": True}


@pytest.fixture
def queue(online, fake_clock):
    return RetryQueue(
        is_connected=lambda: online["connected"],
        max_size=5,
        batch_size=3,
        max_attempts=2,
        default_max_age=300.0,
        clock=fake_clock,
    )


@pytest.mark.unit
class TestEnqueue:
    """Test queue bounds."""

    def test_enqueue_assigns_metadata(self, queue, fake_clock):
        item = queue.enqueue(Recorder("a", []), operation_name="posts.create")

        assert item.item_id == 1
        assert item.attempts == 0
        assert item.added_at == fake_clock.now
        assert item.max_age == 300.0
        assert queue.size == 1

    def test_full_queue_evicts_oldest(self, queue):
        for i in range(7):
            queue.enqueue(Recorder(str(i), []), operation_name=f"op{i}")

        assert len(queue) == 5
        assert [item.operation_name for item in queue.items] == ["op2", "op3", "op4", "op5", "op6"]

    def test_clear(self, queue):
        queue.enqueue(Recorder("a", []))
        queue.enqueue(Recorder("b", []))

        assert queue.clear() == 2
        assert len(queue) == 0

    def test_snapshot(self, queue):
        assert queue.snapshot() == {"size": 0, "oldest_item": None}

        queue.enqueue(Recorder("a", []))
        snapshot = queue.snapshot()

        assert snapshot["size"] == 1
        assert snapshot["oldest_item"].startswith("1970-01-01T00:16:40")


@pytest.mark.unit
class TestExpiry:
    """Test age-based purging."""

    def test_purge_expired(self, queue, fake_clock):
        queue.enqueue(Recorder("old", []), operation_name="old")
        fake_clock.advance(200.0)
        queue.enqueue(Recorder("young", []), operation_name="young")
        fake_clock.advance(150.0)

        assert queue.purge_expired() == 1
        assert [item.operation_name for item in queue.items] == ["young"]

    @pytest.mark.asyncio
    async def test_expired_items_are_never_executed(self, queue, fake_clock):
        log = []
        queue.enqueue(Recorder("stale", log), max_age=10.0)
        queue.enqueue(Recorder("fresh", log))
        fake_clock.advance(11.0)

        assert await queue.drain() == 1
        assert log == ["fresh"]
        assert len(queue) == 0


@pytest.mark.unit
class TestDrain:
    """Test batch replay."""

    @pytest.mark.asyncio
    async def test_drain_replays_one_batch_oldest_first(self, queue):
        log = []
        for i in range(5):
            queue.enqueue(Recorder(str(i), log))

        assert await queue.drain() == 3
        assert log == ["0", "1", "2"]
        assert len(queue) == 2

        assert await queue.drain() == 2
        assert log == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_drain_skipped_while_disconnected(self, queue, online):
        log = []
        queue.enqueue(Recorder("a", log))
        online["connected"] = False

        assert await queue.drain() == 0
        assert log == []
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_failed_replay_counts_attempts_then_drops(self, queue):
        log = []
        queue.enqueue(Recorder("bad", log, fail=True))

        assert await queue.drain() == 0
        assert queue.items[0].attempts == 1
        assert queue.items[0].last_error == "bad failed"

        assert await queue.drain() == 0
        assert len(queue) == 0
        assert log == ["bad", "bad"]

    @pytest.mark.asyncio
    async def test_failure_does_not_block_rest_of_batch(self, queue):
        log = []
        queue.enqueue(Recorder("bad", log, fail=True))
        queue.enqueue(Recorder("good", log))

        assert await queue.drain() == 1
        assert log == ["bad", "good"]
        assert [item.attempts for item in queue.items] == [1]

    @pytest.mark.asyncio
    async def test_replay_is_bounded_by_operation_timeout(self, online):
        queue = RetryQueue(is_connected=lambda: online["connected"], max_attempts=1, operation_timeout=0.01)

        async def hang():
            await asyncio.sleep(1.0)

        queue.enqueue(hang)

        assert await queue.drain() == 0
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_drains_never_overlap(self, queue):
        release = asyncio.Event()
        runs = []

        async def slow():
            runs.append(1)
            await release.wait()

        queue.enqueue(slow)
        first = asyncio.create_task(queue.drain())
        await asyncio.sleep(0)

        assert queue.is_draining
        assert await queue.drain() == 0

        release.set()
        assert await first == 1
        assert runs == [1]

    @pytest.mark.asyncio
    async def test_schedule_drain(self, queue):
        log = []
        queue.enqueue(Recorder("a", log))

        task = queue.schedule_drain()
        assert queue.schedule_drain() is None

        assert await task == 1
        assert log == ["a"]

    @pytest.mark.asyncio
    async def test_stop_cancels_scheduled_drain(self, queue):
        async def hang():
            await asyncio.sleep(10)

        queue.enqueue(hang)
        task = queue.schedule_drain()
        await asyncio.sleep(0)

        await queue.stop()

        assert task.cancelled()
        assert not queue.is_draining
