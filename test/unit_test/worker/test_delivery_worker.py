"""
Unit tests for the DeliveryWorker.

The delivery functions here are scripted stubs: each item name maps to a list
of outcomes handed out one per attempt, and every call is recorded so the tests
can assert on exact attempt counts and ordering.
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Union

import pytest

from invite_relay.exceptions import QueueClosedError
from invite_relay.models import DeliveryResult, Envelope
from invite_relay.queue.dead_letter import MemoryDeadLetterSink
from invite_relay.queue.memory import BoundedQueue
from invite_relay.worker.consumer import SHUTDOWN_REASON, DeliveryWorker, WorkerState
from invite_relay.worker.retry import RetryPolicy

Scripted = Union[DeliveryResult, Exception]

OK = DeliveryResult.success(200)
FAIL = DeliveryResult.failure("ConnectError")


class ScriptedDelivery:
    """Hand out pre-arranged results per item; success once a script runs out."""

    def __init__(self, scripts: Optional[Dict[str, Sequence[Scripted]]] = None, block: bool = False) -> None:
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.calls: List[str] = []
        self.call_times: List[float] = []
        self.block = block
        self.release = asyncio.Event()

    async def __call__(self, item: str) -> DeliveryResult:
        self.calls.append(item)
        self.call_times.append(asyncio.get_running_loop().time())
        if self.block:
            await self.release.wait()
        script = self.scripts.get(item)
        outcome = script.pop(0) if script else OK
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def immediate(max_attempts: int = 5) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, base_delay=0.0, jitter=False)


class TestDeliveryWorker:
    @pytest.fixture
    def queue(self) -> BoundedQueue[Envelope[str]]:
        return BoundedQueue("test", capacity=10)

    @pytest.fixture
    def sink(self) -> MemoryDeadLetterSink:
        return MemoryDeadLetterSink()

    def _worker(self, queue, deliver, sink, policy: Optional[RetryPolicy] = None) -> DeliveryWorker[str]:
        return DeliveryWorker("test", queue, deliver, retry_policy=policy or immediate(), dead_letters=sink)

    @pytest.mark.asyncio
    async def test_successful_item_is_delivered_once(self, queue, sink, wait_until) -> None:
        deliver = ScriptedDelivery()
        worker = self._worker(queue, deliver, sink)
        await queue.put(Envelope("a"))

        worker.start()
        await wait_until(lambda: worker.stats()["delivered"] == 1)

        assert deliver.calls == ["a"]
        assert queue.empty()
        assert await worker.shutdown(timeout=1.0) == []
        assert len(sink) == 0

    @pytest.mark.asyncio
    async def test_failed_item_goes_to_the_tail_of_the_queue(self, queue, sink, wait_until) -> None:
        """a fails once while b and c are queued: delivery order is a, b, c, a."""
        deliver = ScriptedDelivery({"a": [FAIL]})
        worker = self._worker(queue, deliver, sink)
        for name in ("a", "b", "c"):
            await queue.put(Envelope(name))

        worker.start()
        await wait_until(lambda: worker.stats()["delivered"] == 3)

        assert deliver.calls == ["a", "b", "c", "a"]
        stats = worker.stats()
        assert stats["failed"] == 1
        assert stats["retried"] == 1
        await worker.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    async def test_each_failure_is_retried_exactly_once(self, queue, sink, wait_until) -> None:
        deliver = ScriptedDelivery({"a": [FAIL, FAIL]})
        worker = self._worker(queue, deliver, sink)
        await queue.put(Envelope("a"))

        worker.start()
        await wait_until(lambda: worker.stats()["delivered"] == 1)

        assert deliver.calls == ["a", "a", "a"]
        assert worker.stats()["retried"] == 2
        await worker.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    async def test_exhausted_item_is_dead_lettered(self, queue, sink, wait_until) -> None:
        deliver = ScriptedDelivery({"a": [FAIL] * 10})
        worker = self._worker(queue, deliver, sink, policy=immediate(max_attempts=3))
        await queue.put(Envelope("a"))

        worker.start()
        await wait_until(lambda: len(sink) == 1)

        assert deliver.calls == ["a", "a", "a"]
        entry = sink.entries[0]
        assert entry.pipeline == "test"
        assert entry.reason == "ConnectError"
        assert entry.envelope.attempts == 3
        assert entry.envelope.item == "a"
        assert worker.stats()["dead_lettered"] == 1
        assert queue.empty()
        await worker.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    async def test_unbounded_policy_keeps_retrying(self, queue, sink, wait_until) -> None:
        deliver = ScriptedDelivery({"a": [FAIL] * 20})
        worker = self._worker(queue, deliver, sink, policy=RetryPolicy.unbounded())
        await queue.put(Envelope("a"))

        worker.start()
        await wait_until(lambda: worker.stats()["delivered"] == 1)

        assert len(deliver.calls) == 21
        assert len(sink) == 0
        await worker.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "result, counter",
        [
            (DeliveryResult.skipped("submission has no email"), "skipped"),
            (DeliveryResult.rejected("HTTP 400 Bad Request", 400), "rejected"),
        ],
    )
    async def test_skipped_and_rejected_items_are_not_retried(self, queue, sink, wait_until, result, counter) -> None:
        deliver = ScriptedDelivery({"a": [result]})
        worker = self._worker(queue, deliver, sink)
        await queue.put(Envelope("a"))
        await queue.put(Envelope("b"))

        worker.start()
        await wait_until(lambda: worker.stats()["delivered"] == 1)

        assert deliver.calls == ["a", "b"]
        assert worker.stats()[counter] == 1
        assert worker.stats()["retried"] == 0
        assert len(sink) == 0
        await worker.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    async def test_unexpected_exception_counts_as_failure(self, queue, sink, wait_until) -> None:
        deliver = ScriptedDelivery({"a": [RuntimeError("boom")]})
        worker = self._worker(queue, deliver, sink)
        await queue.put(Envelope("a"))

        worker.start()
        await wait_until(lambda: worker.stats()["delivered"] == 1)

        assert deliver.calls == ["a", "a"]
        assert worker.stats()["failed"] == 1
        assert worker.state is WorkerState.RUNNING
        await worker.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    async def test_retry_waits_for_backoff_delay(self, queue, sink, wait_until) -> None:
        deliver = ScriptedDelivery({"a": [FAIL]})
        policy = RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=1.0, jitter=False)
        worker = self._worker(queue, deliver, sink, policy=policy)
        await queue.put(Envelope("a"))

        worker.start()
        await wait_until(lambda: worker.stats()["delivered"] == 1)

        gap = deliver.call_times[1] - deliver.call_times[0]
        assert gap >= 0.09
        await worker.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    async def test_shutdown_drains_accepted_items(self, queue, sink) -> None:
        deliver = ScriptedDelivery({"b": [FAIL]})
        worker = self._worker(queue, deliver, sink)
        for name in ("a", "b", "c"):
            await queue.put(Envelope(name))

        worker.start()
        leftovers = await worker.shutdown(timeout=2.0)

        assert leftovers == []
        assert sorted(deliver.calls) == ["a", "b", "b", "c"]
        assert worker.stats()["delivered"] == 3
        assert worker.state is WorkerState.STOPPED
        assert queue.closed

    @pytest.mark.asyncio
    async def test_shutdown_deadline_dead_letters_remaining_items(self, queue, sink, wait_until) -> None:
        deliver = ScriptedDelivery(block=True)
        worker = self._worker(queue, deliver, sink)
        await queue.put(Envelope("a"))
        await queue.put(Envelope("b"))

        worker.start()
        await wait_until(lambda: deliver.calls == ["a"])
        leftovers = await worker.shutdown(timeout=0.05)

        assert [e.item for e in leftovers] == ["a", "b"]
        assert [e.envelope.item for e in sink.entries] == ["a", "b"]
        assert all(e.reason == SHUTDOWN_REASON for e in sink.entries)
        assert worker.state is WorkerState.STOPPED
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_shutdown_dead_letters_items_waiting_to_retry(self, queue, sink, wait_until) -> None:
        deliver = ScriptedDelivery({"a": [FAIL]})
        policy = RetryPolicy(max_attempts=5, base_delay=30.0, max_delay=30.0, jitter=False)
        worker = self._worker(queue, deliver, sink, policy=policy)
        await queue.put(Envelope("a"))

        worker.start()
        await wait_until(lambda: worker.stats()["pending_retries"] == 1)
        leftovers = await worker.shutdown(timeout=0.05)

        assert len(leftovers) == 1
        assert leftovers[0].item == "a"
        assert leftovers[0].attempts == 1
        assert leftovers[0].last_error == "ConnectError"
        assert sink.entries[0].reason == SHUTDOWN_REASON
        assert deliver.calls == ["a"]

    @pytest.mark.asyncio
    async def test_shutdown_without_start_dead_letters_queue(self, queue, sink) -> None:
        deliver = ScriptedDelivery()
        worker = self._worker(queue, deliver, sink)
        await queue.put(Envelope("a"))

        leftovers = await worker.shutdown(timeout=0.05)

        assert [e.item for e in leftovers] == ["a"]
        assert deliver.calls == []

    @pytest.mark.asyncio
    async def test_start_twice_returns_same_task(self, queue, sink) -> None:
        worker = self._worker(queue, ScriptedDelivery(), sink)

        first = worker.start()
        second = worker.start()

        assert first is second
        assert worker.state is WorkerState.RUNNING
        await worker.shutdown(timeout=1.0)

    @pytest.mark.asyncio
    async def test_stats_report_queue_depth_and_capacity(self, queue, sink) -> None:
        worker = self._worker(queue, ScriptedDelivery(), sink)
        await queue.put(Envelope("a"))

        stats = worker.stats()

        assert stats["state"] == "idle"
        assert stats["queue_depth"] == 1
        assert stats["capacity"] == 10
        await worker.shutdown(timeout=0.05)

    @pytest.mark.asyncio
    async def test_items_waiting_to_retry_count_against_capacity(self, sink, wait_until) -> None:
        """With a downstream that never recovers, producers stay blocked once the capacity is used."""

        async def always_fail(item: str) -> DeliveryResult:
            return FAIL

        queue: BoundedQueue[Envelope[str]] = BoundedQueue("small", capacity=2)
        policy = RetryPolicy(max_attempts=0, base_delay=0.01, max_delay=0.01, jitter=False)
        worker = self._worker(queue, always_fail, sink, policy=policy)
        worker.start()

        producers = [asyncio.create_task(queue.put(Envelope(f"p{i}"))) for i in range(6)]
        await wait_until(lambda: worker.stats()["retried"] >= 10)

        occupied: List[int] = []
        for _ in range(30):
            stats = worker.stats()
            occupied.append(stats["queue_depth"] + stats["pending_retries"])
            await asyncio.sleep(0.005)

        assert max(occupied) <= 2
        assert sum(p.done() for p in producers) == 2

        leftovers = await worker.shutdown(timeout=0.05)
        results = await asyncio.gather(*producers, return_exceptions=True)

        assert len(leftovers) == 2
        assert sum(isinstance(r, QueueClosedError) for r in results) == 4
        assert queue.held == 0
