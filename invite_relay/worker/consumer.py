"""Delivery worker: the long-running task that drains one queue.

What it does
------------
- Takes the oldest envelope from its :class:`~invite_relay.queue.BoundedQueue`
- Hands the item to a delivery function and looks at the outcome
- Drops the item on success, skip or rejection
- On failure, puts the item back at the tail of the same queue after the
  retry policy's delay, or dead-letters it once its attempts are used up
- On shutdown, stops admission, drains what was already accepted until a
  deadline, and dead-letters whatever is left

Retries are scheduled as separate tasks, so the worker loop never waits on
its own (possibly full) queue. A failed item keeps its queue slot while it
waits, so queued plus pending-retry items never exceed the queue capacity.

Quick usage
-----------

.. code-block:: python

    import asyncio
    from invite_relay.queue import BoundedQueue
    from invite_relay.worker import DeliveryWorker, RetryPolicy

    async def main():
        queue = BoundedQueue("invitations", capacity=1000)
        worker = DeliveryWorker("invitations", queue, deliver, retry_policy=RetryPolicy(max_attempts=5))
        worker.start()
        await queue.put(Envelope(Invitation("a@example.com")))
        ...
        await worker.shutdown(timeout=10)

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from enum import Enum
from typing import Any, Dict, Final, Optional

from invite_relay.delivery.base import Delivery
from invite_relay.models import DeliveryOutcome, DeliveryResult, Envelope
from invite_relay.queue.dead_letter import DeadLetterSink, MemoryDeadLetterSink
from invite_relay.queue.memory import BoundedQueue

from .retry import RetryPolicy

__all__: list[str] = ["DeliveryWorker", "WorkerState", "SHUTDOWN_REASON"]

_LOG: Final[logging.Logger] = logging.getLogger(__name__)

SHUTDOWN_REASON: Final[str] = "shutdown"


class WorkerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class DeliveryWorker[T]:
    """Consume envelopes from one queue and deliver them with retries.

    Parameters
    ----------
    name : str
        Pipeline name used in logs and dead letters
    queue : BoundedQueue[Envelope[T]]
        The queue this worker drains and re-feeds on failure
    deliver : Delivery[T]
        The delivery function for one item
    retry_policy : Optional[RetryPolicy], optional
        Retry limits and delays, by default ``RetryPolicy()``
    dead_letters : Optional[DeadLetterSink], optional
        Where exhausted items go, by default a new ``MemoryDeadLetterSink``
    """

    def __init__(
        self,
        name: str,
        queue: BoundedQueue[Envelope[T]],
        deliver: Delivery[T],
        retry_policy: Optional[RetryPolicy] = None,
        dead_letters: Optional[DeadLetterSink] = None,
    ) -> None:
        self.name = name
        self.queue = queue
        self.deliver = deliver
        self.retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self.dead_letters = dead_letters if dead_letters is not None else MemoryDeadLetterSink()
        self.state = WorkerState.IDLE
        self._task: Optional[asyncio.Task[None]] = None
        self._retries: Dict[asyncio.Task[None], Envelope[T]] = {}
        self._in_flight: Optional[Envelope[T]] = None
        self._counts: Counter[str] = Counter()

    def start(self) -> asyncio.Task[None]:
        """Start the worker loop as a background task on the running loop."""
        if self._task is not None:
            _LOG.warning(f"Worker '{self.name}' is already running")
            return self._task
        self._task = asyncio.create_task(self.run(), name=f"{self.name}-worker")
        self.state = WorkerState.RUNNING
        return self._task

    async def run(self) -> None:
        """Consume forever: dequeue, deliver, decide. Ends only by cancellation."""
        self.state = WorkerState.RUNNING
        _LOG.info(f"Worker '{self.name}' started")
        try:
            while True:
                envelope = await self.queue.get()
                self._in_flight = envelope
                retrying = False
                try:
                    retrying = await self._process(envelope)
                finally:
                    self._in_flight = None
                    # A retrying item keeps its slot until the retry task re-queues it
                    if not retrying:
                        self.queue.release()
                    self.queue.task_done()
        finally:
            self.state = WorkerState.STOPPED
            _LOG.info(f"Worker '{self.name}' stopped")

    async def _process(self, envelope: Envelope[T]) -> bool:
        """Deliver one envelope; return whether a retry was scheduled for it."""
        try:
            result = await self.deliver(envelope.item)
        except Exception as e:
            _LOG.exception(f"Unexpected error delivering {self.name} item: {e}")
            result = DeliveryResult.failure(f"{type(e).__name__}: {e}")

        self._counts[result.outcome.value] += 1

        match result.outcome:
            case DeliveryOutcome.SUCCESS:
                _LOG.info(f"Delivered {self.name} item after {envelope.attempts + 1} attempt(s)")
            case DeliveryOutcome.SKIPPED:
                _LOG.info(f"Skipped {self.name} item: {result.reason}")
            case DeliveryOutcome.REJECTED:
                _LOG.info(f"Dropped {self.name} item rejected by the remote service: {result.reason}")
            case DeliveryOutcome.FAILURE:
                return await self._handle_failure(envelope, result.reason or "unknown failure")
        return False

    async def _handle_failure(self, envelope: Envelope[T], reason: str) -> bool:
        failed = envelope.retried(reason)
        if not self.retry_policy.should_retry(failed.attempts):
            self._counts["dead_lettered"] += 1
            await self.dead_letters.put(self.name, failed, reason)
            return False

        delay = self.retry_policy.delay(failed.attempts)
        self._counts["retried"] += 1
        _LOG.warning(f"Delivery of {self.name} item failed (attempt {failed.attempts}): {reason}; retrying in {delay:.2f}s")

        task = asyncio.create_task(self._requeue_later(failed, delay), name=f"{self.name}-retry")
        self._retries[task] = failed
        task.add_done_callback(self._forget_retry)
        return True

    async def _requeue_later(self, envelope: Envelope[T], delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self.queue.requeue(envelope)

    def _forget_retry(self, task: asyncio.Task[None]) -> None:
        self._retries.pop(task, None)
        if not task.cancelled() and task.exception() is not None:
            _LOG.error(f"Retry of {self.name} item could not be re-queued: {task.exception()}")

    async def _wait_drained(self) -> None:
        while True:
            await self.queue.join()
            if not self._retries:
                return
            await asyncio.wait(list(self._retries))

    async def shutdown(self, timeout: Optional[float] = None) -> list[Envelope[T]]:
        """Stop admission, drain accepted work until ``timeout``, dead-letter the rest.

        Parameters
        ----------
        timeout : Optional[float], optional
            Seconds to keep delivering queued and pending-retry items.
            ``None`` drains until nothing is left.

        Returns
        -------
        list[Envelope[T]]
            Envelopes that were not delivered and went to the dead-letter sink
        """
        self.queue.close()

        if self._task is not None and not self._task.done():
            self.state = WorkerState.DRAINING
            _LOG.info(f"Draining worker '{self.name}' ({self.queue.qsize()} queued, {len(self._retries)} waiting to retry)")
            try:
                await asyncio.wait_for(self._wait_drained(), timeout=timeout)
            except asyncio.TimeoutError:
                _LOG.warning(f"Worker '{self.name}' did not drain within {timeout}s")

        leftovers: list[Envelope[T]] = []
        if self._in_flight is not None:
            leftovers.append(self._in_flight)

        pending = dict(self._retries)
        for task in pending:
            task.cancel()

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass  # Normal cancellation

        await asyncio.gather(*pending, return_exceptions=True)
        # A retry that finished before it was cancelled already put its item back on the queue
        for task, envelope in pending.items():
            if task.cancelled():
                self.queue.release()
                leftovers.append(envelope)
        leftovers.extend(self.queue.drain_nowait())

        for envelope in leftovers:
            self._counts["dead_lettered"] += 1
            await self.dead_letters.put(self.name, envelope, SHUTDOWN_REASON)

        self.state = WorkerState.STOPPED
        return leftovers

    def stats(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "queue_depth": self.queue.qsize(),
            "capacity": self.queue.capacity,
            "pending_retries": len(self._retries),
            "delivered": self._counts[DeliveryOutcome.SUCCESS.value],
            "skipped": self._counts[DeliveryOutcome.SKIPPED.value],
            "rejected": self._counts[DeliveryOutcome.REJECTED.value],
            "failed": self._counts[DeliveryOutcome.FAILURE.value],
            "retried": self._counts["retried"],
            "dead_lettered": self._counts["dead_lettered"],
        }
