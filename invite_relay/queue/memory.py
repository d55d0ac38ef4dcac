"""
In-memory bounded FIFO queue between HTTP handlers and a delivery worker.

The queue is backed by an :class:`asyncio.Queue` plus its own slot
accounting, which means:

1. Items are lost when the process restarts
2. A full queue suspends producers; this is the backpressure mechanism that
   keeps a slow or unreachable remote service from growing memory unbounded
3. An item taken by the consumer keeps its slot until the consumer either
   releases it or puts it back with :meth:`BoundedQueue.requeue`, so items
   waiting to be retried count against the capacity
4. All access goes through ``put``/``get``/``release``/``requeue``; no other
   locking is needed
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Final, Optional

from invite_relay.exceptions import QueueClosedError, QueueFullError

__all__: list[str] = ["BoundedQueue", "DEFAULT_CAPACITY"]

_LOG: Final[logging.Logger] = logging.getLogger(__name__)

DEFAULT_CAPACITY: Final[int] = 1000


class BoundedQueue[T]:
    """Capacity-bounded FIFO channel with a single consumer.

    Producers call :meth:`put`, which suspends while every slot is in use. The
    consumer calls :meth:`get`, and the item it receives keeps occupying its
    slot. Once done with the item the consumer calls :meth:`release`; to try
    it again later it calls :meth:`requeue` instead, which appends to the tail
    so retried items interleave with fresh ones instead of jumping the line.

    Examples
    --------
    .. code-block:: python

        queue: BoundedQueue[str] = BoundedQueue("invitations", capacity=2)
        position = await queue.put("a@example.com", timeout=5.0)
        item = await queue.get()
        queue.release()
        queue.task_done()
    """

    def __init__(self, name: str, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("Queue capacity must be at least 1")
        self.name = name
        self._capacity = capacity
        self._queue: asyncio.Queue[T] = asyncio.Queue()
        self._held = 0
        self._putters: Deque[asyncio.Future[None]] = deque()
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def held(self) -> int:
        """Slots occupied by items the consumer took but has not released or re-queued."""
        return self._held

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def full(self) -> bool:
        return not self._has_room()

    def _has_room(self) -> bool:
        return self._queue.qsize() + self._held < self._capacity

    def _wake_next_putter(self) -> None:
        while self._putters:
            waiter = self._putters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

    async def _admit(self, item: T) -> None:
        while not self._has_room():
            waiter = asyncio.get_running_loop().create_future()
            self._putters.append(waiter)
            try:
                await waiter
            except BaseException:
                waiter.cancel()
                try:
                    self._putters.remove(waiter)
                except ValueError:
                    pass
                # A wake-up this waiter can no longer use goes to the next one
                if self._has_room() and not waiter.cancelled():
                    self._wake_next_putter()
                raise
            if self._closed:
                raise QueueClosedError(self.name)
        self._queue.put_nowait(item)

    async def put(self, item: T, timeout: Optional[float] = None) -> int:
        """Admit a new item at the tail.

        Parameters
        ----------
        item : T
            The item to enqueue
        timeout : Optional[float], optional
            Seconds to wait for room when the queue is full. ``None`` waits
            indefinitely.

        Returns
        -------
        int
            The queue depth right after the insert, i.e. the item's position

        Raises
        ------
        QueueClosedError
            If the queue stopped accepting new items, also while waiting
        QueueFullError
            If the queue stayed full for ``timeout`` seconds
        """
        if self._closed:
            raise QueueClosedError(self.name)

        if not self._has_room():
            _LOG.warning(f"Queue '{self.name}' is full ({self._capacity} items); producer is waiting")

        if timeout is None:
            await self._admit(item)
        else:
            try:
                await asyncio.wait_for(self._admit(item), timeout=timeout)
            except asyncio.TimeoutError:
                raise QueueFullError(self.name, self._capacity, timeout) from None

        return self._queue.qsize()

    async def get(self) -> T:
        """Remove and return the oldest item, waiting until one is available.

        The item's slot stays occupied until :meth:`release` or :meth:`requeue`.
        """
        item = await self._queue.get()
        self._held += 1
        return item

    def release(self) -> None:
        """Free the slot of an item taken with :meth:`get`."""
        if self._held < 1:
            raise ValueError("release() called more times than get()")
        self._held -= 1
        self._wake_next_putter()

    def requeue(self, item: T) -> None:
        """Put an item taken with :meth:`get` back at the tail, in its own slot.

        Never waits, and ignores :meth:`close` so accepted work keeps cycling
        while the queue drains.
        """
        if self._held < 1:
            raise ValueError("requeue() called more times than get()")
        self._held -= 1
        self._queue.put_nowait(item)

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every item taken with :meth:`get` is marked done."""
        await self._queue.join()

    def close(self) -> None:
        """Stop admitting new items. Queued items stay available to the consumer.

        Producers still waiting for room are woken and get ``QueueClosedError``.
        """
        if not self._closed:
            _LOG.info(f"Queue '{self.name}' closed for admission with {self.qsize()} item(s) pending")
        self._closed = True
        while self._putters:
            waiter = self._putters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    def drain_nowait(self) -> list[T]:
        """Remove and return every item currently queued, oldest first."""
        items: list[T] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
        return items
