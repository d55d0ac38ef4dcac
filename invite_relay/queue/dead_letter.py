"""Sinks for items that ran out of delivery attempts.

The relay keeps no durable storage, so the in-memory sink logs every entry at
ERROR level; the log line is the lasting record of the lost item.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Final, Protocol, runtime_checkable

from invite_relay.models import Envelope

__all__: list[str] = ["DeadLetter", "DeadLetterSink", "MemoryDeadLetterSink"]

_LOG: Final[logging.Logger] = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeadLetter:
    pipeline: str
    envelope: Envelope[Any]
    reason: str
    dead_at: float


@runtime_checkable
class DeadLetterSink(Protocol):
    """Protocol for receivers of undeliverable items."""

    async def put(self, pipeline: str, envelope: Envelope[Any], reason: str) -> None:
        """Record an item that will not be delivered.

        Parameters
        ----------
        pipeline : str
            Name of the pipeline that gave up on the item
        envelope : Envelope[Any]
            The item with its retry state
        reason : str
            Why the item was dropped (last error, or ``shutdown``)
        """
        ...


class MemoryDeadLetterSink:
    """Keep the most recent dead letters in memory and log each one."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._entries: deque[DeadLetter] = deque(maxlen=maxlen)
        self.total = 0

    async def put(self, pipeline: str, envelope: Envelope[Any], reason: str) -> None:
        self._entries.append(DeadLetter(pipeline, envelope, reason, time.time()))
        self.total += 1
        _LOG.error(
            f"Dead-lettered {pipeline} item after {envelope.attempts} failed attempt(s): {reason}",
            extra={"pipeline": pipeline, "item": repr(envelope.item), "last_error": envelope.last_error},
        )

    @property
    def entries(self) -> list[DeadLetter]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
