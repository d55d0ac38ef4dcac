from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any

__all__: list[str] = [
    "Submission",
    "Invitation",
    "Envelope",
    "DeliveryOutcome",
    "DeliveryResult",
]


@dataclass(frozen=True, slots=True, init=False)
class Submission(Mapping[str, Any]):
    """
    One form response awaiting notification delivery.

    A read-only mapping of field name to scalar value. The ``email`` field is
    expected but may be missing; the notification delivery skips such items.

    :param data: the submitted fields, copied on construction
    """

    data: Mapping[str, Any]

    def __init__(self, data: Mapping[str, Any] | None = None, /, **fields: Any) -> None:
        merged = dict(data or {})
        merged.update(fields)
        object.__setattr__(self, "data", MappingProxyType(merged))

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def email(self) -> str | None:
        """The applicant's email, or ``None`` when missing or blank."""
        value = self.data.get("email")
        if value is None:
            return None
        text = str(value).strip()
        return text or None


@dataclass(frozen=True, slots=True)
class Invitation:
    """
    One email address awaiting an invite-service call.

    :param email: the address to invite
    """

    email: str


@dataclass(frozen=True)
class Envelope[T]:
    """
    A queued item together with its retry state.

    :param item: the submission or invitation being delivered
    :param attempts: number of failed delivery attempts so far
    :param last_error: reason of the most recent failure, if any
    :param enqueued_at: monotonic time of first admission
    """

    item: T
    attempts: int = 0
    last_error: str | None = None
    enqueued_at: float = field(default_factory=time.monotonic)

    def retried(self, reason: str) -> Envelope[T]:
        return replace(self, attempts=self.attempts + 1, last_error=reason)


class DeliveryOutcome(str, Enum):
    """Result of one send attempt."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILURE = "failure"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    reason: str | None = None
    status_code: int | None = None

    @classmethod
    def success(cls, status_code: int | None = None) -> DeliveryResult:
        return cls(DeliveryOutcome.SUCCESS, status_code=status_code)

    @classmethod
    def skipped(cls, reason: str) -> DeliveryResult:
        return cls(DeliveryOutcome.SKIPPED, reason=reason)

    @classmethod
    def failure(cls, reason: str, status_code: int | None = None) -> DeliveryResult:
        return cls(DeliveryOutcome.FAILURE, reason=reason, status_code=status_code)

    @classmethod
    def rejected(cls, reason: str, status_code: int | None = None) -> DeliveryResult:
        return cls(DeliveryOutcome.REJECTED, reason=reason, status_code=status_code)

    @property
    def retryable(self) -> bool:
        """Only failures are put back on the queue."""
        return self.outcome is DeliveryOutcome.FAILURE
