"""Exceptions raised by the relay.

Remote delivery failures are never raised: delivery functions report them as a
:class:`~invite_relay.models.DeliveryResult`. Exceptions here only cover the
admission side, where an HTTP handler needs to turn them into a status code.
"""

from __future__ import annotations

__all__: list[str] = [
    "RelayError",
    "AdmissionRejectedError",
    "QueueFullError",
    "QueueClosedError",
]


class RelayError(Exception):
    """Base class for relay errors."""


class AdmissionRejectedError(RelayError):
    """A request failed shared-secret or signature verification.

    :param reason: what failed, for the log line
    :param status_code: HTTP status the endpoint answers with
    """

    def __init__(self, reason: str, status_code: int = 401) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class QueueFullError(RelayError):
    """The bounded admission wait elapsed before the queue had room."""

    def __init__(self, name: str, capacity: int, timeout: float) -> None:
        super().__init__(f"Queue '{name}' is full ({capacity} items); gave up after {timeout:g}s")
        self.name = name
        self.capacity = capacity
        self.timeout = timeout


class QueueClosedError(RelayError):
    """The queue stopped accepting new work because the relay is shutting down."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Queue '{name}' is closed for admission")
        self.name = name
