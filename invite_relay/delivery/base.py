"""Shared pieces of the delivery functions.

A delivery function turns one queued item into one outbound HTTP request and
reports a :class:`~invite_relay.models.DeliveryResult`. It never raises for a
remote failure; the worker decides what happens next from the outcome.

Failure classification
======================
- transport error (connection refused, DNS, timeout) -> ``FAILURE``, retried
- 2xx -> ``SUCCESS``
- 5xx or 429 -> ``FAILURE`` when ``retry_server_errors`` is on, else ``REJECTED``
- any other status -> ``REJECTED``, logged and dropped
"""

from __future__ import annotations

from typing import Final, Protocol

import httpx

from invite_relay.models import DeliveryResult

__all__: list[str] = ["Delivery", "classify_response", "describe_transport_error"]

RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429})


class Delivery[T](Protocol):
    """Protocol of a delivery function for items of type ``T``."""

    async def __call__(self, item: T) -> DeliveryResult:
        """Send one item and report how it went."""
        ...


def classify_response(response: httpx.Response, retry_server_errors: bool = True) -> DeliveryResult:
    """Map an HTTP response to a delivery outcome.

    Parameters
    ----------
    response : httpx.Response
        The response of the outbound call
    retry_server_errors : bool, optional
        Treat 5xx and 429 as retryable failures, by default True

    Returns
    -------
    DeliveryResult
        ``SUCCESS`` for 2xx, ``FAILURE`` or ``REJECTED`` otherwise
    """
    status_code = response.status_code
    if response.is_success:
        return DeliveryResult.success(status_code)

    reason = f"HTTP {status_code} {response.reason_phrase}".rstrip()
    if retry_server_errors and (response.is_server_error or status_code in RETRYABLE_STATUS_CODES):
        return DeliveryResult.failure(reason, status_code)
    return DeliveryResult.rejected(reason, status_code)


def describe_transport_error(exc: httpx.TransportError) -> str:
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
