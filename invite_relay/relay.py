"""Pipelines and the relay that owns them.

Module Overview
===============
A :class:`DeliveryPipeline` is one bounded queue plus the worker that drains
it. :class:`InviteRelay` composes the two pipelines of this service:

- **notifications**: form submissions posted to the Slack webhook as review
  messages
- **invitations**: accepted applicants invited to the Slack workspace

The HTTP layer talks to the relay only through
:meth:`InviteRelay.submit_notification` and
:meth:`InviteRelay.submit_invitation`. Both return once the item is admitted
to its queue; neither waits for delivery.

Usage Examples
==============

.. code-block:: python

    import asyncio
    from invite_relay.relay import InviteRelay
    from invite_relay.settings import get_settings

    async def main():
        relay = InviteRelay.from_settings(get_settings())
        relay.start()
        position = await relay.submit_notification(Submission(email="a@example.com", q1="yes"))
        ...
        await relay.shutdown()

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Final, Optional

import httpx

from invite_relay.delivery.base import Delivery
from invite_relay.delivery.invitation import InvitationDelivery
from invite_relay.delivery.notification import NotificationDelivery
from invite_relay.models import Envelope, Invitation, Submission
from invite_relay.queue.dead_letter import DeadLetterSink, MemoryDeadLetterSink
from invite_relay.queue.memory import BoundedQueue
from invite_relay.settings import SettingModel
from invite_relay.worker.consumer import DeliveryWorker
from invite_relay.worker.retry import RetryPolicy

__all__: list[str] = ["DeliveryPipeline", "InviteRelay"]

_LOG: Final[logging.Logger] = logging.getLogger(__name__)

NOTIFICATIONS: Final[str] = "notifications"
INVITATIONS: Final[str] = "invitations"


class DeliveryPipeline[T]:
    """One bounded queue and the single worker draining it."""

    def __init__(
        self,
        name: str,
        deliver: Delivery[T],
        capacity: int = 1000,
        admission_timeout: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        dead_letters: Optional[DeadLetterSink] = None,
    ) -> None:
        self.name = name
        self.admission_timeout = admission_timeout
        self.queue: BoundedQueue[Envelope[T]] = BoundedQueue(name, capacity=capacity)
        self.worker: DeliveryWorker[T] = DeliveryWorker(
            name,
            self.queue,
            deliver,
            retry_policy=retry_policy,
            dead_letters=dead_letters if dead_letters is not None else MemoryDeadLetterSink(),
        )

    async def submit(self, item: T) -> int:
        """Admit an item; returns its queue position.

        Raises
        ------
        QueueFullError
            If the queue stayed full for the admission timeout
        QueueClosedError
            If the pipeline is shutting down
        """
        position = await self.queue.put(Envelope(item), timeout=self.admission_timeout)
        _LOG.debug(f"Admitted {self.name} item at position {position}")
        return position

    def start(self) -> None:
        self.worker.start()

    async def shutdown(self, timeout: Optional[float] = None) -> list[Envelope[T]]:
        return await self.worker.shutdown(timeout=timeout)

    def health(self) -> Dict[str, Any]:
        return {"name": self.name, "accepting": not self.queue.closed, **self.worker.stats()}


class InviteRelay:
    """The two delivery pipelines of the service and the HTTP client they share."""

    def __init__(
        self,
        notifications: DeliveryPipeline[Submission],
        invitations: DeliveryPipeline[Invitation],
        client: Optional[httpx.AsyncClient] = None,
        drain_timeout: Optional[float] = None,
    ) -> None:
        self.notifications = notifications
        self.invitations = invitations
        self.drain_timeout = drain_timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: SettingModel, client: Optional[httpx.AsyncClient] = None) -> "InviteRelay":
        """Compose both pipelines from the loaded configuration.

        Parameters
        ----------
        settings : SettingModel
            The immutable configuration loaded at startup
        client : Optional[httpx.AsyncClient], optional
            HTTP client for outbound calls. A new one with ``settings.http_timeout``
            is created when omitted; either way the relay closes it on shutdown.

        Returns
        -------
        InviteRelay
            A relay whose workers are not started yet
        """
        if client is None:
            client = httpx.AsyncClient(timeout=settings.http_timeout)

        notifications: DeliveryPipeline[Submission] = DeliveryPipeline(
            NOTIFICATIONS,
            NotificationDelivery(
                settings.slack_webhook_url, client, retry_server_errors=settings.retry_server_errors
            ),
            capacity=settings.queue_capacity,
            admission_timeout=settings.admission_timeout,
            retry_policy=settings.retry_policy(),
        )
        invitations: DeliveryPipeline[Invitation] = DeliveryPipeline(
            INVITATIONS,
            InvitationDelivery(
                settings.invite_url,
                settings.slack_access_token.get_secret_value(),
                client,
                retry_server_errors=settings.retry_server_errors,
            ),
            capacity=settings.queue_capacity,
            admission_timeout=settings.admission_timeout,
            retry_policy=settings.retry_policy(),
        )
        return cls(notifications, invitations, client=client, drain_timeout=settings.shutdown_drain_timeout)

    async def submit_notification(self, submission: Submission) -> int:
        return await self.notifications.submit(submission)

    async def submit_invitation(self, email: str) -> int:
        return await self.invitations.submit(Invitation(email))

    def start(self) -> None:
        _LOG.info("Starting delivery workers")
        self.notifications.start()
        self.invitations.start()

    async def shutdown(self) -> None:
        """Drain both pipelines concurrently, then close the HTTP client."""
        _LOG.info("Shutting down delivery workers")
        results = await asyncio.gather(
            self.notifications.shutdown(self.drain_timeout),
            self.invitations.shutdown(self.drain_timeout),
        )
        undelivered = sum(len(r) for r in results)
        if undelivered:
            _LOG.warning(f"{undelivered} undelivered item(s) dead-lettered on shutdown")
        if self._client is not None:
            await self._client.aclose()

    def health(self) -> Dict[str, Any]:
        pipelines = [self.notifications.health(), self.invitations.health()]
        healthy = all(p["state"] == "running" and p["accepting"] for p in pipelines)
        return {
            "status": "healthy" if healthy else "unhealthy",
            "pipelines": {p["name"]: p for p in pipelines},
        }
