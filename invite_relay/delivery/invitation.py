"""Invitation delivery: one email address to one ``users.admin.invite`` call."""

from __future__ import annotations

import logging
from typing import Final

import httpx

from invite_relay.models import DeliveryOutcome, DeliveryResult, Invitation

from .base import classify_response, describe_transport_error

__all__: list[str] = ["build_invite_form", "InvitationDelivery"]

_LOG: Final[logging.Logger] = logging.getLogger(__name__)

# Slack Web API errors that are worth another attempt
RETRYABLE_API_ERRORS: Final[frozenset[str]] = frozenset({"ratelimited", "internal_error", "fatal_error"})


def build_invite_form(invitation: Invitation, token: str) -> dict[str, str]:
    return {"email": invitation.email, "token": token}


class InvitationDelivery:
    """Invite users through Slack's form-encoded invite endpoint.

    Slack answers 200 even when it refuses an invitation and reports the
    refusal as ``{"ok": false, "error": "already_invited"}``. Such answers are
    classified as rejections (or as failures for the transient errors in
    ``RETRYABLE_API_ERRORS``) instead of being taken as success.
    """

    def __init__(
        self, invite_url: str, token: str, client: httpx.AsyncClient, retry_server_errors: bool = True
    ) -> None:
        self.invite_url = invite_url
        self._token = token
        self.client = client
        self.retry_server_errors = retry_server_errors

    async def __call__(self, invitation: Invitation) -> DeliveryResult:
        try:
            response = await self.client.post(self.invite_url, data=build_invite_form(invitation, self._token))
        except httpx.TransportError as e:
            return DeliveryResult.failure(describe_transport_error(e))

        _LOG.debug(f"Invite endpoint answered {response.status_code} for {invitation.email}: {response.text}")

        result = classify_response(response, retry_server_errors=self.retry_server_errors)
        if result.outcome is DeliveryOutcome.SUCCESS:
            result = self._check_api_body(response)

        if result.outcome is DeliveryOutcome.REJECTED:
            _LOG.warning(f"Invitation for {invitation.email} rejected: {result.reason}")
        return result

    def _check_api_body(self, response: httpx.Response) -> DeliveryResult:
        try:
            body = response.json()
        except ValueError:
            # Not a Web API envelope; the status code is all there is.
            return DeliveryResult.success(response.status_code)

        if not isinstance(body, dict) or body.get("ok", True):
            return DeliveryResult.success(response.status_code)

        error = str(body.get("error") or "unknown_error")
        if error in RETRYABLE_API_ERRORS:
            return DeliveryResult.failure(f"Slack API error: {error}", response.status_code)
        return DeliveryResult.rejected(f"Slack API error: {error}", response.status_code)
