"""Notification delivery: one form submission to one Slack webhook message.

Message shapes
==============
**Dud** (fewer than three distinct non-empty answers):

.. code-block:: json

    {"text": "Dud Request from: a@example.com\\n"}

**Review** (everything else): one ``Pretty Key: value`` line per answer,
sorted by field name, plus an interactive attachment keyed by the applicant's
email with Accept / Reject buttons. The button callback arrives at
``POST /accept`` and is turned into an invitation there.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Mapping

import httpx
from slack_sdk.models.attachments import ActionButton, InteractiveAttachment

from invite_relay.models import DeliveryOutcome, DeliveryResult, Submission

from .base import classify_response, describe_transport_error

__all__: list[str] = [
    "METADATA_FIELDS",
    "DUD_THRESHOLD",
    "ACTION_NAME",
    "sorted_keys",
    "pretty_key",
    "is_dud",
    "build_dud_message",
    "build_review_message",
    "build_message",
    "NotificationDelivery",
]

_LOG: Final[logging.Logger] = logging.getLogger(__name__)

# Fields the form builder adds to every response
METADATA_FIELDS: Final[frozenset[str]] = frozenset({"page_id", "page_name", "page_url", "ip", "variant"})
EMAIL_FIELD: Final[str] = "email"
DUD_THRESHOLD: Final[int] = 3
ACTION_NAME: Final[str] = "action"


def sorted_keys(data: Mapping[str, Any]) -> list[str]:
    """Answer fields of a submission, sorted, without metadata and email."""
    return sorted(k for k in data if k not in METADATA_FIELDS and k != EMAIL_FIELD)


def pretty_key(key: str) -> str:
    """``how_did_you_hear`` -> ``How Did You Hear``; the rest of each word keeps its case."""
    return " ".join(word[:1].upper() + word[1:] for word in key.replace("_", " ").split(" "))


def _is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def is_dud(data: Mapping[str, Any]) -> bool:
    """Whether a submission carries too little information to review.

    Counts distinct non-empty answer values; metadata fields and the email do
    not count.
    """
    distinct = {str(data[k]).strip() for k in sorted_keys(data) if not _is_blank(data[k])}
    return len(distinct) < DUD_THRESHOLD


def build_dud_message(email: str) -> dict[str, Any]:
    return {"text": f"Dud Request from: {email}\n"}


def _decision_attachment(email: str) -> InteractiveAttachment:
    return InteractiveAttachment(
        title=email,
        text="Your decision ...",
        callback_id=email,
        actions=[
            ActionButton(name=ACTION_NAME, text="Accept", value="accept", style="primary"),
            ActionButton(name=ACTION_NAME, text="Reject", value="reject", style="danger"),
        ],
    )


def build_review_message(submission: Submission) -> dict[str, Any]:
    """Full review message with Accept / Reject controls.

    Parameters
    ----------
    submission : Submission
        A submission that has an email

    Returns
    -------
    dict[str, Any]
        Slack message payload ready to be posted as JSON
    """
    email = submission.email
    if email is None:
        raise ValueError("A review message needs an email to key the decision on")

    lines = [f"{pretty_key(k)}: {submission[k]}" for k in sorted_keys(submission)]
    return {
        "text": "\n".join(lines) + "\n",
        "attachments": [_decision_attachment(email).to_dict()],
    }


def build_message(submission: Submission) -> dict[str, Any] | None:
    """Message for a submission, or ``None`` when it has no email."""
    email = submission.email
    if email is None:
        return None
    if is_dud(submission):
        return build_dud_message(email)
    return build_review_message(submission)


class NotificationDelivery:
    """Post submissions to a Slack incoming webhook.

    Examples
    --------
    .. code-block:: python

        async with httpx.AsyncClient() as client:
            deliver = NotificationDelivery("https://hooks.slack.com/services/T/B/X", client)
            result = await deliver(Submission(email="a@example.com", q1="yes"))
    """

    def __init__(self, webhook_url: str, client: httpx.AsyncClient, retry_server_errors: bool = True) -> None:
        self.webhook_url = webhook_url
        self.client = client
        self.retry_server_errors = retry_server_errors

    async def __call__(self, submission: Submission) -> DeliveryResult:
        message = build_message(submission)
        if message is None:
            _LOG.info("Skipping submission without an email")
            return DeliveryResult.skipped("submission has no email")

        try:
            response = await self.client.post(self.webhook_url, json=message)
        except httpx.TransportError as e:
            return DeliveryResult.failure(describe_transport_error(e))

        result = classify_response(response, retry_server_errors=self.retry_server_errors)
        if result.outcome is DeliveryOutcome.REJECTED:
            _LOG.warning(f"Webhook rejected notification for {submission.email}: {result.reason} {response.text!r}")
        return result
