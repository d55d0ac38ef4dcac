"""Relay HTTP endpoints (FastAPI).

The front end is deliberately thin: it checks shared secrets, shapes the
request into a queue item and admits it. Delivery happens later, in the
workers; a 200 here means "accepted", never "delivered".

Endpoints
=========
- ``GET /``: liveness probe, answers ``OK``
- ``GET /health``: state and counters of both delivery pipelines
- ``POST /review?token=...``: a form submission (JSON object or form fields)
- ``POST /accept``: Slack interactive-button callback (form field ``payload``)

Quick Examples
==============

.. code-block:: bash

    # Submit a form response
    curl -X POST "http://localhost:8080/review?token=$FORM_VERIFICATION_TOKEN" \
         -H "Content-Type: application/json" \
         -d '{"email": "a@example.com", "role": "engineer", "team_size": "4", "source": "blog"}'

    # Health check
    curl http://localhost:8080/health
"""

from __future__ import annotations

import hmac
import json
import logging
from typing import Any, Dict, Final, Optional

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import SecretStr, ValidationError
from slack_sdk.models.attachments import Attachment
from slack_sdk.signature import SignatureVerifier

from invite_relay.delivery.notification import ACTION_NAME
from invite_relay.exceptions import AdmissionRejectedError, QueueClosedError, QueueFullError
from invite_relay.models import Submission
from invite_relay.relay import InviteRelay
from invite_relay.settings import SettingModel

from .app import web_factory
from .models import InteractiveCallbackModel, deserialize

__all__: list[str] = [
    "create_relay_app",
    "verify_token",
    "require_token",
    "verify_slack_request",
    "decision_attachment",
]

_LOG: Final[logging.Logger] = logging.getLogger(__name__)

ACCEPT_VALUE: Final[str] = "accept"


def verify_token(given: Optional[str], expected: SecretStr) -> bool:
    """Constant-time comparison of a presented shared secret."""
    if not given:
        return False
    return hmac.compare_digest(given.encode("utf-8"), expected.get_secret_value().encode("utf-8"))


def require_token(given: Optional[str], expected: SecretStr, what: str, status_code: int) -> None:
    """Raise :class:`AdmissionRejectedError` unless ``given`` matches ``expected``."""
    if not verify_token(given, expected):
        raise AdmissionRejectedError(f"Invalid {what}", status_code=status_code)


async def verify_slack_request(request: Request, signing_secret: str) -> bool:
    """Verify that the request is coming from Slack.

    Parameters
    ----------
    request : Request
        The FastAPI request object
    signing_secret : str
        The Slack app's signing secret

    Returns
    -------
    bool
        True if the request is valid, False otherwise
    """
    verifier = SignatureVerifier(signing_secret)

    signature = request.headers.get("X-Slack-Signature", "")
    timestamp = request.headers.get("X-Slack-Request-Timestamp", "")

    body = await request.body()
    return verifier.is_valid(signature=signature, timestamp=timestamp, body=body.decode("utf-8"))


def decision_attachment(accepted: bool, reviewer: str) -> Dict[str, Any]:
    """Attachment that replaces the Accept / Reject buttons once a decision is made."""
    if accepted:
        attachment = Attachment(
            text=f":white_check_mark: <@{reviewer}> *accepted this application*",
            color="good",
            markdown_in=["text"],
        )
    else:
        attachment = Attachment(
            text=f":no_entry: <@{reviewer}> *rejected this application*",
            color="danger",
            markdown_in=["text"],
        )
    return attachment.to_dict()


def _admission_failed(e: Exception) -> JSONResponse:
    _LOG.warning(f"Admission refused: {e}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(e)})


async def _read_submission(request: Request) -> Submission:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded") or content_type.startswith(
        "multipart/form-data"
    ):
        form = await request.form()
        return Submission({key: value for key, value in form.items() if isinstance(value, str)})

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=422, detail="Body must be a JSON object")
    return Submission(payload)


def create_relay_app(settings: SettingModel, relay: Optional[InviteRelay] = None) -> FastAPI:
    """Create the FastAPI app and register the relay endpoints.

    Parameters
    ----------
    settings : SettingModel
        The immutable configuration loaded at startup
    relay : Optional[InviteRelay], optional
        The relay to admit work into. Built from ``settings`` when omitted.

    Returns
    -------
    FastAPI
        The FastAPI app
    """
    if relay is None:
        relay = InviteRelay.from_settings(settings)

    app = web_factory.create(settings=settings, relay=relay)

    @app.exception_handler(AdmissionRejectedError)
    async def admission_rejected(_: Request, exc: AdmissionRejectedError) -> JSONResponse:
        _LOG.warning(f"Rejected request: {exc.reason}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.reason})

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "OK"

    @app.get("/health")
    async def health_check() -> JSONResponse:
        """Report state and counters of both delivery pipelines."""
        report = relay.health()
        status_code = status.HTTP_200_OK if report["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(status_code=status_code, content={"service": "slack-invite-relay", **report})

    @app.post("/review")
    async def review(request: Request) -> Response:
        """Admit a form submission for notification delivery.

        Returns the submission's position in the notification queue.
        """
        require_token(
            request.query_params.get("token"),
            settings.form_verification_token,
            "form token",
            status.HTTP_401_UNAUTHORIZED,
        )

        submission = await _read_submission(request)
        try:
            position = await relay.submit_notification(submission)
        except (QueueFullError, QueueClosedError) as e:
            return _admission_failed(e)

        _LOG.info(f"Accepted submission at notification queue position {position}")
        return JSONResponse(content=position)

    @app.post("/accept")
    async def accept(request: Request) -> Response:
        """Handle an Accept / Reject click on a review message.

        Accepting admits an invitation for the applicant. Either way Slack gets
        back the original message with the buttons replaced by the decision.
        """
        if settings.slack_signing_secret is not None:
            if not await verify_slack_request(request, settings.slack_signing_secret.get_secret_value()):
                raise AdmissionRejectedError("Invalid Slack request signature", status_code=status.HTTP_401_UNAUTHORIZED)

        form = await request.form()
        raw = form.get("payload")
        if not isinstance(raw, str):
            return Response(status_code=status.HTTP_400_BAD_REQUEST)

        try:
            callback: InteractiveCallbackModel = deserialize(raw)
        except ValidationError as e:
            _LOG.warning(f"Unparsable interactive callback: {e}")
            return Response(status_code=status.HTTP_400_BAD_REQUEST)

        require_token(callback.token, settings.slack_verification_token, "verification token", status.HTTP_400_BAD_REQUEST)

        if not callback.actions:
            return Response(status_code=status.HTTP_400_BAD_REQUEST)

        action = callback.actions[0]
        accepted = action.name == ACTION_NAME and action.value == ACCEPT_VALUE
        reviewer = callback.user.mention

        if accepted:
            if not callback.callback_id:
                return Response(status_code=status.HTTP_400_BAD_REQUEST)
            try:
                await relay.submit_invitation(callback.callback_id)
            except (QueueFullError, QueueClosedError) as e:
                return _admission_failed(e)
            _LOG.info(f"{reviewer} accepted {callback.callback_id}; invitation queued")
        else:
            _LOG.info(f"{reviewer} rejected {callback.callback_id}")

        message = dict(callback.original_message)
        message["attachments"] = [decision_attachment(accepted, reviewer)]
        return JSONResponse(content=message)

    return app
