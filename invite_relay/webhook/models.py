"""Pydantic models for Slack interactive message callbacks.

Slack posts button clicks on legacy interactive attachments to the request
URL as a form field named ``payload`` that holds a JSON document:

.. code-block:: json

    {
        "type": "interactive_message",
        "callback_id": "a@example.com",
        "token": "verification-token",
        "actions": [{"name": "action", "type": "button", "value": "accept"}],
        "user": {"id": "U123", "name": "reviewer"},
        "original_message": {"text": "...", "attachments": [...]}
    }

Only the fields the relay reads are modelled; everything else is kept as-is.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__: list[str] = [
    "SlackUserModel",
    "AttachmentActionModel",
    "InteractiveCallbackModel",
    "deserialize",
]


class SlackUserModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None

    @property
    def mention(self) -> str:
        return self.name or self.id or "someone"


class AttachmentActionModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    value: str = ""
    type: Optional[str] = None


class InteractiveCallbackModel(BaseModel):
    """An interactive-message callback as sent by Slack."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    token: str = ""
    callback_id: str = ""
    actions: List[AttachmentActionModel] = Field(default_factory=list)
    user: SlackUserModel = Field(default_factory=SlackUserModel)
    original_message: Dict[str, Any] = Field(default_factory=dict)


def deserialize(raw: str) -> InteractiveCallbackModel:
    """Parse the ``payload`` form field.

    Raises
    ------
    pydantic.ValidationError
        If ``raw`` is not JSON or does not match the callback shape
    """
    return InteractiveCallbackModel.model_validate_json(raw)
