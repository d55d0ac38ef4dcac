"""Delivery functions: turn one queued item into one outbound HTTP request."""

from .base import Delivery, classify_response
from .invitation import InvitationDelivery, build_invite_form
from .notification import NotificationDelivery, build_message

__all__ = [
    "Delivery",
    "classify_response",
    "InvitationDelivery",
    "build_invite_form",
    "NotificationDelivery",
    "build_message",
]
