"""Core data models for WorkiT messaging."""

from .messages import (
    Attachment,
    AttachmentKind,
    Conversation,
    Message,
    TypingIndicator,
    parse_timestamp,
    utcnow,
)
from .notifications import MessageNotification
from .events import StoreEvent, Topic

__all__ = [
    # Messages
    "Attachment",
    "AttachmentKind",
    "Conversation",
    "Message",
    "TypingIndicator",
    "parse_timestamp",
    "utcnow",
    # Notifications
    "MessageNotification",
    # Events
    "StoreEvent",
    "Topic",
]
