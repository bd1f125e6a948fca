"""Store change event models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Topic(str, Enum):
    """EventBus topics published by the message store."""

    CONVERSATIONS_LOADED = "conversations_loaded"
    CONVERSATION_CREATED = "conversation_created"
    CONVERSATION_DELETED = "conversation_deleted"
    MESSAGE_ADDED = "message_added"
    MESSAGE_DELETED = "message_deleted"
    MESSAGES_READ = "messages_read"
    TYPING_CHANGED = "typing_changed"
    NOTIFICATION_ADDED = "notification_added"


@dataclass
class StoreEvent:
    """A change in message store state, delivered to subscribers."""

    topic: Topic
    payload: dict  # varies by topic
    timestamp: datetime
    conversation_id: str | None = None
    unread_count: int = 0
