"""Notification data models."""

from dataclasses import dataclass
from datetime import datetime

from .messages import _require, parse_timestamp


@dataclass
class MessageNotification:
    """A user-facing notice that a new message arrived in a conversation."""

    id: str
    conversation_id: str
    message: str  # display text
    sender: str
    timestamp: datetime
    is_read: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "message": self.message,
            "sender": self.sender,
            "timestamp": self.timestamp.isoformat(),
            "isRead": self.is_read,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MessageNotification":
        return cls(
            id=_require(data, "id", "MessageNotification"),
            conversation_id=_require(data, "conversationId", "MessageNotification"),
            message=data.get("message", ""),
            sender=_require(data, "sender", "MessageNotification"),
            timestamp=parse_timestamp(_require(data, "timestamp", "MessageNotification")),
            is_read=bool(data.get("isRead", False)),
        )
