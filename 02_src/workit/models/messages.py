"""Conversation and message data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..errors import ValidationError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted) into an aware datetime."""
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _optional_timestamp(value: str | None) -> datetime | None:
    return parse_timestamp(value) if value else None


def _require(data: dict, key: str, model: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError):
        raise ValidationError(f"{model} is missing required field '{key}'") from None


class AttachmentKind(str, Enum):
    """Kinds of message attachments."""

    IMAGE = "image"
    FILE = "file"
    LINK = "link"

    @classmethod
    def from_mimetype(cls, mimetype: str | None) -> "AttachmentKind":
        if mimetype and mimetype.startswith("image/"):
            return cls.IMAGE
        return cls.FILE


@dataclass
class Attachment:
    """A file, image or link attached to a message."""

    kind: AttachmentKind
    url: str
    name: str | None = None
    size: int | None = None  # bytes
    id: str | None = None
    mimetype: str | None = None

    def to_dict(self) -> dict:
        data = {"type": self.kind.value, "url": self.url}
        for key in ("name", "size", "id", "mimetype"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Attachment":
        try:
            kind = AttachmentKind(data.get("type", AttachmentKind.FILE.value))
        except ValueError:
            raise ValidationError(f"Unknown attachment type: {data.get('type')}") from None
        return cls(
            kind=kind,
            url=_require(data, "url", "Attachment"),
            name=data.get("name"),
            size=data.get("size"),
            id=data.get("id"),
            mimetype=data.get("mimetype"),
        )


@dataclass
class Message:
    """A single message inside a conversation."""

    id: str
    sender_id: str
    receiver_id: str
    conversation_id: str
    content: str
    timestamp: datetime
    is_read: bool = False
    attachments: list[Attachment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "receiverId": self.receiver_id,
            "conversationId": self.conversation_id,
            "content": self.content,
            "attachments": [att.to_dict() for att in self.attachments],
            "timestamp": self.timestamp.isoformat(),
            "isRead": self.is_read,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=_require(data, "id", "Message"),
            sender_id=_require(data, "senderId", "Message"),
            receiver_id=_require(data, "receiverId", "Message"),
            conversation_id=_require(data, "conversationId", "Message"),
            content=data.get("content") or "",
            timestamp=parse_timestamp(_require(data, "timestamp", "Message")),
            is_read=bool(data.get("isRead", False)),
            attachments=[Attachment.from_dict(att) for att in data.get("attachments") or []],
        )


@dataclass
class TypingIndicator:
    """Ephemeral marker that a participant is typing."""

    user_id: str
    timestamp: int  # epoch milliseconds


@dataclass
class Conversation:
    """A conversation between two or more participants."""

    id: str
    participants: list[str]
    title: str | None = None
    last_message: Message | None = None
    created_at: datetime | None = None
    last_activity: datetime | None = None
    is_typing: TypingIndicator | None = None

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str | None:
        """First participant that is not ``user_id``."""
        return next((p for p in self.participants if p != user_id), None)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "participants": list(self.participants),
        }
        if self.title is not None:
            data["title"] = self.title
        if self.last_message is not None:
            data["lastMessage"] = self.last_message.to_dict()
        if self.created_at is not None:
            data["createdAt"] = self.created_at.isoformat()
        if self.last_activity is not None:
            data["lastActivity"] = self.last_activity.isoformat()
        if self.is_typing is not None:
            data["isTyping"] = {
                "userId": self.is_typing.user_id,
                "timestamp": self.is_typing.timestamp,
            }
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Conversation":
        participants = _require(data, "participants", "Conversation")
        if not isinstance(participants, list) or not participants:
            raise ValidationError("Conversation participants must be a non-empty list")

        last_message = data.get("lastMessage")
        typing = data.get("isTyping")
        return cls(
            id=_require(data, "id", "Conversation"),
            participants=[str(p) for p in participants],
            title=data.get("title"),
            last_message=Message.from_dict(last_message) if last_message else None,
            created_at=_optional_timestamp(data.get("createdAt")),
            last_activity=_optional_timestamp(data.get("lastActivity")),
            is_typing=(
                TypingIndicator(user_id=typing["userId"], timestamp=int(typing["timestamp"]))
                if typing
                else None
            ),
        )
