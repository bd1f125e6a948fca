"""WorkiT messaging core."""

from .app import Application, IApplication
from .errors import (
    AuthenticationError,
    NotFoundError,
    RemoteUnavailable,
    ValidationError,
    WorkitError,
)
from .event_bus import EventBus, IEventBus
from .messaging import IMessageStore, LoadResult, LoadSource, MessageStore, ReplySettings
from .models import (
    Attachment,
    AttachmentKind,
    Conversation,
    Message,
    MessageNotification,
    StoreEvent,
    Topic,
    TypingIndicator,
)
from .remote import IRemoteMessageService, OutgoingFile, RemoteMessageService
from .storage import (
    IMessageRepository,
    IPersistence,
    MessageRepository,
    Snapshot,
    SnapshotStorage,
)

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Errors
    "WorkitError",
    "ValidationError",
    "NotFoundError",
    "AuthenticationError",
    "RemoteUnavailable",
    # Models
    "Attachment",
    "AttachmentKind",
    "Conversation",
    "Message",
    "MessageNotification",
    "StoreEvent",
    "Topic",
    "TypingIndicator",
    # Components
    "IEventBus",
    "EventBus",
    "IPersistence",
    "Snapshot",
    "SnapshotStorage",
    "IMessageRepository",
    "MessageRepository",
    "IRemoteMessageService",
    "OutgoingFile",
    "RemoteMessageService",
    "IMessageStore",
    "MessageStore",
    "LoadResult",
    "LoadSource",
    "ReplySettings",
]
