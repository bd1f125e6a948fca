"""Fixed demo dataset seeded when neither local nor remote data is available."""

from datetime import datetime, timedelta

from ..models import (
    Attachment,
    AttachmentKind,
    Conversation,
    Message,
    MessageNotification,
    utcnow,
)
from ..storage import Snapshot

HOUR = timedelta(hours=1)


def _message(
    msg_id: str,
    conversation_id: str,
    sender_id: str,
    receiver_id: str,
    content: str,
    timestamp: datetime,
    is_read: bool,
    attachments: list[Attachment] | None = None,
) -> Message:
    return Message(
        id=msg_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        conversation_id=conversation_id,
        content=content,
        timestamp=timestamp,
        is_read=is_read,
        attachments=attachments or [],
    )


def build_demo_snapshot(user_id: str, now: datetime | None = None) -> Snapshot:
    """Three client conversations around the signed-in user, two with unread messages."""
    now = now or utcnow()

    messages = {
        "conv_1": [
            _message(
                "msg_1", "conv_1", "client_1", user_id,
                "Hello, I'd like to talk about the web development project.",
                now - 24 * HOUR, True,
            ),
            _message(
                "msg_2", "conv_1", user_id, "client_1",
                "Hello! Sure, I'm available. What do you need?",
                now - 23 * HOUR, True,
            ),
            _message(
                "msg_3", "conv_1", "client_1", user_id,
                "I need an e-commerce site with a payment integration.",
                now - 2 * HOUR, False,
            ),
        ],
        "conv_2": [
            _message(
                "msg_4", "conv_2", "client_2", user_id,
                "Could you design a logo for my new startup?",
                now - 48 * HOUR, True,
            ),
            _message(
                "msg_5", "conv_2", user_id, "client_2",
                "Of course! Can you tell me more about your company?",
                now - 47 * HOUR, True,
            ),
        ],
        "conv_3": [
            _message(
                "msg_6", "conv_3", "client_3", user_id,
                "Hello, I need an API for my mobile application.",
                now - 5 * HOUR, False,
                attachments=[
                    Attachment(
                        id="att_1",
                        kind=AttachmentKind.FILE,
                        url="https://example.com/api-specs.pdf",
                        name="API Specifications.pdf",
                    )
                ],
            ),
        ],
    }

    conversations = [
        Conversation(
            id="conv_1",
            participants=[user_id, "client_1"],
            title="Full-stack web development",
            created_at=now - 72 * HOUR,
            last_activity=now - 2 * HOUR,
        ),
        Conversation(
            id="conv_2",
            participants=[user_id, "client_2"],
            title="Logo design",
            created_at=now - 48 * HOUR,
            last_activity=now - 47 * HOUR,
        ),
        Conversation(
            id="conv_3",
            participants=[user_id, "client_3"],
            title="API development",
            created_at=now - 24 * HOUR,
            last_activity=now - 5 * HOUR,
        ),
    ]
    for conversation in conversations:
        conversation.last_message = messages[conversation.id][-1]

    notifications = [
        MessageNotification(
            id="notif_1",
            conversation_id="conv_1",
            message="client_1 sent you a message",
            sender="client_1",
            timestamp=now - 2 * HOUR,
        ),
        MessageNotification(
            id="notif_2",
            conversation_id="conv_3",
            message="client_3 sent you a message",
            sender="client_3",
            timestamp=now - 5 * HOUR,
        ),
    ]

    return Snapshot(
        conversations=conversations,
        messages=messages,
        notifications=notifications,
    )
