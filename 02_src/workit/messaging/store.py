"""MessageStore: session-scoped state of conversations and messages."""

import asyncio
import random
import time
import uuid
from dataclasses import replace
from typing import Awaitable, Protocol, Sequence

from ..errors import AuthenticationError, NotFoundError, RemoteUnavailable, ValidationError
from ..event_bus import EventBus, IEventBus, TopicHandler
from ..logging_config import get_logger
from ..models import (
    Attachment,
    AttachmentKind,
    Conversation,
    Message,
    MessageNotification,
    StoreEvent,
    Topic,
    TypingIndicator,
    utcnow,
)
from ..remote import IRemoteMessageService, OutgoingFile
from ..storage import IPersistence, Snapshot
from .demo import build_demo_snapshot
from .replies import ReplySettings
from .resolution import LoadResult, LoadSource

logger = get_logger(__name__)

TYPING_TIMEOUT = 5.0  # seconds
TYPING_TICK = 1.0


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:9]}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class IMessageStore(Protocol):
    """Single source of truth for conversations and messages shown to the UI."""

    async def load_for_user(self, user_id: str, background: bool = False) -> LoadResult:
        """Hydrate local, refresh from remote, else seed the demo dataset."""
        ...

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        attachments: Sequence[OutgoingFile | Attachment] | None = None,
    ) -> Message:
        """Send a message; it is visible locally even when the remote fails."""
        ...

    async def create_conversation(self, participant_id: str, title: str | None = None) -> str:
        """Return the id of the conversation with participant_id, creating it if needed."""
        ...

    async def mark_as_read(self, conversation_id: str) -> None:
        """Mark every message addressed to the current user as read."""
        ...

    def get_conversation_messages(self, conversation_id: str) -> list[Message]:
        ...

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        ...

    async def close(self) -> None:
        """End the session: cancel scheduled tasks and drop in-memory state."""
        ...


class MessageStore:
    """Mediates between local snapshot persistence and a best-effort remote service."""

    def __init__(
        self,
        persistence: IPersistence,
        remote: IRemoteMessageService | None = None,
        event_bus: IEventBus | None = None,
        replies: ReplySettings | None = None,
        typing_timeout: float = TYPING_TIMEOUT,
        typing_tick: float = TYPING_TICK,
        rng: random.Random | None = None,
    ):
        self._persistence = persistence
        self._remote = remote
        self._event_bus = event_bus or EventBus()
        self._replies = replies or ReplySettings()
        self._typing_timeout = typing_timeout
        self._typing_tick = typing_tick
        self._rng = rng or random.Random()

        # Session state
        self._user_id: str | None = None
        self._conversations: list[Conversation] = []
        self._messages: dict[str, list[Message]] = {}
        self._notifications: list[MessageNotification] = []

        # Scheduled tasks owned by the session
        self._reply_tasks: dict[str, set[asyncio.Task]] = {}
        self._background: set[asyncio.Task] = set()
        self._typing_task: asyncio.Task | None = None

    # Session state
    @property
    def current_user_id(self) -> str | None:
        return self._user_id

    @property
    def conversations(self) -> list[Conversation]:
        return list(self._conversations)

    @property
    def messages(self) -> dict[str, list[Message]]:
        return {conv_id: list(bucket) for conv_id, bucket in self._messages.items()}

    @property
    def notifications(self) -> list[MessageNotification]:
        return list(self._notifications)

    @property
    def unread_count(self) -> int:
        """Messages addressed to the current user that are still unread."""
        if not self._user_id:
            return 0
        return sum(
            1
            for bucket in self._messages.values()
            for msg in bucket
            if msg.receiver_id == self._user_id and not msg.is_read
        )

    def pending_replies(self, conversation_id: str | None = None) -> int:
        """Number of scheduled counterpart replies, optionally for one conversation."""
        if conversation_id is not None:
            return len(self._reply_tasks.get(conversation_id, ()))
        return sum(len(tasks) for tasks in self._reply_tasks.values())

    def subscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Receive StoreEvents for a topic."""
        self._event_bus.subscribe(topic, handler)

    # Lookups
    def get_conversation_messages(self, conversation_id: str) -> list[Message]:
        return list(self._messages.get(conversation_id, []))

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return next((c for c in self._conversations if c.id == conversation_id), None)

    # Lifecycle
    async def load_for_user(self, user_id: str, background: bool = False) -> LoadResult:
        """Hydrate from the local snapshot, then refresh from the remote service.

        Falls back to the demo dataset when both tiers are empty or
        unavailable. Failures are logged, never raised. With
        ``background=True`` and local data present, the remote refresh runs
        as a session task and the local result is returned immediately.
        """
        if not user_id:
            raise ValidationError("user_id is required")

        if self._user_id is not None:
            await self.close()

        self._user_id = user_id
        logger.info("Loading conversations for %s", user_id)

        snapshot = await self._load_local()
        if snapshot and not snapshot.is_empty:
            self._apply_snapshot(snapshot)
            logger.info(
                "Hydrated %d conversations from local store",
                len(self._conversations),
                extra={"user_id": user_id, "source": LoadSource.LOCAL.value},
            )
            await self._publish(Topic.CONVERSATIONS_LOADED, {"source": LoadSource.LOCAL.value})

        self._typing_task = asyncio.create_task(self._typing_ticker())

        if background and self._conversations:
            self._spawn(self.refresh_from_remote())
            return self._result(LoadSource.LOCAL)

        return await self.refresh_from_remote()

    async def refresh_from_remote(self) -> LoadResult:
        """Replace state with the server copy when reachable and non-empty."""
        user_id = self._require_user()

        conversations: list[Conversation] = []
        messages: dict[str, list[Message]] = {}
        reachable = False
        if self._remote is not None:
            try:
                conversations = await self._remote.get_conversations(user_id)
                for conversation in conversations:
                    messages[conversation.id] = await self._remote.get_messages(conversation.id)
                reachable = True
            except RemoteUnavailable as e:
                logger.warning("Remote refresh failed for %s: %s", user_id, e)

        if self._user_id != user_id:
            # Session ended or switched while the refresh was in flight
            return self._result(LoadSource.LOCAL, reachable)

        if reachable and conversations:
            for conversation in conversations:
                bucket = messages.get(conversation.id) or []
                if conversation.last_message is None and bucket:
                    conversation.last_message = bucket[-1]
            self._conversations = conversations
            self._messages = messages
            await self._persist()
            await self._publish(Topic.CONVERSATIONS_LOADED, {"source": LoadSource.REMOTE.value})
            return self._result(LoadSource.REMOTE, reachable)

        if self._conversations:
            return self._result(LoadSource.LOCAL, reachable)

        logger.info("No local or remote conversations for %s, seeding demo data", user_id)
        self._apply_snapshot(build_demo_snapshot(user_id))
        await self._persist()
        await self._publish(Topic.CONVERSATIONS_LOADED, {"source": LoadSource.DEMO.value})
        return self._result(LoadSource.DEMO, reachable)

    async def close(self) -> None:
        """End the session: cancel scheduled tasks and drop in-memory state."""
        tasks = [task for bucket in self._reply_tasks.values() for task in bucket]
        tasks.extend(self._background)
        if self._typing_task:
            tasks.append(self._typing_task)

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._reply_tasks.clear()
        self._background.clear()
        self._typing_task = None

        if self._user_id:
            logger.info("Closed messaging session for %s", self._user_id)
        self._user_id = None
        self._conversations = []
        self._messages = {}
        self._notifications = []

    async def drain(self) -> None:
        """Wait for fire-and-forget remote calls of this session to settle."""
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # Mutations
    async def send_message(
        self,
        conversation_id: str,
        content: str,
        attachments: Sequence[OutgoingFile | Attachment] | None = None,
    ) -> Message:
        """Send a message; it is visible locally even when the remote fails."""
        user_id = self._require_user()
        if not conversation_id:
            raise ValidationError("conversation_id is required")

        content = content or ""
        attachments = list(attachments or [])
        if not content.strip() and not attachments:
            raise ValidationError("Message content or attachments are required")

        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if not conversation.has_participant(user_id):
            raise ValidationError("Current user is not a participant of this conversation")

        receiver_id = conversation.other_participant(user_id)
        if receiver_id is None:
            raise ValidationError("Conversation has no other participant")

        files = [a for a in attachments if isinstance(a, OutgoingFile)]
        links = [a for a in attachments if isinstance(a, Attachment)]

        message: Message | None = None
        if self._remote is not None:
            try:
                message = await self._remote.post_message(
                    conversation_id,
                    content,
                    sender_id=user_id,
                    receiver_id=receiver_id,
                    files=files,
                    links=links,
                )
            except RemoteUnavailable as e:
                logger.warning(
                    "Sending via remote failed, keeping message locally: %s",
                    e,
                    extra={"user_id": user_id, "conversation_id": conversation_id},
                )

        if message is None:
            message = Message(
                id=_new_id("msg"),
                sender_id=user_id,
                receiver_id=receiver_id,
                conversation_id=conversation_id,
                content=content,
                timestamp=utcnow(),
                is_read=False,
                attachments=[self._local_attachment(a) for a in attachments],
            )

        if self.get_conversation(conversation_id) is None:
            logger.warning("Conversation %s deleted while sending", conversation_id)
            return message

        self._append_message(conversation, message)
        conversation.is_typing = None
        await self._persist()
        await self._publish(
            Topic.MESSAGE_ADDED,
            {"message_id": message.id, "sender_id": user_id},
            conversation_id,
        )

        self._schedule_reply(conversation_id, counterpart_id=receiver_id)
        return message

    async def create_conversation(self, participant_id: str, title: str | None = None) -> str:
        """Return the id of the conversation with participant_id, creating it if needed."""
        if not self._user_id:
            raise AuthenticationError("User not authenticated")
        user_id = self._user_id
        if not participant_id:
            raise ValidationError("participant_id is required")
        if participant_id == user_id:
            raise ValidationError("Cannot start a conversation with yourself")

        existing = next(
            (
                c
                for c in self._conversations
                if c.has_participant(user_id) and c.has_participant(participant_id)
            ),
            None,
        )
        if existing:
            return existing.id

        conversation: Conversation | None = None
        if self._remote is not None:
            try:
                conversation = await self._remote.create_conversation(
                    [user_id, participant_id], title
                )
            except RemoteUnavailable as e:
                logger.warning("Creating conversation via remote failed: %s", e)

        if conversation is None:
            now = utcnow()
            conversation = Conversation(
                id=_new_id("conv"),
                participants=[user_id, participant_id],
                title=title,
                created_at=now,
                last_activity=now,
            )

        # The server may hand back a conversation this session already holds
        known = self.get_conversation(conversation.id)
        if known is not None:
            return known.id

        self._conversations.append(conversation)
        self._messages.setdefault(conversation.id, [])
        await self._persist()
        await self._publish(
            Topic.CONVERSATION_CREATED,
            {"participants": list(conversation.participants), "title": conversation.title},
            conversation.id,
        )
        return conversation.id

    async def mark_as_read(self, conversation_id: str) -> None:
        """Mark every message addressed to the current user as read.

        The local update always applies; the remote is notified
        fire-and-forget.
        """
        user_id = self._user_id
        if not user_id:
            return

        bucket = self._messages.get(conversation_id)
        if bucket is None:
            return

        changed = 0
        for msg in bucket:
            if msg.receiver_id == user_id and not msg.is_read:
                msg.is_read = True
                changed += 1

        for notification in self._notifications:
            if notification.conversation_id == conversation_id:
                notification.is_read = True

        await self._persist()
        await self._publish(Topic.MESSAGES_READ, {"count": changed}, conversation_id)

        if self._remote is not None:
            self._spawn(self._notify_read(conversation_id, user_id))

    async def delete_conversation(self, conversation_id: str) -> None:
        """Remove a conversation with its messages, notifications and pending replies."""
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return

        for task in self._reply_tasks.pop(conversation_id, set()):
            task.cancel()

        self._conversations = [c for c in self._conversations if c.id != conversation_id]
        self._messages.pop(conversation_id, None)
        self._notifications = [
            n for n in self._notifications if n.conversation_id != conversation_id
        ]

        await self._persist()
        await self._publish(Topic.CONVERSATION_DELETED, {}, conversation_id)

    async def delete_message(self, conversation_id: str, message_id: str) -> None:
        """Remove a single message and refresh the conversation's last message."""
        bucket = self._messages.get(conversation_id)
        if not bucket:
            return

        remaining = [msg for msg in bucket if msg.id != message_id]
        if len(remaining) == len(bucket):
            return

        self._messages[conversation_id] = remaining
        conversation = self.get_conversation(conversation_id)
        if conversation is not None:
            conversation.last_message = remaining[-1] if remaining else None

        await self._persist()
        await self._publish(Topic.MESSAGE_DELETED, {"message_id": message_id}, conversation_id)

    async def set_typing_status(self, conversation_id: str, is_typing: bool) -> None:
        """Set or clear the current user's typing indicator on a conversation."""
        if not self._user_id:
            return

        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return

        conversation.is_typing = (
            TypingIndicator(user_id=self._user_id, timestamp=_now_ms()) if is_typing else None
        )
        await self._publish(Topic.TYPING_CHANGED, {"is_typing": is_typing}, conversation_id)

    async def expire_typing_indicators(self, now_ms: int | None = None) -> int:
        """Clear typing indicators older than the timeout. Returns how many were cleared."""
        now_ms = _now_ms() if now_ms is None else now_ms
        threshold = self._typing_timeout * 1000

        expired = [
            c
            for c in self._conversations
            if c.is_typing is not None and now_ms - c.is_typing.timestamp > threshold
        ]
        for conversation in expired:
            conversation.is_typing = None
            await self._publish(Topic.TYPING_CHANGED, {"is_typing": False}, conversation.id)
        return len(expired)

    async def mark_notification_as_read(self, notification_id: str) -> None:
        notification = next((n for n in self._notifications if n.id == notification_id), None)
        if notification is None or notification.is_read:
            return
        notification.is_read = True
        await self._persist()

    async def fetch_remote_unread_count(self) -> int | None:
        """Unread count according to the server, or None when it is unreachable."""
        user_id = self._require_user()
        if self._remote is None:
            return None
        try:
            return await self._remote.unread_count(user_id)
        except RemoteUnavailable as e:
            logger.warning("Remote unread count unavailable: %s", e)
            return None

    # Internals
    def _require_user(self) -> str:
        if not self._user_id:
            raise AuthenticationError("User not authenticated")
        return self._user_id

    def _result(self, source: LoadSource, reachable: bool = False) -> LoadResult:
        return LoadResult(
            source=source,
            conversations=len(self._conversations),
            messages=sum(len(bucket) for bucket in self._messages.values()),
            remote_reachable=reachable,
        )

    def _apply_snapshot(self, snapshot: Snapshot) -> None:
        self._conversations = list(snapshot.conversations)
        self._messages = {conv_id: list(bucket) for conv_id, bucket in snapshot.messages.items()}
        self._notifications = list(snapshot.notifications)

    def _append_message(self, conversation: Conversation, message: Message) -> None:
        self._messages.setdefault(conversation.id, []).append(message)
        conversation.last_message = message
        conversation.last_activity = utcnow()

    def _local_attachment(self, item: OutgoingFile | Attachment) -> Attachment:
        if isinstance(item, Attachment):
            # Each message gets its own copy; the caller's object is left untouched
            return replace(item, id=_new_id("att"))

        # Binary payloads never leave the session; keep an ephemeral reference
        att_id = _new_id("att")
        return Attachment(
            id=att_id,
            kind=AttachmentKind.from_mimetype(item.mimetype),
            url=f"local://{att_id}/{item.name}",
            name=item.name,
            size=item.size,
            mimetype=item.mimetype,
        )

    async def _load_local(self) -> Snapshot | None:
        try:
            return await self._persistence.load()
        except Exception as e:
            logger.error("Local store unavailable: %s", e, exc_info=True)
            return None

    async def _persist(self) -> None:
        try:
            await self._persistence.save(
                self._conversations, self._messages, self._notifications
            )
        except Exception as e:
            logger.error("Failed to persist message snapshot: %s", e, exc_info=True)

    async def _publish(
        self, topic: Topic, payload: dict, conversation_id: str | None = None
    ) -> None:
        await self._event_bus.publish(
            StoreEvent(
                topic=topic,
                payload=payload,
                timestamp=utcnow(),
                conversation_id=conversation_id,
                unread_count=self.unread_count,
            )
        )

    def _spawn(self, coro: Awaitable) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _notify_read(self, conversation_id: str, user_id: str) -> None:
        try:
            await self._remote.mark_read(conversation_id, user_id)
        except RemoteUnavailable as e:
            logger.warning(
                "Remote mark-as-read failed: %s",
                e,
                extra={"user_id": user_id, "conversation_id": conversation_id},
            )

    def _schedule_reply(self, conversation_id: str, counterpart_id: str) -> None:
        settings = self._replies
        if not settings.enabled or self._rng.random() >= settings.probability:
            return

        delay = self._rng.uniform(settings.min_delay, settings.max_delay)
        task = asyncio.create_task(
            self._deliver_reply(conversation_id, counterpart_id, self._user_id, delay)
        )
        tasks = self._reply_tasks.setdefault(conversation_id, set())
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    async def _deliver_reply(
        self, conversation_id: str, counterpart_id: str, user_id: str, delay: float
    ) -> None:
        await asyncio.sleep(delay)

        try:
            conversation = self.get_conversation(conversation_id)
            if conversation is None or self._user_id != user_id:
                return

            now = utcnow()
            reply = Message(
                id=_new_id("msg"),
                sender_id=counterpart_id,
                receiver_id=user_id,
                conversation_id=conversation_id,
                content=self._rng.choice(self._replies.responses),
                timestamp=now,
                is_read=False,
            )
            self._append_message(conversation, reply)

            notification = MessageNotification(
                id=_new_id("notif"),
                conversation_id=conversation_id,
                message=self._replies.notification_text,
                sender=counterpart_id,
                timestamp=now,
            )
            self._notifications.append(notification)

            await self._persist()
            await self._publish(
                Topic.MESSAGE_ADDED,
                {"message_id": reply.id, "sender_id": counterpart_id},
                conversation_id,
            )
            await self._publish(
                Topic.NOTIFICATION_ADDED,
                {"notification_id": notification.id},
                conversation_id,
            )
        except Exception as e:
            logger.error("Simulated reply failed for %s: %s", conversation_id, e, exc_info=True)

    async def _typing_ticker(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._typing_tick)
                await self.expire_typing_indicators()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Typing indicator expiry failed: %s", e, exc_info=True)
