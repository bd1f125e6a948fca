"""SQLite repository for the server-owned conversation and message copy."""

import uuid
from dataclasses import replace
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..errors import NotFoundError, ValidationError
from ..models import (
    Attachment,
    AttachmentKind,
    Conversation,
    Message,
    parse_timestamp,
    utcnow,
)


class IMessageRepository(Protocol):
    """Persistent storage behind the messaging REST API."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Conversations
    async def list_conversations(self, user_id: str) -> list[Conversation]:
        """Conversations the user participates in, most recent activity first."""
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        ...

    async def get_or_create_conversation(
        self, participants: list[str], title: str | None = None
    ) -> tuple[Conversation, bool]:
        """Return the conversation with exactly these participants, creating it if needed."""
        ...

    # Messages
    async def add_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        attachments: list[Attachment] | None = None,
    ) -> Message:
        """Store a new message and bump the conversation's last activity."""
        ...

    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation, ascending by timestamp."""
        ...

    async def mark_read(self, conversation_id: str, user_id: str) -> int:
        """Mark messages addressed to user_id as read. Returns rows changed."""
        ...

    async def count_unread(self, user_id: str) -> int:
        """Count unread messages addressed to user_id."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class MessageRepository:
    """SQLite repository implementation."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def db_path(self) -> str:
        return str(self._db_path)

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)
        await self._conn.execute("PRAGMA foreign_keys = ON")

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # Conversations
    async def list_conversations(self, user_id: str) -> list[Conversation]:
        """Conversations the user participates in, most recent activity first."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        cursor = await self._conn.execute(
            """
            SELECT c.id, c.title, c.created_at, c.last_activity
            FROM conversations c
            JOIN conversation_participants p ON p.conversation_id = c.id
            WHERE p.user_id = ?
            ORDER BY c.last_activity DESC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [await self._conversation_from_row(row) for row in rows]

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        cursor = await self._conn.execute(
            """
            SELECT id, title, created_at, last_activity
            FROM conversations
            WHERE id = ?
            """,
            (conversation_id,),
        )
        row = await cursor.fetchone()

        if not row:
            return None

        return await self._conversation_from_row(row)

    async def get_or_create_conversation(
        self, participants: list[str], title: str | None = None
    ) -> tuple[Conversation, bool]:
        """Return the conversation with exactly these participants, creating it if needed.

        The boolean is True when a new conversation was created.
        """
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        # Order-preserving dedupe; the match is on the participant set
        unique = list(dict.fromkeys(p for p in participants if p))
        if len(unique) < 2:
            raise ValidationError("At least two participants are required")

        placeholders = ",".join("?" * len(unique))
        cursor = await self._conn.execute(
            f"""
            SELECT conversation_id
            FROM conversation_participants
            GROUP BY conversation_id
            HAVING COUNT(*) = ?
               AND SUM(CASE WHEN user_id IN ({placeholders}) THEN 1 ELSE 0 END) = ?
            LIMIT 1
            """,
            (len(unique), *unique, len(unique)),
        )
        row = await cursor.fetchone()
        if row:
            existing = await self.get_conversation(row[0])
            if existing:
                return existing, False

        now = utcnow().isoformat()
        conversation_id = str(uuid.uuid4())
        await self._conn.execute(
            """
            INSERT INTO conversations (id, title, created_at, last_activity)
            VALUES (?, ?, ?, ?)
            """,
            (conversation_id, title, now, now),
        )
        await self._conn.executemany(
            """
            INSERT INTO conversation_participants (conversation_id, user_id, position)
            VALUES (?, ?, ?)
            """,
            [(conversation_id, user_id, i) for i, user_id in enumerate(unique)],
        )
        await self._conn.commit()

        created = await self.get_conversation(conversation_id)
        return created, True

    # Messages
    async def add_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        attachments: list[Attachment] | None = None,
    ) -> Message:
        """Store a new message and bump the conversation's last activity."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        if await self.get_conversation(conversation_id) is None:
            raise NotFoundError("Conversation not found")

        message = Message(
            id=str(uuid.uuid4()),
            sender_id=sender_id,
            receiver_id=receiver_id,
            conversation_id=conversation_id,
            content=content,
            timestamp=utcnow(),
            is_read=False,
            # Attachment ids are always assigned here, never taken from the client
            attachments=[replace(att, id=str(uuid.uuid4())) for att in attachments or []],
        )
        ts = message.timestamp.isoformat()

        try:
            await self._write_message(message)
            await self._conn.execute(
                "UPDATE conversations SET last_activity = ? WHERE id = ?",
                (ts, conversation_id),
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise

        return message

    async def _write_message(self, message: Message) -> None:
        await self._conn.execute(
            """
            INSERT INTO messages
            (id, conversation_id, sender_id, receiver_id, content, is_read, timestamp)
            VALUES (?, ?, ?, ?, ?, 0, ?)
            """,
            (
                message.id,
                message.conversation_id,
                message.sender_id,
                message.receiver_id,
                message.content,
                message.timestamp.isoformat(),
            ),
        )

        for position, attachment in enumerate(message.attachments):
            await self._conn.execute(
                """
                INSERT INTO attachments
                (id, message_id, position, type, url, name, size, mimetype)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    attachment.id,
                    message.id,
                    position,
                    attachment.kind.value,
                    attachment.url,
                    attachment.name,
                    attachment.size,
                    attachment.mimetype,
                ),
            )

    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation, ascending by timestamp."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        cursor = await self._conn.execute(
            """
            SELECT id, sender_id, receiver_id, conversation_id, content, is_read, timestamp
            FROM messages
            WHERE conversation_id = ?
            ORDER BY timestamp ASC, rowid ASC
            """,
            (conversation_id,),
        )
        rows = await cursor.fetchall()

        messages = []
        for row in rows:
            att_cursor = await self._conn.execute(
                """
                SELECT id, type, url, name, size, mimetype
                FROM attachments
                WHERE message_id = ?
                ORDER BY position ASC
                """,
                (row[0],),
            )
            att_rows = await att_cursor.fetchall()

            messages.append(
                Message(
                    id=row[0],
                    sender_id=row[1],
                    receiver_id=row[2],
                    conversation_id=row[3],
                    content=row[4],
                    is_read=bool(row[5]),
                    timestamp=parse_timestamp(row[6]),
                    attachments=[
                        Attachment(
                            id=att[0],
                            kind=AttachmentKind(att[1]),
                            url=att[2],
                            name=att[3],
                            size=att[4],
                            mimetype=att[5],
                        )
                        for att in att_rows
                    ],
                )
            )

        return messages

    async def mark_read(self, conversation_id: str, user_id: str) -> int:
        """Mark messages addressed to user_id as read. Returns rows changed."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        cursor = await self._conn.execute(
            """
            UPDATE messages SET is_read = 1
            WHERE conversation_id = ? AND receiver_id = ? AND is_read = 0
            """,
            (conversation_id, user_id),
        )
        await self._conn.commit()
        return cursor.rowcount

    async def count_unread(self, user_id: str) -> int:
        """Count unread messages addressed to user_id."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM messages WHERE receiver_id = ? AND is_read = 0",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        tables = [
            "attachments",
            "messages",
            "conversation_participants",
            "conversations",
        ]

        for table in tables:
            await self._conn.execute(f"DELETE FROM {table}")

        await self._conn.commit()

    async def _conversation_from_row(self, row) -> Conversation:
        cursor = await self._conn.execute(
            """
            SELECT user_id
            FROM conversation_participants
            WHERE conversation_id = ?
            ORDER BY position ASC
            """,
            (row[0],),
        )
        participants = [p[0] for p in await cursor.fetchall()]

        return Conversation(
            id=row[0],
            participants=participants,
            title=row[1],
            created_at=parse_timestamp(row[2]),
            last_activity=parse_timestamp(row[3]),
        )
