"""Local snapshot persistence (SQLite key/value store)."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_snapshot_path
from ..errors import WorkitError
from ..logging_config import get_logger
from ..models import Conversation, Message, MessageNotification, utcnow

logger = get_logger(__name__)

CONVERSATIONS_KEY = "workit_conversations"
MESSAGES_KEY = "workit_messages"
NOTIFICATIONS_KEY = "workit_message_notifications"

# Everything a corrupt entry can raise while being decoded into models
_PARSE_ERRORS = (ValueError, TypeError, AttributeError, KeyError, WorkitError)


@dataclass
class Snapshot:
    """Whole-document mirror of the message store state."""

    conversations: list[Conversation]
    messages: dict[str, list[Message]]
    notifications: list[MessageNotification] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.conversations


class IPersistence(Protocol):
    """Serialized mirror of the message store with no lifecycle of its own."""

    async def init(self) -> None:
        """Open the store."""
        ...

    async def close(self) -> None:
        """Close the store."""
        ...

    async def save(
        self,
        conversations: list[Conversation],
        messages: dict[str, list[Message]],
        notifications: list[MessageNotification] | None = None,
    ) -> None:
        """Overwrite the stored snapshot."""
        ...

    async def load(self) -> Snapshot | None:
        """Return the stored snapshot, or None when absent or unreadable."""
        ...

    async def clear(self) -> None:
        """Remove every stored entry."""
        ...


class SnapshotStorage:
    """SQLite-backed whole-snapshot store."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_snapshot_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the entry table."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "snapshot.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def save(
        self,
        conversations: list[Conversation],
        messages: dict[str, list[Message]],
        notifications: list[MessageNotification] | None = None,
    ) -> None:
        """Overwrite the stored snapshot in a single transaction."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        entries = {
            CONVERSATIONS_KEY: [conv.to_dict() for conv in conversations],
            MESSAGES_KEY: {
                conv_id: [msg.to_dict() for msg in bucket]
                for conv_id, bucket in messages.items()
            },
            NOTIFICATIONS_KEY: [n.to_dict() for n in notifications or []],
        }
        updated_at = utcnow().isoformat()

        await self._conn.executemany(
            """
            INSERT OR REPLACE INTO snapshot_entries (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            [(key, json.dumps(value), updated_at) for key, value in entries.items()],
        )
        await self._conn.commit()

    async def load(self) -> Snapshot | None:
        """Return the stored snapshot, or None when absent or unreadable.

        A corrupt conversation or message entry is deleted and the whole
        snapshot reported absent. A corrupt notification entry is deleted
        and the snapshot returned without notifications.
        """
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        raw = await self._read_entries()
        if CONVERSATIONS_KEY not in raw or MESSAGES_KEY not in raw:
            return None

        try:
            conversations = [
                Conversation.from_dict(item) for item in json.loads(raw[CONVERSATIONS_KEY])
            ]
        except _PARSE_ERRORS as e:
            logger.error("Discarding corrupt stored conversations: %s", e)
            await self._discard(CONVERSATIONS_KEY)
            return None

        try:
            messages = {
                conv_id: [Message.from_dict(item) for item in bucket]
                for conv_id, bucket in json.loads(raw[MESSAGES_KEY]).items()
            }
        except _PARSE_ERRORS as e:
            logger.error("Discarding corrupt stored messages: %s", e)
            await self._discard(MESSAGES_KEY)
            return None

        notifications: list[MessageNotification] = []
        if NOTIFICATIONS_KEY in raw:
            try:
                notifications = [
                    MessageNotification.from_dict(item)
                    for item in json.loads(raw[NOTIFICATIONS_KEY])
                ]
            except _PARSE_ERRORS as e:
                logger.error("Discarding corrupt stored notifications: %s", e)
                await self._discard(NOTIFICATIONS_KEY)

        return Snapshot(
            conversations=conversations,
            messages=messages,
            notifications=notifications,
        )

    async def clear(self) -> None:
        """Remove every stored entry."""
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        await self._conn.execute("DELETE FROM snapshot_entries")
        await self._conn.commit()

    async def _read_entries(self) -> dict[str, str]:
        cursor = await self._conn.execute("SELECT key, value FROM snapshot_entries")
        rows = await cursor.fetchall()
        return {row[0]: row[1] for row in rows}

    async def _discard(self, key: str) -> None:
        await self._conn.execute("DELETE FROM snapshot_entries WHERE key = ?", (key,))
        await self._conn.commit()
