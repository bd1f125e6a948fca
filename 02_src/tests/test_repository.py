"""Tests for MessageRepository."""

import asyncio
import sqlite3

import pytest

from workit.errors import NotFoundError, ValidationError
from workit.models import Attachment, AttachmentKind


class TestRepositoryInit:
    """Tests for MessageRepository initialization."""

    async def test_init_creates_tables(self, repository):
        """Test that init creates all tables."""
        async with repository._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ) as cursor:
            tables = [row[0] for row in await cursor.fetchall()]
            assert "conversations" in tables
            assert "conversation_participants" in tables
            assert "messages" in tables
            assert "attachments" in tables


class TestRepositoryConversations:
    """Tests for conversation storage."""

    async def test_create_conversation(self, repository):
        """Test creating a conversation."""
        conv, created = await repository.get_or_create_conversation(["u1", "u2"], "API work")

        assert created is True
        assert conv.participants == ["u1", "u2"]
        assert conv.title == "API work"
        assert conv.created_at is not None
        assert conv.last_activity is not None

    async def test_same_participant_set_is_deduplicated(self, repository):
        """Test that the participant set, not order, identifies a conversation."""
        first, _ = await repository.get_or_create_conversation(["u1", "u2"])
        second, created = await repository.get_or_create_conversation(["u2", "u1"], "Other")

        assert created is False
        assert second.id == first.id

    async def test_superset_is_a_different_conversation(self, repository):
        """Test that a group conversation does not match a pair."""
        pair, _ = await repository.get_or_create_conversation(["u1", "u2"])
        group, created = await repository.get_or_create_conversation(["u1", "u2", "u3"])

        assert created is True
        assert group.id != pair.id

        again, created = await repository.get_or_create_conversation(["u1", "u2"])
        assert created is False
        assert again.id == pair.id

    async def test_fewer_than_two_participants(self, repository):
        """Test that a conversation needs two distinct participants."""
        with pytest.raises(ValidationError):
            await repository.get_or_create_conversation(["u1", "u1"])

    async def test_get_nonexistent_conversation(self, repository):
        """Test retrieving nonexistent conversation returns None."""
        assert await repository.get_conversation("missing") is None

    async def test_list_conversations_most_recent_first(self, repository):
        """Test that listing orders by last activity, newest first."""
        older, _ = await repository.get_or_create_conversation(["u1", "u2"])
        await asyncio.sleep(0.01)
        newer, _ = await repository.get_or_create_conversation(["u1", "u3"])
        await repository.get_or_create_conversation(["u4", "u5"])

        listed = await repository.list_conversations("u1")
        assert [c.id for c in listed] == [newer.id, older.id]

        # A new message moves the older conversation to the top
        await asyncio.sleep(0.01)
        await repository.add_message(older.id, "u2", "u1", "ping")
        listed = await repository.list_conversations("u1")
        assert [c.id for c in listed] == [older.id, newer.id]


class TestRepositoryMessages:
    """Tests for message storage."""

    async def test_add_message_to_unknown_conversation(self, repository):
        """Test that posting into a missing conversation raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await repository.add_message("missing", "u1", "u2", "Hello")

    async def test_get_messages_ascending(self, repository):
        """Test that messages come back oldest first."""
        conv, _ = await repository.get_or_create_conversation(["u1", "u2"])
        await repository.add_message(conv.id, "u1", "u2", "first")
        await repository.add_message(conv.id, "u2", "u1", "second")
        await repository.add_message(conv.id, "u1", "u2", "third")

        messages = await repository.get_messages(conv.id)
        assert [m.content for m in messages] == ["first", "second", "third"]
        assert all(m.is_read is False for m in messages)

    async def test_get_messages_empty_conversation(self, repository):
        """Test retrieving messages from a conversation with none."""
        assert await repository.get_messages("missing") == []

    async def test_message_with_attachments(self, repository):
        """Test that attachments are stored in order with their metadata."""
        conv, _ = await repository.get_or_create_conversation(["u1", "u2"])
        await repository.add_message(
            conv.id,
            "u1",
            "u2",
            "",
            attachments=[
                Attachment(kind=AttachmentKind.IMAGE, url="/uploads/a.png", name="a.png", size=3),
                Attachment(kind=AttachmentKind.LINK, url="https://example.com"),
            ],
        )

        [message] = await repository.get_messages(conv.id)
        assert [a.kind for a in message.attachments] == [AttachmentKind.IMAGE, AttachmentKind.LINK]
        assert message.attachments[0].size == 3
        assert message.attachments[0].id is not None

    async def test_mark_read_only_affects_receiver(self, repository):
        """Test that mark_read flips only messages addressed to the user."""
        conv, _ = await repository.get_or_create_conversation(["u1", "u2"])
        await repository.add_message(conv.id, "u1", "u2", "to u2")
        await repository.add_message(conv.id, "u1", "u2", "to u2 again")
        await repository.add_message(conv.id, "u2", "u1", "to u1")

        changed = await repository.mark_read(conv.id, "u2")

        assert changed == 2
        assert await repository.count_unread("u2") == 0
        assert await repository.count_unread("u1") == 1

    async def test_count_unread_across_conversations(self, repository):
        """Test unread counting over several conversations."""
        a, _ = await repository.get_or_create_conversation(["u1", "u2"])
        b, _ = await repository.get_or_create_conversation(["u3", "u2"])
        await repository.add_message(a.id, "u1", "u2", "hi")
        await repository.add_message(b.id, "u3", "u2", "hello")

        assert await repository.count_unread("u2") == 2


class TestRepositoryClear:
    """Tests for clearing the repository."""

    async def test_clear_all_data(self, repository):
        """Test clearing all data."""
        conv, _ = await repository.get_or_create_conversation(["u1", "u2"])
        await repository.add_message(conv.id, "u1", "u2", "Hello")

        await repository.clear()

        async with repository._conn.execute("SELECT COUNT(*) FROM messages") as cursor:
            count = await cursor.fetchone()
            assert count[0] == 0

        assert await repository.list_conversations("u1") == []


class TestRepositoryAtomicity:
    """Tests for all-or-nothing message writes."""

    async def test_attachment_ids_assigned_by_repository(self, repository):
        """Test that caller-supplied attachment ids are replaced, even duplicates."""
        conv, _ = await repository.get_or_create_conversation(["u1", "u2"])
        links = [
            Attachment(kind=AttachmentKind.LINK, url="https://a.example", id="dup"),
            Attachment(kind=AttachmentKind.LINK, url="https://b.example", id="dup"),
        ]

        message = await repository.add_message(conv.id, "u1", "u2", "", attachments=links)

        ids = [a.id for a in message.attachments]
        assert len(set(ids)) == 2
        assert "dup" not in ids
        # The caller's objects are not modified
        assert [a.id for a in links] == ["dup", "dup"]

    async def test_failed_attachment_insert_rolls_back_message(self, repository):
        """Test that a failing attachment write leaves no message behind."""
        conv, _ = await repository.get_or_create_conversation(["u1", "u2"])

        with pytest.raises(sqlite3.IntegrityError):
            await repository.add_message(
                conv.id,
                "u1",
                "u2",
                "broken",
                attachments=[Attachment(kind=AttachmentKind.LINK, url=None)],
            )

        # A later successful write must not commit the failed one
        await repository.add_message(conv.id, "u1", "u2", "second")

        messages = await repository.get_messages(conv.id)
        assert [m.content for m in messages] == ["second"]
        assert await repository.count_unread("u2") == 1
