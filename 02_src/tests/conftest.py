"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest_asyncio.fixture
async def snapshot_storage():
    """Create in-memory snapshot storage for testing."""
    from workit.storage import SnapshotStorage

    st = SnapshotStorage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest_asyncio.fixture
async def repository():
    """Create in-memory message repository for testing."""
    from workit.storage import MessageRepository

    repo = MessageRepository(":memory:")
    await repo.init()
    yield repo
    await repo.close()


@pytest.fixture
def event_bus():
    """Create EventBus."""
    from workit.event_bus import EventBus

    return EventBus()


@pytest.fixture
def offline_remote():
    """Remote message service whose every call fails."""
    from workit.errors import RemoteUnavailable

    remote = Mock()
    for name in (
        "get_conversations",
        "get_messages",
        "create_conversation",
        "post_message",
        "mark_read",
        "unread_count",
    ):
        setattr(remote, name, AsyncMock(side_effect=RemoteUnavailable("offline")))
    remote.close = AsyncMock()
    return remote


@pytest_asyncio.fixture
async def make_store(snapshot_storage, event_bus):
    """Factory for message stores sharing the snapshot storage; closes them on teardown."""
    from workit.messaging import MessageStore, ReplySettings

    stores = []

    def _make(remote=None, replies=None, persistence=None, **kwargs):
        store = MessageStore(
            persistence=persistence or snapshot_storage,
            remote=remote,
            event_bus=event_bus,
            replies=replies or ReplySettings.disabled(),
            **kwargs,
        )
        stores.append(store)
        return store

    yield _make

    for store in stores:
        await store.close()


@pytest_asyncio.fixture
async def application(tmp_path):
    """Create and start a server application on an in-memory database."""
    from workit.app import Application

    app = Application(db_path=":memory:", uploads_dir=tmp_path / "uploads")
    await app.start()
    yield app
    await app.stop()


@pytest.fixture
def fastapi_app(application):
    """FastAPI app bound to the started application."""
    from workit.api import create_fastapi_app

    return create_fastapi_app(application)


@pytest_asyncio.fixture
async def api_client(fastapi_app):
    """HTTP client talking to the API in-process."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=fastapi_app),
        base_url="http://test",
    ) as client:
        yield client


@pytest_asyncio.fixture
async def remote_service(fastapi_app):
    """RemoteMessageService wired to the in-process API."""
    from workit.remote import RemoteMessageService

    service = RemoteMessageService(
        api_url="http://test",
        transport=httpx.ASGITransport(app=fastapi_app),
    )
    yield service
    await service.close()


def make_message(
    msg_id: str,
    conversation_id: str,
    sender_id: str,
    receiver_id: str,
    content: str = "Hi",
    is_read: bool = False,
    minutes_ago: int = 0,
):
    """Build a Message with a deterministic timestamp."""
    from workit.models import Message

    base = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    return Message(
        id=msg_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        conversation_id=conversation_id,
        content=content,
        timestamp=base - timedelta(minutes=minutes_ago),
        is_read=is_read,
    )


@pytest.fixture
def message_factory():
    """Factory for deterministic messages."""
    return make_message
