"""Messaging module."""

from .demo import build_demo_snapshot
from .replies import ReplySettings
from .resolution import LoadResult, LoadSource
from .store import IMessageStore, MessageStore

__all__ = [
    "IMessageStore",
    "MessageStore",
    "LoadResult",
    "LoadSource",
    "ReplySettings",
    "build_demo_snapshot",
]
