"""Storage module."""

from .repository import IMessageRepository, MessageRepository
from .snapshot import IPersistence, Snapshot, SnapshotStorage

__all__ = [
    "IMessageRepository",
    "MessageRepository",
    "IPersistence",
    "Snapshot",
    "SnapshotStorage",
]
