"""Remote message service module."""

from .client import IRemoteMessageService, OutgoingFile, RemoteMessageService

__all__ = ["IRemoteMessageService", "OutgoingFile", "RemoteMessageService"]
