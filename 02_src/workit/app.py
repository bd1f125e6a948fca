"""Server application bootstrap and lifecycle management."""

import os
from pathlib import Path
from typing import Protocol

from .config import UPLOADS_DIR, resolve_db_path
from .logging_config import get_logger
from .storage import IMessageRepository, MessageRepository

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...

    @property
    def is_started(self) -> bool:
        ...

    @property
    def repository(self) -> IMessageRepository:
        ...

    @property
    def uploads_dir(self) -> Path:
        ...


class Application:
    """Messaging API server bootstrap."""

    def __init__(self, db_path: str | None = None, uploads_dir: str | Path | None = None):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._uploads_dir = Path(uploads_dir or os.getenv("UPLOADS_DIR") or UPLOADS_DIR)

        # Components (will be initialized in start())
        self._repository: MessageRepository | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        self._uploads_dir.mkdir(parents=True, exist_ok=True)

        self._repository = MessageRepository(self._db_path)
        await self._repository.init()
        logger.info("Message repository initialized at %s", self._db_path)

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._repository:
            await self._repository.close()
            logger.info("Message repository closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._repository:
            await self._repository.clear()
            logger.info("Message repository cleared")

    @property
    def is_started(self) -> bool:
        return self._repository is not None and self._repository.is_connected

    @property
    def repository(self) -> MessageRepository:
        """Get repository instance."""
        if not self._repository:
            raise RuntimeError("Application not started")
        return self._repository

    @property
    def uploads_dir(self) -> Path:
        return self._uploads_dir
