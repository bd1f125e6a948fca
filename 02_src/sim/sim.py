"""SIM implementation - scripted buyer/seller exchange against a running API."""

import asyncio
import random
from typing import Protocol

from workit.logging_config import get_logger
from workit.messaging import MessageStore, ReplySettings
from workit.remote import RemoteMessageService
from workit.storage import SnapshotStorage

logger = get_logger(__name__)


class ISim(Protocol):
    """Generate test traffic. Hardcoded scenario."""

    async def start(self) -> None:
        """Start hardcoded scenario."""
        ...

    async def stop(self) -> None:
        """Stop scenario."""
        ...


class Sim:
    """Drives one message store session per virtual user through the REST API."""

    def __init__(self, api_url: str = "http://localhost:5001", delay_range: tuple[float, float] = (1, 3)):
        self._api_url = api_url
        self._delay_range = delay_range
        self._running = False
        self._task: asyncio.Task | None = None
        self._sessions: list[tuple[MessageStore, RemoteMessageService, SnapshotStorage]] = []

    async def start(self) -> None:
        """Start hardcoded scenario."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_scenario())

    async def stop(self) -> None:
        """Stop scenario."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def wait(self) -> None:
        """Wait for the scenario to finish on its own."""
        if self._task:
            await self._task

    async def _open_session(self, user_id: str) -> MessageStore:
        persistence = SnapshotStorage(":memory:")
        await persistence.init()
        remote = RemoteMessageService(self._api_url)
        store = MessageStore(
            persistence=persistence,
            remote=remote,
            replies=ReplySettings.disabled(),
        )
        result = await store.load_for_user(user_id)
        logger.info("SIM: %s loaded %s conversations from %s", user_id, result.conversations, result.source.value)
        self._sessions.append((store, remote, persistence))
        return store

    async def _run_scenario(self) -> None:
        """Run hardcoded scenario."""
        buyer_id, seller_id = "buyer_001", "seller_001"
        script = [
            (buyer_id, "Hello! I saw your logo design service."),
            (seller_id, "Hi, thanks for reaching out. What is your brand about?"),
            (buyer_id, "A small coffee roastery, we want something warm and simple."),
            (seller_id, "Great, I'll send a first sketch tomorrow."),
        ]

        try:
            buyer = await self._open_session(buyer_id)
            seller = await self._open_session(seller_id)

            conversation_id = await buyer.create_conversation(seller_id, title="Logo design")
            # Same participant pair resolves to the same conversation on the server
            await seller.create_conversation(buyer_id, title="Logo design")
            await seller.refresh_from_remote()

            stores = {buyer_id: buyer, seller_id: seller}
            for user_id, text in script:
                if not self._running:
                    break

                store = stores[user_id]
                message = await store.send_message(conversation_id, text)
                logger.info("SIM: %s -> %s", user_id, message.content)

                other = seller if store is buyer else buyer
                await other.refresh_from_remote()
                await other.mark_as_read(conversation_id)
                await other.drain()

                await asyncio.sleep(random.uniform(*self._delay_range))

            for user_id, store in stores.items():
                logger.info("SIM: %s unread on server: %s", user_id, await store.fetch_remote_unread_count())

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            await self._close_sessions()

    async def _close_sessions(self) -> None:
        for store, remote, persistence in self._sessions:
            await store.close()
            await remote.close()
            await persistence.close()
        self._sessions.clear()
