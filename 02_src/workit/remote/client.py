"""REST client for the remote message service."""

import json
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..config import resolve_api_url
from ..errors import RemoteUnavailable, WorkitError
from ..logging_config import get_logger
from ..models import Attachment, Conversation, Message

logger = get_logger(__name__)

MESSAGES_PREFIX = "/api/messages"


@dataclass
class OutgoingFile:
    """A binary attachment waiting to be uploaded."""

    name: str
    data: bytes
    mimetype: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


class IRemoteMessageService(Protocol):
    """Stateless, fallible proxy to the server-owned message copy.

    Every method raises RemoteUnavailable on any network or server failure.
    """

    async def get_conversations(self, user_id: str) -> list[Conversation]:
        ...

    async def get_messages(self, conversation_id: str) -> list[Message]:
        ...

    async def create_conversation(
        self, participants: list[str], title: str | None = None
    ) -> Conversation:
        ...

    async def post_message(
        self,
        conversation_id: str,
        content: str,
        sender_id: str,
        receiver_id: str,
        files: list[OutgoingFile] | None = None,
        links: list[Attachment] | None = None,
    ) -> Message:
        ...

    async def mark_read(self, conversation_id: str, user_id: str) -> None:
        ...

    async def unread_count(self, user_id: str) -> int:
        ...

    async def close(self) -> None:
        ...


class RemoteMessageService:
    """httpx client for the WorkiT messaging API."""

    def __init__(
        self,
        api_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_url = resolve_api_url(api_url)
        self._client = httpx.AsyncClient(
            base_url=f"{self._api_url}{MESSAGES_PREFIX}",
            timeout=timeout,
            transport=transport,
        )

    @property
    def api_url(self) -> str:
        return self._api_url

    async def get_conversations(self, user_id: str) -> list[Conversation]:
        data = await self._request("GET", f"/conversations/{user_id}")
        return self._parse(lambda: [Conversation.from_dict(item) for item in data])

    async def get_messages(self, conversation_id: str) -> list[Message]:
        data = await self._request("GET", f"/conversations/{conversation_id}/messages")
        return self._parse(lambda: [Message.from_dict(item) for item in data])

    async def create_conversation(
        self, participants: list[str], title: str | None = None
    ) -> Conversation:
        payload: dict[str, Any] = {"participants": participants}
        if title is not None:
            payload["title"] = title
        data = await self._request("POST", "/conversations", json=payload)
        return self._parse(lambda: Conversation.from_dict(data))

    async def post_message(
        self,
        conversation_id: str,
        content: str,
        sender_id: str,
        receiver_id: str,
        files: list[OutgoingFile] | None = None,
        links: list[Attachment] | None = None,
    ) -> Message:
        form = {
            "content": content,
            "senderId": sender_id,
            "receiverId": receiver_id,
        }
        if links:
            form["links"] = json.dumps([link.to_dict() for link in links])

        # httpx sends multipart/form-data whenever files are present
        upload = [
            ("attachments", (f.name, f.data, f.mimetype)) for f in files or []
        ]
        data = await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            data=form,
            files=upload or None,
        )
        return self._parse(lambda: Message.from_dict(data))

    async def mark_read(self, conversation_id: str, user_id: str) -> None:
        await self._request(
            "PUT",
            f"/conversations/{conversation_id}/read",
            json={"userId": user_id},
        )

    async def unread_count(self, user_id: str) -> int:
        data = await self._request("GET", f"/unread/{user_id}")
        return self._parse(lambda: int(data["count"]))

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise RemoteUnavailable(
                f"{method} {path} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise RemoteUnavailable(f"{method} {path} returned invalid JSON") from e

    @staticmethod
    def _parse(build):
        try:
            return build()
        except (WorkitError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise RemoteUnavailable(f"Malformed response from message service: {e}") from e
