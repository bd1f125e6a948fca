"""Messaging API routes."""

import json
import uuid
from dataclasses import replace
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from fastapi import APIRouter, File, Form, HTTPException, Response, UploadFile

from ...app import IApplication
from ...errors import NotFoundError, ValidationError
from ...logging_config import get_logger
from ...models import Attachment, AttachmentKind

logger = get_logger(__name__)

MAX_ATTACHMENTS = 5
MAX_ATTACHMENT_SIZE = 5 * 1024 * 1024  # 5 MB
ALLOWED_MIMETYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}


class ConversationCreateRequest(BaseModel):
    """Request model for creating a conversation."""

    participants: list[str] | None = None
    title: str | None = None


class MarkReadRequest(BaseModel):
    """Request model for marking a conversation read."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(None, alias="userId")


class AckResponse(BaseModel):
    """Response model for acknowledgements."""

    success: bool


class UnreadCountResponse(BaseModel):
    """Response model for unread count."""

    count: int


async def _read_upload(upload: UploadFile) -> tuple[UploadFile, bytes]:
    """Read an uploaded file, rejecting disallowed types and oversized files."""
    mimetype = upload.content_type or "application/octet-stream"
    if mimetype not in ALLOWED_MIMETYPES:
        raise ValidationError(
            "Invalid file type. Only images, PDFs, DOC, DOCX, and TXT files are allowed."
        )

    data = await upload.read()
    if len(data) > MAX_ATTACHMENT_SIZE:
        raise ValidationError(f"File {upload.filename} exceeds the 5MB limit")
    return upload, data


def _write_upload(upload: UploadFile, data: bytes, uploads_dir: Path) -> tuple[Path, Attachment]:
    mimetype = upload.content_type or "application/octet-stream"
    original_name = upload.filename or "attachment"
    filename = f"attachments-{uuid.uuid4().hex}{Path(original_name).suffix}"
    path = uploads_dir / filename
    with open(path, "wb") as f:
        f.write(data)

    return path, Attachment(
        kind=AttachmentKind.from_mimetype(mimetype),
        url=f"/uploads/{filename}",
        name=original_name,
        size=len(data),
        mimetype=mimetype,
    )


def _parse_links(raw: str | None) -> list[Attachment]:
    if not raw:
        return []
    try:
        links = [Attachment.from_dict(item) for item in json.loads(raw)]
    except (ValueError, TypeError, AttributeError) as e:
        raise ValidationError(f"Invalid links payload: {e}") from e
    # Ids are assigned by the repository
    return [replace(link, id=None) for link in links]


def create_messaging_router(app: IApplication) -> APIRouter:
    """Create messaging router."""
    router = APIRouter(prefix="/api/messages", tags=["messaging"])

    @router.get("/conversations/{user_id}")
    async def get_conversations(user_id: str) -> list[dict]:
        """Get all conversations for a user, most recent activity first."""
        try:
            conversations = await app.repository.list_conversations(user_id)
            return [conv.to_dict() for conv in conversations]
        except Exception as e:
            logger.error("Listing conversations failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/conversations/{conversation_id}/messages")
    async def get_messages(conversation_id: str) -> list[dict]:
        """Get messages in a conversation, oldest first."""
        try:
            if await app.repository.get_conversation(conversation_id) is None:
                raise NotFoundError("Conversation not found")
            messages = await app.repository.get_messages(conversation_id)
            return [msg.to_dict() for msg in messages]
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except Exception as e:
            logger.error("Listing messages failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/conversations", status_code=201)
    async def create_conversation(
        request: ConversationCreateRequest, response: Response
    ) -> dict:
        """Create a conversation, or return the one with the same participant set."""
        if not request.participants or len(request.participants) < 2:
            raise HTTPException(
                status_code=400, detail="At least two participants are required"
            )

        try:
            conversation, created = await app.repository.get_or_create_conversation(
                request.participants, request.title
            )
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error("Creating conversation failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

        if not created:
            response.status_code = 200
        return conversation.to_dict()

    @router.post("/conversations/{conversation_id}/messages", status_code=201)
    async def send_message(
        conversation_id: str,
        content: str | None = Form(None),
        senderId: str | None = Form(None),
        receiverId: str | None = Form(None),
        links: str | None = Form(None),
        attachments: list[UploadFile] | None = File(None),
    ) -> dict:
        """Send a message with optional file attachments."""
        uploads = attachments or []
        if not senderId or not receiverId or not (content or uploads or links):
            raise HTTPException(
                status_code=400,
                detail="Content, senderId, and receiverId are required",
            )
        if len(uploads) > MAX_ATTACHMENTS:
            raise HTTPException(
                status_code=400,
                detail=f"At most {MAX_ATTACHMENTS} attachments are allowed",
            )

        try:
            conversation = await app.repository.get_conversation(conversation_id)
            if conversation is None:
                raise NotFoundError("Conversation not found")
            if not (
                conversation.has_participant(senderId)
                and conversation.has_participant(receiverId)
            ):
                raise ValidationError("Sender and receiver must be conversation participants")

            # Nothing touches the disk until every upload and link is valid
            files = [await _read_upload(upload) for upload in uploads]
            link_attachments = _parse_links(links)

            written: list[Path] = []
            stored: list[Attachment] = []
            try:
                for upload, data in files:
                    path, attachment = _write_upload(upload, data, app.uploads_dir)
                    written.append(path)
                    stored.append(attachment)

                message = await app.repository.add_message(
                    conversation_id,
                    sender_id=senderId,
                    receiver_id=receiverId,
                    content=content or "",
                    attachments=stored + link_attachments,
                )
            except Exception:
                for path in written:
                    path.unlink(missing_ok=True)
                raise
            return message.to_dict()
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except Exception as e:
            logger.error("Sending message failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.put("/conversations/{conversation_id}/read", response_model=AckResponse)
    async def mark_read(conversation_id: str, request: MarkReadRequest) -> dict:
        """Mark every message addressed to userId in the conversation as read."""
        if not request.user_id:
            raise HTTPException(status_code=400, detail="userId is required")

        try:
            if await app.repository.get_conversation(conversation_id) is None:
                raise NotFoundError("Conversation not found")
            await app.repository.mark_read(conversation_id, request.user_id)
            return {"success": True}
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except Exception as e:
            logger.error("Marking messages read failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/unread/{user_id}", response_model=UnreadCountResponse)
    async def get_unread_count(user_id: str) -> dict:
        """Get unread messages count for a user."""
        try:
            count = await app.repository.count_unread(user_id)
            return {"count": count}
        except Exception as e:
            logger.error("Counting unread messages failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    return router
