"""Chat schemas for request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from models.chat_message import ChatMessage, MessageType
from models.chat_participant import ParticipantRole
from models.chat_room import RoomStatus

from .base import BaseSchema


class RoomCreate(BaseSchema):
    """Schema for opening a consultation room."""

    counterparty_id: int | None = Field(None, ge=1, description="Tax accountant taking the second seat")
    title: str | None = Field(None, max_length=255, description="Optional room title")


class RoomConnect(BaseSchema):
    """Schema for attaching a tax accountant to an existing room."""

    tax_id: int | None = Field(None, ge=1, description="Tax accountant id, defaults to the assistant bot")


class RoomResponse(BaseSchema):
    """Schema for a newly created or updated room."""

    id: int
    title: str
    status: RoomStatus
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime
    closed_at: datetime | None = None


class RoomSummary(RoomResponse):
    """Schema for a room as listed for one participant."""

    role: ParticipantRole | None = None
    last_read_message_id: int | None = None
    unread_count: int = 0
    last_message_preview: str


class MessageSend(BaseSchema):
    """Schema for sending a text message."""

    content: str = Field(..., min_length=1, max_length=10000, description="Message content")
    type: Literal["TEXT"] = Field(default="TEXT", description="Message type")


class MarkRead(BaseSchema):
    """Schema for moving the read watermark."""

    last_read_message_id: int | None = Field(None, ge=1, description="Newest rendered message id")


class Attachment(BaseSchema):
    """File attached to an IMAGE or FILE message."""

    url: str
    name: str
    mime: str | None = None
    size: int | None = None


class _MessageBase(BaseSchema):
    id: int
    room_id: int
    sender_id: int
    content: str = ""
    created_at: datetime


class TextMessage(_MessageBase):
    type: Literal["TEXT"] = "TEXT"


class SystemMessage(_MessageBase):
    type: Literal["SYSTEM"] = "SYSTEM"


class ImageMessage(_MessageBase):
    type: Literal["IMAGE"] = "IMAGE"
    attachment: Attachment


class FileMessage(_MessageBase):
    type: Literal["FILE"] = "FILE"
    attachment: Attachment


MessageResponse = Annotated[
    Union[TextMessage, SystemMessage, ImageMessage, FileMessage],
    Field(discriminator="type"),
]

message_adapter: TypeAdapter[MessageResponse] = TypeAdapter(MessageResponse)


def serialize_message(message: ChatMessage) -> dict:
    """Convert a ChatMessage row into its tagged JSON representation."""
    payload = {
        "id": message.id,
        "room_id": message.room_id,
        "sender_id": message.sender_id,
        "type": MessageType(message.type).value,
        "content": message.content or "",
        "created_at": message.created_at,
    }
    if message.has_attachment:
        payload["attachment"] = {
            "url": message.file_url,
            "name": message.file_name or "file",
            "mime": message.file_mime,
            "size": message.file_size,
        }
    return message_adapter.dump_python(message_adapter.validate_python(payload), mode="json")


class UploadedFile(BaseSchema):
    """Schema describing a stored upload."""

    name: str
    url: str
    size: int
