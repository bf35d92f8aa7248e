"""Chat API controller with FastAPI endpoints."""

import logging

from fastapi import APIRouter, Depends, File, Path, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.dependencies import get_current_user, get_db, validate_token
from app.core.security import AuthUser
from app.domains.chat.assistant import ChatAssistant, get_chat_assistant
from app.domains.chat.service import ChatService
from app.schemas.base import ResponseSchema
from app.schemas.chat import MarkRead, MessageSend, RoomConnect, RoomCreate, RoomResponse, serialize_message
from app.services.attachment_service import AttachmentService, get_attachment_service
from models.chat_message import MessageType

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/chat",
    tags=["chat"],
    dependencies=[Depends(validate_token)],
)


@router.get("/rooms", response_model=ResponseSchema)
async def list_rooms(
    _request: Request,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's rooms, most recent activity first."""
    service = ChatService(db)
    rooms = await service.list_rooms(current_user.id)

    return ResponseSchema(
        status="success",
        message="Rooms retrieved successfully",
        data={"rooms": [room.model_dump(mode="json") for room in rooms]},
    )


@router.post("/rooms", response_model=ResponseSchema, status_code=201)
async def create_room(
    _request: Request,
    room_data: RoomCreate | None = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open a room with the caller in the USER seat."""
    room_data = room_data or RoomCreate()
    service = ChatService(db)
    room = await service.create_room(
        user_id=current_user.id,
        counterparty_id=room_data.counterparty_id,
        title=room_data.title,
    )

    return ResponseSchema(
        status="success",
        message="Room created successfully",
        data=RoomResponse.model_validate(room).model_dump(mode="json"),
    )


@router.get("/rooms/{room_id}/messages", response_model=ResponseSchema)
async def list_messages(
    _request: Request,
    room_id: int = Path(..., ge=1, description="Room ID"),
    cursor: int | None = Query(None, description="Return messages older than this id"),
    limit: int | None = Query(None, description="Page size"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get one page of room history, oldest first.

    Pass the returned ``next_cursor`` back as ``cursor`` to load older
    messages; a null ``next_cursor`` means history is exhausted.
    """
    service = ChatService(db)
    page = await service.list_messages(current_user.id, room_id, cursor=cursor, limit=limit)

    return ResponseSchema(
        status="success",
        message="Messages retrieved successfully",
        data={
            "messages": [serialize_message(message) for message in page["messages"]],
            "next_cursor": page["next_cursor"],
        },
    )


@router.post("/rooms/{room_id}/messages", response_model=ResponseSchema, status_code=201)
async def send_message(
    _request: Request,
    message_data: MessageSend,
    room_id: int = Path(..., ge=1, description="Room ID"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    assistant: ChatAssistant = Depends(get_chat_assistant),
):
    """Send a text message; the assistant answers when enabled."""
    service = ChatService(db)
    message = await service.send_message(current_user.id, room_id, message_data.content, message_data.type)

    reply = None
    if settings.chat_assistant_enabled and message.type == MessageType.TEXT:
        reply = await service.post_assistant_reply(room_id, message_data.content, assistant)

    return ResponseSchema(
        status="success",
        message="Message sent successfully",
        data={
            "message": serialize_message(message),
            "assistant_message": serialize_message(reply) if reply else None,
        },
    )


@router.post("/rooms/{room_id}/upload", response_model=ResponseSchema, status_code=201)
async def upload_files(
    _request: Request,
    room_id: int = Path(..., ge=1, description="Room ID"),
    files: list[UploadFile] = File(..., description="Images or text files"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    attachments: AttachmentService = Depends(get_attachment_service),
):
    """Upload files into a room, one IMAGE or FILE message per file."""
    service = ChatService(db)
    await service.assert_participant(room_id, current_user.id)

    stored = await attachments.store(files)
    try:
        messages = await service.attach_files(current_user.id, room_id, stored)
    except Exception:
        await attachments.discard(stored)
        raise

    return ResponseSchema(
        status="success",
        message="Files uploaded successfully",
        data={"messages": [serialize_message(message) for message in messages]},
    )


@router.post("/rooms/{room_id}/read", response_model=ResponseSchema)
async def mark_read(
    _request: Request,
    read_data: MarkRead,
    room_id: int = Path(..., ge=1, description="Room ID"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Move the caller's read watermark."""
    service = ChatService(db)
    participant = await service.mark_read(current_user.id, room_id, read_data.last_read_message_id)

    return ResponseSchema(
        status="success",
        message="Read position updated",
        data={
            "room_id": room_id,
            "last_read_message_id": participant.last_read_message_id,
            "last_read_at": participant.last_read_at.isoformat() if participant.last_read_at else None,
        },
    )


@router.post("/rooms/{room_id}/close", response_model=ResponseSchema)
async def close_room(
    _request: Request,
    room_id: int = Path(..., ge=1, description="Room ID"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Close a room; closing twice is harmless."""
    service = ChatService(db)
    room = await service.close_room(room_id, user_id=current_user.id)

    return ResponseSchema(
        status="success",
        message="Room closed successfully",
        data=RoomResponse.model_validate(room).model_dump(mode="json"),
    )


@router.delete("/rooms/{room_id}", response_model=ResponseSchema)
async def delete_room(
    _request: Request,
    room_id: int = Path(..., ge=1, description="Room ID"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a room with all of its messages."""
    service = ChatService(db)
    await service.delete_room(room_id, user_id=current_user.id)

    return ResponseSchema(status="success", message="Room deleted successfully", data=None)


@router.post("/rooms/{room_id}/connect", response_model=ResponseSchema, status_code=201)
async def connect_counsellor(
    _request: Request,
    room_id: int = Path(..., ge=1, description="Room ID"),
    connect_data: RoomConnect | None = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Seat a tax accountant in the room and post the join notice."""
    connect_data = connect_data or RoomConnect()
    service = ChatService(db)
    message = await service.connect_counsellor(current_user.id, room_id, tax_id=connect_data.tax_id)

    return ResponseSchema(
        status="success",
        message="Tax accountant connected",
        data={"message": serialize_message(message)},
    )


@router.get("/tax/active", response_model=ResponseSchema)
async def list_tax_active_rooms(
    _request: Request,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the active rooms where the caller is the tax accountant."""
    service = ChatService(db)
    rooms = await service.list_tax_active_rooms(current_user)

    return ResponseSchema(
        status="success",
        message="Active rooms retrieved successfully",
        data={"rooms": [room.model_dump(mode="json") for room in rooms]},
    )
