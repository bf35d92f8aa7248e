"""Chat service layer for consultation rooms.

Covers the room directory, the per-room message log with backward keyset
pagination, attachment messages and read watermarks. Every room-scoped
operation goes through :meth:`ChatService.assert_participant` first, inside the
same transaction as its writes.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import and_, delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.security import AuthUser
from app.domains.chat.assistant import ChatAssistant
from app.exceptions.base import ForbiddenError, StorageError, ValidationError
from app.exceptions.chat import (
    InvalidCursorError,
    NotParticipantError,
    RoomNotFoundError,
    SeatTakenError,
)
from app.schemas.chat import RoomSummary
from app.services.attachment_service import StoredFile, normalize_original_name
from app.shared.pagination import CursorParams, clamp_limit, paginate_backward
from models.base import utcnow
from models.chat_message import ATTACHMENT_TYPES, ChatMessage, MessageType
from models.chat_participant import ChatParticipant, ParticipantRole
from models.chat_room import DEFAULT_ROOM_TITLE, ChatRoom, RoomStatus
from models.user import User


logger = logging.getLogger(__name__)

COUNSELLOR_JOINED_TEXT = "A tax accountant has joined the chat"
EMPTY_ROOM_PREVIEW = "Start the conversation"


def make_last_preview(message: ChatMessage | None) -> str:
    """Render the newest message of a room as a one-line preview."""
    if message is None:
        return EMPTY_ROOM_PREVIEW

    file_name = normalize_original_name(message.file_name) if message.file_name else ""
    if message.type == MessageType.IMAGE:
        return f"[Photo] {file_name}" if file_name else "[Photo]"
    if message.type == MessageType.FILE:
        return f"[File] {file_name}" if file_name else "[File]"

    content = (message.content or "").strip()
    return content or EMPTY_ROOM_PREVIEW


class ChatService:
    """Service class for chat rooms, messages and read tracking."""

    def __init__(self, db: AsyncSession):
        """Initialize chat service with database session.

        Args:
            db: Async database session for data operations.
        """
        self.db = db

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """Commit on success, roll back on any failure.

        Database errors are surfaced as StorageError once the rollback is done;
        authorization and validation errors propagate unchanged.
        """
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Chat storage error: {str(e)}")
            raise StorageError("Chat storage operation failed") from e
        except Exception:
            await self.db.rollback()
            raise

    # Participant authorization

    async def assert_participant(self, room_id: int, user_id: int | None) -> ChatParticipant:
        """Return the caller's participant row or raise NotParticipantError.

        Args:
            room_id: Room being accessed
            user_id: Caller's user id

        Returns:
            The matching ChatParticipant
        """
        if not user_id:
            raise NotParticipantError("Authentication is required to access chat rooms")

        query = select(ChatParticipant).where(
            ChatParticipant.room_id == room_id, ChatParticipant.user_id == user_id
        )
        result = await self.db.execute(query)
        participant = result.scalar_one_or_none()

        if participant is None:
            logger.warning(f"User {user_id} denied access to room {room_id}")
            raise NotParticipantError()

        return participant

    # Room directory

    async def list_rooms(self, user_id: int) -> list[RoomSummary]:
        """List the caller's rooms, most recent activity first.

        Args:
            user_id: Caller's user id

        Returns:
            Room summaries annotated with the caller's watermark and unread count
        """
        return await self._room_summaries(user_id)

    async def list_tax_active_rooms(self, user: AuthUser) -> list[RoomSummary]:
        """List ACTIVE rooms where a tax accountant holds the TAX_ACCOUNTANT seat."""
        if not user.is_tax_accountant:
            raise ForbiddenError("Only tax accountants can list their active rooms")

        return await self._room_summaries(
            user.id,
            ChatParticipant.role == ParticipantRole.TAX_ACCOUNTANT,
            ChatRoom.status == RoomStatus.ACTIVE,
        )

    async def create_room(
        self, user_id: int, counterparty_id: int | None = None, title: str | None = None
    ) -> ChatRoom:
        """Create a room with its USER seat and, optionally, its TAX_ACCOUNTANT seat.

        The room and its seats are written in one transaction.

        Args:
            user_id: User taking the USER seat
            counterparty_id: Tax accountant taking the TAX_ACCOUNTANT seat
            title: Room title, "TaxChat" when omitted

        Returns:
            The created room
        """
        if counterparty_id is not None and counterparty_id == user_id:
            raise ValidationError("A user cannot take both seats of a room")

        now = utcnow()
        room = ChatRoom(
            title=(title or "").strip() or DEFAULT_ROOM_TITLE,
            status=RoomStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            last_message_at=now,
        )

        async with self._transaction():
            self.db.add(room)
            await self.db.flush()

            await self._add_seat(room.id, user_id, ParticipantRole.USER)
            if counterparty_id is not None:
                await self._add_seat(room.id, counterparty_id, ParticipantRole.TAX_ACCOUNTANT)

        logger.info(f"Room {room.id} created by user {user_id} (counterparty: {counterparty_id})")
        return room

    async def close_room(self, room_id: int, user_id: int | None = None) -> ChatRoom:
        """Close a room. Closing an already closed room is a no-op.

        Args:
            room_id: Room to close
            user_id: When given, the caller must be a participant

        Returns:
            The room in its CLOSED state
        """
        async with self._transaction():
            if user_id is not None:
                await self.assert_participant(room_id, user_id)
            room = await self._get_room(room_id)

            if room.status != RoomStatus.CLOSED:
                now = utcnow()
                room.status = RoomStatus.CLOSED
                room.closed_at = now
                room.updated_at = now
                logger.info(f"Room {room_id} closed by user {user_id}")

        return room

    async def delete_room(self, room_id: int, user_id: int | None = None) -> None:
        """Hard-delete a room together with its participants and messages.

        Args:
            room_id: Room to delete
            user_id: When given, the caller must be a participant
        """
        async with self._transaction():
            if user_id is not None:
                await self.assert_participant(room_id, user_id)
            await self._get_room(room_id)

            # Participants first: their watermarks reference messages
            await self.db.execute(delete(ChatParticipant).where(ChatParticipant.room_id == room_id))
            await self.db.execute(delete(ChatMessage).where(ChatMessage.room_id == room_id))
            await self.db.execute(delete(ChatRoom).where(ChatRoom.id == room_id))

        logger.info(f"Room {room_id} deleted by user {user_id}")

    async def connect_counsellor(
        self, user_id: int, room_id: int, tax_id: int | None = None
    ) -> ChatMessage:
        """Seat a tax accountant in the room and announce it with a SYSTEM message.

        Args:
            user_id: Caller, must be a participant
            room_id: Room to connect
            tax_id: Tax accountant to seat, the assistant bot when omitted

        Returns:
            The SYSTEM message announcing the counsellor
        """
        tax_id = tax_id or settings.chat_bot_id

        async with self._transaction():
            await self.assert_participant(room_id, user_id)

            seat = await self._get_seat(room_id, ParticipantRole.TAX_ACCOUNTANT)
            if seat is None:
                await self._add_seat(room_id, tax_id, ParticipantRole.TAX_ACCOUNTANT)
            elif seat.user_id != tax_id:
                raise SeatTakenError(ParticipantRole.TAX_ACCOUNTANT.value)

            # The notice comes from the bot; without a bot account the seated accountant posts it
            bot_id = settings.chat_bot_id
            sender_id = bot_id if await self.db.get(User, bot_id) is not None else tax_id

            now = utcnow()
            message = ChatMessage(
                room_id=room_id,
                sender_id=sender_id,
                type=MessageType.SYSTEM,
                content=COUNSELLOR_JOINED_TEXT,
                created_at=now,
            )
            self.db.add(message)
            await self._touch_room(room_id, now)

        await self.db.refresh(message)
        return message

    # Message store

    async def list_messages(
        self,
        user_id: int,
        room_id: int,
        cursor: int | None = None,
        limit: int | None = None,
    ) -> dict:
        """Get one page of room history, oldest message first.

        Args:
            user_id: Caller, must be a participant
            room_id: Room to read
            cursor: Only messages with an id below this are returned
            limit: Page size; clamped into [1, max page size]

        Returns:
            Dictionary with ``messages`` and ``next_cursor`` (None once history is exhausted)
        """
        await self.assert_participant(room_id, user_id)

        if cursor is not None and cursor < 1:
            raise InvalidCursorError(cursor)

        params = CursorParams(
            cursor=cursor,
            limit=clamp_limit(limit, settings.chat_page_size, settings.chat_max_page_size),
        )
        query = select(ChatMessage).where(ChatMessage.room_id == room_id)
        page = await paginate_backward(self.db, query, ChatMessage.id, params)

        return {"messages": page["items"], "next_cursor": page["next_cursor"]}

    async def send_message(
        self,
        user_id: int,
        room_id: int,
        content: str,
        message_type: MessageType | str = MessageType.TEXT,
    ) -> ChatMessage:
        """Append a text or system message to a room.

        Args:
            user_id: Sender, must be a participant
            room_id: Target room
            content: Message body
            message_type: TEXT or SYSTEM; attachments go through attach_files

        Returns:
            The persisted message, re-read from the database
        """
        async with self._transaction():
            await self.assert_participant(room_id, user_id)

            try:
                message_type = MessageType(str(getattr(message_type, "value", message_type)).upper())
            except ValueError:
                raise ValidationError(f"Unknown message type: {message_type}") from None

            if message_type in ATTACHMENT_TYPES:
                raise ValidationError("Attachment messages must be sent through the upload endpoint")

            now = utcnow()
            message = ChatMessage(
                room_id=room_id,
                sender_id=user_id,
                type=message_type,
                content=content or "",
                created_at=now,
            )
            self.db.add(message)
            await self._touch_room(room_id, now)

        await self.db.refresh(message)
        return message

    async def attach_files(self, user_id: int, room_id: int, files: list[StoredFile]) -> list[ChatMessage]:
        """Record stored uploads as IMAGE or FILE messages.

        Either every file becomes a message or none does.

        Args:
            user_id: Uploader, must be a participant
            room_id: Target room
            files: Files already persisted by the attachment service

        Returns:
            The created messages in upload order
        """
        async with self._transaction():
            await self.assert_participant(room_id, user_id)

            if not files:
                raise ValidationError("No files to attach")

            now = utcnow()
            messages = []
            for stored in files:
                message = ChatMessage(
                    room_id=room_id,
                    sender_id=user_id,
                    type=MessageType.IMAGE if stored.is_image else MessageType.FILE,
                    content="",
                    file_url=stored.url,
                    file_name=stored.original_name,
                    file_mime=stored.mime_type,
                    file_size=stored.size,
                    created_at=now,
                )
                self.db.add(message)
                messages.append(message)

            await self.db.flush()
            await self._touch_room(room_id, now)

        logger.info(f"User {user_id} attached {len(messages)} file(s) to room {room_id}")
        return messages

    async def post_assistant_reply(
        self, room_id: int, prompt: str, assistant: ChatAssistant
    ) -> ChatMessage | None:
        """Store the assistant's answer to ``prompt`` as a bot message.

        Best effort: returns None when the bot account is missing or the reply
        cannot be stored, without affecting the message that triggered it.
        """
        bot_id = settings.chat_bot_id
        bot = await self.db.get(User, bot_id)
        # Release the connection while the model answers
        await self.db.commit()

        if bot is None:
            logger.warning(f"Assistant bot user {bot_id} does not exist, skipping reply")
            return None

        reply = await assistant.reply(prompt)

        try:
            async with self._transaction():
                now = utcnow()
                message = ChatMessage(
                    room_id=room_id,
                    sender_id=bot_id,
                    type=MessageType.TEXT,
                    content=reply,
                    created_at=now,
                )
                self.db.add(message)
                await self._touch_room(room_id, now)
        except StorageError:
            logger.error(f"Failed to store assistant reply in room {room_id}")
            return None

        await self.db.refresh(message)
        return message

    # Read tracking

    async def mark_read(
        self, user_id: int, room_id: int, last_read_message_id: int | None = None
    ) -> ChatParticipant:
        """Move the caller's read watermark.

        The id is stored as given; it is not checked against the current
        watermark or the room's messages.

        Args:
            user_id: Caller, must be a participant
            room_id: Room being read
            last_read_message_id: Newest rendered message id, or None to reset

        Returns:
            The updated participant row
        """
        async with self._transaction():
            participant = await self.assert_participant(room_id, user_id)
            participant.last_read_message_id = last_read_message_id
            participant.last_read_at = utcnow()

        return participant

    # Private helper methods

    async def _get_room(self, room_id: int) -> ChatRoom:
        room = await self.db.get(ChatRoom, room_id)
        if room is None:
            raise RoomNotFoundError(room_id)
        return room

    async def _get_seat(self, room_id: int, role: ParticipantRole) -> ChatParticipant | None:
        query = select(ChatParticipant).where(
            ChatParticipant.room_id == room_id, ChatParticipant.role == role
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _add_seat(self, room_id: int, user_id: int, role: ParticipantRole) -> ChatParticipant:
        """Bind ``user_id`` to the ``role`` seat, refusing a second seat of the same role."""
        if await self._get_seat(room_id, role) is not None:
            raise SeatTakenError(role.value)

        existing = await self.db.execute(
            select(ChatParticipant.id).where(
                ChatParticipant.room_id == room_id, ChatParticipant.user_id == user_id
            )
        )
        if existing.first() is not None:
            raise ValidationError("User already holds a seat in this room")

        participant = ChatParticipant(
            room_id=room_id,
            user_id=user_id,
            role=role,
            last_read_message_id=None,
            last_read_at=utcnow(),
        )
        self.db.add(participant)
        await self.db.flush()
        return participant

    async def _touch_room(self, room_id: int, now: datetime) -> None:
        await self.db.execute(
            update(ChatRoom)
            .where(ChatRoom.id == room_id)
            .values(last_message_at=now, updated_at=now)
        )

    async def _room_summaries(self, user_id: int, *criteria) -> list[RoomSummary]:
        query = (
            select(ChatRoom, ChatParticipant)
            .join(ChatParticipant, ChatParticipant.room_id == ChatRoom.id)
            .where(ChatParticipant.user_id == user_id, *criteria)
            .order_by(ChatRoom.last_message_at.desc(), ChatRoom.updated_at.desc(), ChatRoom.id.desc())
        )
        result = await self.db.execute(query)
        rows = result.all()

        room_ids = [room.id for room, _ in rows]
        last_messages = await self._last_messages(room_ids)
        unread_counts = await self._unread_counts(user_id, room_ids)

        return [
            RoomSummary(
                id=room.id,
                title=room.title,
                status=room.status,
                created_at=room.created_at,
                updated_at=room.updated_at,
                last_message_at=room.last_message_at,
                closed_at=room.closed_at,
                role=participant.role,
                last_read_message_id=participant.last_read_message_id,
                unread_count=unread_counts.get(room.id, 0),
                last_message_preview=make_last_preview(last_messages.get(room.id)),
            )
            for room, participant in rows
        ]

    async def _last_messages(self, room_ids: list[int]) -> dict[int, ChatMessage]:
        if not room_ids:
            return {}

        latest_ids = (
            select(func.max(ChatMessage.id))
            .where(ChatMessage.room_id.in_(room_ids))
            .group_by(ChatMessage.room_id)
        )
        result = await self.db.execute(select(ChatMessage).where(ChatMessage.id.in_(latest_ids)))
        return {message.room_id: message for message in result.scalars().all()}

    async def _unread_counts(self, user_id: int, room_ids: list[int]) -> dict[int, int]:
        """Messages newer than the caller's watermark that the caller did not send."""
        if not room_ids:
            return {}

        query = (
            select(ChatMessage.room_id, func.count(ChatMessage.id))
            .join(
                ChatParticipant,
                and_(
                    ChatParticipant.room_id == ChatMessage.room_id,
                    ChatParticipant.user_id == user_id,
                ),
            )
            .where(
                ChatMessage.room_id.in_(room_ids),
                ChatMessage.sender_id != user_id,
                ChatMessage.id > func.coalesce(ChatParticipant.last_read_message_id, 0),
            )
            .group_by(ChatMessage.room_id)
        )
        result = await self.db.execute(query)
        return {room_id: count for room_id, count in result.all()}
