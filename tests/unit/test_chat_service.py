"""
Unit tests for Chat Service.

Covers participant authorization, the room directory, backward keyset
pagination of room history, attachment messages and read watermarks.
"""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.domains.chat.service import (
    COUNSELLOR_JOINED_TEXT,
    EMPTY_ROOM_PREVIEW,
    ChatService,
    make_last_preview,
)
from app.exceptions.base import ForbiddenError, StorageError, ValidationError
from app.exceptions.chat import (
    InvalidCursorError,
    NotParticipantError,
    RoomNotFoundError,
    SeatTakenError,
)
from app.services.attachment_service import StoredFile
from models.chat_message import ChatMessage, MessageType
from models.chat_participant import ChatParticipant, ParticipantRole
from models.chat_room import DEFAULT_ROOM_TITLE, ChatRoom, RoomStatus


def stored_file(name: str, mime: str, size: int = 10) -> StoredFile:
    return StoredFile(
        url=f"/uploads/1700000000000_{name}",
        original_name=name,
        mime_type=mime,
        size=size,
        stored_name=f"1700000000000_{name}",
        path=Path("/tmp") / f"1700000000000_{name}",
    )


async def count_rows(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


@pytest.mark.asyncio
class TestParticipantAuthorization:
    """Test cases for ChatService.assert_participant."""

    async def test_participant_is_returned(self, test_db, test_user, test_room):
        service = ChatService(test_db)

        participant = await service.assert_participant(test_room, test_user.id)

        assert participant.user_id == test_user.id
        assert participant.role == ParticipantRole.USER

    async def test_non_participant_is_forbidden(self, test_db, test_user_2, test_room):
        service = ChatService(test_db)

        with pytest.raises(NotParticipantError) as exc_info:
            await service.assert_participant(test_room, test_user_2.id)

        assert exc_info.value.status_code == 403
        assert exc_info.value.error_code == "NOT_A_PARTICIPANT"

    async def test_missing_user_id_is_forbidden(self, test_db, test_room):
        service = ChatService(test_db)

        with pytest.raises(ForbiddenError):
            await service.assert_participant(test_room, None)

    async def test_unknown_room_is_forbidden(self, test_db, test_user):
        service = ChatService(test_db)

        with pytest.raises(NotParticipantError):
            await service.assert_participant(999_999, test_user.id)

    async def test_room_operations_reject_outsiders_without_writing(
        self, test_db, test_user_2, test_room
    ):
        """Every room-scoped operation refuses a non-participant and leaves no trace."""
        service = ChatService(test_db)
        messages_before = await count_rows(test_db, ChatMessage)

        with pytest.raises(NotParticipantError):
            await service.list_messages(test_user_2.id, test_room)
        with pytest.raises(NotParticipantError):
            await service.list_messages(test_user_2.id, test_room, cursor=0)
        with pytest.raises(NotParticipantError):
            await service.send_message(test_user_2.id, test_room, "hello")
        with pytest.raises(NotParticipantError):
            await service.send_message(test_user_2.id, test_room, "hello", "IMAGE")
        with pytest.raises(NotParticipantError):
            await service.attach_files(test_user_2.id, test_room, [stored_file("a.png", "image/png")])
        with pytest.raises(NotParticipantError):
            await service.attach_files(test_user_2.id, test_room, [])
        with pytest.raises(NotParticipantError):
            await service.mark_read(test_user_2.id, test_room, 1)
        with pytest.raises(NotParticipantError):
            await service.close_room(test_room, user_id=test_user_2.id)
        with pytest.raises(NotParticipantError):
            await service.delete_room(test_room, user_id=test_user_2.id)
        with pytest.raises(NotParticipantError):
            await service.connect_counsellor(test_user_2.id, test_room)

        assert await count_rows(test_db, ChatMessage) == messages_before
        room = await test_db.get(ChatRoom, test_room)
        assert room.status == RoomStatus.ACTIVE


@pytest.mark.asyncio
class TestRoomDirectory:
    """Test cases for room creation, listing, closing and deletion."""

    async def test_create_room_with_counterparty(self, test_db, test_user, tax_accountant):
        service = ChatService(test_db)

        room = await service.create_room(test_user.id, counterparty_id=tax_accountant.id)

        assert room.id is not None
        assert room.title == DEFAULT_ROOM_TITLE
        assert room.status == RoomStatus.ACTIVE
        assert room.closed_at is None
        assert room.created_at == room.updated_at == room.last_message_at

        result = await test_db.execute(
            select(ChatParticipant).where(ChatParticipant.room_id == room.id).order_by(ChatParticipant.id)
        )
        seats = result.scalars().all()
        assert [(s.user_id, s.role) for s in seats] == [
            (test_user.id, ParticipantRole.USER),
            (tax_accountant.id, ParticipantRole.TAX_ACCOUNTANT),
        ]
        assert all(s.last_read_message_id is None for s in seats)

    async def test_create_room_without_counterparty(self, test_db, test_user):
        service = ChatService(test_db)

        room = await service.create_room(test_user.id, title="  My questions  ")

        assert room.title == "My questions"
        result = await test_db.execute(select(ChatParticipant).where(ChatParticipant.room_id == room.id))
        assert len(result.scalars().all()) == 1

    async def test_create_room_blank_title_uses_default(self, test_db, test_user):
        room = await ChatService(test_db).create_room(test_user.id, title="   ")

        assert room.title == DEFAULT_ROOM_TITLE

    async def test_create_room_same_user_for_both_seats(self, test_db, test_user):
        service = ChatService(test_db)

        with pytest.raises(ValidationError):
            await service.create_room(test_user.id, counterparty_id=test_user.id)

        assert await count_rows(test_db, ChatRoom) == 0

    async def test_create_room_is_atomic(self, test_db, test_user, tax_accountant):
        """A failure while seating participants leaves neither room nor seats behind."""
        service = ChatService(test_db)

        with patch.object(
            ChatService, "_add_seat", AsyncMock(side_effect=SQLAlchemyError("insert failed"))
        ):
            with pytest.raises(StorageError):
                await service.create_room(test_user.id, counterparty_id=tax_accountant.id)

        assert await count_rows(test_db, ChatRoom) == 0
        assert await count_rows(test_db, ChatParticipant) == 0

    async def test_list_rooms_newest_activity_first(self, test_db, test_user, tax_accountant):
        service = ChatService(test_db)
        first = (await service.create_room(test_user.id, counterparty_id=tax_accountant.id)).id
        second = (await service.create_room(test_user.id, title="Second")).id

        await service.send_message(test_user.id, first, "bump")

        rooms = await service.list_rooms(test_user.id)

        assert [room.id for room in rooms] == [first, second]
        assert rooms[0].last_message_preview == "bump"
        assert rooms[1].last_message_preview == EMPTY_ROOM_PREVIEW
        assert rooms[0].role == ParticipantRole.USER

    async def test_list_rooms_only_includes_own_rooms(self, test_db, test_user, test_user_2, test_room):
        service = ChatService(test_db)

        assert await service.list_rooms(test_user_2.id) == []
        assert [room.id for room in await service.list_rooms(test_user.id)] == [test_room]

    async def test_list_rooms_unread_count(self, test_db, test_user, tax_accountant, test_room):
        service = ChatService(test_db)
        await service.send_message(test_user.id, test_room, "question")
        answer = await service.send_message(tax_accountant.id, test_room, "answer 1")
        await service.send_message(tax_accountant.id, test_room, "answer 2")

        [summary] = await service.list_rooms(test_user.id)
        assert summary.unread_count == 2
        assert summary.last_read_message_id is None

        await service.mark_read(test_user.id, test_room, answer.id)

        [summary] = await service.list_rooms(test_user.id)
        assert summary.unread_count == 1
        assert summary.last_read_message_id == answer.id

        # Own messages never count as unread
        [accountant_view] = await service.list_rooms(tax_accountant.id)
        assert accountant_view.unread_count == 1

    async def test_list_tax_active_rooms(self, test_db, test_user, test_user_2, tax_accountant):
        service = ChatService(test_db)
        active = (await service.create_room(test_user.id, counterparty_id=tax_accountant.id)).id
        closed = (await service.create_room(test_user_2.id, counterparty_id=tax_accountant.id)).id
        await service.create_room(test_user.id, title="Unassigned")
        await service.close_room(closed)

        rooms = await service.list_tax_active_rooms(tax_accountant)

        assert [room.id for room in rooms] == [active]
        assert rooms[0].role == ParticipantRole.TAX_ACCOUNTANT

    async def test_list_tax_active_rooms_requires_tax_accountant(self, test_db, test_user):
        with pytest.raises(ForbiddenError):
            await ChatService(test_db).list_tax_active_rooms(test_user)

    async def test_close_room(self, test_db, test_user, test_room):
        service = ChatService(test_db)

        room = await service.close_room(test_room, user_id=test_user.id)

        assert room.status == RoomStatus.CLOSED
        assert room.closed_at is not None
        assert room.is_closed

    async def test_close_room_is_idempotent(self, test_db, test_user, test_room):
        service = ChatService(test_db)

        first = await service.close_room(test_room, user_id=test_user.id)
        closed_at = first.closed_at
        second = await service.close_room(test_room, user_id=test_user.id)

        assert second.status == RoomStatus.CLOSED
        assert second.closed_at == closed_at

    async def test_close_unknown_room(self, test_db):
        with pytest.raises(RoomNotFoundError):
            await ChatService(test_db).close_room(424242)

    async def test_delete_room_removes_messages_and_participants(
        self, test_db, test_user, tax_accountant, test_room
    ):
        service = ChatService(test_db)
        message = await service.send_message(test_user.id, test_room, "bye")
        await service.mark_read(tax_accountant.id, test_room, message.id)

        await service.delete_room(test_room, user_id=test_user.id)

        assert await test_db.get(ChatRoom, test_room) is None
        assert await count_rows(test_db, ChatMessage) == 0
        assert await count_rows(test_db, ChatParticipant) == 0

    async def test_delete_unknown_room(self, test_db):
        with pytest.raises(RoomNotFoundError):
            await ChatService(test_db).delete_room(424242)


@pytest.mark.asyncio
class TestConnectCounsellor:
    """Test cases for seating a tax accountant in an existing room."""

    async def test_connect_seats_accountant_and_posts_notice(self, test_db, test_user, tax_accountant, bot_user):
        service = ChatService(test_db)
        room_id = (await service.create_room(test_user.id)).id

        message = await service.connect_counsellor(test_user.id, room_id, tax_id=tax_accountant.id)

        assert message.type == MessageType.SYSTEM
        assert message.content == COUNSELLOR_JOINED_TEXT
        assert message.sender_id == bot_user.id
        seat = await service.assert_participant(room_id, tax_accountant.id)
        assert seat.role == ParticipantRole.TAX_ACCOUNTANT

    async def test_connect_notice_from_accountant_without_bot_account(
        self, test_db, test_user, tax_accountant, monkeypatch
    ):
        monkeypatch.setattr("app.core.config.settings.chat_bot_id", 987654)
        service = ChatService(test_db)
        room_id = (await service.create_room(test_user.id)).id

        message = await service.connect_counsellor(test_user.id, room_id, tax_id=tax_accountant.id)

        assert message.sender_id == tax_accountant.id

    async def test_connect_same_accountant_again(self, test_db, test_user, tax_accountant, test_room):
        service = ChatService(test_db)

        message = await service.connect_counsellor(test_user.id, test_room, tax_id=tax_accountant.id)

        assert message.type == MessageType.SYSTEM
        result = await test_db.execute(select(ChatParticipant).where(ChatParticipant.room_id == test_room))
        assert len(result.scalars().all()) == 2

    async def test_connect_rejects_second_accountant(
        self, test_db, test_user, test_user_2, test_room
    ):
        service = ChatService(test_db)

        with pytest.raises(SeatTakenError) as exc_info:
            await service.connect_counsellor(test_user.id, test_room, tax_id=test_user_2.id)

        assert exc_info.value.status_code == 409
        assert await count_rows(test_db, ChatMessage) == 0

    async def test_connect_defaults_to_bot(self, test_db, test_user, bot_user):
        service = ChatService(test_db)
        room_id = (await service.create_room(test_user.id)).id

        message = await service.connect_counsellor(test_user.id, room_id)

        assert message.sender_id == bot_user.id


@pytest.mark.asyncio
class TestMessageStore:
    """Test cases for sending, attaching and paging messages."""

    async def test_send_message(self, test_db, test_user, test_room):
        service = ChatService(test_db)
        room_before = await test_db.get(ChatRoom, test_room)
        touched_before = room_before.last_message_at

        message = await service.send_message(test_user.id, test_room, "Hello")

        assert message.id is not None
        assert message.type == MessageType.TEXT
        assert message.content == "Hello"
        assert message.sender_id == test_user.id
        assert message.file_url is None

        room = await test_db.get(ChatRoom, test_room)
        await test_db.refresh(room)
        assert room.last_message_at >= touched_before

    async def test_send_system_message(self, test_db, test_user, test_room):
        message = await ChatService(test_db).send_message(test_user.id, test_room, "notice", "system")

        assert message.type == MessageType.SYSTEM

    @pytest.mark.parametrize("message_type", ["IMAGE", "FILE", "VIDEO"])
    async def test_send_message_rejects_other_types(self, test_db, test_user, test_room, message_type):
        with pytest.raises(ValidationError):
            await ChatService(test_db).send_message(test_user.id, test_room, "x", message_type)

        assert await count_rows(test_db, ChatMessage) == 0

    async def test_send_message_to_closed_room_is_allowed(self, test_db, test_user, test_room):
        service = ChatService(test_db)
        await service.close_room(test_room)

        message = await service.send_message(test_user.id, test_room, "still here")

        assert message.id is not None

    async def test_message_ids_increase(self, test_db, test_user, tax_accountant, test_room):
        service = ChatService(test_db)

        ids = []
        for i in range(5):
            sender = test_user if i % 2 == 0 else tax_accountant
            ids.append((await service.send_message(sender.id, test_room, f"m{i}")).id)

        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    async def test_attach_files(self, test_db, test_user, test_room):
        service = ChatService(test_db)
        files = [stored_file("photo.png", "image/png", 100), stored_file("notes.txt", "text/plain", 20)]

        messages = await service.attach_files(test_user.id, test_room, files)

        assert [m.type for m in messages] == [MessageType.IMAGE, MessageType.FILE]
        assert [m.file_name for m in messages] == ["photo.png", "notes.txt"]
        assert messages[0].file_url == files[0].url
        assert messages[0].file_size == 100
        assert messages[1].file_mime == "text/plain"
        assert all(m.content == "" for m in messages)
        assert messages[0].id < messages[1].id

    async def test_attach_files_requires_files(self, test_db, test_user, test_room):
        with pytest.raises(ValidationError):
            await ChatService(test_db).attach_files(test_user.id, test_room, [])

    async def test_list_messages_empty_room(self, test_db, test_user, test_room):
        page = await ChatService(test_db).list_messages(test_user.id, test_room)

        assert page == {"messages": [], "next_cursor": None}

    async def test_list_messages_pages_backwards(self, test_db, test_user, test_room):
        service = ChatService(test_db)
        ids = [(await service.send_message(test_user.id, test_room, f"m{i}")).id for i in range(7)]

        first = await service.list_messages(test_user.id, test_room, limit=3)
        assert [m.id for m in first["messages"]] == ids[4:]
        assert first["next_cursor"] == ids[4]

        second = await service.list_messages(test_user.id, test_room, cursor=first["next_cursor"], limit=3)
        assert [m.id for m in second["messages"]] == ids[1:4]

        third = await service.list_messages(test_user.id, test_room, cursor=second["next_cursor"], limit=3)
        assert [m.id for m in third["messages"]] == ids[:1]

        last = await service.list_messages(test_user.id, test_room, cursor=third["next_cursor"], limit=3)
        assert last == {"messages": [], "next_cursor": None}

    async def test_pagination_is_complete_and_stable_under_inserts(self, test_db, test_user, test_room):
        """Walking the cursor visits every pre-existing message exactly once."""
        service = ChatService(test_db)
        ids = [(await service.send_message(test_user.id, test_room, f"m{i}")).id for i in range(10)]

        seen = []
        cursor = None
        while True:
            page = await service.list_messages(test_user.id, test_room, cursor=cursor, limit=4)
            if not page["messages"]:
                break
            seen = [m.id for m in page["messages"]] + seen
            cursor = page["next_cursor"]
            # New messages never shift older pages
            await service.send_message(test_user.id, test_room, "late arrival")

        assert seen == ids

    async def test_list_messages_only_returns_room_messages(
        self, test_db, test_user, tax_accountant, test_room
    ):
        service = ChatService(test_db)
        other_room = (await service.create_room(test_user.id, title="Other")).id
        await service.send_message(test_user.id, other_room, "elsewhere")
        mine = await service.send_message(tax_accountant.id, test_room, "here")

        page = await service.list_messages(test_user.id, test_room)

        assert [m.id for m in page["messages"]] == [mine.id]

    @pytest.mark.parametrize("limit,expected", [(0, 1), (-5, 1), (2, 2), (1000, 4)])
    async def test_list_messages_clamps_limit(self, test_db, test_user, test_room, limit, expected):
        service = ChatService(test_db)
        for i in range(4):
            await service.send_message(test_user.id, test_room, f"m{i}")

        page = await service.list_messages(test_user.id, test_room, limit=limit)

        assert len(page["messages"]) == expected

    async def test_list_messages_caps_at_max_page_size(self, test_db, test_user, test_room, monkeypatch):
        monkeypatch.setattr("app.core.config.settings.chat_max_page_size", 3)
        service = ChatService(test_db)
        for i in range(5):
            await service.send_message(test_user.id, test_room, f"m{i}")

        page = await service.list_messages(test_user.id, test_room, limit=50)

        assert len(page["messages"]) == 3

    @pytest.mark.parametrize("cursor", [0, -1])
    async def test_list_messages_rejects_bad_cursor(self, test_db, test_user, test_room, cursor):
        with pytest.raises(InvalidCursorError):
            await ChatService(test_db).list_messages(test_user.id, test_room, cursor=cursor)


@pytest.mark.asyncio
class TestReadTracking:
    """Test cases for read watermarks."""

    async def test_mark_read(self, test_db, test_user, test_room):
        service = ChatService(test_db)
        message = await service.send_message(test_user.id, test_room, "hi")

        participant = await service.mark_read(test_user.id, test_room, message.id)

        assert participant.last_read_message_id == message.id
        assert participant.last_read_at is not None

    async def test_mark_read_can_move_backwards_and_reset(self, test_db, test_user, test_room):
        service = ChatService(test_db)
        first = await service.send_message(test_user.id, test_room, "one")
        second = await service.send_message(test_user.id, test_room, "two")

        await service.mark_read(test_user.id, test_room, second.id)
        participant = await service.mark_read(test_user.id, test_room, first.id)
        assert participant.last_read_message_id == first.id

        participant = await service.mark_read(test_user.id, test_room, None)
        assert participant.last_read_message_id is None


@pytest.mark.asyncio
class TestAssistantReply:
    """Test cases for storing assistant replies."""

    async def test_reply_is_stored_as_bot_message(self, test_db, test_user, bot_user, test_room, mock_assistant):
        service = ChatService(test_db)

        reply = await service.post_assistant_reply(test_room, "How do I file?", mock_assistant)

        assert reply is not None
        assert reply.sender_id == bot_user.id
        assert reply.type == MessageType.TEXT
        assert reply.content == "Assistant reply"
        mock_assistant.reply.assert_awaited_once_with("How do I file?")

    async def test_no_transaction_is_held_while_assistant_answers(
        self, test_db, test_user, bot_user, test_room, mock_assistant
    ):
        service = ChatService(test_db)
        await service.send_message(test_user.id, test_room, "How do I file?")
        in_transaction = []

        async def reply(prompt):
            in_transaction.append(test_db.in_transaction())
            return "Assistant reply"

        mock_assistant.reply.side_effect = reply

        message = await service.post_assistant_reply(test_room, "How do I file?", mock_assistant)

        assert in_transaction == [False]
        assert message.content == "Assistant reply"

    async def test_reply_skipped_without_bot_account(self, test_db, test_room, mock_assistant, monkeypatch):
        monkeypatch.setattr("app.core.config.settings.chat_bot_id", 987654)

        reply = await ChatService(test_db).post_assistant_reply(test_room, "hello", mock_assistant)

        assert reply is None
        mock_assistant.reply.assert_not_awaited()

    async def test_reply_storage_failure_is_swallowed(self, test_db, test_room, bot_user, mock_assistant):
        service = ChatService(test_db)

        with patch.object(ChatService, "_touch_room", AsyncMock(side_effect=SQLAlchemyError("boom"))):
            reply = await service.post_assistant_reply(test_room, "hello", mock_assistant)

        assert reply is None
        assert await count_rows(test_db, ChatMessage) == 0


class TestLastPreview:
    """Test cases for room list previews."""

    def test_empty_room(self):
        assert make_last_preview(None) == EMPTY_ROOM_PREVIEW

    def test_text(self):
        assert make_last_preview(ChatMessage(type=MessageType.TEXT, content=" hi ")) == "hi"

    def test_blank_text(self):
        assert make_last_preview(ChatMessage(type=MessageType.TEXT, content="")) == EMPTY_ROOM_PREVIEW

    def test_image(self):
        message = ChatMessage(type=MessageType.IMAGE, content="", file_name="receipt.png")
        assert make_last_preview(message) == "[Photo] receipt.png"

    def test_file_without_name(self):
        message = ChatMessage(type=MessageType.FILE, content="", file_name=None)
        assert make_last_preview(message) == "[File]"
