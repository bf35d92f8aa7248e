"""
Chat message model for room messages and file attachments.
"""

import enum

from sqlalchemy import CheckConstraint, Column, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import BaseModel, Identifier


class MessageType(str, enum.Enum):
    """Message type enumeration."""

    TEXT = "TEXT"
    IMAGE = "IMAGE"
    FILE = "FILE"
    SYSTEM = "SYSTEM"


ATTACHMENT_TYPES = (MessageType.IMAGE, MessageType.FILE)


class ChatMessage(BaseModel):
    """
    Represents an immutable message in a chat room.

    The id is assigned by the database on insert and serves as the pagination
    cursor. Attachment columns are only populated for IMAGE and FILE messages.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        CheckConstraint(
            "type NOT IN ('IMAGE', 'FILE') OR file_url IS NOT NULL",
            name="ck_chat_messages_attachment_url",
        ),
        Index("idx_chat_messages_room_id_id", "room_id", "id"),
    )

    room_id = Column(Identifier, ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Identifier, ForeignKey("users.id"), nullable=False)
    type = Column(Enum(MessageType, name="chat_message_type"), nullable=False, default=MessageType.TEXT)
    content = Column(Text, nullable=False, default="")

    # Attachment fields
    file_url = Column(String(500), nullable=True)
    file_name = Column(String(255), nullable=True)
    file_mime = Column(String(100), nullable=True)
    file_size = Column(Integer, nullable=True)

    # Relationships
    room = relationship("ChatRoom", back_populates="messages")

    @property
    def has_attachment(self) -> bool:
        return self.type in ATTACHMENT_TYPES
