"""
Chat room model for user/tax-accountant conversations.
"""

import enum

from sqlalchemy import Column, DateTime, Enum, String
from sqlalchemy.orm import relationship

from .base import BaseModel, utcnow


class RoomStatus(str, enum.Enum):
    """Room status enumeration. ACTIVE -> CLOSED is the only transition."""

    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


DEFAULT_ROOM_TITLE = "TaxChat"


class ChatRoom(BaseModel):
    """
    Represents a consultation room between a user and a tax accountant.
    """

    __tablename__ = "chat_rooms"

    title = Column(String(255), nullable=False, default=DEFAULT_ROOM_TITLE)
    status = Column(Enum(RoomStatus, name="chat_room_status"), nullable=False, default=RoomStatus.ACTIVE)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_message_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    closed_at = Column(DateTime, nullable=True)

    # Relationships
    participants = relationship(
        "ChatParticipant",
        back_populates="room",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    messages = relationship(
        "ChatMessage",
        back_populates="room",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.id",
    )

    @property
    def is_closed(self) -> bool:
        return self.status == RoomStatus.CLOSED
