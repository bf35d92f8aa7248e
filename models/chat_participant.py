"""
Chat participant model binding a user to one seat of a room.
"""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel, Identifier, utcnow


class ParticipantRole(str, enum.Enum):
    """Seat enumeration. A room holds at most one participant per role."""

    USER = "USER"
    TAX_ACCOUNTANT = "TAX_ACCOUNTANT"


class ChatParticipant(BaseModel):
    """
    Represents a (room, user) binding with its seat and read watermark.
    """

    __tablename__ = "chat_participants"
    __table_args__ = (
        UniqueConstraint("room_id", "user_id", name="uq_chat_participants_room_user"),
        UniqueConstraint("room_id", "role", name="uq_chat_participants_room_role"),
    )

    room_id = Column(Identifier, ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Identifier, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(Enum(ParticipantRole, name="chat_participant_role"), nullable=False)

    # Watermark: id of the newest message this participant has rendered
    last_read_message_id = Column(
        Identifier, ForeignKey("chat_messages.id", ondelete="SET NULL"), nullable=True
    )
    last_read_at = Column(DateTime, default=utcnow, nullable=True)

    # Relationships
    room = relationship("ChatRoom", back_populates="participants")
