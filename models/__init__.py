"""
Models package initialization.
"""

from .base import Base, BaseModel
from .chat_message import ChatMessage, MessageType
from .chat_participant import ChatParticipant, ParticipantRole
from .chat_room import DEFAULT_ROOM_TITLE, ChatRoom, RoomStatus
from .user import User, UserType

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "UserType",
    # Chat models
    "ChatRoom",
    "ChatParticipant",
    "ChatMessage",
    "RoomStatus",
    "ParticipantRole",
    "MessageType",
    "DEFAULT_ROOM_TITLE",
]
