"""
Provides the User model for the chat schema.

Accounts are owned by the authentication service; the chat core only needs the
table as a foreign key target for participants and senders, and to check that
the assistant's bot account exists before posting as it.

Attributes
----------
email : sqlalchemy.Column
    The email address of the user, which must be unique.
username : sqlalchemy.Column
    The login name of the user.
name : sqlalchemy.Column
    Display name shown next to messages.
user_type : sqlalchemy.Column
    Whether the account belongs to a regular user or a tax accountant.
"""

import enum

from sqlalchemy import Column, Enum, String

from .base import BaseModel


class UserType(str, enum.Enum):
    """Account type enumeration."""

    USER = "USER"
    TAX_ACCOUNTANT = "TAX_ACCOUNTANT"


class User(BaseModel):
    """
    Represents a user account referenced by chat rooms.

    :ivar email: Email address of the user. It must be unique.
    :type email: str
    :ivar username: Login name of the user.
    :type username: str
    :ivar name: Display name of the user.
    :type name: str
    :ivar user_type: Account type.
    :type user_type: UserType
    """

    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True)
    username = Column(String(100))
    name = Column(String(100))
    user_type = Column(Enum(UserType, name="user_type"), nullable=False, default=UserType.USER)
