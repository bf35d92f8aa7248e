"""Chat-related exceptions."""

from typing import Any

from .base import ConflictError, ForbiddenError, NotFoundError, ValidationError


class RoomNotFoundError(NotFoundError):
    """Raised when a chat room does not exist."""

    def __init__(self, room_id: int | None = None):
        super().__init__(
            message="Chat room not found",
            error_code="ROOM_NOT_FOUND",
            details={"room_id": room_id} if room_id is not None else None,
        )


class NotParticipantError(ForbiddenError):
    """Raised when the caller is not a participant of the room."""

    def __init__(self, message: str = "You don't have access to this chat room"):
        super().__init__(message=message, error_code="NOT_A_PARTICIPANT")


class SeatTakenError(ConflictError):
    """Raised when a room seat is already held by another user."""

    def __init__(self, role: str):
        super().__init__(
            message=f"The {role} seat of this room is already taken",
            error_code="SEAT_TAKEN",
            details={"role": role},
        )


class InvalidCursorError(ValidationError):
    """Raised when a pagination cursor is malformed."""

    def __init__(self, cursor: Any):
        super().__init__(
            message="Cursor must be a positive message id",
            error_code="INVALID_CURSOR",
            details={"cursor": cursor},
        )


class UnsupportedFileTypeError(ValidationError):
    """Raised when an upload is neither an image nor a text file."""

    def __init__(self, filename: str, mime_type: str | None):
        super().__init__(
            message="File type not allowed",
            error_code="UNSUPPORTED_FILE_TYPE",
            details={"filename": filename, "mime_type": mime_type},
        )


class FileTooLargeError(ValidationError):
    """Raised when an upload exceeds the per-file size limit."""

    def __init__(self, filename: str, max_size: int):
        super().__init__(
            message="File exceeds the maximum upload size",
            error_code="FILE_TOO_LARGE",
            details={"filename": filename, "max_size": max_size},
        )
