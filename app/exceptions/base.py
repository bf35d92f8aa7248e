# ruff: noqa: D107
"""Base exception classes."""

from typing import Any

from fastapi import HTTPException


class BaseAppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={"message": message, "error_code": error_code, "details": self.details},
        )


class NotFoundError(BaseAppException):
    """Exception raised when a resource is not found."""

    def __init__(
        self,
        message: str = "Resource not found",
        details: dict[str, Any] | None = None,
        error_code: str = "NOT_FOUND",
    ):
        super().__init__(message=message, status_code=404, error_code=error_code, details=details)


class ForbiddenError(BaseAppException):
    """Exception raised when the caller may not access a resource."""

    def __init__(
        self,
        message: str = "Permission denied",
        details: dict[str, Any] | None = None,
        error_code: str = "FORBIDDEN",
    ):
        super().__init__(message=message, status_code=403, error_code=error_code, details=details)


class ValidationError(BaseAppException):
    """Exception raised when validation fails."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: dict[str, Any] | None = None,
        error_code: str = "VALIDATION_ERROR",
    ):
        super().__init__(message=message, status_code=422, error_code=error_code, details=details)


class ConflictError(BaseAppException):
    """Exception raised when a write conflicts with existing state."""

    def __init__(
        self,
        message: str = "Conflict with existing resource",
        details: dict[str, Any] | None = None,
        error_code: str = "CONFLICT",
    ):
        super().__init__(message=message, status_code=409, error_code=error_code, details=details)


class StorageError(BaseAppException):
    """Exception raised when the database or filesystem fails."""

    def __init__(
        self,
        message: str = "Storage failure",
        details: dict[str, Any] | None = None,
        error_code: str = "STORAGE_ERROR",
    ):
        super().__init__(message=message, status_code=500, error_code=error_code, details=details)
