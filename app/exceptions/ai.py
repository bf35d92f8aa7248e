# ruff: noqa: D107
"""AI assistant exceptions."""

from typing import Any

from .base import BaseAppException


class AIServiceError(BaseAppException):
    """Base exception for AI service errors."""

    def __init__(
        self,
        message: str = "AI service error occurred",
        error_code: str = "AI_SERVICE_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, status_code=502, error_code=error_code, details=details)


class AIConfigurationError(AIServiceError):
    """Exception raised when the AI service is not configured."""

    def __init__(
        self,
        message: str = "AI service is not configured",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "AI_CONFIGURATION_ERROR", details)


class AITimeoutError(AIServiceError):
    """Exception raised when AI service request times out."""

    def __init__(
        self,
        message: str = "AI service request timed out",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "AI_TIMEOUT", details)


class AIRateLimitError(AIServiceError):
    """Exception raised when the AI provider rejects a request for rate limiting."""

    def __init__(
        self,
        message: str = "AI service rate limit exceeded",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "AI_RATE_LIMIT", details)
