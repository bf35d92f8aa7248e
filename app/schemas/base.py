"""Base schemas for the application."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base schema class that can be validated straight from ORM rows."""
    model_config = ConfigDict(from_attributes=True)


class ResponseSchema(BaseSchema):
    """Envelope for successful API responses; errors use the handler envelope in main."""
    status: str = Field(default="success", description="'success' for every 2xx response")
    message: Optional[str] = None
    data: Optional[dict[str, Any]] = None
