"""Common schemas used across the API."""

from pydantic import BaseModel, Field


class PaginationInfo(BaseModel):
    """Offset pagination metadata for list endpoints."""

    total: int = Field(description="Total number of matching records")
    limit: int = Field(description="Page size")
    offset: int = Field(description="Number of records skipped")
    has_more: bool = Field(description="Whether more records follow this page")


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str = Field(description="Human-readable error message")
    request_id: str | None = Field(default=None, description="Request correlation ID")
