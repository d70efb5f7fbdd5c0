"""
Common building blocks for persisted documents.

Documents are stored in MongoDB with an ObjectId ``_id``. Models expose it as
a hex string ``id`` and cross-document references are stored as hex strings.
"""

from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def is_object_id(value: Optional[str]) -> bool:
    """Check whether a string is a valid 24-hex ObjectId."""
    return bool(value) and ObjectId.is_valid(value)


class DocumentModel(BaseModel):
    """Base model for documents persisted in a collection."""

    model_config = ConfigDict(use_enum_values=False, validate_assignment=False)

    id: Optional[str] = Field(None, description="Document ID (ObjectId hex)")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class MessageResponse(BaseModel):
    """Plain acknowledgement response."""

    message: str


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Machine-readable error code")


class RatingSummary(BaseModel):
    """Running average of 1-5 star ratings."""

    average: float = Field(0.0, ge=0, le=5)
    total_ratings: int = Field(0, ge=0)
