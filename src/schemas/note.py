"""Pydantic schemas for note endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NoteCreate(BaseModel):
    """Schema for creating a new note."""

    title: str = Field(max_length=500)
    content: str = ""
    content_state: str | None = None  # Serialized editor state

    @field_validator("title")
    @classmethod
    def check_title_not_empty(cls, v: str) -> str:
        """Validate title is not empty."""
        if not v or not v.strip():
            raise ValueError("Title cannot be empty")
        return v


class NoteUpdate(BaseModel):
    """Schema for updating an existing note. Omitted fields are left unchanged."""

    title: str | None = Field(default=None, max_length=500)
    content: str | None = None
    content_state: str | None = None  # Set to null to clear

    @field_validator("title")
    @classmethod
    def check_title_not_empty(cls, v: str | None) -> str | None:
        """Validate title is present and not empty (if provided)."""
        if v is None or not v.strip():
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("content")
    @classmethod
    def check_content_not_null(cls, v: str | None) -> str:
        """Content may be empty but not null (if provided)."""
        if v is None:
            raise ValueError("Content cannot be null; use an empty string")
        return v


class NoteResponse(BaseModel):
    """Schema for note responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID | None
    title: str
    content: str
    content_state: str | None
    created_by: UUID | None
    updated_by: UUID | None
    created_at: datetime
    updated_at: datetime
