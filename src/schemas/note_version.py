"""Pydantic schemas for note version endpoints."""
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from models.note_version import VersionReason
from schemas.note import NoteResponse


class VersionCreate(BaseModel):
    """Schema for creating a version snapshot (restore backups are created by the server)."""

    reason: Literal["manual", "autosave"]
    changes_summary: str | None = None


class VersionListItem(BaseModel):
    """Schema for a version in history listings (no content)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    version_number: int
    reason: VersionReason
    changes_summary: str | None
    title: str
    created_at: datetime
    created_by: UUID | None


class VersionResponse(VersionListItem):
    """Schema for a single version with its full snapshot."""

    note_id: UUID
    tenant_id: UUID | None
    content: str
    content_state: str | None
    updated_by: UUID | None


class PaginationResponse(BaseModel):
    """Page metadata for version history."""

    model_config = ConfigDict(from_attributes=True)

    page: int
    limit: int
    total_count: int
    total_pages: int


class VersionHistoryResponse(BaseModel):
    """Schema for paginated version history."""

    versions: list[VersionListItem]
    pagination: PaginationResponse


class ShouldCreateVersionResponse(BaseModel):
    """Schema for the autosave gate decision."""

    should_create: bool


class RestoreResponse(BaseModel):
    """Schema for restore operation response."""

    message: str
    note: NoteResponse
    backup_version: VersionResponse


class VersionSummary(BaseModel):
    """Identifying fields of a version in a comparison."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    version_number: int
    title: str
    created_at: datetime


class VersionChanges(BaseModel):
    """Which snapshot fields differ between two versions."""

    title_changed: bool
    content_changed: bool
    content_state_changed: bool


class VersionComparisonResponse(BaseModel):
    """Schema for comparing two versions of the same note."""

    version1: VersionSummary
    version2: VersionSummary
    changes: VersionChanges
    content_diff: str  # diff-match-patch patch text; empty when content is equal
