"""NoteVersion model for storing point-in-time snapshots of notes."""
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, UUIDv7Mixin

if TYPE_CHECKING:
    from models.note import Note

# Constraint name is matched when retrying version number allocation
VERSION_UNIQUE_CONSTRAINT = "uq_note_versions_note_version"


class VersionReason(StrEnum):
    """Why a snapshot was taken."""

    AUTOSAVE = "autosave"  # Time-gated snapshot from the editor; subject to retention
    MANUAL = "manual"  # User-initiated snapshot; never pruned
    RESTORE = "restore"  # Backup of the pre-restore state; never pruned


class NoteVersion(Base, UUIDv7Mixin):
    """
    Immutable snapshot of a note's title, content and content_state.

    Version semantics:
    - version_number is sequential per note, starting at 1, and is never reused,
      including for soft-deleted rows
    - content fields never change after insert; the only mutation is setting
      deleted_at (soft delete by the retention pruner)
    - tenant_id is a denormalized copy of the note's tenant for filtering
      without a join
    """

    __tablename__ = "note_versions"

    note_id: Mapped[UUID] = mapped_column(
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
    )
    tenant_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    version_number: Mapped[int] = mapped_column(nullable=False)

    # Verbatim copy of the note at creation time
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_state: Mapped[str | None] = mapped_column(Text, nullable=True)

    reason: Mapped[str] = mapped_column(String(20), nullable=False)
    changes_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.clock_timestamp(),
        nullable=False,
    )
    created_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    updated_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None,
    )

    note: Mapped["Note"] = relationship(back_populates="versions")

    __table_args__ = (
        # Unique constraint prevents duplicate version numbers from concurrent writers
        UniqueConstraint("note_id", "version_number", name=VERSION_UNIQUE_CONSTRAINT),
        # Autosave gate and retention pruner: latest autosave per note
        Index("ix_note_versions_note_reason_created", "note_id", "reason", "created_at"),
        # History listing (newest first)
        Index("ix_note_versions_note_created", "note_id", "created_at"),
        Index("ix_note_versions_tenant_id", "tenant_id"),
    )
