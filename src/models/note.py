"""Note model for storing user notes."""
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDv7Mixin

if TYPE_CHECKING:
    from models.note_version import NoteVersion
    from models.user import User


class Note(Base, UUIDv7Mixin, TimestampMixin):
    """
    Note model - the live, mutable copy of a note.

    The version engine snapshots title/content/content_state into NoteVersion
    rows and overwrites them on restore, but does not own the note lifecycle.
    """

    __tablename__ = "notes"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    tenant_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Serialized editor state (e.g. rich-text JSON); optional
    content_state: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    updated_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None, index=True,
    )

    user: Mapped["User"] = relationship(back_populates="notes")
    versions: Mapped[list["NoteVersion"]] = relationship(
        back_populates="note",
        passive_deletes=True,
    )
