"""Service layer for note CRUD operations."""
import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from models.note import Note
from schemas.note import NoteCreate, NoteUpdate
from services.exceptions import NoteNotFoundError

logger = logging.getLogger(__name__)


def accessible_note_filters(actor_id: UUID, tenant_id: UUID | None) -> list[ColumnElement[bool]]:
    """
    Filters restricting notes to those the actor can access.

    A note is accessible when it is owned by the actor, belongs to the actor's
    tenant (NULL tenant matches NULL), and is not soft-deleted.
    """
    return [
        Note.user_id == actor_id,
        Note.tenant_id.is_not_distinct_from(tenant_id),
        Note.deleted_at.is_(None),
    ]


class NoteService:
    """Minimal note CRUD, scoped by owner and tenant."""

    async def get(
        self,
        db: AsyncSession,
        actor_id: UUID,
        tenant_id: UUID | None,
        note_id: UUID,
    ) -> Note | None:
        """
        Get an accessible note by ID.

        Args:
            db: Database session.
            actor_id: ID of the requesting user.
            tenant_id: Tenant of the requesting user.
            note_id: ID of the note.

        Returns:
            The note, or None if it doesn't exist or isn't accessible.
        """
        stmt = select(Note).where(Note.id == note_id, *accessible_note_filters(actor_id, tenant_id))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_raise(
        self,
        db: AsyncSession,
        actor_id: UUID,
        tenant_id: UUID | None,
        note_id: UUID,
    ) -> Note:
        """Get an accessible note, raising NoteNotFoundError otherwise."""
        note = await self.get(db, actor_id, tenant_id, note_id)
        if note is None:
            raise NoteNotFoundError()
        return note

    async def create(
        self,
        db: AsyncSession,
        actor_id: UUID,
        tenant_id: UUID | None,
        data: NoteCreate,
    ) -> Note:
        """Create a new note owned by the actor in the actor's tenant."""
        note = Note(
            user_id=actor_id,
            tenant_id=tenant_id,
            title=data.title,
            content=data.content,
            content_state=data.content_state,
            created_by=actor_id,
            updated_by=actor_id,
        )
        db.add(note)
        await db.flush()
        await db.refresh(note)
        return note

    async def update(
        self,
        db: AsyncSession,
        actor_id: UUID,
        tenant_id: UUID | None,
        note_id: UUID,
        data: NoteUpdate,
    ) -> Note:
        """
        Partially update a note.

        Only fields explicitly set on `data` are written.

        Raises:
            NoteNotFoundError: If the note doesn't exist or isn't accessible.
        """
        note = await self.get_or_raise(db, actor_id, tenant_id, note_id)

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(note, field, value)

        note.updated_by = actor_id
        note.updated_at = func.clock_timestamp()
        await db.flush()
        await db.refresh(note)
        return note

    async def delete(
        self,
        db: AsyncSession,
        actor_id: UUID,
        tenant_id: UUID | None,
        note_id: UUID,
    ) -> None:
        """
        Soft delete a note.

        Versions are left untouched; they become unreachable through the
        accessible-note scoping.

        Raises:
            NoteNotFoundError: If the note doesn't exist or isn't accessible.
        """
        note = await self.get_or_raise(db, actor_id, tenant_id, note_id)
        note.deleted_at = datetime.now(UTC)
        note.updated_by = actor_id
        await db.flush()
        logger.info("Soft-deleted note %s", note_id)
