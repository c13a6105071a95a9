"""Notes CRUD endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi import Response as FastAPIResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.note import NoteCreate, NoteResponse, NoteUpdate
from services.note_service import NoteService

router = APIRouter(prefix="/notes", tags=["notes"])

note_service = NoteService()


@router.post("/", response_model=NoteResponse, status_code=201)
async def create_note(
    data: NoteCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> NoteResponse:
    """Create a new note in the current user's tenant."""
    note = await note_service.create(db, current_user.id, current_user.tenant_id, data)
    return NoteResponse.model_validate(note)


@router.get("/{note_id}", response_model=NoteResponse)
async def get_note(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> NoteResponse:
    """Get a single note by ID."""
    note = await note_service.get_or_raise(db, current_user.id, current_user.tenant_id, note_id)
    return NoteResponse.model_validate(note)


@router.patch("/{note_id}", response_model=NoteResponse)
async def update_note(
    note_id: UUID,
    data: NoteUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> NoteResponse:
    """
    Update a note.

    Does not snapshot; clients call the versions endpoints (should-create, then
    create) to record history around edits.
    """
    note = await note_service.update(
        db, current_user.id, current_user.tenant_id, note_id, data,
    )
    return NoteResponse.model_validate(note)


@router.delete("/{note_id}", status_code=204)
async def delete_note(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> FastAPIResponse:
    """Soft delete a note."""
    await note_service.delete(db, current_user.id, current_user.tenant_id, note_id)
    return FastAPIResponse(status_code=204)
