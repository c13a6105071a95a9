"""Note version history endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user, get_version_service
from models.note_version import VersionReason
from models.user import User
from schemas.note import NoteResponse
from schemas.note_version import (
    PaginationResponse,
    RestoreResponse,
    ShouldCreateVersionResponse,
    VersionChanges,
    VersionComparisonResponse,
    VersionCreate,
    VersionHistoryResponse,
    VersionListItem,
    VersionResponse,
    VersionSummary,
)
from services.exceptions import VersionNoteMismatchError
from services.note_service import NoteService
from services.version_service import VersionService

router = APIRouter(prefix="/notes/{note_id}/versions", tags=["versions"])

note_service = NoteService()


@router.get("/", response_model=VersionHistoryResponse)
async def list_versions(
    note_id: UUID,
    page: int = Query(default=1, ge=1, description="Page number (1-based)"),
    limit: int = Query(default=50, ge=1, le=100, description="Versions per page"),
    reason_filter: VersionReason | None = Query(
        default=None, description="Only return versions saved for this reason",
    ),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    version_service: VersionService = Depends(get_version_service),
) -> VersionHistoryResponse:
    """
    Get paginated version history for a note.

    Versions are sorted by created_at descending (most recent first).
    Soft-deleted (pruned) versions are excluded.
    """
    history = await version_service.get_version_history(
        db,
        note_id,
        current_user.id,
        current_user.tenant_id,
        page=page,
        limit=limit,
        reason_filter=reason_filter,
    )
    return VersionHistoryResponse(
        versions=[VersionListItem.model_validate(v) for v in history.versions],
        pagination=PaginationResponse.model_validate(history.pagination),
    )


@router.post("/", response_model=VersionResponse, status_code=201)
async def create_version(
    note_id: UUID,
    data: VersionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    version_service: VersionService = Depends(get_version_service),
) -> VersionResponse:
    """Snapshot the note's current state as a manual or autosave version."""
    await note_service.get_or_raise(db, current_user.id, current_user.tenant_id, note_id)
    version = await version_service.create_version(
        db, note_id, data.reason, current_user.id, data.changes_summary,
    )
    return VersionResponse.model_validate(version)


@router.get("/should-create", response_model=ShouldCreateVersionResponse)
async def should_create_version(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    version_service: VersionService = Depends(get_version_service),
) -> ShouldCreateVersionResponse:
    """Check whether an autosave version is due for this note."""
    await note_service.get_or_raise(db, current_user.id, current_user.tenant_id, note_id)
    should_create = await version_service.should_create_autosave_version(db, note_id)
    return ShouldCreateVersionResponse(should_create=should_create)


@router.get("/compare", response_model=VersionComparisonResponse)
async def compare_versions(
    note_id: UUID,
    version_id_1: UUID = Query(description="Earlier version"),
    version_id_2: UUID = Query(description="Later version"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    version_service: VersionService = Depends(get_version_service),
) -> VersionComparisonResponse:
    """
    Compare two versions of this note.

    Returns which fields changed and a line-based patch of the content.
    """
    comparison = await version_service.compare_versions(
        db, version_id_1, version_id_2, current_user.id, current_user.tenant_id,
    )
    if comparison.version1.note_id != note_id:
        raise VersionNoteMismatchError(version_id_1, note_id)

    return VersionComparisonResponse(
        version1=VersionSummary.model_validate(comparison.version1),
        version2=VersionSummary.model_validate(comparison.version2),
        changes=VersionChanges(
            title_changed=comparison.title_changed,
            content_changed=comparison.content_changed,
            content_state_changed=comparison.content_state_changed,
        ),
        content_diff=comparison.content_diff,
    )


@router.get("/{version_id}", response_model=VersionResponse)
async def get_version(
    note_id: UUID,
    version_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    version_service: VersionService = Depends(get_version_service),
) -> VersionResponse:
    """Get a specific version with its full content."""
    version = await version_service.get_version(
        db, version_id, current_user.id, current_user.tenant_id,
    )
    if version.note_id != note_id:
        raise VersionNoteMismatchError(version_id, note_id)
    return VersionResponse.model_validate(version)


@router.post("/{version_id}/restore", response_model=RestoreResponse)
async def restore_version(
    note_id: UUID,
    version_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    version_service: VersionService = Depends(get_version_service),
) -> RestoreResponse:
    """
    Restore a version to the current note.

    The note's current state is saved as a new 'restore' version before it
    is overwritten.
    """
    result = await version_service.restore_version(
        db, note_id, version_id, current_user.id, current_user.tenant_id,
    )
    return RestoreResponse(
        message="Version restored successfully. Your previous version was saved.",
        note=NoteResponse.model_validate(result.note),
        backup_version=VersionResponse.model_validate(result.backup_version),
    )
