"""Data helpers shared across test modules."""
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from models.note import Note
from models.note_version import NoteVersion, VersionReason
from models.user import User


async def create_user(db: AsyncSession, auth0_id: str, **kwargs) -> User:
    """Create and flush a user."""
    user = User(auth0_id=auth0_id, email=f"{auth0_id}@test.com", **kwargs)
    db.add(user)
    await db.flush()
    return user


async def create_note(
    db: AsyncSession,
    user: User,
    title: str = "Test Note",
    content: str = "",
    content_state: str | None = None,
) -> Note:
    """Create and flush a note owned by `user` in the user's tenant."""
    note = Note(
        user_id=user.id,
        tenant_id=user.tenant_id,
        title=title,
        content=content,
        content_state=content_state,
        created_by=user.id,
        updated_by=user.id,
    )
    db.add(note)
    await db.flush()
    await db.refresh(note)
    return note


async def add_versions(
    db: AsyncSession,
    note: Note,
    created_at: list[datetime],
    reason: VersionReason = VersionReason.AUTOSAVE,
    start_number: int = 1,
) -> list[NoteVersion]:
    """
    Insert versions with explicit timestamps, numbered from `start_number`.

    Bypasses the service so tests can place versions anywhere in time.
    """
    versions = [
        NoteVersion(
            note_id=note.id,
            tenant_id=note.tenant_id,
            version_number=start_number + i,
            title=note.title,
            content=f"content v{start_number + i}",
            reason=reason.value,
            created_at=ts,
            created_by=note.user_id,
            updated_by=note.user_id,
        )
        for i, ts in enumerate(created_at)
    ]
    db.add_all(versions)
    await db.flush()
    return versions


def timestamps(start: datetime, count: int, step: timedelta = timedelta(minutes=1)) -> list[datetime]:
    """`count` increasing timestamps beginning at `start`."""
    return [start + step * i for i in range(count)]
