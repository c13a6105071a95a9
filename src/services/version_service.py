"""Service layer for note version history: snapshots, autosave gating, restore and comparison."""
import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from diff_match_patch import diff_match_patch
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.version_policy import DEFAULT_VERSION_POLICY, VersionPolicy
from models.note import Note
from models.note_version import VERSION_UNIQUE_CONSTRAINT, NoteVersion, VersionReason
from services.exceptions import (
    NoteNotFoundError,
    VersionAllocationError,
    VersionComparisonError,
    VersionNoteMismatchError,
    VersionNotFoundError,
)
from services.note_service import accessible_note_filters
from services.version_pruner import PruneDispatcher, prune_old_versions

logger = logging.getLogger(__name__)


@dataclass
class Pagination:
    """Page metadata for version history listings."""

    page: int
    limit: int
    total_count: int
    total_pages: int


@dataclass
class VersionHistoryPage:
    """One page of a note's version history, newest first."""

    versions: list[NoteVersion]
    pagination: Pagination


@dataclass
class RestoreResult:
    """Result of restoring a note to a historical version."""

    note: Note
    backup_version: NoteVersion  # Snapshot of the pre-restore state
    restored_version: NoteVersion  # Version whose content is now live


@dataclass
class VersionComparison:
    """Change flags (and a line diff) between two versions of the same note."""

    version1: NoteVersion
    version2: NoteVersion
    title_changed: bool
    content_changed: bool
    content_state_changed: bool
    content_diff: str  # diff-match-patch patch text, version1 -> version2


class VersionService:
    """Service for creating, listing, restoring and comparing note versions."""

    def __init__(
        self,
        policy: VersionPolicy = DEFAULT_VERSION_POLICY,
        pruner: PruneDispatcher | None = None,
    ) -> None:
        """
        Initialize the version service.

        Args:
            policy: Autosave cadence, retention and allocation retry settings.
            pruner: Dispatcher used to prune in the background after a version
                is created. If None, creation never triggers pruning.
        """
        self.policy = policy
        self.pruner = pruner
        self.dmp = diff_match_patch()

    # --- Version Writer ---

    async def create_version(
        self,
        db: AsyncSession,
        note_id: UUID,
        reason: VersionReason | str,
        actor_id: UUID,
        changes_summary: str | None = None,
    ) -> NoteVersion:
        """
        Snapshot the note's current state as a new version.

        The note row is locked for the rest of the transaction so concurrent
        writers on the same note allocate numbers one at a time; the unique
        constraint on (note_id, version_number) backs this up with a bounded
        retry.

        Once the surrounding transaction commits, retention pruning for the note
        is dispatched in the background. Its outcome never affects this call.

        Args:
            db: Database session.
            note_id: ID of the note to snapshot.
            reason: Why the snapshot is taken.
            actor_id: User creating the version.
            changes_summary: Optional free-text annotation.

        Returns:
            The created NoteVersion.

        Raises:
            NoteNotFoundError: If the note doesn't exist or is soft-deleted.
            VersionAllocationError: If every allocation attempt conflicted.
        """
        note = await self._lock_note(db, note_id)
        if note is None:
            raise NoteNotFoundError(f"Note with ID {note_id} not found")

        version = await self._insert_snapshot(
            db, note, VersionReason(reason), actor_id, changes_summary,
        )

        if self.pruner is not None:
            self.pruner.schedule_after_commit(db, note_id, self.policy)

        return version

    async def _insert_snapshot(
        self,
        db: AsyncSession,
        note: Note,
        reason: VersionReason,
        actor_id: UUID,
        changes_summary: str | None,
    ) -> NoteVersion:
        """
        Allocate the next version number and insert a snapshot of `note`.

        Each attempt runs in a savepoint, so a uniqueness collision rolls back
        only the failed insert and leaves the caller's transaction intact.
        """
        attempts = self.policy.max_allocation_retries

        for attempt in range(1, attempts + 1):
            try:
                async with db.begin_nested():  # Creates savepoint
                    version_number = await self._get_next_version_number(db, note.id)
                    version = NoteVersion(
                        note_id=note.id,
                        tenant_id=note.tenant_id,
                        version_number=version_number,
                        title=note.title,
                        content=note.content,
                        content_state=note.content_state,
                        reason=reason.value,
                        changes_summary=changes_summary,
                        created_by=actor_id,
                        updated_by=actor_id,
                    )
                    db.add(version)
                    await db.flush()
                return version
            except IntegrityError as e:
                # Only retry on version number collisions
                if VERSION_UNIQUE_CONSTRAINT not in str(e):
                    raise
                logger.warning(
                    "Version number conflict for note %s (attempt %d/%d)",
                    note.id,
                    attempt,
                    attempts,
                )

        raise VersionAllocationError(note.id, attempts)

    async def get_latest_version_number(self, db: AsyncSession, note_id: UUID) -> int | None:
        """
        Get the highest version number ever allocated for a note.

        Soft-deleted rows count: numbers are never reused.

        Returns:
            Latest version number, or None if the note has no versions.
        """
        stmt = select(func.max(NoteVersion.version_number)).where(
            NoteVersion.note_id == note_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_next_version_number(self, db: AsyncSession, note_id: UUID) -> int:
        latest = await self.get_latest_version_number(db, note_id)
        return (latest or 0) + 1

    async def _lock_note(self, db: AsyncSession, note_id: UUID) -> Note | None:
        """
        Re-read a live note and lock its row until the transaction ends.

        populate_existing() overwrites any stale copy in the identity map, so the
        caller always sees the committed state it is about to snapshot.
        """
        stmt = (
            select(Note)
            .where(Note.id == note_id, Note.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    # --- Autosave Gate ---

    async def should_create_autosave_version(
        self,
        db: AsyncSession,
        note_id: UUID,
        now: datetime | None = None,
    ) -> bool:
        """
        Decide whether an autosave snapshot is due for a note.

        True when the note has no live autosave version, or when at least
        `autosave_interval` has elapsed since the latest one. Read-only.

        Args:
            db: Database session.
            note_id: ID of the note.
            now: Current time. Defaults to datetime.now(UTC).
        """
        stmt = (
            select(NoteVersion.created_at)
            .where(
                NoteVersion.note_id == note_id,
                NoteVersion.reason == VersionReason.AUTOSAVE.value,
                NoteVersion.deleted_at.is_(None),
            )
            .order_by(NoteVersion.created_at.desc())
            .limit(1)
        )
        last_created_at = (await db.execute(stmt)).scalar_one_or_none()

        if last_created_at is None:
            return True

        if now is None:
            now = datetime.now(UTC)
        return now - last_created_at >= self.policy.autosave_interval

    # --- History Query ---

    async def get_version_history(
        self,
        db: AsyncSession,
        note_id: UUID,
        actor_id: UUID,
        tenant_id: UUID | None,
        page: int = 1,
        limit: int = 50,
        reason_filter: VersionReason | str | None = None,
    ) -> VersionHistoryPage:
        """
        Get one page of a note's live versions, newest first.

        Args:
            db: Database session.
            note_id: ID of the note.
            actor_id: ID of the requesting user (ownership check).
            tenant_id: Tenant of the requesting user.
            page: 1-based page number.
            limit: Page size.
            reason_filter: Only include versions with this reason.

        Returns:
            VersionHistoryPage with versions and pagination metadata.

        Raises:
            NoteNotFoundError: If the note doesn't exist or isn't accessible.
            ValueError: If page or limit is less than 1.
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        await self._get_accessible_note(db, note_id, actor_id, tenant_id)

        conditions = [
            NoteVersion.note_id == note_id,
            NoteVersion.deleted_at.is_(None),
        ]
        if reason_filter:
            conditions.append(NoteVersion.reason == VersionReason(reason_filter).value)

        count_stmt = select(func.count()).select_from(NoteVersion).where(*conditions)
        total_count = (await db.execute(count_stmt)).scalar_one()

        stmt = (
            select(NoteVersion)
            .where(*conditions)
            .order_by(NoteVersion.created_at.desc(), NoteVersion.version_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        versions = list((await db.execute(stmt)).scalars().all())

        return VersionHistoryPage(
            versions=versions,
            pagination=Pagination(
                page=page,
                limit=limit,
                total_count=total_count,
                total_pages=math.ceil(total_count / limit),
            ),
        )

    async def get_version(
        self,
        db: AsyncSession,
        version_id: UUID,
        actor_id: UUID,
        tenant_id: UUID | None,
    ) -> NoteVersion:
        """
        Get a single live version whose note is accessible to the actor.

        Raises:
            VersionNotFoundError: If the version doesn't exist, is soft-deleted,
                or its note isn't accessible.
        """
        stmt = (
            select(NoteVersion)
            .join(Note, NoteVersion.note_id == Note.id)
            .where(
                NoteVersion.id == version_id,
                NoteVersion.deleted_at.is_(None),
                *accessible_note_filters(actor_id, tenant_id),
            )
        )
        version = (await db.execute(stmt)).scalar_one_or_none()
        if version is None:
            raise VersionNotFoundError()
        return version

    async def _get_accessible_note(
        self,
        db: AsyncSession,
        note_id: UUID,
        actor_id: UUID,
        tenant_id: UUID | None,
    ) -> Note:
        stmt = select(Note).where(Note.id == note_id, *accessible_note_filters(actor_id, tenant_id))
        note = (await db.execute(stmt)).scalar_one_or_none()
        if note is None:
            raise NoteNotFoundError()
        return note

    # --- Restore Orchestrator ---

    async def restore_version(
        self,
        db: AsyncSession,
        note_id: UUID,
        version_id: UUID,
        actor_id: UUID,
        tenant_id: UUID | None,
    ) -> RestoreResult:
        """
        Restore a note to a historical version, keeping a backup of the current state.

        The backup insert and the note overwrite run in one savepoint: if either
        fails, neither is visible afterwards. The backup goes through the same
        locked, retrying number allocation as create_version.

        Pruning is not dispatched; restore backups are never pruned.

        Args:
            db: Database session.
            note_id: ID of the note to restore.
            version_id: ID of the version to restore from.
            actor_id: User performing the restore.
            tenant_id: Tenant of the user.

        Returns:
            RestoreResult with the updated note, the backup version and the
            restored version.

        Raises:
            VersionNotFoundError: If the version is missing or inaccessible.
            VersionNoteMismatchError: If the version belongs to another note.
            NoteNotFoundError: If the note vanished before it could be locked.
        """
        target = await self.get_version(db, version_id, actor_id, tenant_id)
        if target.note_id != note_id:
            raise VersionNoteMismatchError(version_id, note_id)

        async with db.begin_nested():
            note = await self._lock_note(db, note_id)
            if note is None:
                raise NoteNotFoundError()

            # A prune may have soft-deleted the target before the lock was taken
            locked_target = (
                await db.execute(
                    select(NoteVersion)
                    .where(
                        NoteVersion.id == version_id,
                        NoteVersion.deleted_at.is_(None),
                    )
                    .with_for_update()
                    .execution_options(populate_existing=True),
                )
            ).scalar_one_or_none()
            if locked_target is None:
                raise VersionNotFoundError()
            target = locked_target

            backup = await self._insert_snapshot(
                db,
                note,
                VersionReason.RESTORE,
                actor_id,
                f"Backup before restoring version {target.version_number}",
            )
            self._apply_version(note, target, actor_id)
            await db.flush()

        await db.refresh(note)
        logger.info(
            "Restored note %s to version %d (backup version %d)",
            note_id,
            target.version_number,
            backup.version_number,
        )
        return RestoreResult(note=note, backup_version=backup, restored_version=target)

    def _apply_version(self, note: Note, version: NoteVersion, actor_id: UUID) -> None:
        """Overwrite the note's live fields with a version's snapshot."""
        note.title = version.title
        note.content = version.content
        note.content_state = version.content_state
        note.updated_by = actor_id
        note.updated_at = func.clock_timestamp()

    # --- Retention ---

    async def prune_old_versions(
        self,
        db: AsyncSession,
        note_id: UUID,
        now: datetime | None = None,
    ) -> int:
        """Apply this service's retention policy to a note now (see version_pruner)."""
        return await prune_old_versions(db, note_id, self.policy, now=now)

    # --- Comparison ---

    async def compare_versions(
        self,
        db: AsyncSession,
        version_id_1: UUID,
        version_id_2: UUID,
        actor_id: UUID,
        tenant_id: UUID | None,
    ) -> VersionComparison:
        """
        Compare two versions of the same note.

        Raises:
            VersionNotFoundError: If either version is missing or inaccessible.
            VersionComparisonError: If the versions belong to different notes.
        """
        version1 = await self.get_version(db, version_id_1, actor_id, tenant_id)
        version2 = await self.get_version(db, version_id_2, actor_id, tenant_id)

        if version1.note_id != version2.note_id:
            raise VersionComparisonError()

        return VersionComparison(
            version1=version1,
            version2=version2,
            title_changed=version1.title != version2.title,
            content_changed=version1.content != version2.content,
            content_state_changed=version1.content_state != version2.content_state,
            content_diff=self.line_diff(version1.content, version2.content),
        )

    def line_diff(self, before: str, after: str) -> str:
        """
        Line-mode diff between two texts as diff-match-patch patch text.

        Returns an empty string when the texts are equal.
        """
        chars_before, chars_after, line_array = self.dmp.diff_linesToChars(before, after)
        diffs = self.dmp.diff_main(chars_before, chars_after, False)
        self.dmp.diff_charsToLines(diffs, line_array)
        patches = self.dmp.patch_make(before, diffs)
        return self.dmp.patch_toText(patches)
