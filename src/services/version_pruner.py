"""
Retention pruning for autosave versions.

Autosave versions are soft-deleted once they are BOTH outside the newest
`retention_min_versions` autosaves of their note AND older than
`retention_days`. Manual and restore versions are never touched.

Pruning is best-effort: the writer schedules it as a detached task after its
transaction commits, and failures are logged rather than surfaced.
"""
import asyncio
import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import event, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session, SessionTransaction

from core.version_policy import DEFAULT_VERSION_POLICY, VersionPolicy
from models.note_version import NoteVersion, VersionReason

logger = logging.getLogger(__name__)


async def prune_old_versions(
    db: AsyncSession,
    note_id: UUID,
    policy: VersionPolicy = DEFAULT_VERSION_POLICY,
    now: datetime | None = None,
) -> int:
    """
    Soft-delete autosave versions that fall outside the retention policy.

    Keeps whichever set is larger: the newest `retention_min_versions` autosaves,
    or every autosave from the last `retention_days`. Already soft-deleted rows
    are not candidates, so running this twice changes nothing the second time.

    Args:
        db: Database session. Changes are flushed, not committed.
        note_id: ID of the note to prune.
        policy: Retention thresholds.
        now: Current time for cutoff calculation. Defaults to datetime.now(UTC).
             Inject a specific time for testing boundary conditions.

    Returns:
        Number of versions soft-deleted.
    """
    if now is None:
        now = datetime.now(UTC)
    cutoff = now - policy.retention_period

    # Everything inside the newest window is kept regardless of age
    stmt = (
        select(NoteVersion.id, NoteVersion.created_at)
        .where(
            NoteVersion.note_id == note_id,
            NoteVersion.reason == VersionReason.AUTOSAVE.value,
            NoteVersion.deleted_at.is_(None),
        )
        .order_by(NoteVersion.created_at.desc(), NoteVersion.version_number.desc())
        .offset(policy.retention_min_versions)
    )
    rows = (await db.execute(stmt)).all()
    expired_ids = [row.id for row in rows if row.created_at < cutoff]

    if not expired_ids:
        return 0

    await db.execute(
        update(NoteVersion)
        .where(
            NoteVersion.id.in_(expired_ids),
            NoteVersion.deleted_at.is_(None),
        )
        .values(deleted_at=now)
        .execution_options(synchronize_session="fetch"),
    )
    await db.flush()

    logger.info(
        "Pruned %d old autosave versions for note %s (cutoff=%s)",
        len(expired_ids),
        note_id,
        cutoff.isoformat(),
    )
    return len(expired_ids)


class PruneDispatcher:
    """
    Runs pruning as fire-and-forget background tasks.

    Each task opens its own session, so pruning never shares (or delays) the
    request's transaction. Tasks are held in a set to prevent garbage
    collection before they finish.
    """

    def __init__(self, session_factory: async_sessionmaker | None = None) -> None:
        self._session_factory = session_factory
        self._tasks: set[asyncio.Task] = set()
        # Per-session queue of note IDs awaiting commit, kept in Session.info
        self._info_key = ("prune_after_commit", id(self))

    @property
    def pending(self) -> int:
        """Number of prune tasks not yet finished."""
        return len(self._tasks)

    def schedule(
        self,
        note_id: UUID,
        policy: VersionPolicy = DEFAULT_VERSION_POLICY,
    ) -> asyncio.Task:
        """Start pruning `note_id` in the background without awaiting it."""
        task = asyncio.create_task(self._run(note_id, policy))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def schedule_after_commit(
        self,
        db: AsyncSession,
        note_id: UUID,
        policy: VersionPolicy = DEFAULT_VERSION_POLICY,
    ) -> None:
        """
        Schedule pruning once `db`'s current transaction commits.

        If the transaction rolls back, nothing is scheduled. Note IDs queued in
        the same transaction are pruned once each. Listeners are attached to a
        session only on its first call, so long-lived sessions don't collect them.
        """
        queued = db.sync_session.info.get(self._info_key)
        if queued is None:
            queued = db.sync_session.info[self._info_key] = {}
            event.listen(db.sync_session, "after_commit", self._on_commit)
            event.listen(db.sync_session, "after_soft_rollback", self._on_rollback)
        queued[note_id] = policy

    def _on_commit(self, session: Session) -> None:
        # Releasing a savepoint fires after_commit too; wait for the outermost commit
        if session.in_nested_transaction():
            return
        queued = session.info.get(self._info_key)
        if not queued:
            return
        batch = list(queued.items())
        queued.clear()
        for note_id, policy in batch:
            self.schedule(note_id, policy)

    def _on_rollback(self, session: Session, previous_transaction: SessionTransaction) -> None:
        # Savepoint rollbacks (allocation retries) don't discard the version
        if previous_transaction.nested:
            return
        queued = session.info.get(self._info_key)
        if queued:
            queued.clear()

    async def _run(self, note_id: UUID, policy: VersionPolicy) -> None:
        """Prune in a dedicated session; log and swallow any failure."""
        # Imported lazily: db.session builds the engine from settings at import
        from db.session import session_scope  # noqa: PLC0415

        try:
            async with session_scope(self._session_factory) as session:
                await prune_old_versions(session, note_id, policy)
        except Exception:
            # Best-effort: the next version created for this note retries pruning
            logger.exception("Failed to prune old versions for note %s", note_id)

    async def drain(self) -> None:
        """Wait for all in-flight prune tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        """Cancel pending prune tasks (application shutdown)."""
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        self._tasks.clear()


# Shared dispatcher used by the API
prune_dispatcher = PruneDispatcher()
