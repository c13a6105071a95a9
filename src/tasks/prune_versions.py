"""
Scheduled retention sweep for note versions.

The API prunes a note's autosaves after each new version is written. This
task catches notes that stopped receiving versions while still holding
expired autosaves. Designed to run as a cron job (e.g., daily).

Usage:
    python -m tasks.prune_versions
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.version_policy import VersionPolicy
from db.session import session_scope
from models.note_version import NoteVersion, VersionReason
from services.version_pruner import prune_old_versions

logger = logging.getLogger(__name__)


@dataclass
class PruneSweepStats:
    """Statistics from a sweep run."""

    notes_checked: int = 0
    versions_pruned: int = 0
    failed_note_ids: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {
            "notes_checked": self.notes_checked,
            "versions_pruned": self.versions_pruned,
            "notes_failed": len(self.failed_note_ids),
        }


async def find_prunable_notes(db: AsyncSession, policy: VersionPolicy) -> list[UUID]:
    """
    Return IDs of notes holding more live autosaves than the retention floor.

    Notes at or under the floor can't have anything pruned, so they are skipped.
    """
    stmt = (
        select(NoteVersion.note_id)
        .where(
            NoteVersion.reason == VersionReason.AUTOSAVE.value,
            NoteVersion.deleted_at.is_(None),
        )
        .group_by(NoteVersion.note_id)
        .having(func.count() > policy.retention_min_versions)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def run_prune_sweep(
    db: AsyncSession | None = None,
    now: datetime | None = None,
    policy: VersionPolicy | None = None,
) -> PruneSweepStats:
    """
    Prune expired autosave versions across all notes.

    Each note is pruned in its own savepoint so one failure doesn't roll
    back the others.

    Args:
        db: Database session. If None, opens one with session_scope().
        now: Current time for cutoff calculation. Defaults to datetime.now(UTC).
        policy: Retention thresholds. Defaults to the configured policy.

    Returns:
        PruneSweepStats for the run.
    """
    if now is None:
        now = datetime.now(UTC)
    if policy is None:
        policy = get_settings().version_policy

    logger.info("Starting version prune sweep")

    async def _run(session: AsyncSession) -> PruneSweepStats:
        stats = PruneSweepStats()
        for note_id in await find_prunable_notes(session, policy):
            stats.notes_checked += 1
            try:
                async with session.begin_nested():
                    stats.versions_pruned += await prune_old_versions(
                        session, note_id, policy, now=now,
                    )
            except SQLAlchemyError:
                logger.exception("Version prune sweep failed for note %s", note_id)
                stats.failed_note_ids.append(note_id)
        await session.commit()
        return stats

    if db is not None:
        stats = await _run(db)
    else:
        async with session_scope() as session:
            stats = await _run(session)

    logger.info("Version prune sweep complete: %s", stats.to_dict())
    return stats


def main() -> None:
    """Entry point for running the sweep as a script."""
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_prune_sweep())


if __name__ == "__main__":
    main()
