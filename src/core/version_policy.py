"""Version history policy: autosave cadence and retention thresholds."""
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class VersionPolicy:
    """Knobs for the version engine."""

    # Minimum time between autosave snapshots of the same note
    autosave_interval: timedelta = timedelta(minutes=5)

    # Retention: an autosave version is pruned only when it is outside the newest
    # `retention_min_versions` AND older than `retention_days`
    retention_min_versions: int = 50
    retention_days: int = 90

    # Attempts at allocating a version number before giving up on unique conflicts
    max_allocation_retries: int = 3

    @property
    def retention_period(self) -> timedelta:
        """Age after which autosave versions outside the newest window may be pruned."""
        return timedelta(days=self.retention_days)


DEFAULT_VERSION_POLICY = VersionPolicy()
