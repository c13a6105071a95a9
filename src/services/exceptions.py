"""Shared exceptions for service layer operations."""
from uuid import UUID


class NotFoundError(Exception):
    """
    Raised when a note or version is absent or not accessible to the caller.

    Ownership failures raise this too, so callers can't test for the existence
    of other users' notes.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NoteNotFoundError(NotFoundError):
    """Raised when a note doesn't exist or isn't accessible."""

    def __init__(self, message: str = "Note not found or access denied") -> None:
        super().__init__(message)


class VersionNotFoundError(NotFoundError):
    """Raised when a version doesn't exist, is soft-deleted, or isn't accessible."""

    def __init__(self, message: str = "Version not found or access denied") -> None:
        super().__init__(message)


class VersionNoteMismatchError(Exception):
    """Raised when a version exists but belongs to a different note than requested."""

    def __init__(self, version_id: UUID, note_id: UUID) -> None:
        self.version_id = version_id
        self.note_id = note_id
        super().__init__("Version does not belong to this note")


class VersionComparisonError(Exception):
    """Raised when comparing two versions that belong to different notes."""

    def __init__(self) -> None:
        super().__init__("Versions belong to different notes")


class VersionAllocationError(Exception):
    """
    Raised when a version number can't be allocated.

    Happens only when every retry collided on the (note_id, version_number)
    unique constraint, i.e. sustained concurrent writers on one note.
    """

    def __init__(self, note_id: UUID, attempts: int) -> None:
        self.note_id = note_id
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a version number for note {note_id} "
            f"after {attempts} attempts",
        )
