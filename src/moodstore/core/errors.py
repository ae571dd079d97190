"""
Error taxonomy for the persistence core.

Every failure leaving the storage layer is one of these types, so callers can
branch on the kind of failure without inspecting messages or OS error codes:

- StorageIOError → filesystem failure (permissions, disk full, missing parent)
- NotFoundError → the requested document does not exist
- CorruptDocumentError → bytes exist but do not decode to a valid document
- SerializationError → a value could not be encoded
- ConflictError → an exclusive create found the document already present
- VersionControlError → a ledger operation (init, stage, commit, status) failed
"""

from pathlib import Path


class StoreError(Exception):
    """Base class for all moodstore errors."""


class StorageIOError(StoreError):
    """A filesystem operation failed."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class NotFoundError(StoreError):
    """The requested document or tenant configuration does not exist."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class CorruptDocumentError(StoreError):
    """A stored document could not be decoded."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class SerializationError(StoreError):
    """A document could not be encoded for writing."""


class ConflictError(StoreError):
    """An exclusive create targeted a path that already exists."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class VersionControlError(StoreError):
    """A version ledger operation failed."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = ""):
        super().__init__(message)
        self.command = command or []
        self.stderr = stderr

    def __str__(self) -> str:
        base = super().__str__()
        if self.stderr:
            return f"{base}: {self.stderr.strip()}"
        return base
