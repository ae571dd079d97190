"""
Core module - Configuration, errors and types.
"""

from moodstore.core.config import settings
from moodstore.core.errors import (
    ConflictError,
    CorruptDocumentError,
    NotFoundError,
    SerializationError,
    StorageIOError,
    StoreError,
    VersionControlError,
)
from moodstore.core.types import (
    AutoNotifications,
    Checkin,
    CheckinSubmission,
    DrugEntry,
    GlobalConfig,
    LedgerStatus,
    PanicEvent,
    Principal,
    TenantConfig,
)

__all__ = [
    "settings",
    "ConflictError",
    "CorruptDocumentError",
    "NotFoundError",
    "SerializationError",
    "StorageIOError",
    "StoreError",
    "VersionControlError",
    "AutoNotifications",
    "Checkin",
    "CheckinSubmission",
    "DrugEntry",
    "GlobalConfig",
    "LedgerStatus",
    "PanicEvent",
    "Principal",
    "TenantConfig",
]
