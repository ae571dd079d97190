"""
moodstore

Persistence and versioning core of a personal mood tracker.
Per-tenant JSON documents on disk with a git-backed audit trail.
"""

__version__ = "0.1.0"

from moodstore.core.config import settings
from moodstore.core.types import (
    Checkin,
    CheckinSubmission,
    GlobalConfig,
    PanicEvent,
    Principal,
    TenantConfig,
)
from moodstore.storage import DocumentStore, VersionLedger

__all__ = [
    "settings",
    "Checkin",
    "CheckinSubmission",
    "DocumentStore",
    "GlobalConfig",
    "PanicEvent",
    "Principal",
    "TenantConfig",
    "VersionLedger",
]
