"""
Storage Layer - JSON documents on disk, git as the audit trail.

The storage hierarchy:
1. JSON files → Canonical source of truth (one file per document)
2. git repository → Version history of the data directory

All storage operations should go through these modules.
"""

from moodstore.storage.documents import DocumentStore
from moodstore.storage.ledger import VersionLedger

__all__ = [
    "DocumentStore",
    "VersionLedger",
]
