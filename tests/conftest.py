"""
Pytest configuration and fixtures for moodstore tests.
"""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

# Set test environment before importing app modules
os.environ["MOODSTORE_DATA_DIR"] = tempfile.mkdtemp()
os.environ["MOODSTORE_REPO_ROOT"] = os.environ["MOODSTORE_DATA_DIR"]

from moodstore.core.types import Checkin, GlobalConfig, Principal, TenantConfig  # noqa: E402
from moodstore.services.journal import Journal  # noqa: E402
from moodstore.storage.documents import DocumentStore  # noqa: E402
from moodstore.storage.ledger import VersionLedger  # noqa: E402


@pytest.fixture
def temp_data_dir() -> Generator[Path, None, None]:
    """Create a temporary data directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_data_dir: Path) -> DocumentStore:
    """A document store with its root structure in place."""
    document_store = DocumentStore(temp_data_dir)
    document_store.ensure_structure()
    return document_store


@pytest.fixture
def repo_root() -> Generator[Path, None, None]:
    """A repository root containing a data/ directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "data").mkdir()
        yield root


@pytest.fixture
def repo_store(repo_root: Path) -> DocumentStore:
    """A document store living inside repo_root/data."""
    document_store = DocumentStore(repo_root / "data")
    document_store.ensure_structure()
    return document_store


@pytest.fixture
def ledger(repo_root: Path, repo_store: DocumentStore) -> VersionLedger:
    """An initialised ledger tracking repo_store's data directory."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    version_ledger = VersionLedger(repo_root, repo_store.data_dir)
    version_ledger.init_repository_if_needed()
    return version_ledger


class RecordingLedger:
    """Ledger double that records commit messages instead of running git."""

    def __init__(self):
        self.messages: list[str] = []

    def init_repository_if_needed(self) -> bool:
        return False

    def commit_pending_changes(self, message: str) -> str | None:
        self.messages.append(message)
        return f"{len(self.messages):040x}"


class RecordingDispatcher:
    """Dispatcher double that reaches a fixed set of contacts."""

    def __init__(
        self,
        low_mood_reached: list[str] | None = None,
        panic_reached: list[str] | None = None,
        error: Exception | None = None,
    ):
        self.low_mood_reached = low_mood_reached or []
        self.panic_reached = panic_reached or []
        self.error = error
        self.calls: list[tuple[str, Checkin | None]] = []

    def send_low_mood(self, tenant_cfg: TenantConfig, global_cfg: GlobalConfig, checkin: Checkin) -> list[str]:
        self.calls.append(("low_mood", checkin))
        if self.error:
            raise self.error
        return list(self.low_mood_reached)

    def send_panic(self, tenant_cfg: TenantConfig, global_cfg: GlobalConfig, checkin: Checkin | None) -> list[str]:
        self.calls.append(("panic", checkin))
        if self.error:
            raise self.error
        return list(self.panic_reached)


@pytest.fixture
def recording_ledger() -> RecordingLedger:
    return RecordingLedger()


@pytest.fixture
def principal() -> Principal:
    """Sample authenticated principal."""
    return Principal(tenant_id="7f1c2b8e-4d0a-4f5e-9a63-2c1b5d9e0f11", username="alice")


@pytest.fixture
def make_journal(store: DocumentStore, recording_ledger: RecordingLedger):
    """Factory for a Journal over the temp store with a given dispatcher."""
    def _make(dispatcher=None) -> Journal:
        return Journal(store, recording_ledger, dispatcher)
    return _make


@pytest.fixture
def make_dispatcher():
    """Factory for RecordingDispatcher instances."""
    return RecordingDispatcher
