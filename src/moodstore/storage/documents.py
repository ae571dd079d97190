"""
Document Store - per-tenant JSON documents on disk.

Every record is one JSON file. There is no database and no index: the
directory tree is the catalog.

Layout:
<data_dir>/
  config.json                                  global configuration
  users/<tenant_id>/config.json                tenant configuration
  users/<tenant_id>/checkins/<id>.json         one file per check-in
  users/<tenant_id>/trips/                     reserved
  logs/panic_events/<YYYYMMDDTHHMMSSZ>-<id>.json

All writes go through write_json_atomic(): readers only ever see the previous
complete file or the new complete file.
"""

import os
from collections.abc import Iterator
from pathlib import Path
from typing import TypeVar
from uuid import uuid4

from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError

from moodstore.core.config import settings, get_logger
from moodstore.core.errors import (
    ConflictError,
    CorruptDocumentError,
    NotFoundError,
    SerializationError,
    StorageIOError,
)
from moodstore.core.types import (
    Checkin,
    GlobalConfig,
    PanicEvent,
    TenantConfig,
)

logger = get_logger("storage.documents")

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_SUFFIX = ".json"
TEMP_MARKER = ".tmp-"


# ============================================
# Atomic file primitives
# ============================================

def temp_path_for(path: Path) -> Path:
    """Uniquely named sibling of path used as the write target before rename."""
    return path.with_name(f"{path.name}{TEMP_MARKER}{uuid4().hex}")


def encode_document(value: BaseModel) -> bytes:
    """Encode a model as pretty-printed JSON bytes."""
    try:
        return value.model_dump_json(indent=2).encode("utf-8")
    except (PydanticSerializationError, ValueError, TypeError) as e:
        raise SerializationError(f"Cannot encode {type(value).__name__}: {e}") from e


def write_json_atomic(path: Path, value: BaseModel, *, exclusive: bool = False) -> None:
    """
    Persist a document so readers never observe a partial file.

    The document is encoded fully in memory, written and fsynced to a
    uniquely named temp file in the same directory, then moved onto path in
    a single rename. With exclusive=True the temp file is hard-linked onto
    path instead, which fails if path already exists (ConflictError) and so
    never replaces an existing document.

    If the final rename fails the temp file is left in place and the error
    is surfaced as StorageIOError.
    """
    data = encode_document(value)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError(f"Cannot create directory {path.parent}: {e}", path) from e

    tmp = temp_path_for(path)
    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        raise StorageIOError(f"Cannot write temp file {tmp}: {e}", tmp) from e

    if exclusive:
        _link_into_place(tmp, path, data)
        return

    try:
        os.replace(tmp, path)
    except OSError as e:
        logger.error(f"Could not move {tmp} onto {path}: {e}")
        raise StorageIOError(f"Cannot rename {tmp} to {path}: {e}", path) from e


def _link_into_place(tmp: Path, path: Path, data: bytes) -> None:
    try:
        os.link(tmp, path)
    except FileExistsError as e:
        tmp.unlink(missing_ok=True)
        raise ConflictError(f"{path} already exists", path) from e
    except OSError as e:
        # Filesystems without hard links
        logger.warning(f"Could not link {tmp} onto {path} ({e}), creating it exclusively instead")
        tmp.unlink(missing_ok=True)
        _create_exclusive(path, data)
        return
    tmp.unlink(missing_ok=True)


def _create_exclusive(path: Path, data: bytes) -> None:
    """
    O_CREAT|O_EXCL fallback for exclusive creates.

    Still never replaces an existing document, but a concurrent reader can
    see the file before it is complete; listing skips such files as corrupt.
    """
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    except FileExistsError as e:
        raise ConflictError(f"{path} already exists", path) from e
    except OSError as e:
        raise StorageIOError(f"Cannot create {path}: {e}", path) from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        logger.error(f"Could not write {path}: {e}")
        raise StorageIOError(f"Cannot write {path}: {e}", path) from e


def read_json(path: Path, model: type[ModelT]) -> ModelT:
    """
    Read and decode one document.

    Raises NotFoundError if the file is missing, CorruptDocumentError if it
    is empty or does not decode, StorageIOError on any other read failure.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError as e:
        raise NotFoundError(f"{path} does not exist", path) from e
    except OSError as e:
        raise StorageIOError(f"Cannot read {path}: {e}", path) from e

    if not raw.strip():
        raise CorruptDocumentError(f"{path} is empty", path)

    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise CorruptDocumentError(f"{path} is not a valid {model.__name__}: {e}", path) from e


def is_document_file(path: Path) -> bool:
    """True for finished document files; temp files and other names are ignored."""
    name = path.name.lower()
    return name.endswith(JSON_SUFFIX) and TEMP_MARKER not in name


def _is_safe_segment(value: str) -> bool:
    return bool(value) and value not in (".", "..") and "/" not in value and "\\" not in value


class DocumentStore:
    """
    Multi-tenant JSON document store.

    Tenants write to disjoint subtrees, so no locking is done here. The
    store keeps no open handles between calls.
    """

    def __init__(self, data_dir: Path | None = None):
        """Initialize the document store. Nothing is created until ensure_structure()."""
        self.data_dir = Path(data_dir or settings.data_dir)

    # ============================================
    # Paths
    # ============================================

    @property
    def global_config_path(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def users_root(self) -> Path:
        return self.data_dir / "users"

    @property
    def panic_log_dir(self) -> Path:
        return self.data_dir / "logs" / "panic_events"

    def tenant_dir(self, tenant_id: str) -> Path:
        return self.users_root / tenant_id

    def checkins_dir(self, tenant_id: str) -> Path:
        return self.tenant_dir(tenant_id) / "checkins"

    def trips_dir(self, tenant_id: str) -> Path:
        return self.tenant_dir(tenant_id) / "trips"

    def tenant_config_path(self, tenant_id: str) -> Path:
        return self.tenant_dir(tenant_id) / "config.json"

    def checkin_path(self, tenant_id: str, checkin_id: str) -> Path:
        return self.checkins_dir(tenant_id) / f"{checkin_id}{JSON_SUFFIX}"

    def panic_event_path(self, event: PanicEvent) -> Path:
        # UTC prefix keeps lexicographic order chronological
        stamp = event.timestamp.strftime("%Y%m%dT%H%M%SZ")
        return self.panic_log_dir / f"{stamp}-{event.id}{JSON_SUFFIX}"

    # ============================================
    # Scaffolding
    # ============================================

    def ensure_structure(self) -> None:
        """
        Create the root tree and the default global config if absent.

        Safe to call on every start, also from several processes at once.
        """
        for directory in (self.data_dir, self.users_root, self.panic_log_dir):
            self._mkdir(directory)

        if not self.global_config_path.exists():
            try:
                write_json_atomic(self.global_config_path, GlobalConfig(), exclusive=True)
                logger.info(f"Wrote default global config to {self.global_config_path}")
            except ConflictError:
                logger.debug("Global config created concurrently")

    def ensure_tenant_scaffold(self, tenant_id: str, display_name: str) -> TenantConfig:
        """
        Create a tenant's directories and default config.

        An existing config is never overwritten; it is loaded and returned.
        """
        for directory in (
            self.tenant_dir(tenant_id),
            self.checkins_dir(tenant_id),
            self.trips_dir(tenant_id),
        ):
            self._mkdir(directory)

        path = self.tenant_config_path(tenant_id)
        if path.exists():
            return self.load_tenant_config(tenant_id)

        cfg = TenantConfig.for_new_tenant(display_name, self._global_defaults())
        try:
            write_json_atomic(path, cfg, exclusive=True)
        except ConflictError:
            logger.debug(f"Tenant {tenant_id} scaffolded concurrently")
            return self.load_tenant_config(tenant_id)

        logger.info(f"Scaffolded tenant {tenant_id}")
        return cfg

    def _global_defaults(self) -> GlobalConfig:
        try:
            return read_json(self.global_config_path, GlobalConfig)
        except NotFoundError:
            return GlobalConfig()
        except CorruptDocumentError as e:
            logger.warning(f"Using built-in defaults, global config unreadable: {e}")
            return GlobalConfig()

    def _mkdir(self, directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create directory {directory}: {e}", directory) from e

    # ============================================
    # Configuration
    # ============================================

    def load_global_config(self) -> GlobalConfig:
        """Load the global config, recreating the defaults if the file is gone."""
        if not self.global_config_path.exists():
            self.save_global_config(GlobalConfig())
        return read_json(self.global_config_path, GlobalConfig)

    def save_global_config(self, cfg: GlobalConfig) -> None:
        write_json_atomic(self.global_config_path, cfg)
        logger.debug("Saved global config")

    def load_tenant_config(self, tenant_id: str) -> TenantConfig:
        """
        Load a tenant's config.

        Raises NotFoundError if the tenant was never scaffolded. No default is
        synthesised; callers fall back to TenantConfig.for_new_tenant().
        """
        cfg = read_json(self.tenant_config_path(tenant_id), TenantConfig)
        if not cfg.username.strip():
            cfg.username = tenant_id
        return cfg

    def save_tenant_config(self, tenant_id: str, cfg: TenantConfig) -> None:
        write_json_atomic(self.tenant_config_path(tenant_id), cfg)
        logger.debug(f"Saved config for tenant {tenant_id}")

    # ============================================
    # Check-ins
    # ============================================

    def save_checkin(self, tenant_id: str, checkin: Checkin) -> Path:
        """
        Write one check-in. The checkins directory is created on demand.

        Raises SerializationError if the id is not usable as a file name.
        """
        if not _is_safe_segment(checkin.id):
            raise SerializationError(f"Check-in id {checkin.id!r} is not a valid document name")
        path = self.checkin_path(tenant_id, checkin.id)
        write_json_atomic(path, checkin)
        logger.info(f"Saved check-in {checkin.id} for tenant {tenant_id}")
        return path

    def load_checkin(self, tenant_id: str, checkin_id: str) -> Checkin:
        if not _is_safe_segment(checkin_id):
            raise NotFoundError(f"No check-in {checkin_id!r} for tenant {tenant_id}")
        return read_json(self.checkin_path(tenant_id, checkin_id), Checkin)

    def list_checkins(self, tenant_id: str) -> list[Checkin]:
        """All check-ins of a tenant, newest first. Unreadable files are skipped."""
        items = list(self._load_all(self.checkins_dir(tenant_id), Checkin))
        items.sort(key=lambda c: c.timestamp, reverse=True)
        return items

    def latest_checkin(self, tenant_id: str) -> Checkin | None:
        items = self.list_checkins(tenant_id)
        return items[0] if items else None

    # ============================================
    # Panic events
    # ============================================

    def save_panic_event(self, event: PanicEvent) -> Path:
        path = self.panic_event_path(event)
        write_json_atomic(path, event)
        logger.info(f"Logged panic event {event.id} for tenant {event.tenant_id}")
        return path

    def list_panic_events(self) -> list[PanicEvent]:
        """All panic events across tenants, newest first."""
        items = list(self._load_all(self.panic_log_dir, PanicEvent))
        items.sort(key=lambda e: e.timestamp, reverse=True)
        return items

    # ============================================
    # Aggregation
    # ============================================

    def list_tenant_ids(self) -> list[str]:
        """Ids of every tenant that has a directory."""
        return sorted(p.name for p in self._scan(self.users_root) if p.is_dir())

    def count_tenant_checkins(self, tenant_id: str) -> int:
        return sum(
            1 for p in self._scan(self.checkins_dir(tenant_id))
            if p.is_file() and is_document_file(p)
        )

    def count_tenant_panic_events(self, tenant_id: str) -> int:
        return sum(1 for e in self.list_panic_events() if e.tenant_id == tenant_id)

    def count_all_checkins(self) -> int:
        return sum(self.count_tenant_checkins(tenant_id) for tenant_id in self.list_tenant_ids())

    # ============================================
    # Directory scanning
    # ============================================

    def _scan(self, directory: Path) -> list[Path]:
        """
        Entries of a directory, or [] if it does not exist yet.

        Only failing to open an existing directory is an error.
        """
        try:
            with os.scandir(directory) as entries:
                return [Path(entry.path) for entry in entries]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageIOError(f"Cannot list {directory}: {e}", directory) from e

    def _load_all(self, directory: Path, model: type[ModelT]) -> Iterator[ModelT]:
        for path in self._scan(directory):
            if not is_document_file(path) or not path.is_file():
                continue
            try:
                yield read_json(path, model)
            except CorruptDocumentError as e:
                logger.warning(f"Skipping unreadable {model.__name__} at {path}: {e}")
            except (NotFoundError, StorageIOError) as e:
                logger.warning(f"Skipping {path}: {e}")
