"""Tests for the JSON document store."""

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from pydantic import BaseModel

from moodstore.core.errors import (
    ConflictError,
    CorruptDocumentError,
    NotFoundError,
    SerializationError,
    StorageIOError,
)
from moodstore.core.types import Checkin, GlobalConfig, PanicEvent, TenantConfig
from moodstore.storage.documents import DocumentStore, is_document_file, write_json_atomic


T0 = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


class TestAtomicWrite:
    """Tests for write_json_atomic."""

    def test_writes_pretty_json(self, temp_data_dir):
        path = temp_data_dir / "doc.json"

        write_json_atomic(path, GlobalConfig())

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["default_low_mood_threshold"] == 1
        assert "\n" in path.read_text(encoding="utf-8")

    def test_creates_missing_parent(self, temp_data_dir):
        path = temp_data_dir / "a" / "b" / "doc.json"

        write_json_atomic(path, GlobalConfig())

        assert path.exists()

    def test_crash_before_rename_leaves_original_untouched(self, temp_data_dir, monkeypatch):
        """A failure between temp write and rename never exposes a partial file."""
        path = temp_data_dir / "config.json"
        write_json_atomic(path, GlobalConfig(default_low_mood_threshold=3))
        original = path.read_bytes()

        def crash(src, dst):
            raise OSError("simulated crash")

        monkeypatch.setattr(os, "replace", crash)

        with pytest.raises(StorageIOError):
            write_json_atomic(path, GlobalConfig(default_low_mood_threshold=-4))

        assert path.read_bytes() == original
        leftovers = [p for p in temp_data_dir.iterdir() if p.name.startswith("config.json.tmp-")]
        assert len(leftovers) == 1
        assert json.loads(leftovers[0].read_text())["default_low_mood_threshold"] == -4

    def test_temp_names_are_unique(self, temp_data_dir, monkeypatch):
        path = temp_data_dir / "doc.json"

        def fail(src, dst):
            raise OSError("boom")

        monkeypatch.setattr(os, "replace", fail)

        for _ in range(3):
            with pytest.raises(StorageIOError):
                write_json_atomic(path, GlobalConfig())

        assert len(list(temp_data_dir.glob("doc.json.tmp-*"))) == 3

    def test_serialization_failure(self, temp_data_dir):
        class Opaque(BaseModel):
            value: Any

        path = temp_data_dir / "opaque.json"

        with pytest.raises(SerializationError):
            write_json_atomic(path, Opaque(value=object()))

        assert not path.exists()
        assert list(temp_data_dir.iterdir()) == []

    def test_exclusive_never_overwrites(self, temp_data_dir):
        path = temp_data_dir / "config.json"
        write_json_atomic(path, TenantConfig(display_name="first"), exclusive=True)

        with pytest.raises(ConflictError):
            write_json_atomic(path, TenantConfig(display_name="second"), exclusive=True)

        assert json.loads(path.read_text())["display_name"] == "first"
        assert list(temp_data_dir.glob("*.tmp-*")) == []

    def test_exclusive_without_hard_links(self, temp_data_dir, monkeypatch):
        """Exclusive creates still work, and still refuse to overwrite, without os.link."""
        def no_links(src, dst):
            raise PermissionError(1, "Operation not permitted")

        monkeypatch.setattr(os, "link", no_links)
        path = temp_data_dir / "config.json"

        write_json_atomic(path, TenantConfig(display_name="first"), exclusive=True)
        with pytest.raises(ConflictError):
            write_json_atomic(path, TenantConfig(display_name="second"), exclusive=True)

        assert json.loads(path.read_text())["display_name"] == "first"
        assert list(temp_data_dir.glob("*.tmp-*")) == []

    def test_ensure_structure_without_hard_links(self, temp_data_dir, monkeypatch):
        def no_links(src, dst):
            raise OSError(95, "Operation not supported")

        monkeypatch.setattr(os, "link", no_links)
        store = DocumentStore(temp_data_dir)

        store.ensure_structure()
        store.ensure_structure()

        assert store.load_global_config().default_low_mood_threshold == 1
        assert store.ensure_tenant_scaffold("u1", "Alice").display_name == "Alice"

    def test_is_document_file(self, temp_data_dir):
        assert is_document_file(temp_data_dir / "abc.json")
        assert is_document_file(temp_data_dir / "ABC.JSON")
        assert not is_document_file(temp_data_dir / "abc.json.tmp-1234")
        assert not is_document_file(temp_data_dir / "notes.txt")


class TestStructure:
    """Tests for root and tenant scaffolding."""

    def test_ensure_structure(self, temp_data_dir):
        store = DocumentStore(temp_data_dir / "root")

        store.ensure_structure()

        assert store.users_root.is_dir()
        assert store.panic_log_dir.is_dir()
        assert store.load_global_config() == GlobalConfig()

    def test_ensure_structure_keeps_existing_global_config(self, store):
        store.save_global_config(GlobalConfig(default_low_mood_threshold=-1))

        store.ensure_structure()

        assert store.load_global_config().default_low_mood_threshold == -1

    def test_load_global_config_recreates_missing_file(self, store):
        store.global_config_path.unlink()

        assert store.load_global_config() == GlobalConfig()
        assert store.global_config_path.exists()

    def test_scaffold_creates_directories_and_config(self, store):
        cfg = store.ensure_tenant_scaffold("u1", "Alice")

        assert store.checkins_dir("u1").is_dir()
        assert store.trips_dir("u1").is_dir()
        assert cfg.display_name == "Alice"
        assert cfg.notify_threshold == 1
        assert store.load_tenant_config("u1") == cfg

    def test_scaffold_is_idempotent(self, store):
        """A second scaffold keeps the first call's config."""
        first = store.ensure_tenant_scaffold("u1", "Alice")

        second = store.ensure_tenant_scaffold("u1", "Someone Else")

        assert second == first
        assert store.load_tenant_config("u1").display_name == "Alice"

    def test_scaffold_keeps_edited_config(self, store):
        cfg = store.ensure_tenant_scaffold("u1", "Alice")
        cfg.notify_threshold = -3
        store.save_tenant_config("u1", cfg)

        store.ensure_tenant_scaffold("u1", "Alice")

        assert store.load_tenant_config("u1").notify_threshold == -3

    def test_scaffold_seeds_from_global_config(self, store):
        store.save_global_config(GlobalConfig(default_low_mood_threshold=-2))

        cfg = store.ensure_tenant_scaffold("u2", "Bob")

        assert cfg.notify_threshold == -2

    def test_concurrent_scaffolds_agree(self, store):
        with ThreadPoolExecutor(max_workers=8) as pool:
            configs = list(pool.map(lambda i: store.ensure_tenant_scaffold("u1", "Alice"), range(16)))

        assert all(cfg == configs[0] for cfg in configs)
        assert list(store.tenant_dir("u1").glob("*.tmp-*")) == []


class TestTenantConfig:
    """Tests for tenant config load/save."""

    def test_missing_config_is_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.load_tenant_config("never-scaffolded")

    def test_save_overwrites_whole_document(self, store):
        store.ensure_tenant_scaffold("u1", "Alice")
        cfg = TenantConfig(display_name="Alice B.", emergency_contacts=["@x:y"])

        store.save_tenant_config("u1", cfg)

        loaded = store.load_tenant_config("u1")
        assert loaded.display_name == "Alice B."
        assert loaded.emergency_contacts == ["@x:y"]

    def test_blank_username_falls_back_to_tenant_id(self, store):
        store.save_tenant_config("u1", TenantConfig(username="  ", display_name="Alice"))

        assert store.load_tenant_config("u1").username == "u1"

    def test_corrupt_config(self, store):
        path = store.tenant_config_path("u1")
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        with pytest.raises(CorruptDocumentError):
            store.load_tenant_config("u1")


class TestCheckins:
    """Tests for check-in persistence."""

    def test_save_and_load(self, store):
        checkin = Checkin(tenant_id="u1", mood=-2, intensity=4, notes="tired", status_tags=["work"])

        path = store.save_checkin("u1", checkin)

        assert path == store.checkins_dir("u1") / f"{checkin.id}.json"
        assert store.load_checkin("u1", checkin.id) == checkin

    def test_save_creates_directory_on_demand(self, store):
        checkin = Checkin(tenant_id="fresh")

        store.save_checkin("fresh", checkin)

        assert store.checkins_dir("fresh").is_dir()

    def test_load_missing(self, store):
        with pytest.raises(NotFoundError):
            store.load_checkin("u1", "does-not-exist")

    @pytest.mark.parametrize("checkin_id", ["", ".", "..", "../config", "a/b", "a\\b"])
    def test_save_rejects_path_like_ids(self, store, checkin_id):
        cfg = store.ensure_tenant_scaffold("u1", "Alice")

        with pytest.raises(SerializationError):
            store.save_checkin("u1", Checkin(id=checkin_id, tenant_id="u1", mood=3))

        assert store.load_tenant_config("u1") == cfg
        assert store.count_tenant_checkins("u1") == 0

    @pytest.mark.parametrize("checkin_id", ["", ".", "..", "../config", "a/b", "a\\b"])
    def test_load_rejects_path_like_ids(self, store, checkin_id):
        store.ensure_tenant_scaffold("u1", "Alice")

        with pytest.raises(NotFoundError):
            store.load_checkin("u1", checkin_id)

    def test_load_corrupt(self, store):
        store.checkins_dir("u1").mkdir(parents=True)
        (store.checkins_dir("u1") / "bad.json").write_text('{"id": "bad", "tenant_id": "u1", "mood": 99}')

        with pytest.raises(CorruptDocumentError):
            store.load_checkin("u1", "bad")

    def test_list_empty_tenant(self, store):
        assert store.list_checkins("nobody") == []
        assert store.latest_checkin("nobody") is None

    def test_list_orders_newest_first(self, store):
        for offset, mood in [(1, -1), (3, 3), (2, 2)]:
            store.save_checkin("u1", Checkin(tenant_id="u1", mood=mood, timestamp=T0 + timedelta(hours=offset)))

        items = store.list_checkins("u1")

        assert [c.mood for c in items] == [3, 2, -1]
        assert store.latest_checkin("u1").mood == 3

    def test_list_skips_corrupt_documents(self, store, caplog):
        """One corrupt file never hides the rest of the history."""
        first = Checkin(tenant_id="u1", timestamp=T0)
        second = Checkin(tenant_id="u1", timestamp=T0 + timedelta(minutes=5))
        store.save_checkin("u1", first)
        store.save_checkin("u1", second)
        (store.checkins_dir("u1") / "broken.json").write_text('{"id": "broken", "tenant_')

        with caplog.at_level(logging.WARNING, logger="moodstore.storage.documents"):
            items = store.list_checkins("u1")

        assert [c.id for c in items] == [second.id, first.id]
        assert "broken.json" in caplog.text

    def test_list_ignores_temp_empty_and_foreign_files(self, store):
        checkin = Checkin(tenant_id="u1")
        store.save_checkin("u1", checkin)
        directory = store.checkins_dir("u1")
        (directory / f"{checkin.id}.json.tmp-0badc0de").write_text('{"id": "half')
        (directory / "empty.json").write_text("")
        (directory / "README.txt").write_text("hello")
        (directory / "nested.json").mkdir()

        assert [c.id for c in store.list_checkins("u1")] == [checkin.id]

    def test_overwrite_same_id_last_writer_wins(self, store):
        checkin = Checkin(tenant_id="u1", mood=1)
        store.save_checkin("u1", checkin)

        store.save_checkin("u1", checkin.model_copy(update={"mood": -1}))

        assert store.load_checkin("u1", checkin.id).mood == -1
        assert store.count_tenant_checkins("u1") == 1

    def test_concurrent_tenants_do_not_interfere(self, store):
        def submit(tenant_id: str) -> set[str]:
            ids = set()
            for i in range(25):
                checkin = Checkin(tenant_id=tenant_id, mood=i % 5)
                store.save_checkin(tenant_id, checkin)
                ids.add(checkin.id)
            return ids

        with ThreadPoolExecutor(max_workers=2) as pool:
            ids_a, ids_b = pool.map(submit, ["a", "b"])

        assert {c.id for c in store.list_checkins("a")} == ids_a
        assert {c.id for c in store.list_checkins("b")} == ids_b
        assert all(c.tenant_id == "a" for c in store.list_checkins("a"))


class TestPanicEvents:
    """Tests for the shared panic event log."""

    def test_filename_is_sortable(self, store):
        event = PanicEvent(tenant_id="u1", timestamp=datetime(2024, 5, 1, 23, 4, 5, tzinfo=timezone.utc))

        path = store.save_panic_event(event)

        assert path.name == f"20240501T230405Z-{event.id}.json"

    def test_filename_uses_utc(self, store):
        local = timezone(timedelta(hours=2))
        event = PanicEvent(tenant_id="u1", timestamp=datetime(2024, 5, 2, 1, 0, tzinfo=local))

        assert store.save_panic_event(event).name.startswith("20240501T230000Z-")

    def test_list_newest_first_and_skips_corrupt(self, store, caplog):
        for offset in (2, 0, 1):
            store.save_panic_event(PanicEvent(tenant_id="u1", mood_at_panic=offset, timestamp=T0 + timedelta(minutes=offset)))
        (store.panic_log_dir / "20240101T000000Z-bad.json").write_text("garbage")

        with caplog.at_level(logging.WARNING, logger="moodstore.storage.documents"):
            events = store.list_panic_events()

        assert [e.mood_at_panic for e in events] == [2, 1, 0]
        assert "20240101T000000Z-bad.json" in caplog.text

    def test_list_without_directory(self, temp_data_dir):
        assert DocumentStore(temp_data_dir / "missing").list_panic_events() == []


class TestCounts:
    """Tests for aggregation queries."""

    def test_counts(self, store):
        store.ensure_tenant_scaffold("a", "A")
        store.ensure_tenant_scaffold("b", "B")
        store.ensure_tenant_scaffold("c", "C")
        for _ in range(3):
            store.save_checkin("a", Checkin(tenant_id="a"))
        store.save_checkin("b", Checkin(tenant_id="b"))
        store.save_panic_event(PanicEvent(tenant_id="a"))
        store.save_panic_event(PanicEvent(tenant_id="a"))
        store.save_panic_event(PanicEvent(tenant_id="b"))

        assert store.list_tenant_ids() == ["a", "b", "c"]
        assert store.count_tenant_checkins("a") == 3
        assert store.count_tenant_checkins("c") == 0
        assert store.count_tenant_checkins("unknown") == 0
        assert store.count_all_checkins() == 4
        assert store.count_tenant_panic_events("a") == 2
        assert store.count_tenant_panic_events("c") == 0

    def test_counts_on_empty_root(self, temp_data_dir):
        store = DocumentStore(temp_data_dir / "empty")

        assert store.list_tenant_ids() == []
        assert store.count_all_checkins() == 0
