"""Tests for plainness.store.versions."""

from __future__ import annotations

import json

import pytest

from plainness.store.db import MemoryStore
from plainness.store.gateway import PersistenceGateway
from plainness.store.versions import Version, VersionLedger
from conftest import FailingStore, FakeClock


class TestSaveVersion:
    def test_newest_first(self, gateway: PersistenceGateway, clock: FakeClock) -> None:
        ledger = VersionLedger(gateway, clock=clock)
        ledger.save_version("first draft", "Draft 1")
        clock.advance(1)
        ledger.save_version("second draft", "Draft 2")
        assert [v.label for v in ledger.versions()] == ["Draft 2", "Draft 1"]

    def test_retention_bound_evicts_oldest(self, gateway: PersistenceGateway, clock: FakeClock) -> None:
        ledger = VersionLedger(gateway, clock=clock)
        for i in range(1, 7):
            ledger.save_version(f"content {i}", f"V{i}")
        assert len(ledger) == 5
        assert [v.label for v in ledger.versions()] == ["V6", "V5", "V4", "V3", "V2"]

    def test_default_label(self, gateway: PersistenceGateway, clock: FakeClock) -> None:
        ledger = VersionLedger(gateway, clock=clock)
        first = ledger.save_version("a")
        second = ledger.save_version("b", "")
        assert first.label == "Version 1"
        assert second.label == "Version 2"

    def test_ids_strictly_increase_within_same_millisecond(
        self, gateway: PersistenceGateway, clock: FakeClock,
    ) -> None:
        ledger = VersionLedger(gateway, clock=clock)
        ids = [ledger.save_version(str(i)).id for i in range(3)]
        assert ids == [1_000_000, 1_000_001, 1_000_002]

    def test_records_word_count_and_timestamp(
        self, gateway: PersistenceGateway, clock: FakeClock,
    ) -> None:
        version = VersionLedger(gateway, clock=clock).save_version("four little words here")
        assert version.word_count == 4
        assert version.created_at.startswith("1970-01-01T00:16:40")

    def test_empty_content_allowed(self, gateway: PersistenceGateway) -> None:
        version = VersionLedger(gateway).save_version("", "Blank")
        assert version.content == ""
        assert version.word_count == 0

    def test_custom_bound(self, gateway: PersistenceGateway, clock: FakeClock) -> None:
        ledger = VersionLedger(gateway, max_versions=2, clock=clock)
        for i in range(4):
            ledger.save_version(str(i))
        assert [v.content for v in ledger.versions()] == ["3", "2"]

    def test_invalid_bound(self, gateway: PersistenceGateway) -> None:
        with pytest.raises(ValueError):
            VersionLedger(gateway, max_versions=0)


class TestRestoreAndDelete:
    def test_restore_returns_content(self, gateway: PersistenceGateway, clock: FakeClock) -> None:
        ledger = VersionLedger(gateway, clock=clock)
        saved = ledger.save_version("the text", "Snap")
        assert ledger.restore_version(saved.id) == "the text"
        # Restoring does not change the ledger
        assert len(ledger) == 1

    def test_restore_unknown(self, gateway: PersistenceGateway) -> None:
        assert VersionLedger(gateway).restore_version(42) is None

    def test_delete(self, gateway: PersistenceGateway, clock: FakeClock) -> None:
        ledger = VersionLedger(gateway, clock=clock)
        a = ledger.save_version("a")
        b = ledger.save_version("b")
        assert ledger.delete_version(a.id) is True
        assert [v.id for v in ledger.versions()] == [b.id]

    def test_delete_unknown_is_noop(self, store: MemoryStore, clock: FakeClock) -> None:
        ledger = VersionLedger(PersistenceGateway(store), clock=clock)
        ledger.save_version("a")
        before = store.get("versions")
        assert ledger.delete_version(123) is False
        assert store.get("versions") == before


class TestPersistence:
    def test_survives_reload(self, gateway: PersistenceGateway, clock: FakeClock) -> None:
        ledger = VersionLedger(gateway, clock=clock)
        ledger.save_version("one", "A")
        ledger.save_version("two", "B")
        reloaded = VersionLedger(gateway, clock=clock)
        assert reloaded.versions() == ledger.versions()

    def test_stored_as_json_list(self, store: MemoryStore, clock: FakeClock) -> None:
        VersionLedger(PersistenceGateway(store), clock=clock).save_version("text", "L")
        data = json.loads(store.get("versions"))
        assert data[0]["label"] == "L"
        assert set(data[0]) == {"id", "content", "label", "created_at", "word_count"}

    def test_bad_records_skipped(self, store: MemoryStore) -> None:
        good = Version(1, "ok", "Good", "2024-01-01T00:00:00+00:00", 1).to_dict()
        store.set("versions", json.dumps([good, {"label": "no id"}]))
        ledger = VersionLedger(PersistenceGateway(store))
        assert [v.label for v in ledger.versions()] == ["Good"]

    def test_failed_write_keeps_memory_state(self) -> None:
        ledger = VersionLedger(PersistenceGateway(FailingStore()))
        ledger.save_version("kept anyway", "Mem")
        assert [v.label for v in ledger.versions()] == ["Mem"]
