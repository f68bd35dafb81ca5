"""Tests for the snapshot gatherer"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from treevault.archive import AUDIT_LOGS_FILE, METADATA_FILE, PEOPLE_FILE
from treevault.gatherer import SnapshotGatherer
from treevault.models import EntityType, utcnow
from treevault.schemas import ExportOptions
from treevault.storage import StoreError

from conftest import make_audit, make_person


class TestSnapshotGatherer:

    def test_statistics_match_sections(self, seeded_store, photo_store, admin):
        snapshot = SnapshotGatherer(seeded_store, photo_store).gather(ExportOptions(), admin)
        stats = snapshot.metadata["statistics"]

        assert stats["total_people"] == len(snapshot.people) == 2
        assert stats["total_relationships"] == len(snapshot.relationships) == 2
        assert stats["total_users"] == len(snapshot.accounts) == 1
        assert stats["total_suggestions"] == len(snapshot.suggestions) == 1
        assert stats["total_audit_logs"] == len(snapshot.audit_records) == 1
        assert stats["total_photos"] == len(snapshot.photos) == 1
        assert stats["audit_log_days"] == 90

    def test_metadata_describes_archive(self, seeded_store, photo_store, admin):
        snapshot = SnapshotGatherer(seeded_store, photo_store).gather(ExportOptions(), admin)
        metadata = snapshot.metadata
        entries = snapshot.entries()

        assert metadata["version"] == "1.0.0"
        assert metadata["exported_by"] == {"id": "u1", "email": "ada@example.com", "name": "Ada"}
        assert metadata["photo_directories"] == ["photos/p1/"]
        assert all(path in entries for path in metadata["data_files"])
        assert entries["photos/p1/portrait.jpg"] == b"\xff\xd8jpeg-bytes"
        assert entries[METADATA_FILE] is metadata

    def test_records_serialize_snake_case(self, seeded_store, photo_store, admin):
        entries = SnapshotGatherer(seeded_store, photo_store).gather(ExportOptions(), admin).entries()
        ada = next(p for p in entries[PEOPLE_FILE] if p["id"] == "p1")

        assert ada["date_of_birth"] == "1815-12-10"
        assert ada["current_address"] == {"city": "London"}
        assert "password" not in entries["data/users.json"][0]

    def test_audit_logs_excluded(self, seeded_store, photo_store, admin):
        options = ExportOptions(include_audit_logs=False)
        snapshot = SnapshotGatherer(seeded_store, photo_store).gather(options, admin)

        assert snapshot.audit_records is None
        assert AUDIT_LOGS_FILE not in snapshot.metadata["data_files"]
        assert AUDIT_LOGS_FILE not in snapshot.entries()
        assert snapshot.metadata["statistics"]["audit_log_days"] == 90
        assert snapshot.metadata["statistics"]["total_audit_logs"] == 0

    def test_photos_excluded(self, seeded_store, photo_store, admin):
        snapshot = SnapshotGatherer(seeded_store, photo_store).gather(ExportOptions(include_photos=False), admin)

        assert snapshot.photos == {}
        assert snapshot.metadata["photo_directories"] == []
        assert snapshot.metadata["statistics"]["total_photos"] == 0

    def test_audit_window(self, seeded_store, photo_store, admin):
        now = utcnow()
        seeded_store.create(EntityType.AUDIT_LOG, make_audit("a-old", created_at=now - timedelta(days=45)))

        gatherer = SnapshotGatherer(seeded_store, photo_store)
        recent = gatherer.gather(ExportOptions(audit_log_days=30), admin, now=now)
        wide = gatherer.gather(ExportOptions(audit_log_days=60), admin, now=now)

        assert [a.id for a in recent.audit_records] == ["a1"]
        assert sorted(a.id for a in wide.audit_records) == ["a-old", "a1"]

    def test_missing_photo_is_skipped(self, seeded_store, photo_store, admin):
        seeded_store.create(EntityType.PERSON, make_person("p3", first_name="Ghost", photo_url="p3/gone.jpg"))

        snapshot = SnapshotGatherer(seeded_store, photo_store).gather(ExportOptions(), admin)

        assert list(snapshot.photos) == ["photos/p1/portrait.jpg"]
        assert snapshot.metadata["statistics"]["total_photos"] == 1
        assert snapshot.metadata["statistics"]["total_people"] == 3

    def test_without_photo_store(self, seeded_store, admin):
        snapshot = SnapshotGatherer(seeded_store).gather(ExportOptions(), admin)
        assert snapshot.photos == {}

    def test_invalid_options_rejected_before_store_access(self, admin):
        store = MagicMock()

        with pytest.raises(ValidationError):
            SnapshotGatherer(store).gather({"audit_log_days": 0}, admin)
        with pytest.raises(ValidationError):
            SnapshotGatherer(store).gather({"audit_log_days": 366}, admin)

        assert store.method_calls == []

    def test_store_failure_propagates(self, admin):
        store = MagicMock()
        store.list_all.side_effect = StoreError("disk I/O error")

        with pytest.raises(StoreError, match="disk I/O error"):
            SnapshotGatherer(store).gather(ExportOptions(), admin)

    def test_empty_store(self, store, admin):
        snapshot = SnapshotGatherer(store).gather(None, admin)
        entries = snapshot.entries()

        assert entries[PEOPLE_FILE] == []
        assert entries["data/settings.json"] is None
        assert snapshot.metadata["statistics"]["total_people"] == 0
