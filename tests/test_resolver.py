"""Tests for the conflict resolver"""
from datetime import date

import pytest

from treevault.detector import ConflictDetector
from treevault.models import (
    ConflictResolutionStrategy,
    EntityType,
    FamilySettings,
)
from treevault.resolver import ConflictResolver, build_conflict_lookup, describe
from treevault.storage import SQLiteRecordStore, StoreError

from conftest import (
    make_account,
    make_audit,
    make_entries,
    make_person,
    make_relationship,
    make_suggestion,
)


SKIP = ConflictResolutionStrategy.SKIP
REPLACE = ConflictResolutionStrategy.REPLACE
MERGE = ConflictResolutionStrategy.MERGE


def run_import(store, entries, strategy=SKIP, **kwargs):
    conflicts = ConflictDetector(store).detect(entries)
    return ConflictResolver(store, strategy, **kwargs).import_data(entries, conflicts)


def test_describe_labels():
    assert describe(EntityType.PERSON, {"first_name": "Ada", "last_name": "Lovelace"}) == "person Ada Lovelace"
    assert describe(EntityType.ACCOUNT, {"email": "a@b.c"}) == "user a@b.c"
    assert describe(EntityType.AUDIT_LOG, {"id": "a1"}) == "audit log a1"
    assert describe(EntityType.SUGGESTION, {"id": "s1"}) == "suggestion s1"


class TestCleanImport:

    def test_everything_is_created_into_empty_store(self, store):
        entries = make_entries(
            people=[make_person("p1"), make_person("p2", first_name="Byron")],
            accounts=[make_account("u1", person_id="p1")],
            relationships=[make_relationship("r1"), make_relationship("r2", "p2", "p1", "CHILD")],
            suggestions=[make_suggestion("s1", target_person_id="p2")],
            settings=FamilySettings(id="f1", family_name="Lovelace"),
            audit_records=[make_audit("a1")],
        )

        result = run_import(store, entries)
        stats = result.statistics

        assert result.errors == []
        assert (stats.people_imported, stats.accounts_imported, stats.relationships_imported) == (2, 1, 2)
        assert (stats.suggestions_imported, stats.audit_logs_imported, stats.settings_imported) == (1, 1, 1)
        assert stats.conflicts_resolved == 0
        assert stats.skipped_items == 0
        assert store.find_by_id(EntityType.ACCOUNT, "u1").person_id == "p1"

    def test_one_sided_parent_edge_stays_one_row(self, store):
        store.create(EntityType.PERSON, make_person("p1"))
        store.create(EntityType.PERSON, make_person("p2", first_name="Byron"))

        result = run_import(store, make_entries(relationships=[make_relationship("r1", "p1", "p2", "PARENT")]), REPLACE)

        assert result.statistics.relationships_imported == 1
        assert store.count(EntityType.RELATIONSHIP) == 1
        assert store.list_all(EntityType.RELATIONSHIP)[0].type == "PARENT"

    def test_one_failure_does_not_stop_the_run(self, tmp_path):
        class FlakyStore(SQLiteRecordStore):
            def create(self, kind, record):
                if kind == EntityType.PERSON and record.first_name == "Person42":
                    raise StoreError("database is locked")
                return super().create(kind, record)

        store = FlakyStore(tmp_path / "flaky.sqlite")
        people = [make_person(f"p{i}", first_name=f"Person{i}", last_name="Test") for i in range(100)]

        result = run_import(store, make_entries(people=people))
        store.close()

        assert result.statistics.people_imported == 99
        assert len(result.errors) == 1
        assert "Person42 Test" in result.errors[0]
        assert "database is locked" in result.errors[0]

    def test_unexpected_crash_is_reported_not_raised(self, store):
        entries = make_entries(people=[make_person()])

        class Boom(ConflictResolver):
            def import_settings(self, data):
                raise RuntimeError("boom")

        result = Boom(store).import_data(entries, [])

        assert result.errors == ["Import failed: boom"]
        assert store.count(EntityType.PERSON) == 0


class TestStrategies:

    @pytest.fixture
    def stored(self, store):
        store.create(EntityType.PERSON, make_person("p1", bio="Old bio", phone="123"))
        return store

    def incoming(self):
        return make_entries(people=[make_person("p1", first_name="Augusta", bio="", phone=None, profession="Analyst")])

    def test_skip_leaves_existing_untouched(self, stored):
        result = run_import(stored, self.incoming(), SKIP)
        person = stored.find_by_id(EntityType.PERSON, "p1")

        assert person.first_name == "Ada"
        assert result.statistics.skipped_items == 1
        assert result.statistics.people_imported == 0
        assert result.warnings == ["Skipped person Augusta Lovelace due to conflicts"]

    def test_replace_overwrites_every_field(self, stored):
        result = run_import(stored, self.incoming(), REPLACE)
        person = stored.find_by_id(EntityType.PERSON, "p1")

        assert person.first_name == "Augusta"
        assert person.bio == ""
        assert person.phone is None
        assert person.profession == "Analyst"
        assert result.statistics.people_imported == 1
        assert result.statistics.conflicts_resolved == 1
        assert stored.count(EntityType.PERSON) == 1

    def test_merge_copies_non_blank_fields(self, stored):
        result = run_import(stored, self.incoming(), MERGE)
        person = stored.find_by_id(EntityType.PERSON, "p1")

        assert person.first_name == "Augusta"
        assert person.bio == "Old bio"
        assert person.phone == "123"
        assert person.profession == "Analyst"
        assert result.statistics.conflicts_resolved == 1


class TestSeverityHandling:

    def test_low_conflict_is_advisory(self, store):
        store.create(EntityType.PERSON, make_person("p1", date_of_birth=date(1815, 12, 10)))

        result = run_import(store, make_entries(people=[make_person("p9", date_of_birth=date(1815, 12, 10))]))

        assert result.statistics.people_imported == 1
        assert store.count(EntityType.PERSON) == 2
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Possible duplicate person Ada Lovelace")

    def test_high_person_conflict_is_skipped_under_merge(self, store):
        store.create(EntityType.PERSON, make_person("p1", email="ada@example.com"))
        entries = make_entries(people=[make_person("p9", first_name="Augusta", email="ada@example.com")])

        result = run_import(store, entries, MERGE)

        assert result.statistics.skipped_items == 1
        assert store.find_by_id(EntityType.PERSON, "p1").first_name == "Ada"
        assert store.find_by_id(EntityType.PERSON, "p9") is None

    def test_high_person_conflict_replaces_colliding_row(self, store):
        store.create(EntityType.PERSON, make_person("p1", email="ada@example.com"))
        entries = make_entries(people=[make_person("p9", first_name="Augusta", email="ada@example.com")])

        result = run_import(store, entries, REPLACE)

        assert result.statistics.people_imported == 1
        assert result.statistics.conflicts_resolved == 1
        assert store.find_by_id(EntityType.PERSON, "p1").first_name == "Augusta"
        assert store.count(EntityType.PERSON) == 1

    def test_account_email_collision_under_replace(self, store):
        store.create(EntityType.ACCOUNT, make_account("u1", name="Ada"))
        entries = make_entries(accounts=[make_account("u9", name="Countess", role="MEMBER")])

        result = run_import(store, entries, REPLACE)
        account = store.find_by_id(EntityType.ACCOUNT, "u1")

        assert result.statistics.accounts_imported == 1
        assert account.name == "Countess"
        assert account.role == "MEMBER"
        assert store.count(EntityType.ACCOUNT) == 1

    def test_relationship_triple_collision_under_merge(self, store):
        store.create(EntityType.PERSON, make_person("p1"))
        store.create(EntityType.PERSON, make_person("p2", first_name="Byron"))
        store.create(EntityType.RELATIONSHIP, make_relationship("r1", type="SPOUSE"))
        incoming = make_relationship("r9", type="SPOUSE", marriage_date=date(1835, 7, 8))

        result = run_import(store, make_entries(relationships=[incoming]), MERGE)

        assert result.statistics.relationships_imported == 1
        assert store.find_by_id(EntityType.RELATIONSHIP, "r1").marriage_date == date(1835, 7, 8)
        assert store.count(EntityType.RELATIONSHIP) == 1


class TestDependentRecords:

    @pytest.mark.parametrize("strategy", [SKIP, REPLACE, MERGE])
    def test_suggestion_without_submitter_is_skipped(self, store, strategy):
        result = run_import(store, make_entries(suggestions=[make_suggestion("s1", submitted_by_id="u404")]), strategy)

        assert store.count(EntityType.SUGGESTION) == 0
        assert result.statistics.skipped_items == 1
        assert result.warnings == ["Skipped suggestion s1 - submitter not found"]
        assert result.errors == []

    def test_suggestion_without_target_person_is_skipped(self, store):
        store.create(EntityType.ACCOUNT, make_account())

        result = run_import(store, make_entries(suggestions=[make_suggestion("s1", target_person_id="p404")]))

        assert result.warnings == ["Skipped suggestion s1 - target person not found"]
        assert store.count(EntityType.SUGGESTION) == 0

    def test_suggestion_submitter_from_same_archive(self, store):
        entries = make_entries(accounts=[make_account()], suggestions=[make_suggestion()])

        result = run_import(store, entries)

        assert result.statistics.accounts_imported == 1
        assert result.statistics.suggestions_imported == 1

    def test_existing_suggestion_follows_strategy(self, store):
        store.create(EntityType.ACCOUNT, make_account())
        store.create(EntityType.SUGGESTION, make_suggestion(reason="Old"))
        entries = make_entries(suggestions=[make_suggestion(reason="New", status="APPROVED")])

        skipped = run_import(store, entries, SKIP)
        assert skipped.warnings == ["Skipped suggestion s1 (already exists)"]

        merged = run_import(store, entries, MERGE)
        assert merged.statistics.suggestions_imported == 1
        assert store.find_by_id(EntityType.SUGGESTION, "s1").status == "APPROVED"

    def test_audit_record_without_user_is_skipped(self, store):
        result = run_import(store, make_entries(audit_records=[make_audit("a9", user_id="ghost")]))

        assert result.warnings == ["Skipped audit log a9 - user not found"]
        assert store.count(EntityType.AUDIT_LOG) == 0

    def test_audit_import_can_be_disabled(self, store):
        store.create(EntityType.ACCOUNT, make_account())

        result = run_import(store, make_entries(audit_records=[make_audit()]), import_audit_logs=False)

        assert store.count(EntityType.AUDIT_LOG) == 0
        assert result.statistics.audit_logs_imported == 0
        assert result.statistics.skipped_items == 0


class TestSettings:

    def test_created_when_absent(self, store):
        result = run_import(store, make_entries(settings=FamilySettings(id="f1", family_name="Lovelace")))

        assert result.statistics.settings_imported == 1
        assert store.find_settings().family_name == "Lovelace"

    def test_skip_keeps_existing(self, store):
        store.create(EntityType.SETTINGS, FamilySettings(id="f0", family_name="Ours"))

        result = run_import(store, make_entries(settings=FamilySettings(id="f1", family_name="Theirs")))

        assert result.warnings == ["Skipped family settings (already exists)"]
        assert store.find_settings().family_name == "Ours"

    def test_merge_updates_single_row(self, store):
        store.create(EntityType.SETTINGS, FamilySettings(id="f0", family_name="Ours", locale="fr"))

        result = run_import(store, make_entries(settings=FamilySettings(id="f1", family_name="Theirs")), MERGE)
        settings = store.find_settings()

        assert result.statistics.settings_imported == 1
        assert settings.id == "f0"
        assert settings.family_name == "Theirs"
        assert store.count(EntityType.SETTINGS) == 1


class TestPhotos:

    PHOTOS = {"photos/p1/portrait.jpg": b"\xff\xd8jpeg"}

    def test_photo_saved_for_imported_person(self, store, photo_store):
        entries = make_entries(people=[make_person("p1", photo_url="p1/portrait.jpg")], photos=self.PHOTOS)

        result = run_import(store, entries, photo_store=photo_store)
        person = store.find_by_id(EntityType.PERSON, "p1")

        assert result.statistics.photos_imported == 1
        assert person.photo_url == "p1/portrait.jpg"
        assert photo_store.read(person.photo_url) == b"\xff\xd8jpeg"

    def test_photo_skipped_when_person_skipped(self, store, photo_store):
        store.create(EntityType.PERSON, make_person("p1"))
        entries = make_entries(people=[make_person("p1")], photos=self.PHOTOS)

        result = run_import(store, entries, SKIP, photo_store=photo_store)

        assert result.statistics.photos_imported == 0
        assert result.statistics.skipped_items == 1
        assert "Skipped photo photos/p1/portrait.jpg - person not imported" in result.warnings

    def test_photo_follows_person_into_colliding_row(self, store, photo_store):
        store.create(EntityType.PERSON, make_person("p1", email="ada@example.com"))
        entries = make_entries(
            people=[make_person("p9", email="ada@example.com")],
            photos={"photos/p9/portrait.jpg": b"jpeg"},
        )

        result = run_import(store, entries, REPLACE, photo_store=photo_store)

        assert result.statistics.photos_imported == 1
        assert store.find_by_id(EntityType.PERSON, "p1").photo_url == "p1/portrait.jpg"

    def test_photos_disabled(self, store, photo_store):
        entries = make_entries(people=[make_person("p1")], photos=self.PHOTOS)

        result = run_import(store, entries, photo_store=photo_store, import_photos=False)

        assert result.statistics.photos_imported == 0
        assert result.warnings == []

    def test_no_photo_store(self, store):
        entries = make_entries(people=[make_person("p1")], photos=self.PHOTOS)

        result = run_import(store, entries)

        assert result.warnings == ["Skipped 1 photo(s) - no photo store configured"]


def test_conflict_lookup_groups_by_incoming_identity(seeded_store):
    entries = make_entries(people=[make_person("p9", email="ada@example.com", date_of_birth=date(1815, 12, 10))])
    lookup = build_conflict_lookup(ConflictDetector(seeded_store).detect(entries))

    assert list(lookup) == [(EntityType.PERSON, "p9")]
    assert len(lookup[(EntityType.PERSON, "p9")]) == 2
