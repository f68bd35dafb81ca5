"""Tests for the archive validator"""
import pytest

from treevault.archive import METADATA_FILE, PEOPLE_FILE, SETTINGS_FILE
from treevault.models import FamilySettings
from treevault.validator import BackupValidator

from conftest import make_account, make_entries, make_person, make_relationship


@pytest.fixture
def validator():
    return BackupValidator()


def valid_entries(**kwargs):
    return make_entries(
        people=[make_person("p1"), make_person("p2", first_name="Byron")],
        relationships=[make_relationship()],
        accounts=[make_account()],
        settings=FamilySettings(id="f1", family_name="Lovelace"),
        audit_records=[],
        **kwargs
    )


class TestMetadataCheck:

    def test_valid_archive(self, validator):
        result = validator.validate(valid_entries())

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.metadata["version"] == "1.0.0"

    def test_missing_metadata_short_circuits(self, validator):
        entries = valid_entries()
        del entries[METADATA_FILE]
        entries[PEOPLE_FILE] = [{"id": "broken"}]

        result = validator.validate(entries)

        assert not result.is_valid
        assert result.errors == ["Missing metadata.json file"]
        assert result.metadata is None

    def test_metadata_not_an_object(self, validator):
        entries = valid_entries()
        entries[METADATA_FILE] = ["nope"]

        assert validator.validate(entries).errors == ["Invalid metadata format in metadata.json"]

    def test_metadata_missing_fields(self, validator):
        entries = valid_entries()
        del entries[METADATA_FILE]["statistics"]

        errors = validator.validate(entries).errors
        assert len(errors) == 1
        assert errors[0].startswith("Invalid metadata format:")
        assert "statistics" in errors[0]

    def test_unsupported_version(self, validator):
        entries = valid_entries()
        entries[METADATA_FILE]["version"] = "2.0.0"

        result = validator.validate(entries)
        assert result.errors == ["Unsupported backup version: 2.0.0. Supported versions: 1.0.0"]

    def test_missing_declared_file(self, validator):
        entries = valid_entries()
        del entries["data/suggestions.json"]

        assert validator.validate(entries).errors == ["Missing required data file: data/suggestions.json"]

    def test_declared_photo_directory_without_files(self, validator):
        entries = valid_entries(photo_directories=["photos/p1/"])

        assert validator.validate(entries).errors == ["Declared photo directory has no files: photos/p1/"]


class TestRecordCheck:

    def test_every_broken_record_is_reported(self, validator):
        entries = valid_entries()
        entries[PEOPLE_FILE].append({"id": "p3", "first_name": "No last name"})
        entries[PEOPLE_FILE].append({"id": "p4", "last_name": "No first name"})
        entries["data/relationships.json"][0]["type"] = "COUSIN"

        result = validator.validate(entries)

        assert not result.is_valid
        assert len(result.errors) == 3
        assert result.errors[0].startswith("data/people.json[2]:")
        assert "last_name" in result.errors[0]
        assert result.errors[1].startswith("data/people.json[3]:")
        assert result.errors[2].startswith("data/relationships.json[0]:")

    def test_section_must_be_an_array(self, validator):
        entries = valid_entries()
        entries[PEOPLE_FILE] = {"id": "p1"}

        assert validator.validate(entries).errors == ["data/people.json must be an array"]

    def test_settings_must_be_an_object(self, validator):
        entries = valid_entries()
        entries[SETTINGS_FILE] = ["Lovelace"]

        assert validator.validate(entries).errors == ["Settings data must be an object"]

    def test_null_settings_allowed(self, validator):
        entries = valid_entries()
        entries[SETTINGS_FILE] = None

        assert validator.validate(entries).is_valid

    def test_unknown_fields_are_ignored(self, validator):
        entries = valid_entries()
        entries[PEOPLE_FILE][0]["favourite_colour"] = "green"

        assert validator.validate(entries).is_valid

    def test_timestamp_birth_dates_accepted(self, validator):
        entries = valid_entries()
        entries[PEOPLE_FILE][0]["date_of_birth"] = "1815-12-10T00:00:00.000Z"

        assert validator.validate(entries).is_valid

    def test_photo_count_mismatch_is_a_warning(self, validator):
        photos = {"photos/p1/a.jpg": b"a", "photos/p2/b.jpg": b"b"}
        entries = valid_entries(photos=photos)
        entries[METADATA_FILE]["statistics"]["total_photos"] = 3

        result = validator.validate(entries)

        assert result.is_valid
        assert result.warnings == ["Expected 3 photos but found 2 photo files"]

    def test_validator_never_raises_for_junk(self, validator):
        result = validator.validate({METADATA_FILE: "junk"})
        assert not result.is_valid
