"""Pytest fixtures for TreeVault tests"""
import io
import struct
import zipfile
from datetime import date, datetime, timezone

import pytest

from treevault.archive import (
    METADATA_FILE,
    PEOPLE_FILE,
    RELATIONSHIPS_FILE,
    USERS_FILE,
    SUGGESTIONS_FILE,
    SETTINGS_FILE,
    AUDIT_LOGS_FILE,
)
from treevault.models import (
    Account,
    AuditRecord,
    FamilySettings,
    Operator,
    Person,
    Relationship,
    Suggestion,
    EntityType,
    utcnow,
)
from treevault.storage import LocalPhotoStore, SQLiteRecordStore


CREATED = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_person(id="p1", first_name="Ada", last_name="Lovelace", **kwargs) -> Person:
    kwargs.setdefault("created_at", CREATED)
    kwargs.setdefault("updated_at", CREATED)
    return Person(id=id, first_name=first_name, last_name=last_name, **kwargs)


def make_account(id="u1", email="ada@example.com", role="ADMIN", **kwargs) -> Account:
    kwargs.setdefault("created_at", CREATED)
    kwargs.setdefault("updated_at", CREATED)
    return Account(id=id, email=email, role=role, **kwargs)


def make_relationship(id="r1", person_id="p1", related_person_id="p2", type="PARENT", **kwargs) -> Relationship:
    kwargs.setdefault("created_at", CREATED)
    kwargs.setdefault("updated_at", CREATED)
    return Relationship(id=id, person_id=person_id, related_person_id=related_person_id, type=type, **kwargs)


def make_suggestion(id="s1", submitted_by_id="u1", **kwargs) -> Suggestion:
    kwargs.setdefault("type", "UPDATE")
    kwargs.setdefault("submitted_at", CREATED)
    return Suggestion(id=id, submitted_by_id=submitted_by_id, **kwargs)


def make_audit(id="a1", user_id="u1", **kwargs) -> AuditRecord:
    kwargs.setdefault("action", "UPDATE")
    kwargs.setdefault("entity_type", "PERSON")
    kwargs.setdefault("created_at", utcnow())
    return AuditRecord(id=id, user_id=user_id, **kwargs)


def make_metadata(**overrides) -> dict:
    metadata = {
        "version": "1.0.0",
        "exported_at": "2024-01-02T00:00:00+00:00",
        "exported_by": {"id": "u1", "email": "ada@example.com", "name": "Ada"},
        "statistics": {
            "total_people": 0,
            "total_relationships": 0,
            "total_users": 0,
            "total_suggestions": 0,
            "total_photos": 0,
            "audit_log_days": 90,
            "total_audit_logs": 0,
        },
        "data_files": [],
        "photo_directories": [],
    }
    metadata.update(overrides)
    return metadata


def make_entries(people=(), relationships=(), accounts=(), suggestions=(),
                 settings=None, audit_records=None, photos=None, **metadata_overrides) -> dict:
    """Build an archive entry map from records."""
    entries = {
        PEOPLE_FILE: [p.to_dict() for p in people],
        RELATIONSHIPS_FILE: [r.to_dict() for r in relationships],
        USERS_FILE: [a.to_dict() for a in accounts],
        SUGGESTIONS_FILE: [s.to_dict() for s in suggestions],
        SETTINGS_FILE: settings.to_dict() if settings else None,
    }
    if audit_records is not None:
        entries[AUDIT_LOGS_FILE] = [a.to_dict() for a in audit_records]

    statistics = {
        "total_people": len(people),
        "total_relationships": len(relationships),
        "total_users": len(accounts),
        "total_suggestions": len(suggestions),
        "total_photos": len(photos or {}),
        "audit_log_days": 90,
        "total_audit_logs": len(audit_records or []),
    }
    metadata = make_metadata(statistics=statistics, data_files=sorted(entries))
    metadata.update(metadata_overrides)
    entries[METADATA_FILE] = metadata
    entries.update(photos or {})
    return entries


def damage_zip_entry(archive: bytes, name: str, count: int = 20) -> bytes:
    """Flip ``count`` bytes in the middle of an entry's compressed payload.

    The central directory stays intact, so the archive still opens and the
    damage only shows when the entry is decompressed.
    """
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        info = zf.getinfo(name)
    header = info.header_offset
    name_len, extra_len = struct.unpack("<HH", archive[header + 26:header + 30])
    start = header + 30 + name_len + extra_len + info.compress_size // 2 - count // 2
    assert info.compress_size > count * 2

    damaged = bytearray(archive)
    for i in range(start, start + count):
        damaged[i] ^= 0xFF
    return bytes(damaged)


@pytest.fixture
def store(tmp_path):
    """Empty record store backed by a temporary SQLite file."""
    record_store = SQLiteRecordStore(tmp_path / "treevault.sqlite")
    yield record_store
    record_store.close()


@pytest.fixture
def photo_store(tmp_path):
    return LocalPhotoStore(tmp_path / "photos")


@pytest.fixture
def admin():
    return Operator(id="u1", email="ada@example.com", name="Ada", role="ADMIN")


@pytest.fixture
def seeded_store(store, photo_store):
    """Store with two people, a mirrored PARENT/CHILD pair, an admin, a suggestion,
    settings, an audit record and one photo."""
    store.create(EntityType.PERSON, make_person(
        "p1", date_of_birth=date(1815, 12, 10), email="ada@example.com",
        photo_url=photo_store.save("p1", "portrait.jpg", b"\xff\xd8jpeg-bytes"),
        current_address={"city": "London"},
    ))
    store.create(EntityType.PERSON, make_person("p2", first_name="Byron", last_name="King", is_living=False))
    store.create(EntityType.ACCOUNT, make_account("u1", person_id="p1", name="Ada"))
    store.create(EntityType.RELATIONSHIP, make_relationship("r1", "p1", "p2", "PARENT"))
    store.create(EntityType.RELATIONSHIP, make_relationship("r2", "p2", "p1", "CHILD"))
    store.create(EntityType.SUGGESTION, make_suggestion(
        "s1", target_person_id="p2", suggested_data={"bio": "Poet"}, reason="Known fact"
    ))
    store.create(EntityType.SETTINGS, FamilySettings(family_name="Lovelace", created_at=CREATED, updated_at=CREATED))
    store.create(EntityType.AUDIT_LOG, make_audit("a1", entity_id="p1", new_data={"first_name": "Ada"}))
    return store
