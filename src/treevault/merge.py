"""
Field-level merge and replace functions used by the resolver.

All functions are pure: they take the stored record and the incoming
archive dictionary and return a new record, leaving both inputs untouched.
A merge copies an incoming value only when it is not blank (None, empty
string or empty container); ``False`` and ``0`` are real values and win.
"""

from typing import Any, Callable, Dict, Iterable

from .models import (
    EntityType,
    RECORD_TYPES,
    Person,
    Account,
    Relationship,
    Suggestion,
    FamilySettings,
    AuditRecord,
)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict, tuple)):
        return len(value) == 0
    return False


def merge_fields(existing, incoming: Dict[str, Any], protected: Iterable[str] = ("id",)):
    """
    Overlay the non-blank incoming fields onto a copy of ``existing``.

    Args:
        existing: Stored record (left unmodified)
        incoming: Archive dictionary for the same entity kind
        protected: Field names never taken from ``incoming``

    Returns:
        A new record of the same type
    """
    record_cls = type(existing)
    skip = set(protected)
    data = existing.to_dict()
    for name in record_cls.field_names():
        if name in skip or name not in incoming:
            continue
        if not is_blank(incoming[name]):
            data[name] = incoming[name]
    return record_cls.from_dict(data)


def merge_person(existing: Person, incoming: Dict[str, Any]) -> Person:
    return merge_fields(existing, incoming, protected=("id", "created_at"))


def merge_account(existing: Account, incoming: Dict[str, Any]) -> Account:
    # email is the login identity of the stored account
    return merge_fields(existing, incoming, protected=("id", "email", "created_at"))


def merge_relationship(existing: Relationship, incoming: Dict[str, Any]) -> Relationship:
    return merge_fields(
        existing, incoming,
        protected=("id", "person_id", "related_person_id", "created_at")
    )


def merge_suggestion(existing: Suggestion, incoming: Dict[str, Any]) -> Suggestion:
    return merge_fields(existing, incoming, protected=("id", "submitted_by_id", "submitted_at"))


def merge_settings(existing: FamilySettings, incoming: Dict[str, Any]) -> FamilySettings:
    return merge_fields(existing, incoming, protected=("id", "created_at"))


def merge_audit_record(existing: AuditRecord, incoming: Dict[str, Any]) -> AuditRecord:
    return merge_fields(existing, incoming, protected=("id", "user_id", "created_at"))


MERGE_FUNCTIONS: Dict[EntityType, Callable] = {
    EntityType.PERSON: merge_person,
    EntityType.ACCOUNT: merge_account,
    EntityType.RELATIONSHIP: merge_relationship,
    EntityType.SUGGESTION: merge_suggestion,
    EntityType.SETTINGS: merge_settings,
    EntityType.AUDIT_LOG: merge_audit_record,
}


def replace_fields(kind: EntityType, existing, incoming: Dict[str, Any]):
    """
    Build the record that wholesale replaces ``existing``.

    The stored identity is kept; every other field comes from ``incoming``.
    Timestamps the archive leaves out fall back to the stored values.
    """
    record = RECORD_TYPES[EntityType(kind)].from_dict(incoming)
    record.id = existing.id
    for name in type(record).DATETIME_FIELDS:
        if name in ("created_at", "updated_at", "submitted_at") and getattr(record, name) is None:
            setattr(record, name, getattr(existing, name))
    return record
