"""
Conflict Detector - compares incoming records with the live store

Read-only. Every candidate record is checked; detection never stops at the
first hit, so the returned list is the complete conflict set for review and
for the resolver's lookups.

Rules:
    person        id match                      -> update, medium
                  email match                   -> create, high
                  first + last name + birth date -> create, low (advisory)
    account       id match                      -> update, high
                  email match                   -> create, high
    relationship  id match                      -> update, medium
                  (person, related, type) match -> create, medium
"""

import logging
from typing import List, Optional, Dict, Any

from .archive import section_records
from .models import (
    EntityType,
    Conflict,
    ConflictAction,
    Severity,
    parse_date,
)
from .storage.store import RecordStore, StoreError

logger = logging.getLogger(__name__)


def changed_fields(existing, new_data: Dict[str, Any]) -> List[str]:
    """
    Scalar fields of ``new_data`` whose value differs from ``existing``.

    Both sides are normalized through the record type first, so
    ``"1990-01-01T00:00:00Z"`` and ``date(1990, 1, 1)`` compare equal.
    """
    record_cls = type(existing)
    incoming = record_cls.from_dict({**existing.to_dict(), **new_data}).scalar_items()
    current = existing.scalar_items()
    return [
        name for name in record_cls.field_names()
        if name in new_data and name != "id" and name in incoming
        and incoming[name] != current.get(name)
    ]


class ConflictDetector:
    """
    Finds collisions between an archive and the record store.

    Example:
        conflicts = ConflictDetector(store).detect(entries)
        summary = ConflictSummary.from_conflicts(conflicts)
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self.warnings: List[str] = []

    def detect(self, entries: Dict[str, Any]) -> List[Conflict]:
        """
        Run every rule over the person, account and relationship sections.

        Returns:
            All conflicts, in section order
        """
        self.warnings = []
        conflicts: List[Conflict] = []

        for record in section_records(entries, EntityType.PERSON):
            conflicts.extend(self._guard(EntityType.PERSON, record, self.detect_person))
        for record in section_records(entries, EntityType.ACCOUNT):
            conflicts.extend(self._guard(EntityType.ACCOUNT, record, self.detect_account))
        for record in section_records(entries, EntityType.RELATIONSHIP):
            conflicts.extend(self._guard(EntityType.RELATIONSHIP, record, self.detect_relationship))

        logger.info(f"Detected {len(conflicts)} conflict(s)")
        return conflicts

    def _guard(self, kind: EntityType, record: Dict[str, Any], rule) -> List[Conflict]:
        try:
            return rule(record)
        except (ValueError, TypeError, StoreError) as e:
            message = f"Could not check {kind.value} {record.get('id', 'unknown')} for conflicts: {e}"
            logger.warning(message)
            self.warnings.append(message)
            return []

    def _conflict(self,
                  kind: EntityType,
                  action: ConflictAction,
                  new_data: Dict[str, Any],
                  existing,
                  fields: List[str],
                  severity: Severity,
                  description: str) -> Conflict:
        return Conflict(
            type=kind,
            action=action,
            new_data=new_data,
            conflict_fields=fields,
            severity=severity,
            description=description,
            existing_id=existing.id,
            existing_data=existing.to_dict(),
        )

    def _identity_conflict(self, kind: EntityType, new_data: Dict[str, Any],
                           severity: Severity, label: str) -> Optional[Conflict]:
        existing = self.store.find_by_id(kind, new_data.get("id"))
        if existing is None:
            return None
        return self._conflict(
            kind, ConflictAction.UPDATE, new_data, existing,
            changed_fields(existing, new_data), severity,
            f"{label} already exists"
        )

    # ==================== Rules ====================

    def detect_person(self, new_data: Dict[str, Any]) -> List[Conflict]:
        label = f"Person {new_data.get('first_name')} {new_data.get('last_name')}"
        by_id = self._identity_conflict(EntityType.PERSON, new_data, Severity.MEDIUM, label)
        if by_id:
            return [by_id]

        conflicts = []
        email = new_data.get("email")
        if email:
            existing = self.store.find_by_natural_key(EntityType.PERSON, {"email": email})
            if existing:
                conflicts.append(self._conflict(
                    EntityType.PERSON, ConflictAction.CREATE, new_data, existing,
                    ["email"], Severity.HIGH,
                    f"Person with email {email} already exists"
                ))

        birth_date = parse_date(new_data.get("date_of_birth"))
        if birth_date and new_data.get("first_name") and new_data.get("last_name"):
            existing = self.store.find_by_natural_key(EntityType.PERSON, {
                "first_name": new_data["first_name"],
                "last_name": new_data["last_name"],
                "date_of_birth": birth_date,
            })
            if existing:
                conflicts.append(self._conflict(
                    EntityType.PERSON, ConflictAction.CREATE, new_data, existing,
                    ["first_name", "last_name", "date_of_birth"], Severity.LOW,
                    f"{label} born {birth_date.isoformat()} may be a duplicate of {existing.id}"
                ))
        return conflicts

    def detect_account(self, new_data: Dict[str, Any]) -> List[Conflict]:
        label = f"User {new_data.get('email')}"
        by_id = self._identity_conflict(EntityType.ACCOUNT, new_data, Severity.HIGH, label)
        if by_id:
            return [by_id]

        email = new_data.get("email")
        if not email:
            return []
        existing = self.store.find_by_natural_key(EntityType.ACCOUNT, {"email": email})
        if existing is None:
            return []
        return [self._conflict(
            EntityType.ACCOUNT, ConflictAction.CREATE, new_data, existing,
            ["email"], Severity.HIGH,
            f"User with email {email} already exists"
        )]

    def detect_relationship(self, new_data: Dict[str, Any]) -> List[Conflict]:
        label = f"Relationship {new_data.get('id')}"
        by_id = self._identity_conflict(EntityType.RELATIONSHIP, new_data, Severity.MEDIUM, label)
        if by_id:
            return [by_id]

        existing = self.store.find_by_natural_key(EntityType.RELATIONSHIP, {
            "person_id": new_data.get("person_id"),
            "related_person_id": new_data.get("related_person_id"),
            "type": new_data.get("type"),
        })
        if existing is None:
            return []
        return [self._conflict(
            EntityType.RELATIONSHIP, ConflictAction.CREATE, new_data, existing,
            ["person_id", "related_person_id", "type"], Severity.MEDIUM,
            f"{new_data.get('type')} relationship from {new_data.get('person_id')} "
            f"to {new_data.get('related_person_id')} already exists"
        )]
