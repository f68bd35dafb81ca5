"""
Conflict Resolver - commits an archive into the record store

Phases run strictly in dependency order:

    settings -> people -> accounts -> relationships -> suggestions
             -> audit records -> photos

Each record is written on its own. A failed write is recorded in the error
list and the run moves on, so one bad record never blocks the rest of the
import. The run always returns a ResolutionResult; it does not raise.
"""

import logging
from collections import defaultdict
from pathlib import PurePosixPath
from typing import List, Optional, Dict, Any, Tuple

from .archive import SETTINGS_FILE, PHOTOS_PREFIX, photo_entries, section_records
from .merge import MERGE_FUNCTIONS, replace_fields
from .models import (
    EntityType,
    RECORD_TYPES,
    Conflict,
    ConflictResolutionStrategy,
    FamilySettings,
    ImportStatistics,
    ResolutionResult,
    Severity,
)
from .storage.photos import PhotoStore
from .storage.store import RecordStore

logger = logging.getLogger(__name__)


IMPORTED_COUNTERS = {
    EntityType.PERSON: "people_imported",
    EntityType.ACCOUNT: "accounts_imported",
    EntityType.RELATIONSHIP: "relationships_imported",
    EntityType.SUGGESTION: "suggestions_imported",
    EntityType.SETTINGS: "settings_imported",
    EntityType.AUDIT_LOG: "audit_logs_imported",
}


def describe(kind: EntityType, data: Dict[str, Any]) -> str:
    """Human-readable label for a record in warnings and errors."""
    if kind == EntityType.PERSON:
        return f"person {data.get('first_name')} {data.get('last_name')}"
    if kind == EntityType.ACCOUNT:
        return f"user {data.get('email')}"
    if kind == EntityType.AUDIT_LOG:
        return f"audit log {data.get('id')}"
    return f"{kind.value} {data.get('id')}"


def build_conflict_lookup(conflicts: List[Conflict]) -> Dict[Tuple[EntityType, str], List[Conflict]]:
    """Index conflicts by (entity type, incoming identity)."""
    lookup: Dict[Tuple[EntityType, str], List[Conflict]] = defaultdict(list)
    for conflict in conflicts:
        lookup[(conflict.type, conflict.incoming_id)].append(conflict)
    return dict(lookup)


class ConflictResolver:
    """
    Imports archive records under one resolution strategy.

    Example:
        resolver = ConflictResolver(store, ConflictResolutionStrategy.MERGE, photo_store)
        result = resolver.import_data(entries, conflicts)
        for error in result.errors:
            print(error)
    """

    def __init__(self,
                 store: RecordStore,
                 strategy: ConflictResolutionStrategy = ConflictResolutionStrategy.SKIP,
                 photo_store: Optional[PhotoStore] = None,
                 import_audit_logs: bool = True,
                 import_photos: bool = True):
        self.store = store
        self.strategy = ConflictResolutionStrategy(strategy)
        self.photo_store = photo_store
        self.import_audit_logs = import_audit_logs
        self.import_photos = import_photos

        self.statistics = ImportStatistics()
        self.errors: List[str] = []
        self.warnings: List[str] = []
        # incoming person id -> id of the stored row it landed in
        self._person_ids: Dict[str, str] = {}

    def import_data(self, entries: Dict[str, Any], conflicts: List[Conflict]) -> ResolutionResult:
        """
        Commit every section of an archive.

        Args:
            entries: Unpacked, validated archive entry map
            conflicts: Output of the conflict detector for the same entries

        Returns:
            Statistics with accumulated errors and warnings
        """
        self.statistics = ImportStatistics()
        self.errors = []
        self.warnings = []
        self._person_ids = {}

        lookup = build_conflict_lookup(conflicts)
        logger.info(f"Importing archive with strategy={self.strategy.value}, {len(conflicts)} conflict(s)")

        try:
            self.import_settings(entries.get(SETTINGS_FILE))
            for kind in (EntityType.PERSON, EntityType.ACCOUNT, EntityType.RELATIONSHIP):
                self.import_section(kind, section_records(entries, kind), lookup)
            self.import_dependent(EntityType.SUGGESTION, section_records(entries, EntityType.SUGGESTION))
            if self.import_audit_logs:
                self.import_dependent(EntityType.AUDIT_LOG, section_records(entries, EntityType.AUDIT_LOG))
            else:
                logger.info("Audit log import disabled")
            if self.import_photos:
                self.import_photo_assets(entries)
        except Exception as e:
            logger.error(f"Import aborted: {e}", exc_info=True)
            self.errors.append(f"Import failed: {e}")

        logger.info(
            f"Import finished: {self.statistics.to_dict()}, "
            f"{len(self.errors)} error(s), {len(self.warnings)} warning(s)"
        )
        return ResolutionResult(
            statistics=self.statistics,
            errors=list(self.errors),
            warnings=list(self.warnings),
        )

    # ==================== Helpers ====================

    def _count_import(self, kind: EntityType, resolved: bool = False) -> None:
        counter = IMPORTED_COUNTERS[kind]
        setattr(self.statistics, counter, getattr(self.statistics, counter) + 1)
        if resolved:
            self.statistics.conflicts_resolved += 1

    def _skip(self, message: str) -> None:
        self.warnings.append(message)
        self.statistics.skipped_items += 1

    def _fail(self, label: str, error: Exception) -> None:
        logger.error(f"Failed to import {label}: {error}", exc_info=True)
        self.errors.append(f"Failed to import {label}: {error}")

    def _create(self, kind: EntityType, data: Dict[str, Any]):
        record = RECORD_TYPES[kind].from_dict(data)
        self.store.create(kind, record)
        self._count_import(kind)
        return record

    def _overwrite(self, kind: EntityType, existing, data: Dict[str, Any]):
        """Apply replace or merge onto an existing record."""
        if self.strategy == ConflictResolutionStrategy.REPLACE:
            record = replace_fields(kind, existing, data)
        else:
            record = MERGE_FUNCTIONS[kind](existing, data)
        self.store.update(kind, existing.id, record)
        self._count_import(kind, resolved=True)
        return record

    def _track_person(self, data: Dict[str, Any], stored_id: str) -> None:
        if data.get("id"):
            self._person_ids[data["id"]] = stored_id

    # ==================== Phases ====================

    def import_settings(self, data: Any) -> None:
        """Create the settings row, or apply the strategy to the existing one."""
        if not isinstance(data, dict):
            return
        try:
            existing = self.store.find_settings()
            if existing is None:
                self.store.create(EntityType.SETTINGS, FamilySettings.from_dict(data))
                self._count_import(EntityType.SETTINGS)
            elif self.strategy == ConflictResolutionStrategy.SKIP:
                self._skip("Skipped family settings (already exists)")
            else:
                self._overwrite(EntityType.SETTINGS, existing, data)
        except Exception as e:
            self._fail("settings", e)

    def import_section(self,
                       kind: EntityType,
                       records: List[Dict[str, Any]],
                       lookup: Dict[Tuple[EntityType, str], List[Conflict]]) -> None:
        """Import people, accounts or relationships against detected conflicts."""
        for data in records:
            label = describe(kind, data)
            try:
                self._import_one(kind, data, label, lookup.get((kind, data.get("id")), []))
            except Exception as e:
                self._fail(label, e)

    def _import_one(self, kind: EntityType, data: Dict[str, Any], label: str,
                    conflicts: List[Conflict]) -> None:
        for advisory in (c for c in conflicts if c.severity == Severity.LOW):
            self.warnings.append(f"Possible duplicate {label}: {advisory.description}")

        blocking = [c for c in conflicts if c.severity != Severity.LOW]
        if not blocking:
            record = self._create(kind, data)
            if kind == EntityType.PERSON:
                self._track_person(data, record.id)
            return

        high = any(c.severity == Severity.HIGH for c in blocking)
        if self.strategy == ConflictResolutionStrategy.SKIP or (
            kind == EntityType.PERSON and high and self.strategy == ConflictResolutionStrategy.MERGE
        ):
            self._skip(f"Skipped {label} due to conflicts")
            return

        existing = self._collision_target(kind, data, blocking)
        if existing is None:
            # colliding row no longer exists
            record = self._create(kind, data)
        else:
            record = self._overwrite(kind, existing, data)

        if kind == EntityType.PERSON:
            self._track_person(data, record.id)

    def _collision_target(self, kind: EntityType, data: Dict[str, Any], conflicts: List[Conflict]):
        """Stored record a replace or merge applies to: same identity first, then natural key."""
        if data.get("id"):
            existing = self.store.find_by_id(kind, data["id"])
            if existing is not None:
                return existing
        for conflict in conflicts:
            if conflict.existing_id:
                existing = self.store.find_by_id(kind, conflict.existing_id)
                if existing is not None:
                    return existing
        return None

    def _missing_reference(self, kind: EntityType, data: Dict[str, Any]) -> Optional[str]:
        if kind == EntityType.SUGGESTION:
            if self.store.find_by_id(EntityType.ACCOUNT, data.get("submitted_by_id")) is None:
                return "submitter not found"
            target = data.get("target_person_id")
            if target and self.store.find_by_id(EntityType.PERSON, target) is None:
                return "target person not found"
        elif kind == EntityType.AUDIT_LOG:
            if self.store.find_by_id(EntityType.ACCOUNT, data.get("user_id")) is None:
                return "user not found"
        return None

    def import_dependent(self, kind: EntityType, records: List[Dict[str, Any]]) -> None:
        """
        Import suggestions or audit records.

        These depend on rows from earlier phases, so every record is first
        checked against the store; a dangling reference always skips.
        """
        for data in records:
            label = describe(kind, data)
            try:
                missing = self._missing_reference(kind, data)
                if missing:
                    self._skip(f"Skipped {label} - {missing}")
                    continue

                existing = self.store.find_by_id(kind, data.get("id"))
                if existing is None:
                    self._create(kind, data)
                elif self.strategy == ConflictResolutionStrategy.SKIP:
                    self._skip(f"Skipped {label} (already exists)")
                else:
                    self._overwrite(kind, existing, data)
            except Exception as e:
                self._fail(label, e)

    def import_photo_assets(self, entries: Dict[str, Any]) -> None:
        """Copy photos/<person_id>/<filename> assets for people written in this run."""
        paths = photo_entries(entries)
        if not paths:
            return
        if self.photo_store is None:
            self.warnings.append(f"Skipped {len(paths)} photo(s) - no photo store configured")
            return

        for path in paths:
            parts = PurePosixPath(path[len(PHOTOS_PREFIX):]).parts
            if len(parts) != 2:
                self.warnings.append(f"Skipped photo {path} - unexpected path layout")
                continue

            incoming_id, filename = parts
            stored_id = self._person_ids.get(incoming_id)
            if stored_id is None:
                self.warnings.append(f"Skipped photo {path} - person not imported")
                continue

            try:
                person = self.store.find_by_id(EntityType.PERSON, stored_id)
                if person is None:
                    self.warnings.append(f"Skipped photo {path} - person not found")
                    continue
                content = entries[path]
                if not isinstance(content, (bytes, bytearray)):
                    self.warnings.append(f"Skipped photo {path} - not a binary asset")
                    continue
                person.photo_url = self.photo_store.save(stored_id, filename, bytes(content))
                self.store.update(EntityType.PERSON, stored_id, person)
                self.statistics.photos_imported += 1
            except Exception as e:
                logger.warning(f"Failed to import photo {path}: {e}", exc_info=True)
                self.warnings.append(f"Failed to import photo {path}: {e}")
