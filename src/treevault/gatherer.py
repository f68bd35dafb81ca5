"""
Snapshot Gatherer - reads the live store into an export bundle

All category reads for one export are issued concurrently and joined before
the bundle is assembled. The resulting metadata is computed from what was
actually gathered, so its statistics always match the section sizes.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import PurePosixPath
from typing import List, Optional, Dict, Any, Union

from .archive import (
    METADATA_FILE,
    PEOPLE_FILE,
    RELATIONSHIPS_FILE,
    USERS_FILE,
    SUGGESTIONS_FILE,
    SETTINGS_FILE,
    AUDIT_LOGS_FILE,
    PHOTOS_PREFIX,
    photo_path,
)
from .models import (
    BACKUP_VERSION,
    EntityType,
    Operator,
    Person,
    Relationship,
    Account,
    Suggestion,
    FamilySettings,
    AuditRecord,
    utcnow,
)
from .schemas import ExportOptions, BackupMetadata
from .storage.photos import PhotoStore, PhotoStoreError
from .storage.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Everything one export run gathered, plus its metadata."""
    metadata: Dict[str, Any]
    people: List[Person] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    accounts: List[Account] = field(default_factory=list)
    suggestions: List[Suggestion] = field(default_factory=list)
    settings: Optional[FamilySettings] = None
    audit_records: Optional[List[AuditRecord]] = None
    photos: Dict[str, bytes] = field(default_factory=dict)

    def entries(self) -> Dict[str, Any]:
        """Build the archive entry map for this snapshot."""
        entries: Dict[str, Any] = {
            METADATA_FILE: self.metadata,
            PEOPLE_FILE: [p.to_dict() for p in self.people],
            RELATIONSHIPS_FILE: [r.to_dict() for r in self.relationships],
            USERS_FILE: [a.to_dict() for a in self.accounts],
            SUGGESTIONS_FILE: [s.to_dict() for s in self.suggestions],
            SETTINGS_FILE: self.settings.to_dict() if self.settings else None,
        }
        if self.audit_records is not None:
            entries[AUDIT_LOGS_FILE] = [a.to_dict() for a in self.audit_records]
        entries.update(self.photos)
        return entries


class SnapshotGatherer:
    """
    Collects a best-effort consistent snapshot of the record store.

    Example:
        gatherer = SnapshotGatherer(store, photo_store)
        snapshot = gatherer.gather(ExportOptions(audit_log_days=30), operator)
        archive = codec.pack(snapshot.entries())
    """

    MAX_WORKERS = 7

    def __init__(self, store: RecordStore, photo_store: Optional[PhotoStore] = None):
        self.store = store
        self.photo_store = photo_store

    def gather(self,
               options: Union[ExportOptions, Dict[str, Any], None],
               operator: Operator,
               now: Optional[datetime] = None) -> Snapshot:
        """
        Read every exported category and compute matching metadata.

        Args:
            options: Export options (validated before any store access)
            operator: Account performing the export
            now: Export instant (default: current UTC time)

        Returns:
            Snapshot with records, photo assets and metadata

        Raises:
            pydantic.ValidationError: If options are out of range
            StoreError: If a store read fails
        """
        if not isinstance(options, ExportOptions):
            options = ExportOptions.model_validate(options or {})

        started_at = now or utcnow()
        cutoff = started_at - timedelta(days=options.audit_log_days)

        logger.info(
            f"Gathering snapshot (photos={options.include_photos}, "
            f"audit_logs={options.include_audit_logs}, days={options.audit_log_days})"
        )

        with ThreadPoolExecutor(max_workers=self.MAX_WORKERS, thread_name_prefix="gather") as executor:
            people_f = executor.submit(self.store.list_all, EntityType.PERSON)
            relationships_f = executor.submit(self.store.list_all, EntityType.RELATIONSHIP)
            accounts_f = executor.submit(self.store.list_all, EntityType.ACCOUNT)
            suggestions_f = executor.submit(self.store.list_all, EntityType.SUGGESTION)
            settings_f = executor.submit(self.store.find_settings)
            audit_f = (
                executor.submit(self.store.list_audit_since, cutoff)
                if options.include_audit_logs else None
            )
            photo_people_f = (
                executor.submit(self.store.list_people_with_photos)
                if options.include_photos else None
            )

            snapshot = Snapshot(
                metadata={},
                people=people_f.result(),
                relationships=relationships_f.result(),
                accounts=accounts_f.result(),
                suggestions=suggestions_f.result(),
                settings=settings_f.result(),
                audit_records=audit_f.result() if audit_f else None,
            )
            photo_people = photo_people_f.result() if photo_people_f else []

        snapshot.photos = self._collect_photos(photo_people)
        snapshot.metadata = self._build_metadata(snapshot, options, operator, started_at)

        logger.info(
            f"Gathered {len(snapshot.people)} people, {len(snapshot.relationships)} relationships, "
            f"{len(snapshot.accounts)} accounts, {len(snapshot.photos)} photos"
        )
        return snapshot

    def _collect_photos(self, people: List[Person]) -> Dict[str, bytes]:
        photos: Dict[str, bytes] = {}
        if not people:
            return photos
        if self.photo_store is None:
            logger.warning("Photos requested but no photo store is configured")
            return photos

        for person in people:
            filename = PurePosixPath(person.photo_url).name
            try:
                photos[photo_path(person.id, filename)] = self.photo_store.read(person.photo_url)
            except (FileNotFoundError, PhotoStoreError) as e:
                logger.warning(f"Skipping photo for {person.display_name}: {e}")
        return photos

    def _build_metadata(self,
                        snapshot: Snapshot,
                        options: ExportOptions,
                        operator: Operator,
                        exported_at: datetime) -> Dict[str, Any]:
        data_files = [PEOPLE_FILE, RELATIONSHIPS_FILE, USERS_FILE, SUGGESTIONS_FILE, SETTINGS_FILE]
        if snapshot.audit_records is not None:
            data_files.append(AUDIT_LOGS_FILE)

        photo_directories = sorted({
            PHOTOS_PREFIX + path[len(PHOTOS_PREFIX):].split("/", 1)[0] + "/"
            for path in snapshot.photos
        })

        metadata = BackupMetadata(
            version=BACKUP_VERSION,
            exported_at=exported_at,
            exported_by=operator.identity(),
            statistics={
                "total_people": len(snapshot.people),
                "total_relationships": len(snapshot.relationships),
                "total_users": len(snapshot.accounts),
                "total_suggestions": len(snapshot.suggestions),
                "total_photos": len(snapshot.photos),
                "audit_log_days": options.audit_log_days,
                "total_audit_logs": len(snapshot.audit_records or []),
            },
            data_files=data_files,
            photo_directories=photo_directories,
        )
        return metadata.model_dump(mode="json")
