"""
Backup Service - export, validation and import orchestration

Ties the gatherer, codec, validator, detector and resolver together and
adds what a whole operation needs around them: the admin gate, archive size
limits, a safety backup before importing, and an audit trail of imports.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any, Tuple, Union

from .archive import ArchiveCodec, ArchiveError, ZipArchiveCodec
from .backups import BackupManager
from .detector import ConflictDetector
from .gatherer import SnapshotGatherer
from .models import (
    AuditRecord,
    EntityType,
    ImportResult,
    Operator,
    ValidationResult,
    format_datetime,
    parse_datetime,
    utcnow,
)
from .resolver import ConflictResolver
from .schemas import ExportOptions, ImportOptions
from .storage.photos import PhotoStore
from .storage.store import RecordStore, StoreError
from .validator import BackupValidator

logger = logging.getLogger(__name__)


IMPORT_AUDIT_TYPE = "BACKUP_IMPORT"
IMPORT_FAILED_AUDIT_TYPE = "BACKUP_IMPORT_FAILED"
DEFAULT_MAX_ARCHIVE_MB = 100


@dataclass
class ExportResult:
    """A packed archive ready to hand to the caller."""
    archive: bytes
    metadata: Dict[str, Any]
    filename: str


@dataclass
class ImportHistoryEntry:
    """One past import run, read back from the audit trail."""
    id: str
    imported_at: Optional[datetime]
    imported_by: str
    success: bool
    strategy: Optional[str] = None
    statistics: Dict[str, Any] = field(default_factory=dict)
    backup_created: Optional[str] = None
    error_count: int = 0
    warning_count: int = 0
    failure: Optional[str] = None

    @classmethod
    def from_audit(cls, record: AuditRecord) -> "ImportHistoryEntry":
        details = record.new_data or {}
        return cls(
            id=record.id,
            imported_at=record.created_at,
            imported_by=record.user_id,
            success=record.entity_type == IMPORT_AUDIT_TYPE and details.get("success", True),
            strategy=details.get("strategy"),
            statistics=details.get("statistics") or {},
            backup_created=details.get("backup_created"),
            error_count=details.get("error_count", 0),
            warning_count=details.get("warning_count", 0),
            failure=details.get("failure"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "imported_at": format_datetime(self.imported_at),
            "imported_by": self.imported_by,
            "success": self.success,
            "strategy": self.strategy,
            "statistics": self.statistics,
            "backup_created": self.backup_created,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "failure": self.failure,
        }


def require_admin(operator: Operator) -> None:
    """
    Raises:
        PermissionError: If the operator is not an administrator
    """
    if operator is None or operator.role != "ADMIN":
        who = operator.email if operator else "anonymous"
        raise PermissionError(f"{who} is not allowed to export or import backups")


class BackupService:
    """
    Full export and import operations over one record store.

    Example:
        service = BackupService(store, LocalPhotoStore(photos_dir),
                                backup_manager=BackupManager(backups_dir))
        export = service.export_backup(ExportOptions(), operator)
        result = service.import_backup(export.archive, ImportOptions(strategy="merge"), operator)
    """

    def __init__(self,
                 store: RecordStore,
                 photo_store: Optional[PhotoStore] = None,
                 codec: Optional[ArchiveCodec] = None,
                 backup_manager: Optional[BackupManager] = None,
                 max_archive_mb: int = DEFAULT_MAX_ARCHIVE_MB):
        self.store = store
        self.photo_store = photo_store
        self.codec = codec or ZipArchiveCodec()
        self.backup_manager = backup_manager
        self.max_archive_mb = max_archive_mb

    # ==================== Export ====================

    def export_backup(self,
                      options: Union[ExportOptions, Dict[str, Any], None],
                      operator: Operator) -> ExportResult:
        """
        Gather the store and pack it into an archive.

        Raises:
            PermissionError: If the operator is not an administrator
            pydantic.ValidationError: If options are out of range
            StoreError: If a store read fails
            ArchiveError: If packing fails
        """
        require_admin(operator)
        snapshot = SnapshotGatherer(self.store, self.photo_store).gather(options, operator)
        archive = self.codec.pack(snapshot.entries())
        exported_at = parse_datetime(snapshot.metadata["exported_at"])
        filename = BackupManager.filename(exported_at, self.codec.extension)

        logger.info(f"Exported {filename} ({len(archive)} bytes) for {operator.email}")
        return ExportResult(archive=archive, metadata=snapshot.metadata, filename=filename)

    # ==================== Validation ====================

    def _inspect(self, archive: bytes) -> Tuple[ValidationResult, Optional[Dict[str, Any]]]:
        if not archive:
            return ValidationResult(is_valid=False, metadata=None, errors=["Backup file is empty"]), None

        if len(archive) > self.max_archive_mb * 1024 * 1024:
            return ValidationResult(
                is_valid=False, metadata=None,
                errors=[f"Backup file exceeds {self.max_archive_mb}MB limit"]
            ), None

        try:
            entries = self.codec.unpack(archive)
        except ArchiveError as e:
            return ValidationResult(
                is_valid=False, metadata=None, errors=[f"Failed to extract archive: {e}"]
            ), None

        validator = BackupValidator()
        metadata, errors = validator.check_metadata(entries)
        if errors:
            return ValidationResult(is_valid=False, metadata=metadata, errors=errors), entries

        errors, warnings = validator.check_records(entries, metadata)
        if errors:
            # Mistyped records cannot be looked up against the store
            return ValidationResult(
                is_valid=False, metadata=metadata, errors=errors, warnings=warnings
            ), entries

        detector = ConflictDetector(self.store)
        conflicts = detector.detect(entries)
        warnings.extend(detector.warnings)

        return ValidationResult(
            is_valid=True,
            metadata=metadata,
            conflicts=conflicts,
            errors=errors,
            warnings=warnings,
        ), entries

    def validate_backup(self, archive: bytes) -> ValidationResult:
        """
        Check an archive and report the conflicts importing it would hit.

        Never mutates the store and never raises for a bad archive.
        """
        result, _ = self._inspect(archive)
        logger.info(
            f"Validated archive: valid={result.is_valid}, conflicts={len(result.conflicts)}, "
            f"errors={len(result.errors)}, warnings={len(result.warnings)}"
        )
        return result

    # ==================== Import ====================

    def _pre_import_backup(self, operator: Operator) -> Optional[str]:
        if self.backup_manager is None:
            logger.warning("Pre-import backup requested but no backup manager is configured")
            return None
        export = self.export_backup(ExportOptions(), operator)
        info = self.backup_manager.save(
            export.archive,
            extension=self.codec.extension,
            reason="pre-import",
            metadata=export.metadata,
        )
        return str(info.path)

    def _record_audit(self, operator: Operator, entity_type: str, details: Dict[str, Any]) -> Optional[str]:
        record = AuditRecord(
            id=str(uuid.uuid4()),
            user_id=operator.id,
            action="CREATE",
            entity_type=entity_type,
            new_data=details,
            created_at=utcnow(),
        )
        try:
            self.store.create(EntityType.AUDIT_LOG, record)
        except StoreError as e:
            logger.warning(f"Could not record {entity_type} audit entry: {e}")
            return f"Could not record import audit entry: {e}"
        return None

    def import_backup(self,
                      archive: bytes,
                      options: Union[ImportOptions, Dict[str, Any], None],
                      operator: Operator) -> ImportResult:
        """
        Validate an archive, then commit it under the chosen strategy.

        Raises:
            PermissionError: If the operator is not an administrator
            ValueError: If the archive fails validation (nothing is written)
        """
        require_admin(operator)
        if not isinstance(options, ImportOptions):
            options = ImportOptions.model_validate(options or {})

        validation, entries = self._inspect(archive)
        if not validation.is_valid:
            raise ValueError("Backup validation failed: " + "; ".join(validation.errors))

        backup_created = None
        if options.create_backup_before_import:
            backup_created = self._pre_import_backup(operator)

        resolver = ConflictResolver(
            self.store,
            options.strategy,
            photo_store=self.photo_store,
            import_audit_logs=options.import_audit_logs,
            import_photos=options.import_photos,
        )
        try:
            resolution = resolver.import_data(entries, validation.conflicts)
        except Exception as e:
            logger.error(f"Import by {operator.email} failed: {e}", exc_info=True)
            self._record_audit(operator, IMPORT_FAILED_AUDIT_TYPE, {
                "strategy": options.strategy.value,
                "backup_created": backup_created,
                "failure": str(e),
            })
            raise

        warnings = list(validation.warnings) + resolution.warnings
        success = not resolution.errors
        audit_warning = self._record_audit(operator, IMPORT_AUDIT_TYPE, {
            "success": success,
            "strategy": options.strategy.value,
            "statistics": resolution.statistics.to_dict(),
            "backup_created": backup_created,
            "error_count": len(resolution.errors),
            "warning_count": len(warnings),
            "archive_exported_at": validation.metadata.get("exported_at"),
        })
        if audit_warning:
            warnings.append(audit_warning)

        logger.info(
            f"Import by {operator.email} finished: success={success}, "
            f"{resolution.statistics.to_dict()}"
        )
        return ImportResult(
            success=success,
            imported_at=utcnow(),
            imported_by=operator.identity(),
            strategy=options.strategy,
            statistics=resolution.statistics,
            errors=resolution.errors,
            warnings=warnings,
            backup_created=backup_created,
        )

    # ==================== History ====================

    def get_import_history(self, limit: int = 50) -> List[ImportHistoryEntry]:
        """Past import runs, newest first."""
        records = self.store.find_audit_by_entity_types(
            [IMPORT_AUDIT_TYPE, IMPORT_FAILED_AUDIT_TYPE], limit=limit
        )
        return [ImportHistoryEntry.from_audit(record) for record in records]
