"""
TreeVault - backup and restore for family-tree data

Export a complete snapshot of a family tree (people, relationships,
accounts, suggestions, settings, audit history and photos) into a portable
archive, and restore it into a store that may already hold data.
"""

__version__ = "0.1.0"

from .models import (
    BACKUP_VERSION,
    EntityType,
    Severity,
    ConflictAction,
    ConflictResolutionStrategy,
    Person,
    Relationship,
    Account,
    Suggestion,
    FamilySettings,
    AuditRecord,
    Operator,
    Conflict,
    ImportStatistics,
    ValidationResult,
    ResolutionResult,
    ImportResult,
)
from .schemas import ExportOptions, ImportOptions
from .archive import ArchiveCodec, ZipArchiveCodec, TarArchiveCodec, ArchiveError, codec_for
from .storage import RecordStore, SQLiteRecordStore, StoreError, PhotoStore, LocalPhotoStore
from .gatherer import SnapshotGatherer, Snapshot
from .validator import BackupValidator
from .detector import ConflictDetector
from .resolver import ConflictResolver
from .backups import BackupManager, BackupInfo
from .service import BackupService, ExportResult

__all__ = [
    "__version__",
    "BACKUP_VERSION",
    "EntityType",
    "Severity",
    "ConflictAction",
    "ConflictResolutionStrategy",
    "Person",
    "Relationship",
    "Account",
    "Suggestion",
    "FamilySettings",
    "AuditRecord",
    "Operator",
    "Conflict",
    "ImportStatistics",
    "ValidationResult",
    "ResolutionResult",
    "ImportResult",
    "ExportOptions",
    "ImportOptions",
    "ArchiveCodec",
    "ZipArchiveCodec",
    "TarArchiveCodec",
    "ArchiveError",
    "codec_for",
    "RecordStore",
    "SQLiteRecordStore",
    "StoreError",
    "PhotoStore",
    "LocalPhotoStore",
    "SnapshotGatherer",
    "Snapshot",
    "BackupValidator",
    "ConflictDetector",
    "ConflictResolver",
    "BackupManager",
    "BackupInfo",
    "BackupService",
    "ExportResult",
]
