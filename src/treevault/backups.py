"""
Backup Manager for TreeVault archives

Keeps archive files on local disk, each with a JSON sidecar.

Features:
- Timestamped archive files with metadata
- Safety backups before imports
- Newest-first listing
- Automatic old backup cleanup
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Dict, Any, Union

from .models import utcnow, parse_datetime, format_datetime

logger = logging.getLogger(__name__)


@dataclass
class BackupInfo:
    """Information about a stored archive."""
    path: Path
    created_at: datetime
    size_bytes: int
    reason: str = "manual"
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "path": str(self.path),
            "created_at": format_datetime(self.created_at),
            "size_bytes": self.size_bytes,
            "reason": self.reason,
            "metadata": self.metadata or {},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupInfo":
        """Create BackupInfo from dictionary."""
        return cls(
            path=Path(data["path"]),
            created_at=parse_datetime(data["created_at"]),
            size_bytes=data["size_bytes"],
            reason=data.get("reason", "manual"),
            metadata=data.get("metadata"),
        )


class BackupManager:
    """
    Backup Manager - archive files on local disk

    Example:
        manager = BackupManager(base_path / "backups")
        info = manager.save(archive, reason="pre-import", metadata=metadata)
        manager.cleanup_old_backups(keep_count=5)
    """

    # Backup filename pattern: {prefix}-{timestamp}{extension}
    PREFIX = "treevault-backup"
    METADATA_SUFFIX = ".meta.json"

    def __init__(self, backup_dir: Union[str, Path]):
        """
        Initialize Backup Manager.

        Args:
            backup_dir: Directory to store archives in
        """
        self.backup_dir = Path(backup_dir)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def filename(cls, created_at: datetime, extension: str = ".zip") -> str:
        return f"{cls.PREFIX}-{created_at.strftime('%Y%m%d-%H%M%S-%f')}{extension}"

    def _metadata_path(self, backup_path: Path) -> Path:
        return backup_path.with_name(backup_path.name + self.METADATA_SUFFIX)

    def save(self,
             archive: bytes,
             extension: str = ".zip",
             reason: str = "manual",
             metadata: Optional[Dict[str, Any]] = None) -> BackupInfo:
        """
        Write an archive and its sidecar.

        Args:
            archive: Packed archive bytes
            extension: File extension of the archive format
            reason: Why the backup was taken (e.g. "pre-import")
            metadata: Archive metadata to keep alongside

        Returns:
            BackupInfo for the written file
        """
        created_at = utcnow()
        backup_path = self.backup_dir / self.filename(created_at, extension)
        backup_path.write_bytes(archive)

        backup_info = BackupInfo(
            path=backup_path,
            created_at=created_at,
            size_bytes=len(archive),
            reason=reason,
            metadata=metadata,
        )
        self._save_metadata(backup_info)
        logger.info(f"Saved {reason} backup {backup_path.name} ({len(archive)} bytes)")
        return backup_info

    def _save_metadata(self, backup_info: BackupInfo) -> None:
        with open(self._metadata_path(backup_info.path), "w") as f:
            json.dump(backup_info.to_dict(), f, indent=2)

    def _load_metadata(self, backup_path: Path) -> Optional[BackupInfo]:
        metadata_path = self._metadata_path(backup_path)
        if not metadata_path.exists():
            return None

        try:
            with open(metadata_path, "r") as f:
                return BackupInfo.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Ignoring unreadable sidecar {metadata_path.name}: {e}")
            return None

    def list_backups(self) -> List[BackupInfo]:
        """
        List all stored archives.

        Returns:
            List of BackupInfo objects, newest first
        """
        backups = []
        for backup_file in self.backup_dir.glob(f"{self.PREFIX}-*"):
            if backup_file.name.endswith(self.METADATA_SUFFIX) or not backup_file.is_file():
                continue

            backup_info = self._load_metadata(backup_file)
            if backup_info is None:
                stat = backup_file.stat()
                backup_info = BackupInfo(
                    path=backup_file,
                    created_at=parse_datetime(datetime.fromtimestamp(stat.st_mtime).astimezone()),
                    size_bytes=stat.st_size,
                )
            backups.append(backup_info)

        backups.sort(key=lambda b: b.created_at, reverse=True)
        return backups

    def get_latest_backup(self) -> Optional[BackupInfo]:
        """
        Get the most recent backup.

        Returns:
            BackupInfo for latest backup, or None if no backups exist
        """
        backups = self.list_backups()
        return backups[0] if backups else None

    def cleanup_old_backups(self, keep_count: int = 5) -> int:
        """
        Remove old backups, keeping only the most recent N backups.

        Args:
            keep_count: Number of recent backups to keep (default: 5)

        Returns:
            Number of backups deleted
        """
        if keep_count < 1:
            raise ValueError(f"keep_count must be >= 1, got {keep_count}")

        deleted_count = 0
        for backup_info in self.list_backups()[keep_count:]:
            try:
                backup_info.path.unlink()
                metadata_path = self._metadata_path(backup_info.path)
                if metadata_path.exists():
                    metadata_path.unlink()
                deleted_count += 1
            except OSError as e:
                logger.warning(f"Could not delete {backup_info.path.name}: {e}")

        return deleted_count
