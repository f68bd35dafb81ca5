"""
Archive container codecs.

A backup archive is a set of named entries:

    metadata.json                 backup metadata
    data/<section>.json           one JSON document per data section
    photos/<personId>/<filename>  binary photo assets

Codecs turn an entry map into bytes and back. JSON entries are decoded on
unpack; every other entry is returned as raw bytes.
"""

import io
import json
import tarfile
import zipfile
import zlib
from abc import ABC, abstractmethod
from typing import Dict, Any, List

from .models import EntityType


METADATA_FILE = "metadata.json"
PEOPLE_FILE = "data/people.json"
RELATIONSHIPS_FILE = "data/relationships.json"
USERS_FILE = "data/users.json"
SUGGESTIONS_FILE = "data/suggestions.json"
SETTINGS_FILE = "data/settings.json"
AUDIT_LOGS_FILE = "data/audit-logs.json"
PHOTOS_PREFIX = "photos/"

SECTION_FILES = {
    EntityType.PERSON: PEOPLE_FILE,
    EntityType.RELATIONSHIP: RELATIONSHIPS_FILE,
    EntityType.ACCOUNT: USERS_FILE,
    EntityType.SUGGESTION: SUGGESTIONS_FILE,
    EntityType.SETTINGS: SETTINGS_FILE,
    EntityType.AUDIT_LOG: AUDIT_LOGS_FILE,
}


class ArchiveError(Exception):
    """Raised when an archive cannot be written or read"""
    pass


def photo_entries(entries: Dict[str, Any]) -> List[str]:
    """Paths of binary photo assets in an entry map, sorted."""
    return sorted(
        path for path in entries
        if path.startswith(PHOTOS_PREFIX) and not path.endswith("/")
    )


def photo_path(person_id: str, filename: str) -> str:
    return f"{PHOTOS_PREFIX}{person_id}/{filename}"


def section_records(entries: Dict[str, Any], kind: EntityType) -> List[Dict[str, Any]]:
    """Records of a list section, or an empty list if absent or malformed."""
    records = entries.get(SECTION_FILES[kind])
    if not isinstance(records, list):
        return []
    return [record for record in records if isinstance(record, dict)]


def _encode(content: Any) -> bytes:
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    return json.dumps(content, indent=2, ensure_ascii=False, default=str).encode("utf-8")


def _decode(path: str, data: bytes) -> Any:
    if not path.endswith(".json"):
        return data
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ArchiveError(f"Invalid JSON in file {path}: {e}") from e


class ArchiveCodec(ABC):
    """
    Abstract base class for archive containers

    Implementations must be symmetric: ``unpack(pack(entries))`` yields the
    same paths, with JSON entries decoded and binary entries unchanged.
    """

    #: File extension used when writing archives to disk
    extension = ""

    @abstractmethod
    def pack(self, entries: Dict[str, Any]) -> bytes:
        """
        Serialize an entry map into a single container.

        Args:
            entries: Mapping of archive path to content. ``bytes`` values are
                stored as-is, anything else is written as indented JSON.

        Returns:
            Container bytes

        Raises:
            ArchiveError: If the container cannot be written
        """
        pass

    @abstractmethod
    def unpack(self, data: bytes) -> Dict[str, Any]:
        """
        Extract a container into an entry map.

        Args:
            data: Container bytes

        Returns:
            Mapping of archive path to decoded content

        Raises:
            ArchiveError: If the container is unreadable or holds invalid JSON
        """
        pass


class ZipArchiveCodec(ArchiveCodec):
    """ZIP container with deflate compression."""

    extension = ".zip"

    def __init__(self, compress_level: int = 9):
        self.compress_level = compress_level

    def pack(self, entries: Dict[str, Any]) -> bytes:
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(
                buffer, "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compress_level
            ) as archive:
                for path, content in entries.items():
                    archive.writestr(path, _encode(content))
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveError(f"Failed to write archive: {e}") from e
        return buffer.getvalue()

    def unpack(self, data: bytes) -> Dict[str, Any]:
        entries: Dict[str, Any] = {}
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    entries[info.filename] = _decode(info.filename, archive.read(info))
        except (OSError, EOFError, RuntimeError, NotImplementedError, zlib.error,
                zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            raise ArchiveError(f"Failed to read archive: {e}") from e
        return entries


class TarArchiveCodec(ArchiveCodec):
    """Gzip-compressed tar container."""

    extension = ".tar.gz"

    def pack(self, entries: Dict[str, Any]) -> bytes:
        buffer = io.BytesIO()
        try:
            with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
                for path, content in entries.items():
                    payload = _encode(content)
                    info = tarfile.TarInfo(name=path)
                    info.size = len(payload)
                    tar.addfile(info, io.BytesIO(payload))
        except (OSError, tarfile.TarError) as e:
            raise ArchiveError(f"Failed to write archive: {e}") from e
        return buffer.getvalue()

    def unpack(self, data: bytes) -> Dict[str, Any]:
        entries: Dict[str, Any] = {}
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
                for member in tar.getmembers():
                    if not member.isfile():
                        continue
                    handle = tar.extractfile(member)
                    if handle is None:
                        continue
                    entries[member.name] = _decode(member.name, handle.read())
        except (OSError, EOFError, zlib.error, tarfile.TarError) as e:
            raise ArchiveError(f"Failed to read archive: {e}") from e
        return entries


ARCHIVE_FORMATS = {
    "zip": ZipArchiveCodec,
    "tar": TarArchiveCodec,
}


def codec_for(archive_format: str = "zip") -> ArchiveCodec:
    """
    Get a codec by format name.

    Raises:
        ValueError: If the format is unknown
    """
    try:
        return ARCHIVE_FORMATS[archive_format.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown archive format '{archive_format}'. "
            f"Must be one of: {', '.join(sorted(ARCHIVE_FORMATS))}"
        ) from None
