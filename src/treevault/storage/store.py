"""
Record store for TreeVault

Defines the abstract record store the backup pipeline talks to, and the
SQLite implementation used by the CLI and tests. Each entity kind supports:
- find_by_id: identity lookup
- find_by_natural_key: lookup on a non-identity field combination
- create / update: writes that raise StoreError on constraint violations
- list_all: full read for exports
"""

import json
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import fields
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Dict, Any, Iterable, Union

from ..models import (
    EntityType,
    RECORD_TYPES,
    FamilySettings,
    AuditRecord,
    Person,
    format_datetime,
)
from .schema import init_database


class StoreError(Exception):
    """Raised when the record store rejects a read or write"""
    pass


class RecordStore(ABC):
    """
    Abstract base class for the live record store

    The backup pipeline only ever reads through the find/list methods, and
    only the resolver calls create/update.
    """

    @abstractmethod
    def find_by_id(self, kind: EntityType, record_id: str):
        """
        Look up a record by identity.

        Returns:
            The record, or None if no record has this id
        """
        pass

    @abstractmethod
    def find_by_natural_key(self, kind: EntityType, key: Dict[str, Any]):
        """
        Look up the first record whose fields equal every value in ``key``.

        ``None`` values match empty columns.

        Returns:
            The record, or None if nothing matches
        """
        pass

    @abstractmethod
    def create(self, kind: EntityType, record):
        """
        Insert a new record.

        Raises:
            StoreError: If the write violates a constraint
        """
        pass

    @abstractmethod
    def update(self, kind: EntityType, record_id: str, record):
        """
        Overwrite every non-identity field of an existing record.

        Raises:
            StoreError: If the record is missing or the write violates a constraint
        """
        pass

    @abstractmethod
    def list_all(self, kind: EntityType) -> List[Any]:
        """Return every record of a kind in a stable order."""
        pass

    @abstractmethod
    def find_settings(self) -> Optional[FamilySettings]:
        """Return the singleton settings row, if any."""
        pass

    @abstractmethod
    def list_audit_since(self, cutoff: datetime) -> List[AuditRecord]:
        """Return audit records created at or after ``cutoff``, oldest first."""
        pass

    @abstractmethod
    def list_people_with_photos(self) -> List[Person]:
        """Return people that carry a photo reference."""
        pass

    @abstractmethod
    def find_audit_by_entity_types(self, entity_types: Iterable[str], limit: int = 50) -> List[AuditRecord]:
        """Return audit records for the given entity types, newest first."""
        pass

    @abstractmethod
    def count(self, kind: EntityType) -> int:
        """Number of stored records of a kind."""
        pass


class SQLiteRecordStore(RecordStore):
    """
    SQLite-backed record store.

    Features:
    - Persistent connection with thread lock (safe for concurrent readers)
    - WAL mode for concurrent access
    - Foreign key and uniqueness constraints enforced by the schema
    - JSON columns decoded into Python structures on read
    """

    TABLES = {
        EntityType.PERSON: "people",
        EntityType.ACCOUNT: "users",
        EntityType.RELATIONSHIP: "relationships",
        EntityType.SUGGESTION: "suggestions",
        EntityType.SETTINGS: "family_settings",
        EntityType.AUDIT_LOG: "audit_logs",
    }

    ORDER_BY = {
        EntityType.PERSON: "last_name, first_name, id",
        EntityType.ACCOUNT: "created_at, id",
        EntityType.RELATIONSHIP: "created_at, id",
        EntityType.SUGGESTION: "submitted_at, id",
        EntityType.SETTINGS: "created_at, id",
        EntityType.AUDIT_LOG: "created_at, id",
    }

    def __init__(self, db_path: Union[str, Path], enable_wal: bool = True):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file (or ':memory:' for in-memory)
            enable_wal: Enable WAL mode for concurrent reads (default: True)
        """
        self.db_path = Path(db_path) if db_path != ':memory:' else db_path

        if self.db_path != ':memory:':
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # check_same_thread=False allows the gatherer's worker threads to read
        # isolation_level=None enables autocommit mode
        self._conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            isolation_level=None,
            timeout=30.0
        )
        self._conn.row_factory = sqlite3.Row
        self._db_lock = threading.Lock()

        init_database(self._conn, enable_wal and self.db_path != ':memory:')

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteRecordStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ==================== Row conversion ====================

    def _table(self, kind: EntityType) -> str:
        return self.TABLES[EntityType(kind)]

    @staticmethod
    def _columns(kind: EntityType) -> List[str]:
        return RECORD_TYPES[EntityType(kind)].field_names()

    def _row_to_record(self, kind: EntityType, row: Optional[sqlite3.Row]):
        if row is None:
            return None
        record_cls = RECORD_TYPES[EntityType(kind)]
        data = dict(row)
        for f in fields(record_cls):
            value = data.get(f.name)
            if value is None:
                continue
            if f.name in record_cls.JSON_FIELDS:
                data[f.name] = json.loads(value)
            elif f.type is bool:
                data[f.name] = bool(value)
        return record_cls.from_dict(data)

    def _record_to_row(self, kind: EntityType, record) -> Dict[str, Any]:
        data = record.to_dict()
        for name in type(record).JSON_FIELDS:
            if data.get(name) is not None:
                data[name] = json.dumps(data[name])
        return data

    @staticmethod
    def _key_value(value: Any) -> Any:
        if isinstance(value, datetime):
            return format_datetime(value)
        if isinstance(value, date):
            return value.isoformat()
        return value

    def _execute(self, query: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            with self._db_lock:
                return self._conn.execute(query, tuple(params))
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        try:
            with self._db_lock:
                return self._conn.execute(query, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    # ==================== Reads ====================

    def find_by_id(self, kind: EntityType, record_id: str):
        rows = self._fetchall(
            f"SELECT * FROM {self._table(kind)} WHERE id = ? LIMIT 1",
            (record_id,)
        )
        return self._row_to_record(kind, rows[0] if rows else None)

    def find_by_natural_key(self, kind: EntityType, key: Dict[str, Any]):
        if not key:
            raise ValueError("Natural key lookup requires at least one field")

        columns = set(self._columns(kind))
        unknown = set(key) - columns
        if unknown:
            raise ValueError(f"Unknown fields for {kind}: {sorted(unknown)}")

        where = " AND ".join(f"{name} IS ?" for name in key)
        rows = self._fetchall(
            f"SELECT * FROM {self._table(kind)} WHERE {where} "
            f"ORDER BY {self.ORDER_BY[EntityType(kind)]} LIMIT 1",
            [self._key_value(v) for v in key.values()]
        )
        return self._row_to_record(kind, rows[0] if rows else None)

    def list_all(self, kind: EntityType) -> List[Any]:
        rows = self._fetchall(
            f"SELECT * FROM {self._table(kind)} ORDER BY {self.ORDER_BY[EntityType(kind)]}"
        )
        return [self._row_to_record(kind, row) for row in rows]

    def find_settings(self) -> Optional[FamilySettings]:
        rows = self._fetchall(
            f"SELECT * FROM family_settings ORDER BY {self.ORDER_BY[EntityType.SETTINGS]} LIMIT 1"
        )
        return self._row_to_record(EntityType.SETTINGS, rows[0] if rows else None)

    def list_audit_since(self, cutoff: datetime) -> List[AuditRecord]:
        rows = self._fetchall(
            "SELECT * FROM audit_logs WHERE created_at >= ? ORDER BY created_at, id",
            (format_datetime(cutoff),)
        )
        return [self._row_to_record(EntityType.AUDIT_LOG, row) for row in rows]

    def list_people_with_photos(self) -> List[Person]:
        rows = self._fetchall(
            "SELECT * FROM people WHERE photo_url IS NOT NULL AND photo_url != '' "
            f"ORDER BY {self.ORDER_BY[EntityType.PERSON]}"
        )
        return [self._row_to_record(EntityType.PERSON, row) for row in rows]

    def find_audit_by_entity_types(self, entity_types: Iterable[str], limit: int = 50) -> List[AuditRecord]:
        types = list(entity_types)
        if not types:
            return []
        placeholders = ",".join("?" * len(types))
        rows = self._fetchall(
            f"SELECT * FROM audit_logs WHERE entity_type IN ({placeholders}) "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            types + [limit]
        )
        return [self._row_to_record(EntityType.AUDIT_LOG, row) for row in rows]

    def count(self, kind: EntityType) -> int:
        rows = self._fetchall(f"SELECT COUNT(*) FROM {self._table(kind)}")
        return rows[0][0]

    # ==================== Writes ====================

    def create(self, kind: EntityType, record):
        if kind == EntityType.SETTINGS and not record.id:
            record.id = str(uuid.uuid4())

        data = self._record_to_row(kind, record)
        names = list(data)
        placeholders = ", ".join("?" * len(names))
        self._execute(
            f"INSERT INTO {self._table(kind)} ({', '.join(names)}) VALUES ({placeholders})",
            [data[name] for name in names]
        )
        return record

    def update(self, kind: EntityType, record_id: str, record):
        data = self._record_to_row(kind, record)
        data.pop("id", None)
        assignments = ", ".join(f"{name} = ?" for name in data)
        cursor = self._execute(
            f"UPDATE {self._table(kind)} SET {assignments} WHERE id = ?",
            list(data.values()) + [record_id]
        )
        if cursor.rowcount == 0:
            raise StoreError(f"{EntityType(kind).value} {record_id} not found")
        return self.find_by_id(kind, record_id)
