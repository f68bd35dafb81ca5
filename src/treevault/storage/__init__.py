"""
TreeVault storage layer

- store: record store interface and SQLite implementation
- photos: photo asset storage
- schema: SQLite table definitions
"""

from .store import RecordStore, SQLiteRecordStore, StoreError
from .photos import PhotoStore, LocalPhotoStore, PhotoStoreError
from .schema import init_database

__all__ = [
    "RecordStore",
    "SQLiteRecordStore",
    "StoreError",
    "PhotoStore",
    "LocalPhotoStore",
    "PhotoStoreError",
    "init_database",
]
