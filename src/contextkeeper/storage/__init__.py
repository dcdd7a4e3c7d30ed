"""Storage backends."""

from contextkeeper.storage.base import StorageBackend
from contextkeeper.storage.sqlite_backend import SQLiteBackend

__all__ = ["StorageBackend", "SQLiteBackend"]
