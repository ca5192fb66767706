"""vecsync storage backends behind one upsert / query / cleanup contract."""

from vecsync.storage.base import CleanupScope, StorageBackend
from vecsync.storage.factory import create_backend, resolve_storage_target
from vecsync.storage.qdrant import QdrantBackend
from vecsync.storage.sqlite import SqliteBackend

__all__ = [
    "CleanupScope",
    "QdrantBackend",
    "SqliteBackend",
    "StorageBackend",
    "create_backend",
    "resolve_storage_target",
]
