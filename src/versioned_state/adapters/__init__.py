"""
Storage adapters for PersistedState.

Modules:
- base: the async StorageAdapter protocol
- memory: dict-backed adapter (tests, ephemeral state)
- file: one JSON file per key on local disk
- s3: one S3 object per key (boto3)
"""

from .base import StorageAdapter
from .file import FileStorageAdapter
from .memory import MemoryStorageAdapter

__all__ = [
    "FileStorageAdapter",
    "MemoryStorageAdapter",
    "StorageAdapter",
]
