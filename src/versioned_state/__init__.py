"""
Versioned, schema-validated persisted state.

Modules:
- persisted: PersistedState, the load -> migrate -> validate -> persist lifecycle
- migrations: forward-only migration engine and explicit registry
- models: Migration record and the VersionedModel convenience base
- errors: exception hierarchy
- common: schema-shape fingerprinting
- adapters: storage backends (memory, file, S3)
"""

from .adapters import FileStorageAdapter, MemoryStorageAdapter, StorageAdapter
from .common import extract_shape, hash_schema, simple_hash, type_descriptor
from .errors import (
    BackwardMigrationError,
    DuplicateMigrationError,
    InvalidSchemaError,
    MigrationError,
    MigrationStepError,
    MissingMigrationError,
    NotInitializedError,
    PersistedStateError,
    StateValidationError,
    StorageError,
    StorageRemoveError,
    StorageWriteError,
)
from .migrations import MigrationRegistry, run_migrations
from .models import Migration, VersionedModel
from .persisted import PersistedState

__all__ = [
    "BackwardMigrationError",
    "DuplicateMigrationError",
    "FileStorageAdapter",
    "InvalidSchemaError",
    "MemoryStorageAdapter",
    "Migration",
    "MigrationError",
    "MigrationRegistry",
    "MigrationStepError",
    "MissingMigrationError",
    "NotInitializedError",
    "PersistedState",
    "PersistedStateError",
    "StateValidationError",
    "StorageAdapter",
    "StorageError",
    "StorageRemoveError",
    "StorageWriteError",
    "VersionedModel",
    "extract_shape",
    "hash_schema",
    "run_migrations",
    "simple_hash",
    "type_descriptor",
]
