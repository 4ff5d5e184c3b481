from __future__ import annotations

from typing import Iterable, List, Optional


class PersistedStateError(RuntimeError):
    """Base error for versioned persisted state."""


class NotInitializedError(PersistedStateError):
    """Raised when state is accessed before `init()` has completed."""

    def __init__(self, message: str = "PersistedState not initialized. Call init() first.") -> None:
        super().__init__(message)


class StateValidationError(PersistedStateError, ValueError):
    """A value (or the whole draft state) failed schema validation."""


class InvalidSchemaError(PersistedStateError, TypeError):
    """The schema does not expose a field map, or lacks the version field."""


# -------- Migrations --------
class MigrationError(PersistedStateError):
    """Base error for the migration engine."""


class BackwardMigrationError(MigrationError):
    def __init__(self, from_version: int, to_version: int) -> None:
        self.from_version = from_version
        self.to_version = to_version
        super().__init__(
            f"Cannot migrate backwards from version {from_version} to {to_version}. "
            "Migrations only support forward migration."
        )


class MissingMigrationError(MigrationError):
    def __init__(self, missing: Iterable[int], from_version: int, to_version: int) -> None:
        self.missing: List[int] = sorted(missing)
        self.from_version = from_version
        self.to_version = to_version
        super().__init__(
            f"Missing migrations for versions: {', '.join(str(v) for v in self.missing)}. "
            f"Cannot migrate from {from_version} to {to_version}."
        )


class DuplicateMigrationError(MigrationError):
    def __init__(self, versions: Iterable[int]) -> None:
        self.versions: List[int] = sorted(set(versions))
        super().__init__(
            f"Duplicate migrations for versions: {', '.join(str(v) for v in self.versions)}"
        )


class MigrationStepError(MigrationError):
    """A single migration transform raised; `cause` holds the original exception."""

    def __init__(self, version: int, description: str, cause: Optional[BaseException]) -> None:
        self.version = version
        self.description = description
        self.cause = cause
        super().__init__(f"Migration {version} ({description}) failed: {cause}")


# -------- Storage --------
class StorageError(PersistedStateError):
    """Base error for storage adapter failures surfaced to callers."""


class StorageWriteError(StorageError):
    """Writing the serialized state through the adapter failed."""


class StorageRemoveError(StorageError):
    """Removing the persisted state through the adapter failed."""
