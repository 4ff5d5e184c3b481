from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from .errors import (
    BackwardMigrationError,
    DuplicateMigrationError,
    MigrationStepError,
    MissingMigrationError,
)
from .models import Migration, Transform


logger = logging.getLogger(__name__)


def duplicate_versions(migrations: Iterable[Migration]) -> List[int]:
    counts = Counter(m.version for m in migrations)
    return sorted(v for v, n in counts.items() if n > 1)


def run_migrations(
    state: Any,
    from_version: int,
    to_version: int,
    migrations: Sequence[Migration],
) -> Any:
    """
    Apply the migrations needed to bring `state` from `from_version` to `to_version`.

    - Equal versions return `state` unchanged without calling any transform.
    - `from_version > to_version` raises BackwardMigrationError.
    - Migrations are sorted by version; caller order is not trusted.
    - Every version in `from_version + 1 .. to_version` must be present,
      otherwise MissingMigrationError names all missing versions and nothing runs.
    - A transform that raises aborts the run with MigrationStepError.

    Returns the final transformed value. It is not validated here.
    """
    if from_version == to_version:
        return state

    if from_version > to_version:
        raise BackwardMigrationError(from_version, to_version)

    duplicates = duplicate_versions(migrations)
    if duplicates:
        raise DuplicateMigrationError(duplicates)

    ordered = sorted(migrations, key=lambda m: m.version)
    to_run = [m for m in ordered if from_version < m.version <= to_version]

    provided = {m.version for m in to_run}
    missing = [v for v in range(from_version + 1, to_version + 1) if v not in provided]
    if missing:
        raise MissingMigrationError(missing, from_version, to_version)

    current = state
    for migration in to_run:
        try:
            current = migration.transform(current)
        except Exception as exc:
            raise MigrationStepError(migration.version, migration.description, exc) from exc
        logger.debug("Applied migration %d (%s)", migration.version, migration.description)

    return current


class MigrationRegistry:
    """
    Explicit, ordered collection of migrations built in code.

    Usage
    - `registry.add(Migration(2, "add email", fn))`, or decorate a function:

          @registry.register(2, "add email")
          def add_email(data):
              data["email"] = ""
              return data

    - Registering the same version twice raises DuplicateMigrationError.
    - `current_version()` is the highest registered version, or 1 when empty.
    """

    def __init__(self, migrations: Optional[Iterable[Migration]] = None) -> None:
        self._by_version: Dict[int, Migration] = {}
        for m in migrations or ():
            self.add(m)

    def add(self, migration: Migration) -> Migration:
        if migration.version in self._by_version:
            raise DuplicateMigrationError([migration.version])
        self._by_version[migration.version] = migration
        return migration

    def register(self, version: int, description: str) -> Callable[[Transform], Transform]:
        def decorator(fn: Transform) -> Transform:
            self.add(Migration(version=version, description=description, transform=fn))
            return fn

        return decorator

    def migrations(self) -> List[Migration]:
        return [self._by_version[v] for v in sorted(self._by_version)]

    def versions(self) -> List[int]:
        return sorted(self._by_version)

    def missing_versions(self, from_version: int = 0) -> List[int]:
        """Versions absent between `from_version + 1` and the highest registered one."""
        if not self._by_version:
            return []
        top = max(self._by_version)
        return [v for v in range(from_version + 1, top + 1) if v not in self._by_version]

    def current_version(self) -> int:
        if not self._by_version:
            return 1
        return max(self._by_version)

    def __iter__(self) -> Iterator[Migration]:
        return iter(self.migrations())

    def __len__(self) -> int:
        return len(self._by_version)

    def __contains__(self, version: object) -> bool:
        return version in self._by_version
