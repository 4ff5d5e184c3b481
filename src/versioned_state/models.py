from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict

from pydantic import BaseModel, Field


DEFAULT_VERSION_FIELD = "version"


Transform = Callable[[Any], Any]


@dataclass(frozen=True)
class Migration:
    """
    A forward-only transform from schema version `version - 1` to `version`.

    Fields
    - version: the schema version this migration produces (>= 1).
    - description: short human-readable summary, used in error messages.
    - transform: receives the previous version's raw (unvalidated) data and
      returns the next version's raw data. It may mutate its input.
    """

    version: int
    description: str
    transform: Transform

    def __post_init__(self) -> None:
        if isinstance(self.version, bool) or not isinstance(self.version, int):
            raise TypeError(f"Migration version must be an int, got {self.version!r}")
        if self.version < 1:
            raise ValueError(f"Migration version must be >= 1, got {self.version}")
        if not callable(self.transform):
            raise TypeError("Migration transform must be callable")


class VersionedModel(BaseModel):
    """
    Convenience base for persisted schemas.

    Declares the reserved `version` field; subclasses add their own fields,
    each with a default so that `defaults()` can build a fresh state.
    PersistedState calls `defaults()` when no factory is passed, so
    subclasses may override it.

    Notes
    - Subclassing is optional. Any pydantic model declaring an integer
      version field (name configurable on the manager) can be used.
    """

    version: int = Field(default=1, description="Schema version of the persisted data")

    @classmethod
    def defaults(cls, version: int) -> "VersionedModel":
        """Fresh state for `version`, built from field defaults."""
        data: Dict[str, Any] = {DEFAULT_VERSION_FIELD: version}
        return cls.model_validate(data)
