from __future__ import annotations

import asyncio
import copy
import json
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ValidationError

from .adapters.base import StorageAdapter
from .common.schema_shape import hash_schema
from .errors import (
    DuplicateMigrationError,
    InvalidSchemaError,
    MigrationError,
    NotInitializedError,
    StateValidationError,
    StorageRemoveError,
    StorageWriteError,
)
from .migrations import duplicate_versions, run_migrations
from .models import DEFAULT_VERSION_FIELD, Migration, VersionedModel


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
T = TypeVar("T")

DefaultsFactory = Callable[[int], Union[BaseModel, Mapping[str, Any]]]


def _dump_state_json(state: BaseModel) -> str:
    # Deterministic JSON: stable key order, no extra whitespace
    data = state.model_dump(mode="json", by_alias=True)
    return json.dumps(data, separators=(",", ":"), sort_keys=True)


def _field_keys(schema: Type[BaseModel]) -> Dict[str, str]:
    """Map each field name to the key it is stored under.

    Stored documents are keyed by alias, so every field must read and write
    under the same plain string key.
    """
    keys: Dict[str, str] = {}
    for name, info in schema.model_fields.items():
        read_key = info.validation_alias if info.validation_alias is not None else (info.alias or name)
        write_key = info.serialization_alias or info.alias or name
        if not isinstance(read_key, str):
            raise InvalidSchemaError(
                f"Field {schema.__name__}.{name} uses an alias path or alias choices; "
                "only plain string aliases are supported"
            )
        if read_key != write_key:
            raise InvalidSchemaError(
                f"Field {schema.__name__}.{name} is read as {read_key!r} but written as {write_key!r}"
            )
        keys[name] = write_key
    return keys


class PersistedState(Generic[ModelT]):
    """
    Versioned, schema-validated state persisted under a single storage key.

    Lifecycle
    - `init()` reads the stored JSON, migrates it forward when its version is
      older than `current_version`, validates it and keeps the result in
      memory. Any read, parse, migration or validation failure falls back to
      the schema defaults for `current_version` and is logged at WARNING;
      `init()` never raises for bad data.
    - `get`/`get_all` read the in-memory state. `set`/`update` validate the
      whole state after the change and write it back; validation and write
      failures propagate to the caller.
    - `clear()` removes the stored document, then resets memory to defaults.

    Notes
    - The reserved version field (default "version") must be declared on the
      schema. It is always forced to `current_version` after `init()`.
    - A single instance is assumed to be the only writer for its key.
      Concurrent `set` calls are last-writer-wins; concurrent `init` calls
      share one in-flight load.
    - `schema_hashes` is informational: a mismatch with the live schema's
      fingerprint is logged, never enforced.
    - Stored documents are keyed by field alias where one is declared. Aliases
      must be plain strings used for both reading and writing.
    - A `VersionedModel` schema without a `defaults` factory builds fresh
      state from its own `defaults()` classmethod.
    """

    def __init__(
        self,
        *,
        schema: Type[ModelT],
        storage_key: str,
        storage: StorageAdapter,
        migrations: Optional[Iterable[Migration]] = None,
        current_version: Optional[int] = None,
        schema_hashes: Optional[Mapping[int, str]] = None,
        defaults: Optional[DefaultsFactory] = None,
        version_field: str = DEFAULT_VERSION_FIELD,
        timeout: Optional[float] = None,
    ) -> None:
        if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
            raise InvalidSchemaError(f"schema must be a pydantic model class, got {schema!r}")
        if version_field not in schema.model_fields:
            raise InvalidSchemaError(
                f"Schema {schema.__name__} must declare the version field {version_field!r}"
            )
        if not storage_key:
            raise ValueError("storage_key is required")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be > 0")

        self._schema = schema
        self._keys = _field_keys(schema)
        self._version_key = self._keys[version_field]
        self._storage_key = storage_key
        self._storage = storage
        self._migrations: Tuple[Migration, ...] = tuple(migrations or ())
        duplicates = duplicate_versions(self._migrations)
        if duplicates:
            raise DuplicateMigrationError(duplicates)

        if current_version is None:
            current_version = max((m.version for m in self._migrations), default=1)
        if current_version < 1:
            raise ValueError("current_version must be >= 1")
        self._current_version = current_version

        self._schema_hashes: Dict[int, str] = dict(schema_hashes or {})
        if defaults is None and issubclass(schema, VersionedModel):
            defaults = schema.defaults
        self._defaults_factory = defaults
        self._version_field = version_field
        self._timeout = timeout

        self._state: Optional[ModelT] = None
        self._initialized = False
        self._init_task: Optional[asyncio.Future[None]] = None
        self._live_hash: Optional[str] = None

    # -------- Properties --------
    @property
    def storage_key(self) -> str:
        return self._storage_key

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def migrations(self) -> List[Migration]:
        return list(self._migrations)

    # -------- Lifecycle --------
    async def init(self) -> None:
        """Load, migrate and validate the stored state. Idempotent."""
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load())
        task = self._init_task
        try:
            await asyncio.shield(task)
        except Exception:
            # Configuration errors (e.g. a broken defaults factory) surface
            # here; allow a later init() to try again.
            if self._init_task is task:
                self._init_task = None
            raise

    async def _load(self) -> None:
        raw = await self._read()
        state = self._resolve(raw)
        self._state = self._with_version(state)
        self._initialized = True
        self._check_schema_hash()

    async def _read(self) -> Optional[str]:
        try:
            return await self._call(self._storage.get_item(self._storage_key))
        except Exception as exc:
            logger.warning(
                "Reading state %r failed; treating it as absent: %s", self._storage_key, exc
            )
            return None

    def _resolve(self, raw: Optional[str]) -> ModelT:
        if raw is None:
            logger.debug("No stored state for %r; using defaults", self._storage_key)
            return self._fresh()

        try:
            parsed = json.loads(raw)
        except Exception as exc:
            # Includes RecursionError for pathologically nested documents
            logger.warning(
                "Stored state for %r is not valid JSON; resetting to defaults: %s",
                self._storage_key,
                exc,
            )
            return self._fresh()
        if not isinstance(parsed, dict):
            logger.warning(
                "Stored state for %r is not a JSON object; resetting to defaults",
                self._storage_key,
            )
            return self._fresh()

        stored_version = self._stored_version(parsed)
        if stored_version < self._current_version:
            try:
                candidate = run_migrations(
                    parsed, stored_version, self._current_version, self._migrations
                )
            except MigrationError as exc:
                logger.warning(
                    "Migrating state %r from version %d to %d failed; resetting to defaults: %s",
                    self._storage_key,
                    stored_version,
                    self._current_version,
                    exc,
                )
                return self._fresh()
            if isinstance(candidate, dict):
                candidate = {**candidate, self._version_key: self._current_version}
        elif stored_version == self._current_version:
            candidate = parsed
        else:
            logger.warning(
                "Stored state %r has version %d, newer than %d; resetting to defaults",
                self._storage_key,
                stored_version,
                self._current_version,
            )
            return self._fresh()

        try:
            return self._schema.model_validate(candidate)
        except Exception as exc:
            # Validators may raise more than ValidationError on old data
            logger.warning(
                "Stored state for %r failed validation; resetting to defaults: %s",
                self._storage_key,
                exc,
            )
            return self._fresh()

    def _stored_version(self, parsed: Dict[str, Any]) -> int:
        value = parsed.get(self._version_key)
        if isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return 0

    # -------- Reads --------
    def get(self, key: str) -> Any:
        state = self._require_state()
        self._require_field(key)
        return copy.deepcopy(getattr(state, key))

    def get_all(self) -> ModelT:
        return self._require_state().model_copy(deep=True)

    # -------- Writes --------
    async def set(self, key: str, value: Any) -> None:
        """Replace one field, validate the whole state and persist it."""
        state = self._require_state()
        self._require_field(key)
        if key == self._version_field:
            raise ValueError(f"{key!r} is managed by PersistedState and cannot be set")

        draft = state.model_dump(by_alias=True)
        draft[self._keys[key]] = value
        try:
            validated = self._schema.model_validate(draft)
        except ValidationError as exc:
            raise StateValidationError(f"Invalid state after setting {key!r}: {exc}") from exc

        payload = _dump_state_json(validated)
        try:
            await self._call(self._storage.set_item(self._storage_key, payload))
        except Exception as exc:
            raise StorageWriteError(f"Failed to write state {self._storage_key!r}: {exc}") from exc
        self._state = validated

    async def update(self, key: str, updater: Callable[[Any], Any]) -> None:
        """`set(key, updater(get(key)))`. Not atomic across concurrent callers."""
        self._require_state()
        current = self.get(key)
        await self.set(key, updater(current))

    async def clear(self) -> None:
        """Remove the stored document, then reset memory to defaults.

        If removal fails, StorageRemoveError is raised and memory is left as it was.
        """
        try:
            await self._call(self._storage.remove_item(self._storage_key))
        except Exception as exc:
            raise StorageRemoveError(f"Failed to remove state {self._storage_key!r}: {exc}") from exc
        self._state = self._fresh()
        self._initialized = True

    # -------- Schema info --------
    def get_schema_version(self) -> int:
        return self._current_version

    def get_schema_hash(self) -> str:
        return self._schema_hashes.get(self._current_version, "")

    def get_schema_hash_for_version(self, version: int) -> Optional[str]:
        return self._schema_hashes.get(version)

    def compute_schema_hash(self) -> str:
        """Fingerprint of the live schema's field shape."""
        if self._live_hash is None:
            self._live_hash = hash_schema(self._schema)
        return self._live_hash

    def _check_schema_hash(self) -> None:
        expected = self._schema_hashes.get(self._current_version)
        if not expected:
            return
        live = self.compute_schema_hash()
        if live != expected:
            logger.warning(
                "Schema hash for version %d is %s but the registered hash is %s; "
                "the schema may have changed without a version bump",
                self._current_version,
                live,
                expected,
            )

    # -------- Internal --------
    async def _call(self, aw: Awaitable[T]) -> T:
        if self._timeout is None:
            return await aw
        return await asyncio.wait_for(aw, self._timeout)

    def _fresh(self) -> ModelT:
        version = self._current_version
        if self._defaults_factory is None:
            data: Dict[str, Any] = {self._version_key: version}
        else:
            produced = self._defaults_factory(version)
            if isinstance(produced, self._schema):
                return self._with_version(produced)
            data = dict(produced)
        try:
            return self._with_version(self._schema.model_validate(data))
        except ValidationError as exc:
            raise StateValidationError(
                f"Defaults for {self._schema.__name__} version {version} are invalid: {exc}"
            ) from exc

    def _with_version(self, state: ModelT) -> ModelT:
        if getattr(state, self._version_field) == self._current_version:
            return state
        return state.model_copy(update={self._version_field: self._current_version})

    def _require_state(self) -> ModelT:
        if not self._initialized or self._state is None:
            raise NotInitializedError()
        return self._state

    def _require_field(self, key: str) -> None:
        if key not in self._schema.model_fields:
            raise KeyError(key)
