from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class StorageAdapter(Protocol):
    """
    Async key-value persistence boundary used by `PersistedState`.

    - `get_item` returns the stored text, or None when the key is absent.
      The manager treats any exception raised here as "absent".
    - `set_item` and `remove_item` must raise on failure; the manager wraps
      and propagates those errors to the caller.
    """

    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...
