from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote
from uuid import uuid4


ENV_STATE_DIR = "SVS_STATE_DIR"
DEFAULT_STATE_DIR = ".state"


def _default_state_dir() -> Path:
    # Prefer explicit env var, else project-local .state folder
    base = os.environ.get(ENV_STATE_DIR)
    if base:
        return Path(base)
    return Path(DEFAULT_STATE_DIR)


class FileStorageAdapter:
    """
    Local-disk adapter storing one JSON document per key.

    - Files live under `directory` as `<quoted key>.json`; keys are
      percent-encoded so any key maps to a single flat file name.
    - Writes go to a temporary sibling first and are moved into place with
      `os.replace`, so a crash never leaves a half-written document.
    - A missing file reads as None. Blocking I/O runs in a worker thread.
    """

    def __init__(self, directory: Optional[os.PathLike[str] | str] = None, *, encoding: str = "utf-8") -> None:
        self._dir = Path(directory) if directory else _default_state_dir()
        self._encoding = encoding

    @classmethod
    def from_env(cls) -> "FileStorageAdapter":
        return cls(_default_state_dir())

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, key: str) -> Path:
        return self._dir / f"{quote(key, safe='')}.json"

    # -------- Blocking helpers --------
    def _read(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            with path.open("r", encoding=self._encoding) as f:
                return f.read()
        except FileNotFoundError:
            return None

    def _write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f"{path.name}.tmp-{uuid4().hex}")
        try:
            with tmp.open("w", encoding=self._encoding) as f:
                f.write(value)
            os.replace(tmp, path)
        finally:
            if tmp.exists():
                tmp.unlink()

    def _remove(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    # -------- Adapter protocol --------
    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)
