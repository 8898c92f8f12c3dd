"""Async key-value storage backends for the persisted formula map."""

from __future__ import annotations

import asyncio
import os
import re
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Storage(Protocol):
    """Key-value service the Sheet loads from and saves to."""

    async def get(self, key: str) -> str | None:
        """Return the stored string for *key*, or None if absent."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store *value* under *key*."""
        ...


class MemoryStorage:
    """In-process storage that records every read and write."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})
        self.reads: list[str] = []
        self.writes: list[tuple[str, str]] = []

    async def get(self, key: str) -> str | None:
        self.reads.append(key)
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.writes.append((key, value))
        self.data[key] = value


# Path-component validation: reject anything that could escape the directory
_SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


class FileStorage:
    """One ``<key>.json`` file per key inside *directory*.

    Writes go to a temporary file first and are moved into place with
    ``os.replace`` so readers never observe a partial file.  Blocking file
    I/O runs in a worker thread.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        if not _SAFE_KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    def _read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(str(tmp_path), str(path))
