"""Append-only NDJSON file holding a project's sheet events.

Each event becomes one ``json.dumps(sort_keys=True)`` line in
``<log_dir>/logs/events.ndjson``.  Appends hold an exclusive ``flock`` and
reads a shared one where ``fcntl`` exists; elsewhere the file is used
unlocked.  Reads only look at the newest ``tail_bytes`` of the file.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from livesheet.logging.events import LivesheetEvent

try:
    import fcntl
except ImportError:  # pragma: no cover - Windows
    fcntl = None  # type: ignore[assignment]

LOG_FILENAME = "events.ndjson"
DEFAULT_TAIL_BYTES = 2 * 1024 * 1024
MAX_READ_LIMIT = 2000


@contextmanager
def _flocked(path: Path, flags: int, lock: int) -> Iterator[int]:
    fd = os.open(str(path), flags, 0o644)
    try:
        if fcntl is not None:
            fcntl.flock(fd, lock)
        yield fd
    finally:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)


def _tail(path: Path, max_bytes: int) -> bytes:
    """Newest *max_bytes* of *path*, cut back to a whole first line."""
    lock = fcntl.LOCK_SH if fcntl is not None else 0
    with _flocked(path, os.O_RDONLY, lock) as fd:
        size = os.fstat(fd).st_size
        if size <= max_bytes:
            return os.read(fd, size)
        os.lseek(fd, size - max_bytes, os.SEEK_SET)
        data = os.read(fd, max_bytes)
    newline = data.find(b"\n")
    return data[newline + 1:] if newline >= 0 else b""


def _matches(
    event: dict[str, Any],
    level: str | None,
    event_type: str | None,
    cell: str | None,
) -> bool:
    if level and event.get("level") != level:
        return False
    if event_type and event.get("event_type") != event_type:
        return False
    if cell and (event.get("context") or {}).get("cell") != cell:
        return False
    return True


class EventSink:
    """Writer and reader for one project's event log."""

    def __init__(self, log_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(log_dir) / "logs"
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.fsync = fsync
        self.tail_bytes = DEFAULT_TAIL_BYTES if tail_bytes is None else tail_bytes

    @property
    def path(self) -> Path:
        return self.logs_dir / LOG_FILENAME

    def write(self, event: LivesheetEvent) -> None:
        payload = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str)
        lock = fcntl.LOCK_EX if fcntl is not None else 0
        with _flocked(self.path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, lock) as fd:
            os.write(fd, (payload + "\n").encode("utf-8"))
            if self.fsync:
                os.fsync(fd)

    def iter_events(self) -> Iterator[dict[str, Any]]:
        """Decoded events from the tail of the log, oldest first.

        Lines that are not valid JSON (a torn write, manual edits) are skipped.
        """
        if not self.path.exists():
            return
        for line in _tail(self.path, self.tail_bytes).decode("utf-8", errors="replace").splitlines():
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                continue

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        cell: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Filtered events, most recent first, at most *limit* (capped at 2000)."""
        selected = [e for e in self.iter_events() if _matches(e, level, event_type, cell)]
        selected.reverse()
        return selected[: min(limit, MAX_READ_LIMIT)]
