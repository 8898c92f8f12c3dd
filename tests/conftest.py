"""Shared fixtures for the livesheet test suite."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from livesheet.logging.events import set_log_dir
from livesheet.sheet import Sheet
from livesheet.storage import MemoryStorage


@pytest.fixture(autouse=True)
def _reset_event_sink():
    """Every test starts and ends with event logging disabled."""
    set_log_dir(None)
    yield
    set_log_dir(None)


@pytest.fixture
def open_sheet():
    """Factory: open a sheet over in-memory storage on a virtual clock.

    Sheets opened through the factory are closed at teardown.
    """
    opened: list[Sheet] = []

    def _open(formulas: dict[str, str] | None = None, **config: Any) -> tuple[Sheet, MemoryStorage]:
        initial = {"formulas": json.dumps(formulas)} if formulas is not None else None
        storage = MemoryStorage(initial)
        sheet = asyncio.run(Sheet.open(storage, config=config or None))
        opened.append(sheet)
        return sheet, storage

    yield _open
    for sheet in opened:
        sheet.close()
