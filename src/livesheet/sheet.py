"""Dynamic collection of cells with a shared scope and persisted state.

The Sheet owns two folds:

- the **scope fold** (``Scope``): ``name → value signal``, starting empty;
- the **storage fold**: ``name → formula text``, seeded from storage and
  written back (JSON) whenever it changes.

Cells never touch either directly.  They emit targets, renames and
removals; the Sheet turns each into reducers, always applying the scope
reducer before the storage reducer.

Usage::

    sheet = await Sheet.open(MemoryStorage())
    a = sheet.add_cell()
    a.edit_name("a")
    a.edit_formula("1 + 1")
    sheet.scheduler.advance(0.25)
    sheet.value("a")  # 2
"""

from __future__ import annotations

import itertools
import json
from typing import Any

from livesheet.cell import Cell, CellSeed, CellTarget, CellView
from livesheet.fold import Fold, OmitEntry, Reducer, SetEntry
from livesheet.logging.events import (
    EventType,
    STORAGE_DECODE_FAILED,
    emit_info,
    emit_warning,
)
from livesheet.project import DEFAULT_CONFIG
from livesheet.scheduler import Scheduler, Timer, VirtualScheduler
from livesheet.scope import Scope
from livesheet.signals import Subscription
from livesheet.storage import Storage


class SheetError(Exception):
    """Invalid use of a Sheet (wrong lifecycle step, unknown cell)."""


def decode_formulas(raw: str | None) -> dict[str, str]:
    """Decode the stored JSON formula map.

    Absent or empty input is an empty map.  Malformed JSON, a non-object
    payload, or non-string formula entries are dropped with a
    ``storage_load_error`` warning.
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        emit_warning(
            EventType.storage_load_error,
            f"Stored formulas are not valid JSON: {exc}",
            {"raw": raw},
            error_code=STORAGE_DECODE_FAILED,
        )
        return {}
    if not isinstance(data, dict):
        emit_warning(
            EventType.storage_load_error,
            f"Stored formulas must be a JSON object, got {type(data).__name__}",
            {"raw": raw},
            error_code=STORAGE_DECODE_FAILED,
        )
        return {}

    formulas: dict[str, str] = {}
    for name, text in data.items():
        if isinstance(text, str):
            formulas[name] = text
        else:
            emit_warning(
                EventType.storage_load_error,
                f"Dropping non-text formula for {name!r}",
                {"cell": name},
                error_code=STORAGE_DECODE_FAILED,
            )
    return formulas


def encode_formulas(formulas: dict[str, str]) -> str:
    return json.dumps(formulas)


class Sheet:
    """The live set of cells plus the Scope and persisted state they feed."""

    def __init__(
        self,
        storage: Storage,
        scheduler: Scheduler | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        self.config = {**DEFAULT_CONFIG, **(config or {})}
        self.storage = storage
        self.scheduler = scheduler or VirtualScheduler(
            max_steps=self.config["max_propagation_steps"]
        )
        self.scope = Scope(self.scheduler)
        self.storage_key: str = self.config["storage_key"]

        self._storage_fold: Fold | None = None
        self._last_written: dict[str, str] | None = None
        self._cells: dict[int, Cell] = {}
        self._subscriptions: dict[int, list[Subscription]] = {}
        self._teardowns: dict[int, Timer] = {}
        self._pending: list[Cell] = []
        self._ids = itertools.count(1)
        self._loading = False
        self.restored = False

    @classmethod
    async def open(
        cls,
        storage: Storage,
        scheduler: Scheduler | None = None,
        config: dict[str, Any] | None = None,
    ) -> Sheet:
        """Create a sheet and restore its cells from *storage*."""
        sheet = cls(storage, scheduler, config)
        await sheet.load()
        return sheet

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Read the formula map once and restore one cell per entry.

        Cells added while the read is in flight are attached after every
        restored cell.
        """
        if self._loading or self.restored:
            raise SheetError("Sheet has already been loaded")
        self._loading = True
        raw = await self.storage.get(self.storage_key)
        initial = decode_formulas(raw)

        self._storage_fold = Fold(initial)
        self._storage_fold.changes.subscribe(lambda change: self._persist(change[0]))
        self._persist(self._storage_fold.state)
        emit_info(
            EventType.sheet_opened,
            f"Restoring {len(initial)} cell(s)",
            {"storage_key": self.storage_key, "cells": list(initial)},
        )

        for name, text in initial.items():
            self._attach(self._new_cell(CellSeed(name, text)))
        self.restored = True
        self._loading = False

        pending, self._pending = self._pending, []
        for cell in pending:
            self._attach(cell)

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def add_cell(self, seed: CellSeed | None = None) -> Cell:
        """Add a cell (empty unless *seed* is given) to the end of the sheet."""
        cell = self._new_cell(seed)
        if self.restored:
            self._attach(cell)
        else:
            self._pending.append(cell)
        return cell

    def _new_cell(self, seed: CellSeed | None) -> Cell:
        return Cell(
            self.scope,
            self.scheduler,
            cell_id=next(self._ids),
            seed=seed,
            debounce=self.config["debounce_ms"] / 1000,
        )

    def _attach(self, cell: Cell) -> None:
        self._cells[cell.id] = cell
        self._subscriptions[cell.id] = [
            cell.renames.subscribe(lambda names: self._on_rename(cell, names)),
            cell.targets.subscribe(self._on_target),
            cell.removals.subscribe(lambda name: self._on_remove(cell, name)),
        ]
        emit_info(
            EventType.cell_added,
            f"Cell {cell.id} added",
            {"cell_id": cell.id, "restored": cell.seed is not None},
        )
        cell.start()

    # ------------------------------------------------------------------
    # Reducers
    # ------------------------------------------------------------------

    def _fold(self, scope_reducer: Reducer, storage_reducer: Reducer) -> None:
        self.scope.apply(scope_reducer)
        if self._storage_fold is not None:
            self._storage_fold.apply(storage_reducer)

    def _on_target(self, target: CellTarget) -> None:
        self._fold(
            SetEntry(target.name, target.value),
            SetEntry(target.name, target.formula_text),
        )

    def _evict(self, cell: Cell, name: str) -> None:
        # Only the cell publishing under a name may evict it.
        owner = self.scope.source(name)
        if owner is None or owner is cell.value:
            self._fold(OmitEntry(name), OmitEntry(name))

    def _on_rename(self, cell: Cell, names: tuple[str, str]) -> None:
        previous, current = names
        self._evict(cell, previous)
        emit_info(
            EventType.cell_renamed,
            f"Cell {previous!r} renamed to {current!r}",
            {"cell": current, "previous": previous},
        )

    def _on_remove(self, cell: Cell, name: str) -> None:
        self._evict(cell, name)
        delay = self.config["removal_delay_ms"] / 1000
        self._teardowns[cell.id] = self.scheduler.call_later(delay, self._teardown, cell.id)
        emit_info(
            EventType.cell_removed,
            f"Cell {name!r} removed",
            {"cell": name, "cell_id": cell.id},
        )

    def _teardown(self, cell_id: int) -> None:
        self._teardowns.pop(cell_id, None)
        cell = self._cells.pop(cell_id, None)
        for subscription in self._subscriptions.pop(cell_id, []):
            subscription.dispose()
        if cell is not None:
            cell.dispose()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, state: dict[str, str]) -> None:
        if state == self._last_written:
            return
        self._last_written = state
        self.scheduler.spawn(self._write(encode_formulas(state)))

    async def _write(self, payload: str) -> None:
        await self.storage.set(self.storage_key, payload)
        emit_info(
            EventType.storage_written,
            "Formulas saved",
            {"storage_key": self.storage_key, "bytes": len(payload)},
        )

    async def flush(self) -> None:
        """Wait until every queued storage write has completed."""
        await self.scheduler.flush()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def cells(self) -> list[Cell]:
        """Attached cells in collection order (pending removals included)."""
        return list(self._cells.values())

    def cell(self, name: str) -> Cell | None:
        """The live cell publishing under *name*, else the last one named so."""
        source = self.scope.source(name)
        candidates = [c for c in self._cells.values() if not c.removed and c.name.value == name]
        for candidate in candidates:
            if candidate.value is source:
                return candidate
        return candidates[-1] if candidates else None

    def require(self, name: str) -> Cell:
        """Like ``cell()`` but raises ``SheetError`` when no cell is named *name*."""
        cell = self.cell(name)
        if cell is None:
            raise SheetError(f"No cell named {name!r}")
        return cell

    def value(self, name: str) -> Any:
        """Current scope value for *name*; ``None`` when absent or undefined."""
        return self.scope.read(name)

    def scope_snapshot(self) -> dict[str, Any]:
        return self.scope.snapshot()

    def persisted_state(self) -> dict[str, str]:
        if self._storage_fold is None:
            return {}
        return dict(self._storage_fold.state)

    def rows(self) -> list[CellView]:
        """One renderable row per cell, in collection order."""
        return [cell.view() for cell in self._cells.values()]

    def close(self) -> None:
        """Dispose every cell, cancel pending teardowns and drop unflushed writes.

        Call ``flush()`` first to keep the writes.
        """
        self.scheduler.cancel_spawned()
        for timer in self._teardowns.values():
            timer.cancel()
        self._teardowns.clear()
        for cell_id in list(self._cells):
            self._teardown(cell_id)
        for cell in self._pending:
            cell.dispose()
        self._pending.clear()
