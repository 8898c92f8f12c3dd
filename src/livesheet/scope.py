"""Shared scope and narrowed per-formula views of it.

The ``Scope`` maps cell names to the value signal of the cell currently
publishing under that name.  It is mutated only through ``apply()`` with
``SetEntry`` / ``OmitEntry`` reducers (the Sheet's scope fold).

A ``ScopeLens`` tracks a fixed tuple of names.  It keeps an index entry in
the scope for each name, binds to whatever signal is published under it,
and emits a full ``{name: value}`` snapshot whenever any tracked value or
binding changes.  Missing names and not-yet-computed values read as
``None``.

Each lens has a rank: one more than the highest rank among the signals it
is bound to.  When a lens is given the signal its snapshots feed
(``output``), that signal takes the lens's rank, so ranks follow the
dependency graph and recomputation runs shallowest first.  In a cycle the
ranks saturate at one more than the number of live lenses.
"""

from __future__ import annotations

import itertools
from typing import Any, Iterable

from livesheet.fold import Fold, Reducer
from livesheet.scheduler import Scheduler
from livesheet.signals import Signal, Subscription


class Scope:
    """Name → value-signal mapping with a name → lens-id index."""

    def __init__(self, scheduler: Scheduler) -> None:
        self.scheduler = scheduler
        self._fold = Fold()
        self._watchers: dict[str, set[int]] = {}
        self._readers: dict[int, set[int]] = {}
        self._lenses: dict[int, ScopeLens] = {}
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Fold
    # ------------------------------------------------------------------

    def apply(self, reducer: Reducer) -> bool:
        """Apply a reducer and rebind the lenses watching its name."""
        changed = self._fold.apply(reducer)
        if changed:
            for lens_id in sorted(self._watchers.get(reducer.name, ())):
                lens = self._lenses.get(lens_id)
                if lens is not None:
                    lens._rebind(reducer.name)
        return changed

    # ------------------------------------------------------------------
    # Read-only access
    # ------------------------------------------------------------------

    def source(self, name: str) -> Signal | None:
        """The value signal published under *name*, if any."""
        return self._fold.state.get(name)

    def read(self, name: str) -> Any:
        source = self.source(name)
        return source.value if source is not None else None

    def names(self) -> list[str]:
        return list(self._fold.state)

    def snapshot(self) -> dict[str, Any]:
        return {name: source.value for name, source in self._fold.state.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._fold.state

    def __len__(self) -> int:
        return len(self._fold.state)

    def watchers(self, name: str) -> frozenset[int]:
        """Ids of the live lenses tracking *name*."""
        return frozenset(self._watchers.get(name, ()))

    # ------------------------------------------------------------------
    # Lenses
    # ------------------------------------------------------------------

    def narrow(self, names: Iterable[str], *, output: Signal | None = None) -> ScopeLens:
        """Create a live view restricted to *names*.

        *output* is the signal the lens's snapshots are computed into; it
        is ranked one deeper than the lens's inputs.
        """
        lens_id = next(self._ids)
        lens = ScopeLens(self, lens_id, tuple(dict.fromkeys(names)), output)
        self._lenses[lens_id] = lens
        for name in lens.names:
            self._watchers.setdefault(name, set()).add(lens_id)
        lens._start()
        return lens

    def _forget(self, lens: ScopeLens) -> None:
        self._lenses.pop(lens.id, None)
        for name in lens.names:
            ids = self._watchers.get(name)
            if ids is None:
                continue
            ids.discard(lens.id)
            if not ids:
                del self._watchers[name]

    def _add_reader(self, source: Signal, lens: ScopeLens) -> None:
        self._readers.setdefault(id(source), set()).add(lens.id)

    def _drop_reader(self, source: Signal, lens: ScopeLens) -> None:
        ids = self._readers.get(id(source))
        if ids is None:
            return
        ids.discard(lens.id)
        if not ids:
            del self._readers[id(source)]

    def _rerank(self, lens: ScopeLens) -> None:
        """Recompute the rank of *lens* and of every lens downstream of it."""
        ceiling = len(self._lenses) + 1
        work = [lens]
        while work:
            current = work.pop()
            if current.disposed:
                continue
            rank = min(1 + max((s.rank for s, _ in current._bindings.values()), default=0), ceiling)
            if rank == current.rank:
                continue
            current.rank = rank
            output = current.output
            if output is None:
                continue
            output.rank = rank
            for lens_id in sorted(self._readers.get(id(output), ())):
                reader = self._lenses.get(lens_id)
                if reader is not None:
                    work.append(reader)


def narrow(scope: Scope, names: Iterable[str], *, output: Signal | None = None) -> ScopeLens:
    """Module-level alias for ``scope.narrow(names)``."""
    return scope.narrow(names, output=output)


class ScopeLens:
    """Live view of a scope restricted to a fixed tuple of names.

    ``snapshots`` is a remembered, de-duplicated signal of
    ``{name: value}`` dicts.  Recomputation is queued on the scheduler at
    the lens's rank and coalesced: several changes before the queue
    reaches the lens produce one snapshot, read in full at that moment.
    """

    def __init__(
        self,
        scope: Scope,
        lens_id: int,
        names: tuple[str, ...],
        output: Signal | None = None,
    ) -> None:
        self.id = lens_id
        self.names = names
        self.output = output
        self.rank = 0
        self.snapshots: Signal[dict[str, Any]] = Signal()
        self._scope = scope
        self._bindings: dict[str, tuple[Signal, Subscription]] = {}
        self._pending = False
        self.disposed = False

    def _start(self) -> None:
        for name in self.names:
            self._bind(name)
        self._scope._rerank(self)
        self._schedule()

    def _bind(self, name: str) -> None:
        source = self._scope.source(name)
        bound = self._bindings.get(name)
        if bound is not None:
            if bound[0] is source:
                return
            self._unbind(name)
        if source is not None:
            subscription = source.subscribe(lambda _value: self._schedule(), replay=False)
            self._bindings[name] = (source, subscription)
            self._scope._add_reader(source, self)

    def _unbind(self, name: str) -> None:
        source, subscription = self._bindings.pop(name)
        subscription.dispose()
        if not any(bound is source for bound, _ in self._bindings.values()):
            self._scope._drop_reader(source, self)

    def _rebind(self, name: str) -> None:
        if self.disposed:
            return
        self._bind(name)
        self._scope._rerank(self)
        self._schedule()

    def _schedule(self) -> None:
        if self._pending or self.disposed:
            return
        self._pending = True
        self._scope.scheduler.dispatch_ranked(self.rank, self._recompute)

    def _recompute(self) -> None:
        self._pending = False
        if self.disposed:
            return
        self.snapshots.emit(self.read())

    def read(self) -> dict[str, Any]:
        """Current values of every tracked name, read in one pass."""
        out: dict[str, Any] = {}
        for name in self.names:
            bound = self._bindings.get(name)
            out[name] = bound[0].value if bound is not None else None
        return out

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        for name in list(self._bindings):
            self._unbind(name)
        self._scope._forget(self)
        self.snapshots.clear()
