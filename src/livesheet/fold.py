"""Ordered folds over name-keyed reducers.

A ``Fold`` holds a mapping and replaces it with ``reducer(mapping)`` for
every reducer applied, in arrival order.  Reducers never mutate the mapping
they are given, so each accepted change produces a fresh mapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Union

from livesheet.signals import EventStream, Signal

_MISSING = object()


@dataclass(frozen=True)
class SetEntry:
    """Reducer: bind *name* to *value* (last writer wins)."""

    name: str
    value: Any

    def __call__(self, mapping: dict[str, Any]) -> dict[str, Any]:
        current = mapping.get(self.name, _MISSING)
        if current is self.value or (current is not _MISSING and _plain_equal(current, self.value)):
            return mapping
        out = dict(mapping)
        out[self.name] = self.value
        return out


@dataclass(frozen=True)
class OmitEntry:
    """Reducer: drop *name* if present."""

    name: str

    def __call__(self, mapping: dict[str, Any]) -> dict[str, Any]:
        if self.name not in mapping:
            return mapping
        out = dict(mapping)
        del out[self.name]
        return out


Reducer = Union[SetEntry, OmitEntry]


def _plain_equal(a: Any, b: Any) -> bool:
    # Signals compare by identity; formula text compares by value.
    if isinstance(a, Signal) or isinstance(b, Signal):
        return a is b
    return type(a) is type(b) and a == b


class Fold:
    """Running reduction over a stream of reducers.

    ``changes`` emits ``(state, reducer)`` after every reducer that changed
    the state; no-op reducers emit nothing.
    """

    def __init__(self, seed: dict[str, Any] | None = None) -> None:
        self._state: dict[str, Any] = dict(seed or {})
        self.changes: EventStream[tuple[dict[str, Any], Reducer]] = EventStream()

    @property
    def state(self) -> dict[str, Any]:
        return self._state

    def apply(self, reducer: Reducer | Callable[[dict[str, Any]], dict[str, Any]]) -> bool:
        """Apply *reducer*; return True if the state changed."""
        new_state = reducer(self._state)
        if new_state is self._state:
            return False
        self._state = new_state
        self.changes.emit((new_state, reducer))
        return True
