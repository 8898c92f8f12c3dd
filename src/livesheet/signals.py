"""Minimal push-based reactive primitives.

``EventStream`` delivers discrete events to its current observers.
``Signal`` additionally remembers its latest value, replays it to late
subscribers and drops value-equal repeats.  ``Debouncer`` coalesces bursts
of input into the last value seen after a quiet period.
"""

from __future__ import annotations

import itertools
import math
from typing import Any, Callable, Generic, TypeVar

from livesheet.scheduler import Scheduler, Timer

T = TypeVar("T")


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality used to drop repeated emissions.

    Numbers compare by value across int/float (but never equal a bool),
    NaN equals NaN, and dicts/lists/tuples compare element-wise.
    """
    if a is b:
        return True
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
            return True
        return a == b
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return (
            type(a) is type(b)
            and len(a) == len(b)
            and all(values_equal(x, y) for x, y in zip(a, b))
        )
    if type(a) is not type(b):
        return False
    return a == b


class Subscription:
    """Handle returned by ``subscribe``; ``dispose()`` is idempotent."""

    __slots__ = ("_dispose", "closed")

    def __init__(self, dispose: Callable[[], None]) -> None:
        self._dispose = dispose
        self.closed = False

    def dispose(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._dispose()


class EventStream(Generic[T]):
    """A hot stream of discrete events with no memory."""

    def __init__(self) -> None:
        self._observers: dict[int, Callable[[T], Any]] = {}
        self._ids = itertools.count()

    def subscribe(self, observer: Callable[[T], Any]) -> Subscription:
        key = next(self._ids)
        self._observers[key] = observer
        return Subscription(lambda: self._observers.pop(key, None))

    def emit(self, value: T) -> None:
        for observer in list(self._observers.values()):
            observer(value)

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def clear(self) -> None:
        self._observers.clear()


class Signal(EventStream[T]):
    """A remembered value.

    Late subscribers immediately receive the current value.  With
    ``dedupe`` (the default) an emission equal to the current value is
    dropped.

    ``rank`` is the signal's depth in the dependency graph: 0 for inputs,
    and for a cell value the rank of the scope lens that computes it.
    """

    def __init__(self, value: Any = UNSET, *, dedupe: bool = True) -> None:
        super().__init__()
        self._value = value
        self._dedupe = dedupe
        self.rank = 0

    @property
    def has_value(self) -> bool:
        return self._value is not UNSET

    @property
    def value(self) -> T | None:
        """Current value, or ``None`` if nothing was emitted yet."""
        return None if self._value is UNSET else self._value

    def subscribe(self, observer: Callable[[T], Any], *, replay: bool = True) -> Subscription:
        subscription = super().subscribe(observer)
        if replay and self.has_value:
            observer(self._value)
        return subscription

    def emit(self, value: T) -> None:
        if self._dedupe and self.has_value and values_equal(self._value, value):
            return
        self._value = value
        super().emit(value)


class Debouncer(Generic[T]):
    """Timer-based coalescing buffer: the last value pushed wins.

    ``callback`` runs with the latest value once *delay* seconds pass
    without another ``push``.
    """

    def __init__(self, scheduler: Scheduler, delay: float, callback: Callable[[T], Any]) -> None:
        self._scheduler = scheduler
        self._delay = delay
        self._callback = callback
        self._timer: Timer | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def push(self, value: T) -> None:
        self.cancel()
        self._timer = self._scheduler.call_later(self._delay, self._fire, value)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, value: T) -> None:
        self._timer = None
        self._callback(value)
