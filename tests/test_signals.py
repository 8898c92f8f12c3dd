"""Reactive primitives: streams, signals, debouncing and folds."""

from __future__ import annotations

import math

from livesheet.fold import Fold, OmitEntry, SetEntry
from livesheet.scheduler import VirtualScheduler
from livesheet.signals import Debouncer, EventStream, Signal, values_equal


class TestValuesEqual:
    def test_numbers_compare_across_int_and_float(self) -> None:
        assert values_equal(1, 1.0)
        assert not values_equal(1, 2)

    def test_bools_are_not_numbers(self) -> None:
        assert not values_equal(True, 1)
        assert values_equal(False, False)

    def test_nan_equals_nan(self) -> None:
        assert values_equal(math.nan, math.nan)

    def test_structural_dicts(self) -> None:
        assert values_equal({"a": 1, "b": None}, {"a": 1.0, "b": None})
        assert not values_equal({"a": 1}, {"a": 1, "b": None})
        assert not values_equal({"a": None}, {"a": 0})


class TestEventStream:
    def test_emit_reaches_current_observers_only(self) -> None:
        stream: EventStream[int] = EventStream()
        seen: list[int] = []
        stream.emit(1)
        sub = stream.subscribe(seen.append)
        stream.emit(2)
        sub.dispose()
        sub.dispose()
        stream.emit(3)
        assert seen == [2]
        assert stream.observer_count == 0


class TestSignal:
    def test_replays_current_value(self) -> None:
        signal = Signal(5)
        seen: list[int] = []
        signal.subscribe(seen.append)
        assert seen == [5]

    def test_no_replay_when_unset(self) -> None:
        signal: Signal[int] = Signal()
        seen: list[int] = []
        signal.subscribe(seen.append)
        assert seen == []
        assert not signal.has_value
        assert signal.value is None

    def test_drops_repeats(self) -> None:
        signal: Signal[int] = Signal()
        seen: list[int] = []
        signal.subscribe(seen.append)
        for value in (1, 1, 2, 2.0, 1):
            signal.emit(value)
        assert seen == [1, 2, 1]

    def test_without_dedupe_every_emission_passes(self) -> None:
        signal: Signal[int] = Signal(dedupe=False)
        seen: list[int] = []
        signal.subscribe(seen.append)
        signal.emit(1)
        signal.emit(1)
        assert seen == [1, 1]

    def test_none_is_a_value(self) -> None:
        signal: Signal[int | None] = Signal()
        signal.emit(None)
        assert signal.has_value
        assert signal.value is None


class TestDebouncer:
    def test_last_value_wins_after_quiet_period(self) -> None:
        scheduler = VirtualScheduler()
        seen: list[str] = []
        debouncer: Debouncer[str] = Debouncer(scheduler, 0.25, seen.append)

        debouncer.push("a")
        scheduler.advance(0.1)
        debouncer.push("ab")
        scheduler.advance(0.2)
        assert seen == []
        assert debouncer.pending

        scheduler.advance(0.05)
        assert seen == ["ab"]
        assert not debouncer.pending

    def test_cancel_discards_pending_value(self) -> None:
        scheduler = VirtualScheduler()
        seen: list[str] = []
        debouncer: Debouncer[str] = Debouncer(scheduler, 0.25, seen.append)
        debouncer.push("x")
        debouncer.cancel()
        scheduler.advance(1.0)
        assert seen == []


class TestFold:
    def test_set_and_omit(self) -> None:
        fold = Fold({"a": "1"})
        changes: list[dict] = []
        fold.changes.subscribe(lambda change: changes.append(change[0]))

        assert fold.apply(SetEntry("b", "2"))
        assert fold.apply(OmitEntry("a"))
        assert fold.state == {"b": "2"}
        assert changes == [{"a": "1", "b": "2"}, {"b": "2"}]

    def test_noop_reducers_emit_nothing(self) -> None:
        fold = Fold({"a": "1"})
        changes: list[dict] = []
        fold.changes.subscribe(lambda change: changes.append(change[0]))

        assert not fold.apply(SetEntry("a", "1"))
        assert not fold.apply(OmitEntry("missing"))
        assert changes == []

    def test_reducers_do_not_mutate_previous_state(self) -> None:
        fold = Fold({"a": "1"})
        before = fold.state
        fold.apply(SetEntry("a", "2"))
        assert before == {"a": "1"}

    def test_signals_compare_by_identity(self) -> None:
        first, second = Signal(1), Signal(1)
        fold = Fold({"a": first})
        assert not fold.apply(SetEntry("a", first))
        assert fold.apply(SetEntry("a", second))
        assert fold.state["a"] is second
