"""Scope fold and narrowed lenses."""

from __future__ import annotations

from livesheet.fold import OmitEntry, SetEntry
from livesheet.scheduler import VirtualScheduler
from livesheet.scope import Scope, narrow
from livesheet.signals import Signal


def _scope() -> tuple[Scope, VirtualScheduler]:
    scheduler = VirtualScheduler()
    return Scope(scheduler), scheduler


class TestScope:
    def test_apply_and_read(self) -> None:
        scope, _ = _scope()
        x = Signal(1)
        assert scope.apply(SetEntry("x", x))
        assert scope.source("x") is x
        assert scope.read("x") == 1
        assert scope.read("missing") is None
        assert "x" in scope
        assert len(scope) == 1
        assert scope.snapshot() == {"x": 1}

    def test_same_signal_is_a_noop(self) -> None:
        scope, _ = _scope()
        x = Signal(1)
        scope.apply(SetEntry("x", x))
        assert not scope.apply(SetEntry("x", x))

    def test_index_tracks_live_lenses(self) -> None:
        scope, _ = _scope()
        lens = scope.narrow(["x", "y"])
        assert scope.watchers("x") == {lens.id}
        lens.dispose()
        assert scope.watchers("x") == frozenset()
        assert scope.watchers("y") == frozenset()


class TestScopeLens:
    def test_initial_snapshot_reads_missing_names_as_none(self) -> None:
        scope, _ = _scope()
        scope.apply(SetEntry("x", Signal(1)))
        lens = narrow(scope, ["x", "y"])
        seen: list[dict] = []
        lens.snapshots.subscribe(seen.append)
        assert seen == [{"x": 1, "y": None}]

    def test_duplicate_names_are_collapsed(self) -> None:
        scope, _ = _scope()
        lens = scope.narrow(["x", "x", "y"])
        assert lens.names == ("x", "y")

    def test_value_changes_and_bindings(self) -> None:
        scope, _ = _scope()
        x = Signal(1)
        scope.apply(SetEntry("x", x))
        lens = scope.narrow(["x", "y"])
        seen: list[dict] = []
        lens.snapshots.subscribe(seen.append)

        x.emit(2)
        y = Signal(5)
        scope.apply(SetEntry("y", y))
        scope.apply(OmitEntry("x"))

        assert seen == [
            {"x": 1, "y": None},
            {"x": 2, "y": None},
            {"x": 2, "y": 5},
            {"x": None, "y": 5},
        ]

    def test_unwatched_names_do_not_trigger(self) -> None:
        scope, _ = _scope()
        x, other = Signal(1), Signal(1)
        scope.apply(SetEntry("x", x))
        scope.apply(SetEntry("other", other))
        lens = scope.narrow(["x"])
        seen: list[dict] = []
        lens.snapshots.subscribe(seen.append)

        other.emit(99)
        scope.apply(SetEntry("z", Signal(3)))
        assert seen == [{"x": 1}]

    def test_equal_snapshots_are_dropped(self) -> None:
        scope, _ = _scope()
        scope.apply(SetEntry("x", Signal(1)))
        lens = scope.narrow(["x"])
        seen: list[dict] = []
        lens.snapshots.subscribe(seen.append)

        # A different signal carrying an equal value.
        scope.apply(SetEntry("x", Signal(1)))
        assert seen == [{"x": 1}]

    def test_changes_within_one_step_coalesce(self) -> None:
        scope, scheduler = _scope()
        x, y = Signal(1), Signal(2)
        scope.apply(SetEntry("x", x))
        scope.apply(SetEntry("y", y))
        lens = scope.narrow(["x", "y"])
        seen: list[dict] = []
        lens.snapshots.subscribe(seen.append)

        def burst() -> None:
            x.emit(3)
            y.emit(6)

        scheduler.dispatch(burst)
        assert seen == [{"x": 1, "y": 2}, {"x": 3, "y": 6}]

    def test_empty_lens_emits_once(self) -> None:
        scope, _ = _scope()
        lens = scope.narrow([])
        seen: list[dict] = []
        lens.snapshots.subscribe(seen.append)

        scope.apply(SetEntry("x", Signal(1)))
        scope.apply(OmitEntry("x"))
        assert seen == [{}]

    def test_disposed_lens_stops_emitting(self) -> None:
        scope, _ = _scope()
        x = Signal(1)
        scope.apply(SetEntry("x", x))
        lens = scope.narrow(["x"])
        seen: list[dict] = []
        lens.snapshots.subscribe(seen.append)
        lens.dispose()

        x.emit(2)
        assert seen == [{"x": 1}]
        assert x.observer_count == 0


class TestRanks:
    def test_output_is_one_deeper_than_its_inputs(self) -> None:
        scope, _ = _scope()
        scope.apply(SetEntry("x", Signal(1)))
        out = Signal()
        lens = scope.narrow(["x"], output=out)
        assert lens.rank == 1
        assert out.rank == 1

        scope.apply(SetEntry("y", out))
        reader = narrow(scope, ["x", "y"], output=Signal())
        assert reader.rank == 2
        assert reader.output.rank == 2

    def test_rebinding_reranks_downstream_lenses(self) -> None:
        scope, _ = _scope()
        scope.apply(SetEntry("a", Signal(1)))
        out_b, out_c = Signal(), Signal()
        lens_b = scope.narrow(["a"], output=out_b)
        scope.apply(SetEntry("b", out_b))
        lens_c = scope.narrow(["b"], output=out_c)
        assert (lens_b.rank, lens_c.rank) == (1, 2)

        computed = Signal()
        scope.narrow([], output=computed)
        scope.apply(SetEntry("a", computed))
        assert (lens_b.rank, lens_c.rank) == (2, 3)
        assert out_c.rank == 3

    def test_cycles_saturate(self) -> None:
        scope, _ = _scope()
        out_a, out_b = Signal(), Signal()
        scope.apply(SetEntry("a", out_a))
        scope.apply(SetEntry("b", out_b))
        lens_a = scope.narrow(["b"], output=out_a)
        lens_b = scope.narrow(["a"], output=out_b)
        assert lens_a.rank == lens_b.rank == 3

    def test_deeper_lens_recomputes_after_shallower_one(self) -> None:
        scope, scheduler = _scope()
        x = Signal(1)
        scope.apply(SetEntry("x", x))
        # Subscribed to x before the lens it depends on.
        deep = scope.narrow(["x", "d"])
        seen: list[dict] = []
        deep.snapshots.subscribe(seen.append)

        doubled = Signal()
        shallow = scope.narrow(["x"], output=doubled)
        shallow.snapshots.subscribe(lambda snap: doubled.emit(snap["x"] * 2))
        scope.apply(SetEntry("d", doubled))
        assert deep.rank == 2

        scheduler.dispatch(x.emit, 5)
        assert seen == [
            {"x": 1, "d": None},
            {"x": 1, "d": 2},
            {"x": 5, "d": 10},
        ]
