"""Cell state machine driven directly against a scope."""

from __future__ import annotations

from livesheet.cell import Cell, CellSeed, CellTarget, CellView, format_value, is_valid_name
from livesheet.fold import SetEntry
from livesheet.scheduler import VirtualScheduler
from livesheet.scope import Scope
from livesheet.signals import Signal


def _cell(seed: CellSeed | None = None) -> tuple[Cell, Scope, VirtualScheduler]:
    scheduler = VirtualScheduler()
    scope = Scope(scheduler)
    cell = Cell(scope, scheduler, cell_id=1, seed=seed)
    cell.start()
    return cell, scope, scheduler


def _record(stream) -> list:
    seen: list = []
    stream.subscribe(seen.append)
    return seen


class TestNames:
    def test_valid_names(self) -> None:
        assert is_valid_name("revenue")
        assert not is_valid_name("")
        assert not is_valid_name("pi")
        assert not is_valid_name("sqrt")

    def test_invalid_names_are_ignored(self) -> None:
        cell, _, scheduler = _cell()
        for text in ("", "pi", "sin"):
            cell.edit_name(text)
            scheduler.advance(0.25)
        assert not cell.name.has_value

    def test_renames_are_reported_as_pairs(self) -> None:
        cell, _, scheduler = _cell()
        renames = _record(cell.renames)
        cell.edit_name("a")
        scheduler.advance(0.25)
        cell.edit_name("b")
        scheduler.advance(0.25)
        assert renames == [("a", "b")]

    def test_renaming_to_the_same_name_is_silent(self) -> None:
        cell, _, scheduler = _cell(CellSeed("a", "1"))
        renames = _record(cell.renames)
        cell.edit_name("a")
        scheduler.advance(0.25)
        assert renames == []


class TestFormulaEvaluation:
    def test_publishes_target_once_named_and_compiled(self) -> None:
        cell, _, scheduler = _cell()
        targets = _record(cell.targets)

        cell.edit_name("a")
        scheduler.advance(0.25)
        assert targets == []

        cell.edit_formula("2 * 3")
        scheduler.advance(0.25)
        assert targets == [CellTarget("a", "2 * 3", cell.value)]
        assert cell.value.value == 6

    def test_seed_is_applied_immediately(self) -> None:
        cell, _, _ = _cell(CellSeed("a", "1 + 1"))
        assert cell.name.value == "a"
        assert cell.formula.value.text == "1 + 1"
        assert cell.value.value == 2

    def test_reads_from_scope(self) -> None:
        cell, scope, _ = _cell(CellSeed("b", "a * 10"))
        assert cell.value.value is None
        assert cell.watched_names == ("a",)

        a = Signal(4)
        scope.apply(SetEntry("a", a))
        assert cell.value.value == 40

        a.emit(5)
        assert cell.value.value == 50

    def test_invalid_formula_keeps_last_valid_one(self) -> None:
        cell, _, scheduler = _cell(CellSeed("a", "3"))
        targets = _record(cell.targets)
        cell.edit_formula("3 +")
        scheduler.advance(0.25)

        assert cell.formula.value.text == "3"
        assert cell.value.value == 3
        assert targets == []

    def test_eval_error_yields_undefined(self) -> None:
        cell, scope, _ = _cell(CellSeed("b", "10 / a"))
        a = Signal(0)
        scope.apply(SetEntry("a", a))
        assert cell.value.value is None
        a.emit(5)
        assert cell.value.value == 2

    def test_edits_within_window_coalesce(self) -> None:
        cell, _, scheduler = _cell(CellSeed("a", "1"))
        formulas = _record(cell.formula)

        cell.edit_formula("1")
        scheduler.advance(0.1)
        cell.edit_formula("12")
        scheduler.advance(0.2)
        assert cell.formula.value.text == "1"

        scheduler.advance(0.05)
        assert [f.text for f in formulas] == ["1", "12"]
        assert cell.value.value == 12

    def test_new_formula_replaces_lens(self) -> None:
        cell, scope, scheduler = _cell(CellSeed("c", "a + 1"))
        old_lens_ids = scope.watchers("a")
        assert old_lens_ids

        cell.edit_formula("b + 1")
        scheduler.advance(0.25)
        assert scope.watchers("a") == frozenset()
        assert cell.watched_names == ("b",)


class TestRemoval:
    def test_removal_emits_last_name(self) -> None:
        cell, _, _ = _cell(CellSeed("a", "1"))
        removals = _record(cell.removals)
        cell.request_remove()
        cell.request_remove()
        assert removals == ["a"]

    def test_unnamed_cell_removal_emits_empty_name(self) -> None:
        cell, _, _ = _cell()
        removals = _record(cell.removals)
        cell.request_remove()
        assert removals == [""]

    def test_edits_after_removal_are_ignored(self) -> None:
        cell, _, scheduler = _cell(CellSeed("a", "1"))
        cell.edit_formula("2")
        cell.request_remove()
        cell.edit_name("b")
        scheduler.advance(1.0)
        assert cell.name.value == "a"
        assert cell.formula.value.text == "1"

    def test_dispose_releases_scope_lens(self) -> None:
        cell, scope, _ = _cell(CellSeed("b", "a + 1"))
        assert scope.watchers("a")
        cell.dispose()
        assert scope.watchers("a") == frozenset()
        assert cell.watched_names == ()


class TestView:
    def test_format_value(self) -> None:
        assert format_value(None) == ""
        assert format_value(2.0) == "2"
        assert format_value(2.5) == "2.5"
        assert format_value(True) == "true"

    def test_view_of_empty_cell(self) -> None:
        cell, _, _ = _cell()
        assert cell.view() == CellView()
        assert cell.view().label == " = "

    def test_view_of_computed_cell(self) -> None:
        cell, _, _ = _cell(CellSeed("a", "1 / 2"))
        view = cell.view()
        assert view == CellView("a", "1 / 2", 0.5)
        assert view.label == " = 0.5"
