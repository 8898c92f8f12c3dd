"""Per-cell reactive state machine.

A cell turns three kinds of input (an optional restore seed, debounced
name/formula text edits, a removal request) into four outputs the Sheet
folds into its shared state:

- ``name`` / ``formula`` / ``value`` -- remembered signals;
- ``renames`` -- ``(previous, current)`` pairs;
- ``targets`` -- ``CellTarget`` publications for the scope and storage folds;
- ``removals`` -- the last known name when removal is requested.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from livesheet.formulas import Formula, FormulaEvalError, compile_formula
from livesheet.functions import is_reserved
from livesheet.logging.events import EventType, FORMULA_EVAL_FAILED, emit_warning
from livesheet.scheduler import Scheduler
from livesheet.scope import Scope, ScopeLens
from livesheet.signals import UNSET, Debouncer, EventStream, Signal, Subscription

DEFAULT_DEBOUNCE_SECS = 0.25


@dataclass(frozen=True)
class CellSeed:
    """Restore payload: a name and formula text loaded from storage."""

    name: str
    formula: str


@dataclass(frozen=True)
class CellTarget:
    """What a cell publishes to the Sheet: name, formula text, live value."""

    name: str
    formula_text: str
    value: Signal


@dataclass(frozen=True)
class CellView:
    """Renderable row for the presentation layer."""

    name: str = ""
    formula_text: str = ""
    value: Any = None

    @property
    def label(self) -> str:
        return f" = {format_value(self.value)}"


def format_value(value: Any) -> str:
    """Display text for a computed value; undefined renders blank."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_valid_name(name: str) -> bool:
    """Names must be non-empty and outside the reserved math namespace."""
    return bool(name) and not is_reserved(name)


class Cell:
    """A named formula whose value is recomputed from the shared scope."""

    def __init__(
        self,
        scope: Scope,
        scheduler: Scheduler,
        *,
        cell_id: int = 0,
        seed: CellSeed | None = None,
        debounce: float = DEFAULT_DEBOUNCE_SECS,
    ) -> None:
        self.id = cell_id
        self.seed = seed
        self.removed = False
        self.evaluations = 0

        self.name: Signal[str] = Signal()
        self.formula: Signal[Formula] = Signal(dedupe=False)
        self.value: Signal[Any] = Signal()
        self.renames: EventStream[tuple[str, str]] = EventStream()
        self.targets: EventStream[CellTarget] = EventStream()
        self.removals: EventStream[str] = EventStream()

        self._scope = scope
        self._formula_text: Signal[str] = Signal()
        self._previous_name: Any = UNSET
        self._lens: ScopeLens | None = None
        self._lens_subscription: Subscription | None = None
        self._started = False

        self._name_edits: Debouncer[str] = Debouncer(scheduler, debounce, self._accept_name)
        self._formula_edits: Debouncer[str] = Debouncer(
            scheduler, debounce, self._formula_text.emit
        )

        self._formula_text.subscribe(self._compile)
        self.formula.subscribe(self._on_formula)
        self.name.subscribe(self._on_name)

    def __repr__(self) -> str:
        return f"Cell(id={self.id}, name={self.name.value!r}, value={self.value.value!r})"

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Replay the restore seed, if any.  Called once by the Sheet."""
        if self._started:
            return
        self._started = True
        if self.seed is not None:
            self.name.emit(self.seed.name)
            self._formula_text.emit(self.seed.formula)

    def edit_name(self, text: str) -> None:
        """Raw name edit; applied after the debounce window."""
        if not self.removed:
            self._name_edits.push(text)

    def edit_formula(self, text: str) -> None:
        """Raw formula edit; applied after the debounce window."""
        if not self.removed:
            self._formula_edits.push(text)

    def request_remove(self) -> None:
        """Signal removal with the last known name (``""`` if never named)."""
        if self.removed:
            return
        self.removed = True
        self._name_edits.cancel()
        self._formula_edits.cancel()
        self.removals.emit(self.name.value if self.name.has_value else "")

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------

    def _accept_name(self, text: str) -> None:
        if is_valid_name(text):
            self.name.emit(text)

    def _on_name(self, name: str) -> None:
        previous, self._previous_name = self._previous_name, name
        if previous is not UNSET:
            self.renames.emit((previous, name))
        self._publish()

    def _compile(self, text: str) -> None:
        formula = compile_formula(text)
        if formula.valid:
            self.formula.emit(formula)

    def _on_formula(self, formula: Formula) -> None:
        self._release_lens()
        self._lens = self._scope.narrow(formula.free_variables, output=self.value)
        self._lens_subscription = self._lens.snapshots.subscribe(
            lambda snapshot: self._evaluate(formula, snapshot)
        )
        self._publish()

    def _evaluate(self, formula: Formula, snapshot: dict[str, Any]) -> None:
        self.evaluations += 1
        try:
            value = formula.compiled.evaluate(snapshot)
        except FormulaEvalError as exc:
            emit_warning(
                EventType.formula_eval_error,
                str(exc),
                {"cell": self.name.value, "formula": formula.text},
                error_code=FORMULA_EVAL_FAILED,
            )
            value = None
        self.value.emit(value)

    def _publish(self) -> None:
        if self.name.has_value and self.formula.has_value:
            self.targets.emit(CellTarget(self.name.value, self.formula.value.text, self.value))

    def _release_lens(self) -> None:
        if self._lens_subscription is not None:
            self._lens_subscription.dispose()
            self._lens_subscription = None
        if self._lens is not None:
            self._lens.dispose()
            self._lens = None

    # ------------------------------------------------------------------
    # View / lifecycle
    # ------------------------------------------------------------------

    @property
    def watched_names(self) -> tuple[str, ...]:
        """Names the current formula reads from the scope."""
        return self._lens.names if self._lens is not None else ()

    def view(self) -> CellView:
        return CellView(
            name=self.name.value or "",
            formula_text=self.formula.value.text if self.formula.has_value else "",
            value=self.value.value,
        )

    def dispose(self) -> None:
        """Tear down pending edits, the scope lens and the cell's own wiring.

        Observers of ``value`` belong to other cells' lenses and are left to
        the scope fold to rebind.
        """
        self._name_edits.cancel()
        self._formula_edits.cancel()
        self._release_lens()
        for stream in (
            self.name,
            self.formula,
            self._formula_text,
            self.renames,
            self.targets,
            self.removals,
        ):
            stream.clear()
