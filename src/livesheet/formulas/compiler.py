"""Compile formula text into an immutable ``Formula``."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from lark import Tree

from livesheet.formulas.errors import FormulaError
from livesheet.formulas.evaluator import evaluate_formula
from livesheet.formulas.parser import extract_free_variables, parse_formula
from livesheet.logging.events import EventType, FORMULA_PARSE_FAILED, emit_warning


@dataclass(frozen=True)
class CompiledExpression:
    """A parsed formula that can be evaluated against a scope."""

    tree: Tree

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        """Evaluate against *scope*.

        Raises:
            FormulaEvalError: If the formula fails against this scope.
        """
        return evaluate_formula(self.tree, scope)

    __call__ = evaluate


@dataclass(frozen=True)
class Formula:
    """Formula text with its compiled form and the names it reads.

    An invalid formula carries only its text and the parse diagnostic.
    """

    text: str
    compiled: CompiledExpression | None = None
    free_variables: tuple[str, ...] = ()
    valid: bool = False
    error: str | None = None

    @classmethod
    def invalid(cls, text: str, error: str) -> Formula:
        return cls(text=text, error=error)


def compile_formula(text: str) -> Formula:
    """Parse *text* into a ``Formula``.

    Never raises: a syntax error (or a call to an unknown function) returns
    an invalid formula and emits a ``formula_parse_error`` warning event.
    """
    try:
        tree = parse_formula(text)
    except FormulaError as exc:
        emit_warning(
            EventType.formula_parse_error,
            str(exc),
            {"formula": text, "position": getattr(exc, "position", None)},
            error_code=FORMULA_PARSE_FAILED,
        )
        return Formula.invalid(text, str(exc))

    return Formula(
        text=text,
        compiled=CompiledExpression(tree),
        free_variables=extract_free_variables(tree),
        valid=True,
    )
