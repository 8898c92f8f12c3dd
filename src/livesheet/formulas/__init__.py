"""Math formula parsing, compilation and evaluation.

Public API::

    from livesheet.formulas import compile_formula, parse_formula, evaluate_formula
"""

from livesheet.formulas.errors import (
    FormulaError,
    FormulaEvalError,
    FormulaFunctionError,
    FormulaParseError,
)
from livesheet.formulas.evaluator import evaluate_formula
from livesheet.formulas.parser import extract_free_variables, parse_formula
from livesheet.formulas.compiler import CompiledExpression, Formula, compile_formula

__all__ = [
    "CompiledExpression",
    "Formula",
    "FormulaError",
    "FormulaEvalError",
    "FormulaFunctionError",
    "FormulaParseError",
    "compile_formula",
    "evaluate_formula",
    "extract_free_variables",
    "parse_formula",
]
