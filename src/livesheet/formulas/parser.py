"""Lark-based parser for math formulas that reference other cells by name.

Supports:
- Numbers: ``42``, ``3.5``, ``.5``, ``1e-3``
- Symbol references: ``revenue``, ``tax_rate``, constants such as ``pi``
- Function calls: ``sqrt(x)``, ``max(a, b, 3)``
- Arithmetic, modulo, power, postfix factorial, comparisons
"""

from __future__ import annotations

from lark import Lark, Tree, Visitor
from lark.exceptions import LarkError

import livesheet.functions  # noqa: F401
from livesheet.formulas.errors import FormulaFunctionError, FormulaParseError
from livesheet.functions.registry import has_function, is_reserved

# LALR(1) grammar.
# Operator precedence (lowest to highest):
#   1. Comparison: == != < > <= >=
#   2. Addition/subtraction: + -
#   3. Multiplication/division/modulo: * / %
#   4. Unary plus/minus: + -
#   5. Exponentiation: ^ (right-associative)
#   6. Postfix factorial: !
#   7. Atoms: number, function call, symbol, parenthesized expr
GRAMMAR = r"""
start: expr

?expr: comparison

?comparison: addition
    | comparison "==" addition  -> eq
    | comparison "!=" addition  -> neq
    | comparison "<" addition   -> lt
    | comparison ">" addition   -> gt
    | comparison "<=" addition  -> lte
    | comparison ">=" addition  -> gte

?addition: multiplication
    | addition "+" multiplication  -> add
    | addition "-" multiplication  -> sub

?multiplication: unary
    | multiplication "*" unary  -> mul
    | multiplication "/" unary  -> div
    | multiplication "%" unary  -> mod

?unary: exponentiation
    | "-" unary  -> neg
    | "+" unary  -> pos

?exponentiation: postfix
    | postfix "^" unary  -> pow

?postfix: atom
    | postfix "!"  -> factorial

?atom: NUMBER                   -> number
    | NAME "(" args ")"         -> func_call
    | NAME                      -> symbol
    | "(" expr ")"

args: expr ("," expr)*
    |

NUMBER: /(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?/

NAME: /[A-Za-z_][A-Za-z0-9_]*/

%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")


def parse_formula(text: str) -> Tree:
    """Parse formula text into a Lark Tree.

    Args:
        text: The formula text, e.g. ``"revenue * (1 - tax_rate)"``.

    Returns:
        A Lark parse tree.

    Raises:
        FormulaParseError: If the formula is blank or has invalid syntax.
        FormulaFunctionError: If it calls a function that does not exist.
    """
    if not text.strip():
        raise FormulaParseError("Formula is empty", position=0)
    try:
        tree = _parser.parse(text)
    except LarkError as exc:
        pos = getattr(exc, "pos_in_stream", None)
        if pos is not None and pos < 0:
            pos = len(text)
        raise FormulaParseError(str(exc).strip(), position=pos) from exc

    unknown = _unknown_functions(tree)
    if unknown:
        raise FormulaFunctionError(unknown[0])
    return tree


class _SymbolCollector(Visitor):
    """Visitor that collects symbol references and called function names.

    Must be driven with ``visit_topdown`` so names are recorded in order of
    first appearance.
    """

    def __init__(self) -> None:
        self.symbols: dict[str, None] = {}
        self.functions: dict[str, None] = {}

    def symbol(self, tree: Tree) -> None:
        self.symbols.setdefault(str(tree.children[0]), None)

    def func_call(self, tree: Tree) -> None:
        self.functions.setdefault(str(tree.children[0]), None)


def _collect(tree: Tree) -> _SymbolCollector:
    collector = _SymbolCollector()
    collector.visit_topdown(tree)
    return collector


def _unknown_functions(tree: Tree) -> list[str]:
    return [name for name in _collect(tree).functions if not has_function(name)]


def extract_free_variables(tree: Tree) -> tuple[str, ...]:
    """Extract the names a parsed formula needs from the scope.

    Reserved math names (functions and constants) are excluded.

    Returns:
        Names in order of first appearance, without duplicates.
    """
    return tuple(name for name in _collect(tree).symbols if not is_reserved(name))
