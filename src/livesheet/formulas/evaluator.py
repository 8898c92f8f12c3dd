"""Tree-walking evaluator for parsed formula expressions.

The scope maps cell names to their current values.  A value of ``None``
stands for "not defined yet": reading it is fine, computing with it is an
evaluation error.

The walk uses an explicit stack, so formula depth is bounded only by
memory (a 3000-term sum evaluates like a short one).
"""

from __future__ import annotations

import operator
from collections.abc import Mapping
from typing import Any, Callable

from lark import Token, Tree

from livesheet.formulas.errors import (
    FormulaError,
    FormulaEvalError,
    FormulaFunctionError,
)
from livesheet.functions.registry import (
    get_constant,
    get_function,
    has_constant,
    has_function,
)


_BINARY_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "mod": operator.mod,
    "gt": operator.gt,
    "lt": operator.lt,
    "gte": operator.ge,
    "lte": operator.le,
    "eq": operator.eq,
    "neq": operator.ne,
}


def evaluate_formula(tree: Tree, scope: Mapping[str, Any]) -> Any:
    """Evaluate a parsed formula tree against a scope.

    Args:
        tree: Parse tree from ``parse_formula()``.
        scope: Mapping of cell names to their current values.

    Returns:
        The computed value: a number, a bool, or ``None`` when the formula
        is a bare reference to an undefined name.

    Raises:
        FormulaEvalError: If the formula cannot be computed against *scope*.
    """
    try:
        return _eval(tree, scope)
    except FormulaEvalError:
        raise
    except FormulaError as exc:
        raise FormulaEvalError(str(exc)) from exc
    except (ArithmeticError, TypeError, ValueError, RecursionError) as exc:
        raise FormulaEvalError(f"{type(exc).__name__}: {exc}") from exc


def _operands(node: Tree) -> list[Tree | Token]:
    """Sub-expressions *node* needs evaluated before it can be applied."""
    if node.data == "func_call":
        return list(node.children[1].children)
    return list(node.children)


def _eval(root: Tree | Token, scope: Mapping[str, Any]) -> Any:
    # Post-order walk: a node is pushed once to schedule its operands and
    # again (``ready``) to combine their values from the top of ``values``.
    stack: list[tuple[Tree | Token, bool]] = [(root, False)]
    values: list[Any] = []

    while stack:
        node, ready = stack.pop()

        if isinstance(node, Token):
            values.append(_eval_token(node))
            continue
        if node.data == "number":
            values.append(_parse_number(node.children[0]))
            continue
        if node.data == "symbol":
            values.append(_eval_symbol(str(node.children[0]), scope))
            continue

        operands = _operands(node)
        if not ready:
            if node.data == "func_call" and not has_function(str(node.children[0])):
                raise FormulaFunctionError(str(node.children[0]))
            stack.append((node, True))
            stack.extend((child, False) for child in reversed(operands))
            continue

        count = len(operands)
        args = values[len(values) - count:]
        del values[len(values) - count:]
        label = str(node.children[0]) if node.data == "func_call" else node.data
        values.append(_checked(_apply(node, args), label))

    return values[0]


def _apply(node: Tree, args: list[Any]) -> Any:
    rule = node.data

    if rule == "start":
        return args[0]

    if rule in _BINARY_OPS:
        left, right = (_operand(a, rule) for a in args)
        return _BINARY_OPS[rule](left, right)
    if rule == "div":
        left, right = (_operand(a, rule) for a in args)
        if right == 0:
            raise ZeroDivisionError("Division by zero in formula")
        return left / right
    if rule == "pow":
        left, right = (_operand(a, rule) for a in args)
        return get_function("pow")(left, right)
    if rule == "neg":
        return -_operand(args[0], rule)
    if rule == "pos":
        return +_operand(args[0], rule)
    if rule == "factorial":
        return get_function("factorial")(_operand(args[0], rule))

    if rule == "func_call":
        func_name = str(node.children[0])
        return get_function(func_name)(*(_operand(a, func_name) for a in args))

    raise FormulaError(f"Unknown node type: {rule}")


def _checked(value: Any, label: str) -> Any:
    """Values stay real numbers, bools or undefined."""
    if isinstance(value, complex):
        raise FormulaEvalError(f"Complex result in {label!r}")
    return value


def _operand(value: Any, rule: str) -> Any:
    """Reject undefined and non-numeric operands."""
    if value is None:
        raise FormulaEvalError(f"Undefined operand in {rule!r}")
    if not isinstance(value, (int, float)):
        raise FormulaEvalError(
            f"Unsupported operand type {type(value).__name__} in {rule!r}"
        )
    return value


def _eval_symbol(name: str, scope: Mapping[str, Any]) -> Any:
    # Reserved names can never be cell names, so constants cannot be shadowed.
    if has_constant(name):
        return get_constant(name)
    if name in scope:
        return scope[name]
    if has_function(name):
        raise FormulaEvalError(f"Function {name!r} used as a value")
    raise FormulaEvalError(f"Undefined symbol {name!r}")


def _eval_token(token: Token) -> Any:
    """Evaluate a bare token (shouldn't normally happen at top level)."""
    if token.type == "NUMBER":
        return _parse_number(token)
    return str(token)


def _parse_number(token: Token) -> int | float:
    """Parse a NUMBER token to int or float."""
    s = str(token)
    if "." in s or "e" in s or "E" in s:
        return float(s)
    return int(s)
