"""Built-in math functions and constants available to every formula."""

from __future__ import annotations

import math
import statistics
from typing import Any

from livesheet.formulas.errors import FormulaFunctionError
from livesheet.functions.registry import register_constant, register_function


register_constant("pi", math.pi)
register_constant("e", math.e)
register_constant("tau", math.tau)
register_constant("phi", (1 + math.sqrt(5)) / 2)
register_constant("true", True)
register_constant("false", False)
register_constant("Infinity", math.inf)
register_constant("NaN", math.nan)

MAX_FACTORIAL = 170


def _arity(name: str, args: tuple, low: int, high: float | None = None) -> None:
    """Raise FormulaFunctionError unless ``low <= len(args) <= high``."""
    if high is None:
        high = low
    if low <= len(args) <= high:
        return
    if low == high:
        expected = f"exactly {low} argument{'s' if low != 1 else ''}"
    elif high == math.inf:
        expected = f"at least {low} argument{'s' if low != 1 else ''}"
    else:
        expected = f"{low}-{high} arguments"
    raise FormulaFunctionError(name, f"{name} requires {expected}")


def _unary(name: str, fn: Any) -> None:
    def wrapper(*args: Any) -> Any:
        _arity(name, args, 1)
        return fn(args[0])

    wrapper.__name__ = f"fn_{name}"
    wrapper.__doc__ = f"{name}(x)"
    register_function(name)(wrapper)


for _name, _fn in {
    "abs": abs,
    "sqrt": math.sqrt,
    "cbrt": lambda x: math.copysign(abs(x) ** (1 / 3), x),
    "exp": math.exp,
    "log10": math.log10,
    "log2": math.log2,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "sinh": math.sinh,
    "cosh": math.cosh,
    "tanh": math.tanh,
    "floor": math.floor,
    "ceil": math.ceil,
    "fix": math.trunc,
}.items():
    _unary(_name, _fn)


@register_function("log")
def fn_log(*args: Any) -> float:
    """log(x [, base]) -- natural logarithm unless a base is given."""
    _arity("log", args, 1, 2)
    if len(args) == 2:
        return math.log(args[0], args[1])
    return math.log(args[0])


@register_function("round")
def fn_round(*args: Any) -> float:
    """round(x [, digits])."""
    _arity("round", args, 1, 2)
    digits = int(args[1]) if len(args) == 2 else 0
    return round(args[0], digits)


@register_function("sign")
def fn_sign(*args: Any) -> int:
    _arity("sign", args, 1)
    x = args[0]
    return (x > 0) - (x < 0)


@register_function("pow")
def fn_pow(*args: Any) -> float:
    _arity("pow", args, 2)
    return power(args[0], args[1])


def power(base: Any, exponent: Any) -> float:
    """Float power (shared with ``^``); overflow saturates to signed infinity.

    Integer operands are converted first so ``9^9^9`` cannot build an
    unbounded integer.
    """
    base, exponent = float(base), float(exponent)
    try:
        return base ** exponent
    except OverflowError:
        negative = base < 0 and exponent.is_integer() and int(exponent) % 2 == 1
        return -math.inf if negative else math.inf


@register_function("mod")
def fn_mod(*args: Any) -> Any:
    _arity("mod", args, 2)
    return args[0] % args[1]


@register_function("atan2")
def fn_atan2(*args: Any) -> float:
    _arity("atan2", args, 2)
    return math.atan2(args[0], args[1])


@register_function("hypot")
def fn_hypot(*args: Any) -> float:
    _arity("hypot", args, 1, math.inf)
    return math.hypot(*args)


@register_function("gcd")
def fn_gcd(*args: Any) -> int:
    _arity("gcd", args, 1, math.inf)
    return math.gcd(*(int(a) for a in args))


@register_function("lcm")
def fn_lcm(*args: Any) -> int:
    _arity("lcm", args, 1, math.inf)
    return math.lcm(*(int(a) for a in args))


@register_function("factorial")
def fn_factorial(*args: Any) -> int | float:
    _arity("factorial", args, 1)
    return factorial(args[0])


def factorial(x: Any) -> int | float:
    """Factorial of a non-negative integral number (shared with postfix ``!``).

    Results past the float range (``171!`` and up) are infinite.
    """
    if isinstance(x, bool) or math.isinf(x) or x != int(x):
        raise ValueError(f"factorial of non-integer {x!r}")
    if x > MAX_FACTORIAL:
        return math.inf
    return math.factorial(int(x))


@register_function("min")
def fn_min(*args: Any) -> Any:
    _arity("min", args, 1, math.inf)
    return min(args)


@register_function("max")
def fn_max(*args: Any) -> Any:
    _arity("max", args, 1, math.inf)
    return max(args)


@register_function("sum")
def fn_sum(*args: Any) -> Any:
    _arity("sum", args, 1, math.inf)
    return sum(args)


@register_function("mean")
def fn_mean(*args: Any) -> float:
    _arity("mean", args, 1, math.inf)
    return sum(args) / len(args)


@register_function("median")
def fn_median(*args: Any) -> Any:
    _arity("median", args, 1, math.inf)
    return statistics.median(args)
