"""Central registry for formula functions and constants."""

from __future__ import annotations

from typing import Any, Callable


_FUNCTIONS: dict[str, Callable[..., Any]] = {}
_CONSTANTS: dict[str, Any] = {}


def register_function(name: str) -> Callable:
    """Decorator that registers a formula function by name.

    Args:
        name: The lookup name for this function, as written in formulas.

    Returns:
        The original function, unmodified.
    """

    def decorator(fn: Callable) -> Callable:
        _FUNCTIONS[name] = fn
        return fn

    return decorator


def register_constant(name: str, value: Any) -> None:
    """Register a named constant such as ``pi``."""
    _CONSTANTS[name] = value


def get_function(name: str) -> Callable:
    """Look up a registered function.

    Raises:
        KeyError: If no function is registered under *name*.
    """
    if name not in _FUNCTIONS:
        raise KeyError(f"Unknown function: {name!r}")
    return _FUNCTIONS[name]


def get_constant(name: str) -> Any:
    """Look up a registered constant.

    Raises:
        KeyError: If no constant is registered under *name*.
    """
    if name not in _CONSTANTS:
        raise KeyError(f"Unknown constant: {name!r}")
    return _CONSTANTS[name]


def has_function(name: str) -> bool:
    return name in _FUNCTIONS


def has_constant(name: str) -> bool:
    return name in _CONSTANTS


def is_reserved(name: str) -> bool:
    """Return True if *name* belongs to the built-in math namespace.

    Reserved names can never be cell names and are never free variables.
    """
    return name in _FUNCTIONS or name in _CONSTANTS


def reserved_names() -> frozenset[str]:
    return frozenset(_FUNCTIONS) | frozenset(_CONSTANTS)
