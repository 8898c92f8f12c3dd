"""Exceptions raised while compiling or evaluating a formula."""

from __future__ import annotations


class FormulaError(Exception):
    """Root of the formula error hierarchy."""


class FormulaParseError(FormulaError):
    """The formula text is blank or not valid syntax.

    ``position`` is the character offset the parser stopped at, when known.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        where = "" if position is None else f" (at position {position})"
        super().__init__(f"Formula parse error: {message}{where}")


class FormulaFunctionError(FormulaError):
    """A call names no known function, or passes the wrong number of arguments."""

    def __init__(self, func_name: str, message: str | None = None) -> None:
        self.func_name = func_name
        super().__init__(message or f"Unknown function: {func_name!r}")


class FormulaEvalError(FormulaError):
    """A well-formed formula could not be computed from the current scope."""
