"""Built-in math functions and constants reserved by the formula language."""

import livesheet.functions.scalar  # noqa: F401
from livesheet.functions.registry import (
    get_constant,
    get_function,
    is_reserved,
    reserved_names,
)

__all__ = [
    "get_constant",
    "get_function",
    "is_reserved",
    "reserved_names",
]
