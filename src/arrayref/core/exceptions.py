from __future__ import annotations

from typing import Optional, Sequence, Tuple


class ArrayRefError(Exception):
    """Base class for arrayref-specific exceptions.

    ``array`` names the array whose evaluation raised the error. The resolver
    fills it in when the error escapes a reference's ``read()``.
    """

    array: Optional[str] = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.array is None:
            return message
        return f"{message} [while resolving '{self.array}']"


class ConfigurationError(ArrayRefError, ValueError):
    pass


class RangeError(ArrayRefError, IndexError):
    def __init__(self, message: str, *, dimension: Optional[int] = None):
        super().__init__(message)
        self.dimension = dimension


class ShapeMismatchError(ArrayRefError, ValueError):
    def __init__(self, message: str, *, shapes: Sequence[Tuple[int, ...]] = ()):
        super().__init__(message)
        self.shapes = [tuple(shape) for shape in shapes]


class NumericError(ArrayRefError, ArithmeticError):
    def __init__(self, message: str, *, index: Optional[Tuple[int, ...]] = None):
        if index is not None:
            message = f"{message} at index {index}"
        super().__init__(message)
        self.index = index


class UnsupportedOperatorError(ArrayRefError, LookupError):
    def __init__(self, operator: str):
        super().__init__(f"Unsupported operator '{operator}'")
        self.operator = operator


class CyclicReferenceError(ArrayRefError, RuntimeError):
    def __init__(self, cycle: Sequence[str]):
        super().__init__("Cyclic array reference: " + " -> ".join(cycle))
        self.cycle = list(cycle)


class ParseError(ArrayRefError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        line: Optional[int] = None,
        column: Optional[int] = None,
        line_text: Optional[str] = None,
    ):
        detail = _format_location(line, column, line_text)
        super().__init__(f"{message}{detail}")
        self.line = line
        self.column = column
        self.line_text = line_text


def _format_location(
    line: Optional[int],
    column: Optional[int],
    line_text: Optional[str],
) -> str:
    if line is None and column is None:
        return ""
    location = []
    if line is not None:
        location.append(f"line {line}")
    if column is not None:
        location.append(f"col {column}")
    location_str = f" ({', '.join(location)})"
    if line_text is None or column is None or column < 1:
        return location_str
    caret = " " * (column - 1) + "^"
    return f"{location_str}\n  {line_text}\n  {caret}"
