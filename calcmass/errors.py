"""Exception types raised by the calcmass core."""

from __future__ import annotations

from pathlib import Path


class CalcMassError(Exception):
    """Base class for every error raised by calcmass."""


class FormulaError(CalcMassError, ValueError):
    """A formula could not be evaluated.

    ``fragment`` holds the offending substring or symbol and ``position`` its
    offset in the input string, when known.
    """

    kind = "FormulaError"

    def __init__(
        self,
        message: str,
        fragment: str | None = None,
        position: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.fragment = fragment
        self.position = position

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, {self.fragment!r}, {self.position!r})"

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} at position {self.position + 1}"


class FormulaSyntaxError(FormulaError):
    kind = "SyntaxError"


class UnknownSymbolError(FormulaError):
    kind = "UnknownSymbolError"


class CyclicExpansionError(FormulaError):
    kind = "CyclicExpansionError"

    def __init__(self, message: str, trail: tuple[str, ...] = ()) -> None:
        super().__init__(message, fragment=trail[0] if trail else None)
        self.trail = trail


class CountOverflowError(FormulaError):
    kind = "CountOverflowError"


class TableLoadError(CalcMassError):
    """A lookup table is malformed; raised once, while loading."""

    def __init__(self, message: str, path: Path | str | None = None, line: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.line = line

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        if self.line is None:
            return f"{self.path}: {self.message}"
        return f"{self.path}:{self.line}: {self.message}"
