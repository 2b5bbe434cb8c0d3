"""Molecular mass calculator for formulas, abbreviations and residue sequences."""

from importlib.metadata import version, PackageNotFoundError

from calcmass.errors import (
    CalcMassError,
    CountOverflowError,
    CyclicExpansionError,
    FormulaError,
    FormulaSyntaxError,
    TableLoadError,
    UnknownSymbolError,
)
from calcmass.formula import Token, format_hill, tokenize
from calcmass.mass import MassCalculator, Mode
from calcmass.tables import TableSet, load_tables

try:  # pragma: no cover - fallback when package metadata unavailable
    __version__ = version("calcmass")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "CalcMassError",
    "CountOverflowError",
    "CyclicExpansionError",
    "FormulaError",
    "FormulaSyntaxError",
    "MassCalculator",
    "Mode",
    "TableLoadError",
    "TableSet",
    "Token",
    "UnknownSymbolError",
    "format_hill",
    "load_tables",
    "tokenize",
]
