"""Lookup tables: element weights, abbreviations and residue formulas.

All tables are read once from CSV files (or supplied as in-memory mappings)
and frozen into read-only mappings bundled in a :class:`TableSet`.
"""

from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from calcmass.errors import TableLoadError
from calcmass.formula import is_symbol

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"

MASS_MODELS = ("exact", "average")
CHAIN_TYPES = ("protein", "dna", "rna")

WEIGHT_FILES = {"exact": "exact.csv", "average": "average.csv"}
ABBREVIATION_FILE = "abbreviations.csv"
RESIDUE_FILES = {"protein": "amino.csv", "dna": "dna.csv", "rna": "rna.csv"}


@dataclass(frozen=True)
class TableSet:
    """Immutable bundle of every table an evaluation may consult."""

    weights: Mapping[str, Mapping[str, float]]
    abbreviations: Mapping[str, str]
    residues: Mapping[str, Mapping[str, str]]

    @classmethod
    def from_mappings(
        cls,
        exact: Mapping[str, float],
        average: Mapping[str, float] | None = None,
        abbreviations: Mapping[str, str] | None = None,
        residues: Mapping[str, Mapping[str, str]] | None = None,
    ) -> "TableSet":
        """Build a table set from in-memory mappings.

        *average* defaults to *exact*; missing residue tables are empty.
        """
        weights = {
            "exact": _validate_weights(exact, "exact"),
            "average": _validate_weights(exact if average is None else average, "average"),
        }
        abbr = _validate_expansions(abbreviations or {}, "abbreviations", single_letter=False)

        residue_tables: dict[str, Mapping[str, str]] = {}
        for chain in CHAIN_TYPES:
            table = (residues or {}).get(chain, {})
            residue_tables[chain] = MappingProxyType(
                _validate_expansions(table, chain, single_letter=True)
            )
        unknown = set(residues or {}) - set(CHAIN_TYPES)
        if unknown:
            raise TableLoadError(f"Unknown residue table(s): {', '.join(sorted(unknown))}")

        return cls(
            weights=MappingProxyType({k: MappingProxyType(v) for k, v in weights.items()}),
            abbreviations=MappingProxyType(abbr),
            residues=MappingProxyType(residue_tables),
        )

    def weight_table(self, model: str) -> Mapping[str, float]:
        key = model.strip().lower()
        if key not in self.weights:
            raise ValueError(f"Unknown mass model '{model}'")
        return self.weights[key]

    def residue_table(self, chain: str) -> Mapping[str, str]:
        key = chain.strip().lower()
        if key not in self.residues:
            raise ValueError(f"Unknown chain type '{chain}'")
        return self.residues[key]

    def with_overrides(self, model: str, overrides: Mapping[str, float]) -> "TableSet":
        """Return a copy whose *model* weights are patched with *overrides*."""
        key = model.strip().lower()
        table = dict(self.weight_table(key))
        table.update(overrides)
        weights = {name: dict(values) for name, values in self.weights.items()}
        weights[key] = table
        return TableSet.from_mappings(
            weights["exact"],
            weights["average"],
            self.abbreviations,
            {chain: dict(values) for chain, values in self.residues.items()},
        )


def load_tables(data_dir: Path | str | None = None) -> TableSet:
    """Load every table from the CSV files in *data_dir*.

    ``None`` selects the data bundled with the package.
    """
    root = Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR
    if not root.is_dir():
        raise TableLoadError("Data directory does not exist", path=root)

    exact = read_weight_table(root / WEIGHT_FILES["exact"])
    average = read_weight_table(root / WEIGHT_FILES["average"])
    abbreviations = read_expansion_table(root / ABBREVIATION_FILE, "abbreviation")
    residues = {
        chain: read_expansion_table(root / filename, "letter")
        for chain, filename in RESIDUE_FILES.items()
    }

    tables = TableSet.from_mappings(exact, average, abbreviations, residues)
    logger.info(
        "Loaded tables from %s: %d elements, %d abbreviations, %s",
        root,
        len(exact),
        len(abbreviations),
        ", ".join(f"{len(residues[chain])} {chain} residues" for chain in CHAIN_TYPES),
    )
    return tables


def read_weight_table(path: Path) -> dict[str, float]:
    """Read an ``element,weight`` table."""
    table: dict[str, float] = {}
    for line, symbol, text in _read_rows(path, "element", "weight"):
        try:
            weight = float(text)
        except ValueError:
            raise TableLoadError(f"Weight '{text}' for '{symbol}' is not a number", path, line) from None
        if not math.isfinite(weight) or weight <= 0:
            raise TableLoadError(f"Weight for '{symbol}' must be positive and finite", path, line)
        table[symbol] = weight
    return table


def read_expansion_table(path: Path, key_column: str) -> dict[str, str]:
    """Read a ``<key_column>,formula`` table."""
    return {key: formula for _, key, formula in _read_rows(path, key_column, "formula")}


def _read_rows(path: Path, key_column: str, value_column: str) -> list[tuple[int, str, str]]:
    if not path.is_file():
        raise TableLoadError("Table file does not exist", path=path)

    rows: list[tuple[int, str, str]] = []
    seen: dict[str, int] = {}
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        missing = [col for col in (key_column, value_column) if col not in (reader.fieldnames or [])]
        if missing:
            raise TableLoadError(f"Missing column(s): {', '.join(missing)}", path, 1)
        for row in reader:
            line = reader.line_num
            key = (row.get(key_column) or "").strip()
            value = (row.get(value_column) or "").strip()
            if not key:
                raise TableLoadError(f"Empty '{key_column}' value", path, line)
            if not value:
                raise TableLoadError(f"Empty '{value_column}' for '{key}'", path, line)
            if key in seen:
                raise TableLoadError(
                    f"Duplicate key '{key}' (first defined on line {seen[key]})", path, line
                )
            seen[key] = line
            rows.append((line, key, value))
    return rows


def _validate_weights(table: Mapping[str, float], name: str) -> dict[str, float]:
    result: dict[str, float] = {}
    for symbol, value in table.items():
        if not is_symbol(symbol):
            raise TableLoadError(f"Invalid element symbol '{symbol}' in {name} weights")
        try:
            weight = float(value)
        except (TypeError, ValueError):
            raise TableLoadError(f"Weight for '{symbol}' in {name} weights is not a number") from None
        if not math.isfinite(weight) or weight <= 0:
            raise TableLoadError(f"Weight for '{symbol}' in {name} weights must be positive and finite")
        result[symbol] = weight
    return result


def _validate_expansions(table: Mapping[str, str], name: str, *, single_letter: bool) -> dict[str, str]:
    result: dict[str, str] = {}
    for key, formula in table.items():
        if not is_symbol(key) or (single_letter and len(key) != 1):
            raise TableLoadError(f"Invalid key '{key}' in {name} table")
        if not str(formula).strip():
            raise TableLoadError(f"Empty formula for '{key}' in {name} table")
        result[key] = str(formula).strip()
    return result
