"""Mass evaluation for tokenized formulas.

:class:`MassCalculator` owns a :class:`~calcmass.tables.TableSet` and resolves
every token of a formula to either an element weight or a sub-formula
(abbreviation or residue), recursing until only elements remain. Chain modes
(protein, DNA, RNA) read the input as a residue sequence and subtract one
water per bond formed between consecutive residues.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Mapping, NamedTuple

from calcmass.errors import CyclicExpansionError, FormulaError, TableLoadError, UnknownSymbolError
from calcmass.formula import Token, dehydrate, format_formula, scale_counts, tokenize
from calcmass.tables import CHAIN_TYPES, MASS_MODELS, TableSet

logger = logging.getLogger(__name__)

MAX_DEPTH = 64

WATER = {"H": 2, "O": 1}

_MODEL_ALIASES = {"exact": "exact", "monoisotopic": "exact", "average": "average"}
_CHAIN_ALIASES = {"protein": "protein", "peptide": "protein", "dna": "dna", "rna": "rna"}


@dataclass(frozen=True)
class Mode:
    """Weight model plus optional chain type for one evaluation."""

    model: str = "exact"
    chain: str | None = None

    def __post_init__(self) -> None:
        if self.model not in MASS_MODELS:
            raise ValueError(f"Unknown mass model '{self.model}'")
        if self.chain is not None and self.chain not in CHAIN_TYPES:
            raise ValueError(f"Unknown chain type '{self.chain}'")

    @classmethod
    def parse(cls, value: "Mode | str | None") -> "Mode":
        """Parse selectors such as ``"average"``, ``"dna"`` or ``"average+protein"``."""
        if isinstance(value, Mode):
            return value
        if value is None:
            return cls()

        model: str | None = None
        chain: str | None = None
        for part in re.split(r"[+,\s]+", str(value).strip().lower()):
            if not part:
                continue
            if part in _MODEL_ALIASES:
                if model is not None and model != _MODEL_ALIASES[part]:
                    raise ValueError(f"Conflicting mass models in mode '{value}'")
                model = _MODEL_ALIASES[part]
            elif part in _CHAIN_ALIASES:
                if chain is not None and chain != _CHAIN_ALIASES[part]:
                    raise ValueError(f"protein, dna and rna are mutually exclusive (got '{value}')")
                chain = _CHAIN_ALIASES[part]
            else:
                raise ValueError(f"Unknown mode '{part}'")
        return cls(model or "exact", chain)

    def __str__(self) -> str:
        return self.model if self.chain is None else f"{self.model}+{self.chain}"


class Resolution(NamedTuple):
    """Outcome of expanding one symbol."""

    symbol: str
    source: str  # "residue", "abbreviation" or "element"
    tokens: tuple[Token, ...] = ()

    @property
    def is_element(self) -> bool:
        return self.source == "element"


class MassCalculator:
    """Evaluate formulas against one immutable table set.

    Instances keep no per-call state and can be shared between threads.
    """

    def __init__(self, tables: TableSet, *, max_depth: int = MAX_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.tables = tables
        self.max_depth = max_depth
        self._abbreviations = _tokenize_table(tables.abbreviations, "abbreviations")
        self._residues = {
            chain: _tokenize_table(tables.residue_table(chain), chain) for chain in CHAIN_TYPES
        }

    def parse(self, formula: str, mode: Mode | str | None = None) -> tuple[Token, ...]:
        """Tokenize *formula*; all-lowercase sequences are upper-cased in chain modes."""
        mode = Mode.parse(mode)
        text = formula
        if mode.chain is not None and isinstance(formula, str) and formula.islower():
            text = formula.upper()
        return tokenize(text)

    def mass(self, formula: str, mode: Mode | str | None = None) -> float:
        """Return the mass of *formula* (exact weights, no chain by default)."""
        mode = Mode.parse(mode)
        return self.evaluate(self.parse(formula, mode), mode)

    def evaluate(self, tokens: Iterable[Token], mode: Mode | str | None = None) -> float:
        mode = Mode.parse(mode)
        weights = self.tables.weight_table(mode.model)
        total, residues = self._sum(tuple(tokens), mode, weights, 0, (), None)

        if mode.chain is not None and residues > 1:
            correction = (residues - 1) * calculate_mass(WATER, weights)
            logger.debug(
                "Chain of %d %s residues: subtracting %.6f for %d water(s)",
                residues,
                mode.chain,
                correction,
                residues - 1,
            )
            total -= correction
        return total

    def expand(
        self,
        symbol: str,
        mode: Mode | str | None = None,
        depth: int = 0,
        trail: tuple[str, ...] = (),
        position: int | None = None,
    ) -> Resolution:
        """Resolve *symbol* to a residue, an abbreviation or an element.

        Residue tables apply only to the input sequence itself (``depth == 0``);
        expansions are read as plain formulas. *trail* lists the abbreviations
        currently being expanded.
        """
        mode = Mode.parse(mode)
        if depth > self.max_depth:
            path = trail + (symbol,)
            raise CyclicExpansionError(
                f"Expansion deeper than {self.max_depth} levels: {' -> '.join(path)}", path
            )

        if mode.chain is not None and depth == 0:
            tokens = self._residues[mode.chain].get(symbol)
            if tokens is not None:
                self._log_expansion("residue", symbol, tokens)
                return Resolution(symbol, "residue", tokens)

        tokens = self._abbreviations.get(symbol)
        if tokens is not None:
            if symbol in trail:
                path = trail[trail.index(symbol):] + (symbol,)
                raise CyclicExpansionError(
                    f"Abbreviation '{symbol}' expands into itself: {' -> '.join(path)}", path
                )
            self._log_expansion("abbreviation", symbol, tokens)
            return Resolution(symbol, "abbreviation", tokens)

        if symbol in self.tables.weight_table(mode.model):
            return Resolution(symbol, "element")

        message = f"Unknown symbol '{symbol}'"
        if trail:
            message += f" in expansion of '{trail[-1]}'"
        raise UnknownSymbolError(message, fragment=symbol, position=position)

    def composition(self, formula: str, mode: Mode | str | None = None) -> dict[str, int]:
        """Return the fully expanded element counts of *formula*.

        In chain modes one H₂O per bond is removed, matching :meth:`mass`.
        """
        mode = Mode.parse(mode)
        counts, residues = self._collect(self.parse(formula, mode), mode, 0, (), None)
        if mode.chain is not None and residues > 1:
            return dehydrate(counts, residues)
        return counts

    def _sum(
        self,
        tokens: tuple[Token, ...],
        mode: Mode,
        weights: Mapping[str, float],
        depth: int,
        trail: tuple[str, ...],
        position: int | None,
    ) -> tuple[float, int]:
        total = 0.0
        residues = 0
        for token in tokens:
            origin = token.position if depth == 0 else position
            resolution = self.expand(token.symbol, mode, depth, trail, origin)
            if resolution.is_element:
                total += weights[token.symbol] * token.count
                continue
            if resolution.source == "residue":
                residues += token.count
            inner_trail = trail + (token.symbol,) if resolution.source == "abbreviation" else trail
            sub_mass, _ = self._sum(resolution.tokens, mode, weights, depth + 1, inner_trail, origin)
            total += sub_mass * token.count
        return total, residues

    def _collect(
        self,
        tokens: tuple[Token, ...],
        mode: Mode,
        depth: int,
        trail: tuple[str, ...],
        position: int | None,
    ) -> tuple[dict[str, int], int]:
        counts: Counter[str] = Counter()
        residues = 0
        for token in tokens:
            origin = token.position if depth == 0 else position
            resolution = self.expand(token.symbol, mode, depth, trail, origin)
            if resolution.is_element:
                counts[token.symbol] += token.count
                continue
            if resolution.source == "residue":
                residues += token.count
            inner_trail = trail + (token.symbol,) if resolution.source == "abbreviation" else trail
            inner, _ = self._collect(resolution.tokens, mode, depth + 1, inner_trail, origin)
            counts.update(scale_counts(inner, token.count))
        return dict(counts), residues

    @staticmethod
    def _log_expansion(source: str, symbol: str, tokens: tuple[Token, ...]) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Expanded %s %s -> %s", source, symbol, format_formula(tokens))


def calculate_mass(counts: Mapping[str, int], masses: Mapping[str, float]) -> float:
    """Compute the mass of an element -> count composition."""
    total = 0.0
    for element, amount in counts.items():
        if element not in masses:
            raise UnknownSymbolError(f"Missing mass for element '{element}'", fragment=element)
        total += masses[element] * int(amount)
    return total


def _tokenize_table(table: Mapping[str, str], name: str) -> dict[str, tuple[Token, ...]]:
    tokenized: dict[str, tuple[Token, ...]] = {}
    for key, formula in table.items():
        try:
            tokenized[key] = tokenize(formula)
        except FormulaError as exc:
            raise TableLoadError(f"Invalid formula '{formula}' for '{key}' in {name} table: {exc}") from exc
    return tokenized
