"""Formula tokenization and composition helpers.

``tokenize`` turns a formula string into a flat tuple of :class:`Token`
objects; parenthesized groups are multiplied out while tokenizing. The
remaining helpers operate on element -> count mappings, always return new
dictionaries and never mutate caller-owned mappings.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Mapping

from calcmass.errors import CountOverflowError, FormulaSyntaxError

MAX_COUNT = 1_000_000
MAX_NESTING = 64

_SYMBOL_RE = re.compile(r"[A-Z][a-z]{0,2}")
_COUNT_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class Token:
    """One ``(symbol, count)`` unit of a formula."""

    symbol: str
    count: int = 1
    position: int | None = field(default=None, compare=False)

    def __str__(self) -> str:
        return self.symbol if self.count == 1 else f"{self.symbol}{self.count}"


def tokenize(formula: str) -> tuple[Token, ...]:
    """Split *formula* into tokens, flattening parenthesized groups.

    >>> [str(token) for token in tokenize("(CH3)2O")]
    ['C2', 'H6', 'O']
    """
    if formula is None:
        raise FormulaSyntaxError("Formula cannot be None")

    text = str(formula)
    if not text.strip():
        raise FormulaSyntaxError("Formula cannot be empty", fragment=text, position=0)

    tokens, pos = _parse_sequence(text, 0, 0)
    if pos < len(text):
        # _parse_sequence only stops early on a closing parenthesis
        raise FormulaSyntaxError("Unmatched ')'", fragment=")", position=pos)
    return tuple(tokens)


def is_symbol(text: str) -> bool:
    """Return True if *text* can appear as a single token symbol."""
    return bool(_SYMBOL_RE.fullmatch(text))


def format_formula(tokens: tuple[Token, ...] | list[Token]) -> str:
    """Render tokens back into a flat formula string, in token order."""
    return "".join(str(token) for token in tokens)


def scale_counts(counts: Mapping[str, int], factor: int) -> dict[str, int]:
    """Multiply all element counts by *factor* (must be non-negative)."""
    if factor < 0:
        raise ValueError("Scale factor must be non-negative")
    result: dict[str, int] = {}
    for element, value in counts.items():
        _validate_count(element, value)
        result[element] = int(value) * factor
    return _strip_zeros(result)


def dehydrate(counts: Mapping[str, int], n: int) -> dict[str, int]:
    """Remove (n−1) molecules of H₂O from the provided composition."""
    if n < 1:
        raise ValueError("Chain length must be at least 1")

    adjusted = Counter({elem: int(amount) for elem, amount in counts.items()})

    if n == 1:
        return _strip_zeros(dict(adjusted))

    loss = n - 1
    adjusted["H"] -= 2 * loss
    adjusted["O"] -= loss

    _ensure_non_negative(adjusted, context="after dehydration")
    return _strip_zeros(dict(adjusted))


def format_hill(counts: Mapping[str, int]) -> str:
    """Format element counts according to Hill notation."""
    normalized = {elem: int(amount) for elem, amount in counts.items() if int(amount) != 0}
    if not normalized:
        return "0"

    has_carbon = "C" in normalized

    def sort_key(element: str) -> tuple[int, str]:
        if has_carbon and element == "C":
            return (0, element)
        if has_carbon and element == "H":
            return (1, element)
        return (2, element)

    parts: list[str] = []
    for element in sorted(normalized, key=sort_key):
        value = normalized[element]
        parts.append(element if value == 1 else f"{element}{value}")
    return "".join(parts)


def _parse_sequence(text: str, pos: int, nesting: int) -> tuple[list[Token], int]:
    tokens: list[Token] = []
    while True:
        pos = _skip_space(text, pos)
        if pos >= len(text) or text[pos] == ")":
            return tokens, pos

        char = text[pos]
        if char == "(":
            if nesting >= MAX_NESTING:
                raise FormulaSyntaxError("Groups nested too deeply", fragment="(", position=pos)
            inner, end = _parse_sequence(text, pos + 1, nesting + 1)
            if end >= len(text):
                raise FormulaSyntaxError("Unmatched '('", fragment="(", position=pos)
            if not inner:
                raise FormulaSyntaxError("Empty group", fragment=text[pos : end + 1], position=pos)
            multiplier, next_pos = _read_count(text, end + 1)
            for token in inner:
                total = token.count * multiplier
                if total > MAX_COUNT:
                    raise CountOverflowError(
                        f"Count {total} for '{token.symbol}' exceeds the limit of {MAX_COUNT}",
                        fragment=text[pos:next_pos],
                        position=pos,
                    )
                tokens.append(Token(token.symbol, total, token.position))
            pos = next_pos
            continue

        match = _SYMBOL_RE.match(text, pos)
        if match:
            count, next_pos = _read_count(text, match.end())
            tokens.append(Token(match.group(), count, pos))
            pos = next_pos
            continue

        if char.isdecimal():
            digits = _COUNT_RE.match(text, pos).group()
            raise FormulaSyntaxError(
                "Count without a preceding symbol", fragment=digits, position=pos
            )
        raise FormulaSyntaxError(f"Unexpected character {char!r}", fragment=char, position=pos)


def _read_count(text: str, pos: int) -> tuple[int, int]:
    start = _skip_space(text, pos)
    match = _COUNT_RE.match(text, start)
    if not match:
        return 1, pos

    digits = match.group()
    significant = digits.lstrip("0")
    if not significant:
        raise FormulaSyntaxError("Counts must be positive integers", fragment=digits, position=start)
    if len(significant) > len(str(MAX_COUNT)) or int(significant) > MAX_COUNT:
        raise CountOverflowError(
            f"Count {digits} exceeds the limit of {MAX_COUNT}", fragment=digits, position=start
        )
    return int(significant), match.end()


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _strip_zeros(data: Mapping[str, int]) -> dict[str, int]:
    return {k: int(v) for k, v in data.items() if int(v) != 0}


def _ensure_non_negative(data: Mapping[str, int], *, context: str) -> None:
    negatives = {k: v for k, v in data.items() if v < 0}
    if negatives:
        details = ", ".join(f"{elem}={val}" for elem, val in negatives.items())
        raise ValueError(f"Negative counts {context}: {details}")


def _validate_count(element: str, value: int) -> None:
    if int(value) < 0:
        raise ValueError(f"Negative count for element '{element}' is not allowed")
