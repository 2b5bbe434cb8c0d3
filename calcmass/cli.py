from __future__ import annotations

import argparse
import csv
import logging
import os
import sys
from pathlib import Path
from typing import Iterable, Iterator

from calcmass import __version__
from calcmass.errors import TableLoadError
from calcmass.formula import format_hill
from calcmass.mass import MassCalculator, Mode
from calcmass.tables import load_tables

DATA_DIR_ENV = "CALCMASS_DATA_DIR"
FASTA_SUFFIXES = {".fasta", ".fa", ".faa", ".fna", ".ffn"}
OUTPUT_HEADER = ["name", "formula", "composition", "mass"]

FORMAT_HELP = """\
File-based input (--file FILE)

CSV (.csv)
    A header row is required. The column named "formula" holds the formula or
    residue sequence; an optional "name" column labels each row. Other columns
    are ignored.

        name,formula
        water,H2O
        glucose,C6H12O6

FASTA (.fasta, .fa, .faa, .fna, .ffn)
    Each record starts with a ">" header line (used as the name) followed by
    one or more sequence lines. Sequences are upper-cased and a trailing "*"
    is dropped. Combine with --protein, --dna or --rna.

        >insulin_b
        FVNQHLCGSHLVEALYLVCGERGFFYTPKT

Results are written as CSV (name,formula,composition,mass) to stdout, or to
the path given with --csv.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="calcmass",
        description=(
            "Calculate the molecular mass of a formula, abbreviation or "
            "single-letter residue sequence."
        ),
    )
    parser.add_argument(
        "formula",
        nargs="?",
        help="The molecular formula or residue sequence to calculate the mass from.",
    )

    model = parser.add_mutually_exclusive_group()
    model.add_argument(
        "-e",
        "--exact",
        dest="model",
        action="store_const",
        const="exact",
        help="Use monoisotopic (exact) element weights (default).",
    )
    model.add_argument(
        "-a",
        "--average",
        dest="model",
        action="store_const",
        const="average",
        help="Use natural-abundance average element weights.",
    )

    chain = parser.add_mutually_exclusive_group()
    chain.add_argument(
        "-p",
        "--protein",
        "--peptide",
        dest="chain",
        action="store_const",
        const="protein",
        help="Read the input as single-letter amino acid residues.",
    )
    chain.add_argument(
        "-d",
        "--dna",
        dest="chain",
        action="store_const",
        const="dna",
        help="Read the input as deoxyribonucleotides (A, T, G, C).",
    )
    chain.add_argument(
        "-r",
        "--rna",
        dest="chain",
        action="store_const",
        const="rna",
        help="Read the input as ribonucleotides (A, U, G, C).",
    )
    parser.set_defaults(model="exact", chain=None)

    parser.add_argument(
        "-F",
        "--file",
        help="Read formulas from a CSV or FASTA file instead of the command line.",
    )
    parser.add_argument(
        "-f",
        "--format",
        action="store_true",
        help="Show help for the file-based input format and exit.",
    )
    parser.add_argument(
        "-s",
        "--silent",
        action="store_true",
        help="Print only the numeric mass.",
    )
    parser.add_argument(
        "--composition",
        action="store_true",
        help="Also print the expanded elemental composition in Hill notation.",
    )
    parser.add_argument(
        "--masses",
        help="Override atomic masses for the selected model, e.g. C=12.0,H=1.007825.",
    )
    parser.add_argument(
        "--decimals",
        type=int,
        default=4,
        help="Decimal places for the reported mass (default: 4).",
    )
    parser.add_argument(
        "--csv",
        help="Write batch results to this path; otherwise emit to stdout.",
    )
    parser.add_argument(
        "--data-dir",
        dest="data_dir",
        default=os.environ.get(DATA_DIR_ENV) or None,
        help=f"Directory holding the CSV tables (default: ${DATA_DIR_ENV} or the bundled data).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log every expansion step.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"calcmass {__version__}",
    )
    return parser


def main(argv: Iterable[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.format:
        print(FORMAT_HELP, end="")
        return

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("calcmass").setLevel(logging.DEBUG if args.debug else logging.WARNING)

    if args.formula is None and args.file is None:
        parser.error('Please specify a formula (or use "--file <FILE>").')

    try:
        decimals = _validate_decimals(args.decimals)
        overrides = _parse_mass_overrides(args.masses)
    except ValueError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        tables = load_tables(args.data_dir)
        if overrides:
            tables = tables.with_overrides(args.model, overrides)
        calculator = MassCalculator(tables)
    except TableLoadError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        sys.exit(1)

    mode = Mode(args.model, args.chain)

    if args.file:
        destination = Path(args.csv) if args.csv else None
        failures = _run_batch(calculator, Path(args.file), mode, decimals, destination)
        if failures:
            sys.exit(1)
        return

    _run_single(calculator, args.formula, mode, decimals, args.silent, args.composition)


def read_records(path: Path) -> Iterator[tuple[str, str]]:
    """Yield ``(name, formula)`` pairs from a CSV or FASTA file."""
    suffix = path.suffix.lower()
    if suffix in FASTA_SUFFIXES:
        yield from _read_fasta(path)
    elif suffix == ".csv":
        yield from _read_csv(path)
    else:
        raise ValueError(f"Unsupported input file '{path.name}' (expected .csv or FASTA)")


def _run_single(
    calculator: MassCalculator,
    formula: str,
    mode: Mode,
    decimals: int,
    silent: bool,
    show_composition: bool,
) -> None:
    if not silent:
        print(f"Calculating {mode.model} mass for: {formula}")

    try:
        value = calculator.mass(formula, mode)
        composition = calculator.composition(formula, mode) if show_composition else None
    except ValueError as exc:
        kind = getattr(exc, "kind", type(exc).__name__)
        print(f"[error] {kind}: {exc}", file=sys.stderr)
        sys.exit(1)

    _warn_non_residues(calculator, formula, mode)

    if composition is not None and not silent:
        print(f"Composition: {format_hill(composition)}")
    print(f"{value:.{decimals}f}")


def _run_batch(
    calculator: MassCalculator,
    path: Path,
    mode: Mode,
    decimals: int,
    destination: Path | None,
) -> int:
    try:
        records = list(read_records(path))
    except (OSError, ValueError) as exc:
        print(f"[error] {exc}", file=sys.stderr)
        sys.exit(1)

    rows: list[list[str]] = []
    failures = 0
    for name, formula in records:
        try:
            mass_text = f"{calculator.mass(formula, mode):.{decimals}f}"
            hill = format_hill(calculator.composition(formula, mode))
            _warn_non_residues(calculator, formula, mode, name or formula)
        except ValueError as exc:
            failures += 1
            print(f"[warn] {name or formula}: {exc}", file=sys.stderr)
            mass_text = ""
            hill = ""
        rows.append([name, formula, hill, mass_text])

    try:
        _emit_output(rows, destination)
    except OSError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    if destination is not None:
        print(f"[info] wrote {len(rows)} row(s) to {destination}", file=sys.stderr)
    if failures:
        print(f"[warn] {failures} of {len(rows)} formula(s) could not be evaluated.", file=sys.stderr)
    return failures


def _warn_non_residues(
    calculator: MassCalculator,
    formula: str,
    mode: Mode,
    label: str | None = None,
) -> None:
    if mode.chain is None:
        return
    residues = calculator.tables.residue_table(mode.chain)
    stray = sorted({token.symbol for token in calculator.parse(formula, mode)} - set(residues))
    if stray:
        prefix = f"{label}: " if label else ""
        print(
            f"[warn] {prefix}{', '.join(stray)} not in the {mode.chain} alphabet; "
            "read as abbreviation or element",
            file=sys.stderr,
        )


def _read_csv(path: Path) -> Iterator[tuple[str, str]]:
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        if "formula" not in (reader.fieldnames or []):
            raise ValueError(f"{path.name}: CSV input needs a 'formula' column")
        for row in reader:
            yield (row.get("name") or "").strip(), (row.get("formula") or "").strip()


def _read_fasta(path: Path) -> Iterator[tuple[str, str]]:
    name: str | None = None
    chunks: list[str] = []
    with path.open("r", encoding="utf-8") as handle:
        for raw in handle:
            line = raw.strip()
            if not line or line.startswith(";"):
                continue
            if line.startswith(">"):
                if name is not None or chunks:
                    yield name or "", _fasta_sequence(chunks)
                name = line[1:].strip()
                chunks = []
                continue
            chunks.append(line)
    if name is not None or chunks:
        yield name or "", _fasta_sequence(chunks)


def _fasta_sequence(chunks: list[str]) -> str:
    return "".join("".join(chunks).split()).rstrip("*").upper()


def _emit_output(rows: list[list[str]], destination: Path | None) -> None:
    if destination:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, lineterminator="\n")
            writer.writerow(OUTPUT_HEADER)
            writer.writerows(rows)
    else:
        writer = csv.writer(sys.stdout, lineterminator="\n")
        writer.writerow(OUTPUT_HEADER)
        writer.writerows(rows)
        sys.stdout.flush()


def _parse_mass_overrides(text: str | None) -> dict[str, float]:
    if not text:
        return {}
    overrides: dict[str, float] = {}
    entries = [segment.strip() for segment in text.split(",") if segment.strip()]
    if not entries:
        raise ValueError("Mass override string is empty")
    for entry in entries:
        if "=" not in entry:
            raise ValueError(
                f"Mass override '{entry}' must be in ELEMENT=value format"
            )
        element, value = entry.split("=", 1)
        symbol = element.strip()
        if not symbol:
            raise ValueError("Element symbol cannot be empty in overrides")
        overrides[symbol[0].upper() + symbol[1:].lower()] = float(value)
    return overrides


def _validate_decimals(value: int) -> int:
    if value < 0:
        raise ValueError("--decimals must be zero or a positive integer")
    return int(value)


if __name__ == "__main__":  # pragma: no cover
    main()
