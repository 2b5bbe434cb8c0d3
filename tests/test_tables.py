from __future__ import annotations

import shutil

import pytest

from calcmass.errors import TableLoadError
from calcmass.mass import MassCalculator
from calcmass.tables import DEFAULT_DATA_DIR, TableSet, load_tables, read_weight_table


def _copy_bundled(target):
    for path in DEFAULT_DATA_DIR.glob("*.csv"):
        shutil.copy(path, target / path.name)
    return target


def test_bundled_tables_load(tables):
    assert tables.weight_table("exact")["H"] == pytest.approx(1.00782503223)
    assert tables.weight_table("exact")["C"] == 12.0
    assert tables.weight_table("average")["C"] == pytest.approx(12.0107)
    assert set(tables.weights["exact"]) == set(tables.weights["average"])
    assert tables.abbreviations["Me"] == "CH3"
    assert len(tables.residue_table("protein")) == 22
    assert set(tables.residue_table("dna")) == {"A", "C", "G", "T"}
    assert set(tables.residue_table("rna")) == {"A", "C", "G", "U"}


def test_bundled_abbreviations_do_not_shadow_elements(tables):
    assert not set(tables.abbreviations) & set(tables.weight_table("exact"))


def test_tables_are_read_only(tables):
    with pytest.raises(TypeError):
        tables.weights["exact"]["H"] = 1.0
    with pytest.raises(TypeError):
        tables.abbreviations["Me"] = "CH4"
    with pytest.raises(TypeError):
        tables.residues["dna"]["A"] = "C"


def test_unknown_model_and_chain(tables):
    with pytest.raises(ValueError):
        tables.weight_table("heavy")
    with pytest.raises(ValueError):
        tables.residue_table("xna")


def test_load_from_explicit_directory(tmp_path):
    _copy_bundled(tmp_path)
    (tmp_path / "abbreviations.csv").write_text(
        "abbreviation,formula\nWat,H2O\n", encoding="utf-8"
    )
    tables = load_tables(tmp_path)
    assert dict(tables.abbreviations) == {"Wat": "H2O"}


def test_load_rejects_missing_directory(tmp_path):
    with pytest.raises(TableLoadError, match="does not exist"):
        load_tables(tmp_path / "nowhere")


def test_load_rejects_missing_file(tmp_path):
    _copy_bundled(tmp_path)
    (tmp_path / "rna.csv").unlink()
    with pytest.raises(TableLoadError) as excinfo:
        load_tables(tmp_path)
    assert excinfo.value.path == tmp_path / "rna.csv"


def test_duplicate_keys_are_rejected(tmp_path):
    path = tmp_path / "exact.csv"
    path.write_text("element,weight\nH,1.0\nO,16.0\nH,1.1\n", encoding="utf-8")
    with pytest.raises(TableLoadError) as excinfo:
        read_weight_table(path)
    assert excinfo.value.line == 4
    assert "Duplicate key 'H'" in str(excinfo.value)


@pytest.mark.parametrize("weight", ["abc", "-1", "0", "nan", "inf"])
def test_bad_weights_are_rejected(tmp_path, weight):
    path = tmp_path / "exact.csv"
    path.write_text(f"element,weight\nH,{weight}\n", encoding="utf-8")
    with pytest.raises(TableLoadError) as excinfo:
        read_weight_table(path)
    assert excinfo.value.line == 2


def test_missing_column_is_rejected(tmp_path):
    path = tmp_path / "exact.csv"
    path.write_text("symbol,weight\nH,1.0\n", encoding="utf-8")
    with pytest.raises(TableLoadError, match="Missing column"):
        read_weight_table(path)


def test_empty_values_are_rejected(tmp_path):
    path = tmp_path / "exact.csv"
    path.write_text("element,weight\n,1.0\n", encoding="utf-8")
    with pytest.raises(TableLoadError, match="Empty 'element'"):
        read_weight_table(path)


def test_from_mappings_defaults(toy_weights):
    tables = TableSet.from_mappings(toy_weights)
    assert tables.weight_table("average") == tables.weight_table("exact")
    assert dict(tables.residue_table("protein")) == {}
    assert dict(tables.abbreviations) == {}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"exact": {"h": 1.0}},
        {"exact": {"H": 0.0}},
        {"exact": {"H": "heavy"}},
        {"exact": {"H": 1.0}, "abbreviations": {"methyl": "CH3"}},
        {"exact": {"H": 1.0}, "abbreviations": {"Me": " "}},
        {"exact": {"H": 1.0}, "residues": {"protein": {"Ala": "C3H7NO2"}}},
        {"exact": {"H": 1.0}, "residues": {"xna": {"A": "H"}}},
    ],
)
def test_from_mappings_rejects_malformed_entries(kwargs):
    with pytest.raises(TableLoadError):
        TableSet.from_mappings(**kwargs)


def test_with_overrides_patches_one_model(tables):
    patched = tables.with_overrides("average", {"H": 1.0})
    assert patched.weight_table("average")["H"] == 1.0
    assert patched.weight_table("exact")["H"] == tables.weight_table("exact")["H"]
    assert tables.weight_table("average")["H"] == pytest.approx(1.00794)
    assert patched.residue_table("dna") == tables.residue_table("dna")


def test_malformed_expansion_fails_at_construction(toy_weights):
    tables = TableSet.from_mappings(toy_weights, abbreviations={"Bad": "H(O"})
    with pytest.raises(TableLoadError, match="Bad"):
        MassCalculator(tables)
