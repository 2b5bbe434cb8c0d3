from __future__ import annotations

import pytest

from calcmass.errors import CountOverflowError, FormulaSyntaxError
from calcmass.formula import (
    MAX_COUNT,
    Token,
    dehydrate,
    format_formula,
    format_hill,
    is_symbol,
    scale_counts,
    tokenize,
)


def test_tokenize_simple_formula():
    assert tokenize("H2O") == (Token("H", 2), Token("O", 1))


def test_tokenize_default_count_is_one():
    tokens = tokenize("NaCl")
    assert [t.symbol for t in tokens] == ["Na", "Cl"]
    assert [t.count for t in tokens] == [1, 1]


def test_tokenize_accepts_three_letter_symbols():
    assert tokenize("Mes2Cl") == (Token("Mes", 2), Token("Cl", 1))


def test_tokenize_keeps_order_and_duplicates():
    assert tokenize("CH3COOH") == (
        Token("C"),
        Token("H", 3),
        Token("C"),
        Token("O"),
        Token("O"),
        Token("H"),
    )


def test_tokenize_group_multiplies_counts():
    assert tokenize("(CH3)2") == (Token("C", 2), Token("H", 6))


def test_tokenize_nested_groups():
    tokens = tokenize("Mn(SO4)2(H2O)7")
    assert tokens == (
        Token("Mn", 1),
        Token("S", 2),
        Token("O", 8),
        Token("H", 14),
        Token("O", 7),
    )
    assert tokenize("((CH2)2O)3") == (Token("C", 6), Token("H", 12), Token("O", 3))


def test_tokenize_group_without_multiplier():
    assert tokenize("(OH)") == (Token("O"), Token("H"))


def test_tokenize_ignores_whitespace():
    assert tokenize(" C6 H12\tO6 ") == tokenize("C6H12O6")
    assert tokenize("H 2 O") == (Token("H", 2), Token("O", 1))
    assert tokenize("( CH3 ) 2") == (Token("C", 2), Token("H", 6))


def test_tokenize_records_positions():
    tokens = tokenize("H2 SO4")
    assert [t.position for t in tokens] == [0, 3, 4]
    # positions do not take part in equality
    assert Token("H", 2, 0) == Token("H", 2, 7)


def test_token_str():
    assert str(Token("C")) == "C"
    assert str(Token("C", 6)) == "C6"
    assert format_formula(tokenize("(CH3)2O")) == "C2H6O"


@pytest.mark.parametrize(
    "formula, position",
    [
        ("", 0),
        ("   ", 0),
        ("(CH3", 0),
        ("H2(O", 2),
        ("CH3)", 3),
        ("2H", 0),
        ("h2o", 0),
        ("H-2", 1),
        ("()", 0),
        ("H0", 1),
        ("C(H)00", 4),
    ],
)
def test_tokenize_rejects_malformed_input(formula, position):
    with pytest.raises(FormulaSyntaxError) as excinfo:
        tokenize(formula)
    assert excinfo.value.position == position
    assert excinfo.value.kind == "SyntaxError"


def test_syntax_error_message_names_position():
    with pytest.raises(FormulaSyntaxError) as excinfo:
        tokenize("CH3)")
    assert str(excinfo.value) == "Unmatched ')' at position 4"
    assert excinfo.value.fragment == ")"


def test_tokenize_rejects_none():
    with pytest.raises(FormulaSyntaxError):
        tokenize(None)


def test_tokenize_rejects_deep_nesting():
    with pytest.raises(FormulaSyntaxError, match="nested too deeply"):
        tokenize("(" * 500 + "H" + ")" * 500)


def test_tokenize_count_limit():
    assert tokenize(f"C{MAX_COUNT}") == (Token("C", MAX_COUNT),)
    with pytest.raises(CountOverflowError) as excinfo:
        tokenize(f"C{MAX_COUNT + 1}")
    assert excinfo.value.position == 1


def test_tokenize_huge_digit_run_overflows():
    with pytest.raises(CountOverflowError):
        tokenize("H" + "9" * 5000)


def test_tokenize_leading_zeros():
    assert tokenize("H002") == (Token("H", 2),)


def test_tokenize_group_multiplier_overflow():
    with pytest.raises(CountOverflowError) as excinfo:
        tokenize("(H1000)1001")
    assert excinfo.value.position == 0


def test_is_symbol():
    assert is_symbol("H")
    assert is_symbol("Cl")
    assert is_symbol("Boc")
    assert not is_symbol("h")
    assert not is_symbol("CL")
    assert not is_symbol("Fmoc")
    assert not is_symbol("")


def test_format_hill_orders_carbon_first():
    assert format_hill({"O": 6, "H": 12, "C": 6}) == "C6H12O6"
    assert format_hill({"N": 1, "Br": 1, "H": 4, "C": 1}) == "CH4BrN"


def test_format_hill_without_carbon_is_alphabetical():
    assert format_hill({"O": 1, "H": 2}) == "H2O"
    assert format_hill({"Na": 1, "Cl": 1}) == "ClNa"


def test_format_hill_empty():
    assert format_hill({}) == "0"
    assert format_hill({"C": 0}) == "0"


def test_scale_counts():
    assert scale_counts({"C": 1, "H": 3}, 2) == {"C": 2, "H": 6}
    assert scale_counts({"C": 1}, 0) == {}
    with pytest.raises(ValueError):
        scale_counts({"C": 1}, -1)


def test_dehydrate_removes_one_water_per_bond():
    assert dehydrate({"C": 6, "H": 14, "N": 2, "O": 4}, 2) == {"C": 6, "H": 12, "N": 2, "O": 3}
    assert dehydrate({"C": 2, "H": 5, "N": 1, "O": 2}, 1) == {"C": 2, "H": 5, "N": 1, "O": 2}


def test_dehydrate_rejects_invalid_input():
    with pytest.raises(ValueError):
        dehydrate({"H": 2, "O": 1}, 0)
    with pytest.raises(ValueError, match="Negative counts"):
        dehydrate({"H": 2, "O": 1}, 3)
