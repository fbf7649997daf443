from __future__ import annotations

import pandas as pd
import pytest

from ftms_lab.formula_decompose import (
    UnparseableFormulaWarning,
    decompose_formulas,
    element_counts,
    formula_class,
    run_formula_self_checks,
)
from ftms_lab.peak_model import ELEMENT_TOKENS, META_COLUMNS


def _meta(formulas, dbe=None):
    dbe = dbe if dbe is not None else [1.0] * len(formulas)
    return pd.DataFrame(
        {"CalcMZ": [100.0] * len(formulas), "DBE": dbe, "IsotopeFrac": [0.1] * len(formulas)},
        index=pd.Index(formulas, name="Formula"),
    )


def test_oxygen_class_formula():
    out = decompose_formulas(_meta(["C20H30O2"], dbe=[5]))
    row = out.loc["C20H30O2"]

    assert (row["C"], row["H"], row["O"]) == (20, 30, 2)
    assert (row["Na"], row["S"], row["N"], row["Cl"]) == (1, 1, 1, 1)
    assert row["Class"] == "O2"
    assert row["DBE"] == 4.5


def test_hydrocarbon_formula():
    out = decompose_formulas(_meta(["C15H24"]))
    row = out.loc["C15H24"]

    assert row["Class"] == "CH"
    assert all(row[t] == 1 for t in ("Na", "S", "O", "N", "Cl"))
    assert (row["C"], row["H"]) == (15, 24)


def test_bare_and_absent_heteroatoms_both_give_one():
    assert element_counts("C10H12S")["S"] == 1
    assert element_counts("C10H12")["S"] == 1
    assert element_counts("C10H12S3")["S"] == 3


def test_two_letter_symbols_do_not_leak():
    counts = element_counts("C6H4Cl2")
    assert counts["C"] == 6
    assert counts["Cl"] == 2

    counts = element_counts("C12H20NaN2O4")
    assert counts["Na"] == 1
    assert counts["N"] == 2
    assert counts["O"] == 4

    counts = element_counts("C8H7Na2O3")
    assert counts["Na"] == 2
    assert counts["N"] == 1


def test_carbon_and_hydrogen_have_no_default():
    counts = element_counts("CH4")
    assert counts["C"] is None
    assert counts["H"] == 4

    counts = element_counts("N2O")
    assert counts["C"] is None
    assert counts["H"] is None


def test_class_label_starts_at_first_marker():
    assert formula_class("C10H15N1O2") == "N1O2"
    assert formula_class("C18H32O2S1") == "O2S1"
    assert formula_class("C12H20NaO4") == "NaO4"
    # the marker for Cl is its second letter
    assert formula_class("C6H5Cl") == "l"
    assert formula_class("C7H8") == "CH"


def test_unparseable_formula_is_kept_with_warning():
    with pytest.warns(UnparseableFormulaWarning, match="xyz"):
        out = decompose_formulas(_meta(["xyz"]))

    row = out.loc["xyz"]
    assert pd.isna(row["C"]) and pd.isna(row["H"])
    assert all(row[t] == 1 for t in ("Na", "S", "O", "N", "Cl"))


def test_dbe_offset_is_exact():
    raw = [0.0, 1.5, 7.0, -2.0, 12.25]
    formulas = [f"C{i + 1}H4" for i in range(len(raw))]
    out = decompose_formulas(_meta(formulas, dbe=raw))
    assert out["DBE"].tolist() == [v - 0.5 for v in raw]


def test_decompose_is_deterministic_and_pure():
    meta = _meta(["C20H30O2", "C15H24", "C10H16NO2S", "C6H5Cl"], dbe=[5, 4, 3, 4])
    before = meta.copy()

    first = decompose_formulas(meta)
    second = decompose_formulas(meta)

    pd.testing.assert_frame_equal(first, second)
    pd.testing.assert_frame_equal(meta, before)
    assert list(first.columns) == list(META_COLUMNS)
    for token in ELEMENT_TOKENS:
        assert str(first[token].dtype) == "Int64"


def test_self_checks_pass():
    assert run_formula_self_checks()["ok"] is True
