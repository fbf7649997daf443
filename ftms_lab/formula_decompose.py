from __future__ import annotations

import logging
import re
import warnings
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .peak_model import ELEMENT_TOKENS, FORMULA_COL, META_COLUMNS


_logger = logging.getLogger(__name__)

# Instrument exports report DBE half a unit high.
DBE_OFFSET = 0.5

DEFAULT_CLASS = "CH"

# Class label starts at the first heteroatom marker: A (Na), N, S, O, L (Cl).
# Case-insensitive, so a chloro formula such as C6H5Cl gets class "l".
_CLASS_PATTERN = r"(?i)([ANSOL].*)"

HETEROATOM_TOKENS = ("Na", "S", "O", "N", "Cl")

# Pass one value for a token missing from the formula: a count with zero digits.
ABSENT_TOKEN_COUNT = ""
# Pass two value for every heteroatom count that is still null after coercion.
NULL_COUNT_FILL = 1


class UnparseableFormulaWarning(UserWarning):
    pass


def _token_pattern(token: str) -> str:
    # C must not match the C of Cl, N must not match the N of Na.
    return rf"{token}(?![a-z])(\d*)"


def _digit_runs(formulas: pd.Series, token: str) -> pd.Series:
    """Digit run after ``token``: NaN when the token is absent, "" when it has no count."""
    return formulas.str.extract(_token_pattern(token), expand=False)


def _coerce_counts(runs: pd.Series) -> pd.Series:
    return pd.to_numeric(runs, errors="coerce").astype("Int64")


def _element_table(formulas: pd.Series) -> pd.DataFrame:
    counts: Dict[str, pd.Series] = {}
    for token in ELEMENT_TOKENS:
        runs = _digit_runs(formulas, token)
        if token in HETEROATOM_TOKENS:
            runs = runs.fillna(ABSENT_TOKEN_COUNT)
            counts[token] = _coerce_counts(runs).fillna(NULL_COUNT_FILL)
        else:
            counts[token] = _coerce_counts(runs)
    return pd.DataFrame(counts, index=formulas.index)


def _class_labels(formulas: pd.Series) -> pd.Series:
    return formulas.str.extract(_CLASS_PATTERN, expand=False).fillna(DEFAULT_CLASS)


def _warn_unparseable(formulas: pd.Series) -> None:
    found = pd.Series(False, index=formulas.index)
    for token in ELEMENT_TOKENS:
        found |= formulas.str.contains(rf"{token}(?![a-z])", regex=True)
    for formula in formulas[~found].tolist():
        warnings.warn(f"No element tokens in formula {formula!r}", UnparseableFormulaWarning, stacklevel=3)


def decompose_formulas(metadata: pd.DataFrame) -> pd.DataFrame:
    """Add element counts and heteroatom class to formula metadata.

    The input (index = formula) is not modified. DBE is shifted by -0.5.
    Heteroatom counts (Na, S, O, N, Cl) are filled in two passes: a missing
    token first gets an empty count, coercion turns empty counts into null,
    then nulls become 1. So both "S" and no S at all give S = 1. C and H are
    never filled and stay null when absent or count-less.
    """
    out = metadata.copy()
    formulas = pd.Series(out.index.astype(str), index=out.index, dtype=object)

    _warn_unparseable(formulas)

    if "DBE" in out.columns:
        out["DBE"] = pd.to_numeric(out["DBE"], errors="coerce") - DBE_OFFSET
    else:
        out["DBE"] = np.nan

    elements = _element_table(formulas)
    for token in ELEMENT_TOKENS:
        out[token] = elements[token]
    out["Class"] = _class_labels(formulas)

    for col in ("CalcMZ", "IsotopeFrac"):
        if col not in out.columns:
            out[col] = np.nan

    ordered = list(META_COLUMNS) + [c for c in out.columns if c not in META_COLUMNS]
    out = out[ordered]
    out.index.name = FORMULA_COL
    _logger.info("Decomposed %d formulas into %d classes", out.shape[0], out["Class"].nunique())
    return out


def element_counts(formula: str) -> Dict[str, Optional[int]]:
    formulas = pd.Series([str(formula)], dtype=object)
    row = _element_table(formulas).iloc[0]
    return {token: (None if pd.isna(row[token]) else int(row[token])) for token in ELEMENT_TOKENS}


def formula_class(formula: str) -> str:
    return str(_class_labels(pd.Series([str(formula)], dtype=object)).iloc[0])


def run_formula_self_checks() -> Dict[str, object]:
    """Lightweight internal self-checks for dev/debug."""
    results: Dict[str, object] = {"ok": True, "checks": {}}

    counts = element_counts("C20H30O2")
    results["checks"]["C20H30O2_counts"] = counts
    if counts != {"C": 20, "H": 30, "Na": 1, "S": 1, "O": 2, "N": 1, "Cl": 1}:
        results["ok"] = False

    cls = formula_class("C20H30O2")
    results["checks"]["C20H30O2_class"] = cls
    if cls != "O2":
        results["ok"] = False

    cls = formula_class("C15H24")
    results["checks"]["C15H24_class"] = cls
    if cls != DEFAULT_CLASS:
        results["ok"] = False

    # Cl and Na must not leak into the C and N counts
    counts = element_counts("C6H4Cl2NaN3")
    results["checks"]["C6H4Cl2NaN3_counts"] = counts
    if counts["C"] != 6 or counts["Cl"] != 2 or counts["N"] != 3 or counts["Na"] != 1:
        results["ok"] = False

    meta = pd.DataFrame({"CalcMZ": [300.0], "DBE": [5.0], "IsotopeFrac": [0.2]}, index=["C20H30O2"])
    dbe = float(decompose_formulas(meta)["DBE"].iloc[0])
    results["checks"]["dbe_corrected"] = dbe
    if dbe != 4.5:
        results["ok"] = False

    return results
