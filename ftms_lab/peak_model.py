from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional

import pandas as pd


# Canonical column names of one loaded sample table (RawSampleRow).
FORMULA_COL = "Formula"
DBE_COL = "DBE"
CALC_MZ_COL = "Calc m/z"
PPM_ERROR_COL = "ppm Error"
MONO_INTY_COL = "Mono Inty"
ISOTOPE_FRAC_COL = "Isotope frac"
SPARE_COL = "Spare"

SAMPLE_COL = "Sample"
GROUP_COL = "Group"

# Order matters: positional column selection maps these onto columns 0..6.
RAW_COLUMNS = (
    FORMULA_COL,
    DBE_COL,
    CALC_MZ_COL,
    PPM_ERROR_COL,
    MONO_INTY_COL,
    ISOTOPE_FRAC_COL,
    SPARE_COL,
)

# Repeated header rows inside concatenated exports carry this literal in the DBE column.
HEADER_ECHO_SENTINEL = "DBE"

# Formula metadata columns after decomposition.
ELEMENT_TOKENS = ("C", "H", "Na", "S", "O", "N", "Cl")
META_COLUMNS = ("CalcMZ", "DBE", "IsotopeFrac") + ELEMENT_TOKENS + ("Class",)

GROUP_DIMENSIONS = ("Class", "DBE", "C")
DEFAULT_GROUP_DIMENSION = "Class"

# Aggregated profile output columns.
PROFILE_COLUMNS = ("Parameter", SAMPLE_COL, GROUP_COL, "Intensity")


@dataclass(frozen=True)
class SampleLoadReport:
    sample_id: str
    path: Path
    rows_kept: int = 0
    header_echo_dropped: int = 0
    missing_formula_dropped: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FormulaTables:
    """The three aligned tables of one batch, keyed by formula."""

    intensities: pd.DataFrame
    errors: pd.DataFrame
    metadata: pd.DataFrame

    @property
    def samples(self) -> List[str]:
        return [str(c) for c in self.intensities.columns]

    @property
    def n_formulas(self) -> int:
        return int(self.intensities.shape[0])


@dataclass
class BatchResult:
    tables: FormulaTables
    reports: List[SampleLoadReport] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def skipped_files(self) -> List[SampleLoadReport]:
        return [r for r in self.reports if not r.ok]

    @property
    def loaded_files(self) -> List[SampleLoadReport]:
        return [r for r in self.reports if r.ok]

    def summary_text(self) -> str:
        loaded = self.loaded_files
        skipped = self.skipped_files
        dropped_echo = sum(r.header_echo_dropped for r in loaded)
        dropped_formula = sum(r.missing_formula_dropped for r in loaded)
        lines = [
            f"Loaded {len(loaded)} of {len(self.reports)} sample files "
            f"({self.tables.n_formulas} formulas, {sum(r.rows_kept for r in loaded)} rows).",
        ]
        if dropped_echo or dropped_formula:
            lines.append(f"Dropped rows: {dropped_echo} repeated headers, {dropped_formula} without formula.")
        for r in skipped:
            lines.append(f"Skipped {r.path.name}: {r.error}")
        if self.warnings:
            lines.append(f"{len(self.warnings)} warning(s) during processing.")
        return "\n".join(lines)


@dataclass(frozen=True)
class ProfileSelection:
    """User-facing filter surface. ``None`` means all observed values."""

    class_filter: Optional[FrozenSet[str]] = None
    dbe_filter: Optional[FrozenSet[float]] = None
    carbon_filter: Optional[FrozenSet[int]] = None
    group_dimension: str = DEFAULT_GROUP_DIMENSION


def empty_formula_tables() -> FormulaTables:
    intensities = pd.DataFrame(index=pd.Index([], name=FORMULA_COL, dtype=object))
    errors = pd.DataFrame(index=pd.Index([], name=FORMULA_COL, dtype=object))
    metadata = pd.DataFrame(
        {c: pd.Series(dtype=float) for c in ("CalcMZ", "DBE", "IsotopeFrac")},
        index=pd.Index([], name=FORMULA_COL, dtype=object),
    )
    return FormulaTables(intensities=intensities, errors=errors, metadata=metadata)
