from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .peak_model import (
    FORMULA_COL,
    GROUP_COL,
    GROUP_DIMENSIONS,
    PROFILE_COLUMNS,
    SAMPLE_COL,
    FormulaTables,
    ProfileSelection,
)


_logger = logging.getLogger(__name__)


def _empty_profile() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "Parameter": pd.Series(dtype=object),
            SAMPLE_COL: pd.Series(dtype=object),
            GROUP_COL: pd.Series(dtype=object),
            "Intensity": pd.Series(dtype=float),
        }
    )


def normalize_intensities(intensities: pd.DataFrame) -> pd.DataFrame:
    """Divide each sample column by the sum of its non-null values.

    A column summing to zero is left to produce inf/NaN.
    """
    totals = intensities.sum(axis=0, skipna=True)
    return intensities.divide(totals, axis=1)


def intensities_long(wide: pd.DataFrame) -> pd.DataFrame:
    """Wide Formula x Sample table -> (Formula, Sample, Intensity) rows, nulls dropped."""
    frame = wide.copy()
    frame.index.name = FORMULA_COL
    frame.columns.name = None
    long = frame.reset_index().melt(id_vars=FORMULA_COL, var_name=SAMPLE_COL, value_name="Intensity")
    return long.dropna(subset=["Intensity"]).reset_index(drop=True)


def filter_metadata(
    metadata: pd.DataFrame,
    *,
    class_filter: Optional[Iterable[str]] = None,
    dbe_filter: Optional[Iterable[float]] = None,
    carbon_filter: Optional[Iterable[int]] = None,
) -> pd.DataFrame:
    """Rows matching all given selections. ``None`` leaves a dimension unrestricted."""
    mask = pd.Series(True, index=metadata.index)
    if class_filter is not None:
        mask &= metadata["Class"].isin([str(v) for v in class_filter]).fillna(False).astype(bool)
    if dbe_filter is not None:
        mask &= metadata["DBE"].isin([float(v) for v in dbe_filter]).fillna(False).astype(bool)
    if carbon_filter is not None:
        mask &= metadata["C"].isin([int(v) for v in carbon_filter]).fillna(False).astype(bool)
    return metadata.loc[mask]


def aggregate_profile(
    intensities: pd.DataFrame,
    metadata: pd.DataFrame,
    labels: Optional[pd.DataFrame] = None,
    *,
    class_filter: Optional[Iterable[str]] = None,
    dbe_filter: Optional[Iterable[float]] = None,
    carbon_filter: Optional[Iterable[int]] = None,
    group_dimension: str = "Class",
) -> pd.DataFrame:
    """Relative intensity summed per (Parameter, Sample, Group).

    Parameter is the metadata value of ``group_dimension`` (Class, DBE or C).
    Formulas outside the selections are dropped, samples without a label keep
    a null Group. Empty selections give an empty table.
    """
    if group_dimension not in GROUP_DIMENSIONS:
        raise ValueError(f"group_dimension must be one of {GROUP_DIMENSIONS}, got {group_dimension!r}")

    long = intensities_long(normalize_intensities(intensities))

    kept = filter_metadata(
        metadata,
        class_filter=class_filter,
        dbe_filter=dbe_filter,
        carbon_filter=carbon_filter,
    )
    params = pd.DataFrame(
        {
            FORMULA_COL: pd.Series(kept.index.astype(str), dtype=object),
            "Parameter": kept[group_dimension].reset_index(drop=True),
        }
    )

    joined = long.merge(params, on=FORMULA_COL, how="inner")

    if labels is None or labels.shape[0] == 0:
        joined[GROUP_COL] = None
    else:
        joined = joined.merge(labels[[SAMPLE_COL, GROUP_COL]], on=SAMPLE_COL, how="left")

    if joined.shape[0] == 0:
        return _empty_profile()

    out = (
        joined.groupby(["Parameter", SAMPLE_COL, GROUP_COL], dropna=False, sort=True)["Intensity"]
        .sum()
        .reset_index()
    )
    return out[list(PROFILE_COLUMNS)]


def aggregate_selection(
    tables: FormulaTables,
    labels: Optional[pd.DataFrame],
    selection: ProfileSelection,
) -> pd.DataFrame:
    profile = aggregate_profile(
        tables.intensities,
        tables.metadata,
        labels,
        class_filter=selection.class_filter,
        dbe_filter=selection.dbe_filter,
        carbon_filter=selection.carbon_filter,
        group_dimension=selection.group_dimension,
    )
    _logger.debug("Profile by %s: %d rows", selection.group_dimension, profile.shape[0])
    return profile


def observed_options(metadata: pd.DataFrame) -> Dict[str, List[Any]]:
    """Sorted observed values of each filter dimension."""
    out: Dict[str, List[Any]] = {"Class": [], "DBE": [], "C": []}
    if metadata.shape[0] == 0:
        return out
    if "Class" in metadata.columns:
        out["Class"] = sorted({str(v) for v in metadata["Class"].dropna()})
    if "DBE" in metadata.columns:
        out["DBE"] = sorted({float(v) for v in metadata["DBE"].dropna()})
    if "C" in metadata.columns:
        out["C"] = sorted({int(v) for v in metadata["C"].dropna()})
    return out
