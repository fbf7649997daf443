from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from .peak_model import FormulaTables


_logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "xlsx")

TABLE_NAMES = ("Intensities", "Errors", "FormulaMetadata")


def _named_tables(tables: FormulaTables) -> Dict[str, pd.DataFrame]:
    return {
        "Intensities": tables.intensities,
        "Errors": tables.errors,
        "FormulaMetadata": tables.metadata,
    }


def export_tables(tables: FormulaTables, out_dir: Path, *, fmt: str = "csv") -> List[Path]:
    """Write the three batch tables.

    ``csv`` writes one file per table, ``xlsx`` one workbook with a sheet per table.
    Returns the written paths.
    """
    fmt = str(fmt).strip().lower().lstrip(".")
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt!r}")

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    named = _named_tables(tables)

    written: List[Path] = []
    if fmt == "csv":
        for name, df in named.items():
            p = out / f"{name}.csv"
            df.to_csv(p, index=True)
            written.append(p)
    else:
        p = out / "FormulaTables.xlsx"
        with pd.ExcelWriter(p) as w:
            for name, df in named.items():
                df.to_excel(w, sheet_name=name[:30], index=True)
        written.append(p)

    _logger.info("Exported %d table file(s) to %s", len(written), out)
    return written


def export_profile(profile: pd.DataFrame, path: Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    if p.suffix.lower() == ".csv":
        profile.to_csv(p, index=False)
    else:
        with pd.ExcelWriter(p) as w:
            profile.to_excel(w, sheet_name="Profile", index=False)
    _logger.info("Exported profile (%d rows) to %s", profile.shape[0], p)
    return p
