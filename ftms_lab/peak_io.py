from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .peak_model import (
    DBE_COL,
    FORMULA_COL,
    GROUP_COL,
    HEADER_ECHO_SENTINEL,
    RAW_COLUMNS,
    SAMPLE_COL,
    SPARE_COL,
)


_logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xls")
TEXT_SUFFIXES = (".csv", ".tsv", ".txt")
SAMPLE_FILE_SUFFIXES = EXCEL_SUFFIXES + TEXT_SUFFIXES

DEFAULT_HEADER_SKIP_ROWS = 6
COLUMN_MATCH_MODES = ("name", "position")


class MalformedInputError(Exception):
    pass


def _normalize_header(value) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return re.sub(r"\s+", " ", str(value)).strip().lower()


def _is_blank(value) -> bool:
    return _normalize_header(value) == ""


def sample_id_from_path(path) -> str:
    """Sample identifier of a table file: its name without directory or extension."""
    name = re.split(r"[\\/]", str(path).strip())[-1]
    stem, _ext = os.path.splitext(name)
    return stem or name


def normalize_sample_id(value) -> str:
    """Apply the file naming rule to a sample name typed into a label table.

    Only a known table extension is stripped, so names like ``run1.5`` survive.
    """
    name = re.split(r"[\\/]", str(value).strip())[-1]
    stem, ext = os.path.splitext(name)
    if ext.lower() in SAMPLE_FILE_SUFFIXES:
        return stem
    return name


def list_sample_files(directory: Path) -> List[Path]:
    d = Path(directory).expanduser()
    if not d.is_dir():
        raise MalformedInputError(f"Not a directory: {d}")
    out: List[Path] = []
    for p in sorted(d.iterdir(), key=lambda q: q.name.lower()):
        if not p.is_file():
            continue
        # Office lock files and hidden files
        if p.name.startswith("~$") or p.name.startswith("."):
            continue
        if p.suffix.lower() in SAMPLE_FILE_SUFFIXES:
            out.append(p)
    return out


def _text_separator(path: Path) -> str:
    return "," if path.suffix.lower() == ".csv" else "\t"


def read_raw_grid(path: Path, *, sheet_name: Optional[str] = None, skip_rows: int = 0) -> pd.DataFrame:
    """Read a table without header inference, starting ``skip_rows`` rows down.

    All cells stay as read (``object`` dtype); row 0 of the result is the header row.
    """
    p = Path(path)
    ext = p.suffix.lower()
    try:
        if ext in EXCEL_SUFFIXES:
            grid = pd.read_excel(str(p), sheet_name=sheet_name or 0, header=None, dtype=object)
            grid = grid.iloc[int(skip_rows):]
        elif ext in TEXT_SUFFIXES:
            grid = pd.read_csv(
                str(p),
                sep=_text_separator(p),
                header=None,
                skiprows=int(skip_rows),
                dtype=object,
                skip_blank_lines=False,
            )
        else:
            raise MalformedInputError(f"Unsupported file type: {p.suffix or '(none)'}")
    except MalformedInputError:
        raise
    except Exception as exc:
        raise MalformedInputError(f"Failed to read {p.name}: {exc}") from exc
    return grid.reset_index(drop=True)


def _resolve_by_name(header: Sequence[str], path: Path) -> Dict[str, int]:
    positions: Dict[str, int] = {}
    lookup: Dict[str, int] = {}
    for i, h in enumerate(header):
        if h and h not in lookup:
            lookup[h] = i
    missing: List[str] = []
    for name in RAW_COLUMNS:
        if name == SPARE_COL:
            continue
        idx = lookup.get(_normalize_header(name))
        if idx is None:
            missing.append(name)
        else:
            positions[name] = idx
    if FORMULA_COL in missing:
        raise MalformedInputError(f"{path.name}: no header row with a '{FORMULA_COL}' column at the expected offset")
    if missing:
        raise MalformedInputError(f"{path.name}: header is missing column(s): {', '.join(missing)}")
    used = set(positions.values())
    spare = next((i for i in range(len(header)) if i not in used), None)
    if spare is None:
        raise MalformedInputError(f"{path.name}: expected {len(RAW_COLUMNS)} columns, found {len(header)}")
    positions[SPARE_COL] = spare
    return positions


def _resolve_by_position(header: Sequence[str], path: Path) -> Dict[str, int]:
    # A header row has a text label over every selected column.
    cells = list(header[: len(RAW_COLUMNS)])
    if any(not c or re.fullmatch(r"[-+0-9.,e ]+", c) for c in cells):
        raise MalformedInputError(f"{path.name}: row at the header offset does not look like a header row")
    return {name: i for i, name in enumerate(RAW_COLUMNS)}


def load_sample_table(
    path: Path,
    *,
    skip_rows: int = DEFAULT_HEADER_SKIP_ROWS,
    column_match: str = "name",
    sheet_name: Optional[str] = None,
    stats: Optional[Dict[str, int]] = None,
) -> pd.DataFrame:
    """Load one per-sample peak table.

    Returns a frame with exactly the ``RAW_COLUMNS`` columns (cells as read).
    Rows without a formula and repeated header rows are dropped; their counts
    are written to ``stats`` when given.

    Raises MalformedInputError when the layout does not match.
    """
    p = Path(path)
    mode = str(column_match or "name").strip().lower()
    if mode not in COLUMN_MATCH_MODES:
        raise ValueError(f"Unknown column match mode: {column_match!r}")

    grid = read_raw_grid(p, sheet_name=sheet_name, skip_rows=skip_rows)
    if grid.shape[0] == 0:
        raise MalformedInputError(f"{p.name}: no header row after skipping {int(skip_rows)} rows")
    if grid.shape[1] < len(RAW_COLUMNS):
        raise MalformedInputError(f"{p.name}: expected {len(RAW_COLUMNS)} columns, found {grid.shape[1]}")

    header = [_normalize_header(v) for v in grid.iloc[0].tolist()]
    if mode == "name":
        positions = _resolve_by_name(header, p)
    else:
        positions = _resolve_by_position(header, p)

    body = grid.iloc[1:]
    rows = pd.DataFrame({name: body.iloc[:, positions[name]].to_numpy() for name in RAW_COLUMNS})

    formula = rows[FORMULA_COL].map(lambda v: "" if _is_blank(v) else str(v).strip())
    missing_formula = formula == ""
    header_echo = ~missing_formula & (rows[DBE_COL].map(lambda v: str(v).strip()) == HEADER_ECHO_SENTINEL)

    rows[FORMULA_COL] = formula
    rows = rows.loc[~(missing_formula | header_echo)].reset_index(drop=True)

    if stats is not None:
        stats["rows_kept"] = int(rows.shape[0])
        stats["missing_formula_dropped"] = int(missing_formula.sum())
        stats["header_echo_dropped"] = int(header_echo.sum())

    _logger.info(
        "Loaded %s: %d rows kept, %d repeated headers, %d without formula",
        p.name,
        rows.shape[0],
        int(header_echo.sum()),
        int(missing_formula.sum()),
    )
    return rows


def load_sample_labels(path: Path, *, sheet_name: Optional[str] = None) -> pd.DataFrame:
    """Load the Sample -> Group table.

    Columns are found by name ("Sample", "Group"); otherwise the first two
    columns are used. Sample names get the same naming rule as sample files.
    """
    p = Path(path)
    grid = read_raw_grid(p, sheet_name=sheet_name, skip_rows=0)
    if grid.shape[0] == 0 or grid.shape[1] < 2:
        raise MalformedInputError(f"{p.name}: label table needs a header and two columns")

    header = [_normalize_header(v) for v in grid.iloc[0].tolist()]
    sample_idx = header.index("sample") if "sample" in header else 0
    group_idx = header.index("group") if "group" in header else (1 if sample_idx != 1 else 0)

    body = grid.iloc[1:]
    samples = body.iloc[:, sample_idx]
    groups = body.iloc[:, group_idx]
    keep = ~samples.map(_is_blank)

    labels = pd.DataFrame(
        {
            SAMPLE_COL: [normalize_sample_id(v) for v in samples[keep]],
            GROUP_COL: [None if _is_blank(g) else str(g).strip() for g in groups[keep]],
        }
    )
    dupes = labels[SAMPLE_COL].duplicated(keep="first")
    if bool(dupes.any()):
        _logger.warning("Label table %s lists %d sample(s) more than once; keeping the first", p.name, int(dupes.sum()))
        labels = labels.loc[~dupes]
    return labels.reset_index(drop=True)
