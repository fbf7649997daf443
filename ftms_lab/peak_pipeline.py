from __future__ import annotations

import logging
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .formula_decompose import UnparseableFormulaWarning, decompose_formulas
from .peak_io import (
    DEFAULT_HEADER_SKIP_ROWS,
    MalformedInputError,
    list_sample_files,
    load_sample_table,
    sample_id_from_path,
)
from .peak_model import (
    CALC_MZ_COL,
    DBE_COL,
    FORMULA_COL,
    ISOTOPE_FRAC_COL,
    MONO_INTY_COL,
    PPM_ERROR_COL,
    RAW_COLUMNS,
    SAMPLE_COL,
    BatchResult,
    FormulaTables,
    SampleLoadReport,
    empty_formula_tables,
)


_logger = logging.getLogger(__name__)

# Everything after Formula is numeric once combined.
NUMERIC_COLUMNS = RAW_COLUMNS[1:]
COMBINED_COLUMNS = (SAMPLE_COL,) + RAW_COLUMNS

LoadedSample = Tuple[SampleLoadReport, Optional[pd.DataFrame]]


class AmbiguousKeyWarning(UserWarning):
    pass


def _coerce_numeric(series: pd.Series, *, decimal_comma: bool = False) -> pd.Series:
    def _clean(v):
        if isinstance(v, str):
            v = v.strip()
            if decimal_comma:
                v = v.replace(",", ".")
        return v

    return pd.to_numeric(series.map(_clean), errors="coerce")


def combine_samples(
    samples: Sequence[Tuple[str, pd.DataFrame]],
    *,
    decimal_comma: bool = False,
) -> pd.DataFrame:
    """Concatenate per-sample tables in input order, stamping each row with its sample.

    Numeric columns that fail coercion become NaN.
    """
    frames: List[pd.DataFrame] = []
    for sample_id, rows in samples:
        frame = rows.reindex(columns=list(RAW_COLUMNS)).copy()
        frame.insert(0, SAMPLE_COL, str(sample_id))
        frames.append(frame)

    if not frames:
        return pd.DataFrame({c: pd.Series(dtype=(object if c in (SAMPLE_COL, FORMULA_COL) else float)) for c in COMBINED_COLUMNS})

    combined = pd.concat(frames, ignore_index=True)
    for col in NUMERIC_COLUMNS:
        combined[col] = _coerce_numeric(combined[col], decimal_comma=decimal_comma)
    combined[FORMULA_COL] = combined[FORMULA_COL].astype(str)
    return combined[list(COMBINED_COLUMNS)]


def _pivot(rows: pd.DataFrame, value_col: str, formula_order, sample_order) -> pd.DataFrame:
    wide = rows.pivot(index=FORMULA_COL, columns=SAMPLE_COL, values=value_col)
    wide = wide.reindex(index=formula_order, columns=sample_order)
    wide.index.name = FORMULA_COL
    wide.columns.name = SAMPLE_COL
    return wide.astype(float)


def split_tables(combined: pd.DataFrame) -> FormulaTables:
    """Project the combined table into intensities, errors and formula metadata.

    Duplicate (Formula, Sample) pairs keep the last row and raise
    AmbiguousKeyWarning. Metadata keeps the first row of each formula.
    """
    if combined.shape[0] == 0:
        return empty_formula_tables()

    formula_order = pd.unique(combined[FORMULA_COL])
    sample_order = pd.unique(combined[SAMPLE_COL])

    dupes = combined.duplicated(subset=[FORMULA_COL, SAMPLE_COL], keep="last")
    if bool(dupes.any()):
        keys = combined.loc[dupes, [FORMULA_COL, SAMPLE_COL]].drop_duplicates()
        for formula, sample in keys.itertuples(index=False):
            warnings.warn(
                f"Duplicate formula {formula!r} in sample {sample!r}; keeping the last row",
                AmbiguousKeyWarning,
                stacklevel=2,
            )
    unique_rows = combined.loc[~dupes]

    intensities = _pivot(unique_rows, MONO_INTY_COL, formula_order, sample_order)
    errors = _pivot(unique_rows, PPM_ERROR_COL, formula_order, sample_order)

    metadata = (
        combined.drop_duplicates(subset=[FORMULA_COL], keep="first")
        .set_index(FORMULA_COL)[[CALC_MZ_COL, DBE_COL, ISOTOPE_FRAC_COL]]
        .rename(columns={CALC_MZ_COL: "CalcMZ", ISOTOPE_FRAC_COL: "IsotopeFrac"})
    )
    metadata = metadata[["CalcMZ", "DBE", "IsotopeFrac"]]

    return FormulaTables(intensities=intensities, errors=errors, metadata=metadata)


def _load_one(path: Path, *, skip_rows: int, column_match: str, sheet_name: Optional[str]) -> LoadedSample:
    sample_id = sample_id_from_path(path)
    stats: Dict[str, int] = {}
    try:
        rows = load_sample_table(
            path,
            skip_rows=skip_rows,
            column_match=column_match,
            sheet_name=sheet_name,
            stats=stats,
        )
    except MalformedInputError as exc:
        _logger.warning("Skipping %s: %s", Path(path).name, exc)
        return SampleLoadReport(sample_id=sample_id, path=Path(path), error=str(exc)), None
    return SampleLoadReport(sample_id=sample_id, path=Path(path), **stats), rows


def load_samples(
    paths: Sequence[Path],
    *,
    skip_rows: int = DEFAULT_HEADER_SKIP_ROWS,
    column_match: str = "name",
    sheet_name: Optional[str] = None,
    max_workers: int = 4,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> List[LoadedSample]:
    """Load every file; a malformed file is reported, not raised.

    Files may load in parallel; results always come back in ``paths`` order.
    """
    paths = [Path(p) for p in paths]
    total = len(paths)

    def _work(p: Path) -> LoadedSample:
        return _load_one(p, skip_rows=skip_rows, column_match=column_match, sheet_name=sheet_name)

    out: List[LoadedSample] = []
    if int(max_workers) <= 1 or total <= 1:
        results: Iterable[LoadedSample] = map(_work, paths)
        for i, res in enumerate(results, start=1):
            out.append(res)
            if on_progress is not None:
                on_progress(i, total)
        return out

    with ThreadPoolExecutor(max_workers=int(max_workers), thread_name_prefix="sample-load") as pool:
        for i, res in enumerate(pool.map(_work, paths), start=1):
            out.append(res)
            if on_progress is not None:
                on_progress(i, total)
    return out


def build_tables(loaded: Sequence[LoadedSample], *, decimal_comma: bool = False) -> FormulaTables:
    samples = [(report.sample_id, rows) for report, rows in loaded if rows is not None]
    combined = combine_samples(samples, decimal_comma=decimal_comma)
    tables = split_tables(combined)
    tables.metadata = decompose_formulas(tables.metadata)
    return tables


def run_batch(
    source: Union[str, Path, Sequence[Union[str, Path]]],
    *,
    settings: Optional[Mapping[str, Any]] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> BatchResult:
    """Load a folder (or list) of sample tables and build the decomposed tables.

    Best effort: malformed files are skipped and listed in the result reports.
    """
    cfg = dict(settings or {})
    if isinstance(source, (str, Path)):
        paths = list_sample_files(Path(source))
    else:
        paths = [Path(p) for p in source]

    start = time.perf_counter()
    _logger.info("Batch start: %d sample file(s)", len(paths))

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        loaded = load_samples(
            paths,
            skip_rows=int(cfg.get("header_skip_rows", DEFAULT_HEADER_SKIP_ROWS)),
            column_match=str(cfg.get("column_match", "name")),
            sheet_name=cfg.get("sheet_name"),
            max_workers=int(cfg.get("max_workers", 4)),
            on_progress=on_progress,
        )
        reports = [report for report, _rows in loaded]
        seen: Dict[str, Path] = {}
        for report in reports:
            if report.ok and report.sample_id in seen:
                _logger.warning("Sample %r comes from both %s and %s", report.sample_id, seen[report.sample_id].name, report.path.name)
            seen.setdefault(report.sample_id, report.path)
        tables = build_tables(loaded, decimal_comma=bool(cfg.get("decimal_comma", False)))

    messages: List[str] = []
    for w in caught:
        if issubclass(w.category, (AmbiguousKeyWarning, UnparseableFormulaWarning)):
            messages.append(str(w.message))
            _logger.warning("%s: %s", w.category.__name__, w.message)
        else:
            _logger.debug("Ignored %s during batch: %s", w.category.__name__, w.message)

    result = BatchResult(tables=tables, reports=reports, warnings=messages)
    _logger.info(
        "Batch finished: %d formulas x %d samples, %d file(s) skipped (%.3fs)",
        tables.n_formulas,
        len(tables.samples),
        len(result.skipped_files),
        time.perf_counter() - start,
    )
    return result
