from __future__ import annotations

import math
import warnings

import numpy as np
import pandas as pd
import pytest

from ftms_lab.peak_model import RAW_COLUMNS
from ftms_lab.peak_pipeline import (
    AmbiguousKeyWarning,
    combine_samples,
    load_samples,
    run_batch,
    split_tables,
)


def _rows(*records):
    return pd.DataFrame([list(r) for r in records], columns=list(RAW_COLUMNS))


def test_combine_stamps_sample_and_coerces_numbers():
    s1 = _rows(["C10H16", "3", "137.13", "0.2", "100", "0.1", "x"])
    s2 = _rows(["C10H16", 3, 137.13, "n/a", " 300 ", 0.1, 137.1])

    combined = combine_samples([("S1", s1), ("S2", s2)])

    assert combined.columns.tolist() == ["Sample"] + list(RAW_COLUMNS)
    assert combined["Sample"].tolist() == ["S1", "S2"]
    assert combined["Mono Inty"].tolist() == [100.0, 300.0]
    assert math.isnan(combined.loc[1, "ppm Error"])
    assert math.isnan(combined.loc[0, "Spare"])
    assert combined["DBE"].dtype.kind == "f" or combined["DBE"].dtype.kind == "i"


def test_combine_decimal_comma():
    s1 = _rows(["C10H16", "3,5", "137,13", "0,2", "100", "0,1", None])
    combined = combine_samples([("S1", s1)], decimal_comma=True)
    assert combined.loc[0, "DBE"] == 3.5
    assert combined.loc[0, "Calc m/z"] == pytest.approx(137.13)


def test_combine_nothing():
    combined = combine_samples([])
    assert combined.shape[0] == 0
    assert combined.columns.tolist() == ["Sample"] + list(RAW_COLUMNS)


def test_split_pivots_intensities_and_errors():
    combined = combine_samples(
        [
            ("S1", _rows(["C10H16", 3, 137.1, 0.2, 100, 0.1, None], ["C20H30O2", 5, 301.2, 0.3, 50, 0.2, None])),
            ("S2", _rows(["C10H16", 3, 137.1, -0.4, 300, 0.1, None])),
        ]
    )
    tables = split_tables(combined)

    assert tables.intensities.index.tolist() == ["C10H16", "C20H30O2"]
    assert tables.intensities.columns.tolist() == ["S1", "S2"]
    assert tables.intensities.loc["C10H16", "S1"] == 100
    assert tables.intensities.loc["C10H16", "S2"] == 300
    # absent combination stays null, not zero
    assert np.isnan(tables.intensities.loc["C20H30O2", "S2"])
    assert tables.errors.loc["C10H16", "S2"] == -0.4

    assert tables.metadata.columns.tolist() == ["CalcMZ", "DBE", "IsotopeFrac"]
    assert tables.metadata.loc["C20H30O2", "CalcMZ"] == 301.2


def test_split_duplicates_last_wins_with_warning():
    combined = combine_samples(
        [("S1", _rows(["C10H16", 3, 137.1, 0.2, 100, 0.1, None], ["C10H16", 4, 999.0, 0.9, 250, 0.5, None]))]
    )
    with pytest.warns(AmbiguousKeyWarning, match="C10H16"):
        tables = split_tables(combined)

    assert tables.intensities.loc["C10H16", "S1"] == 250
    assert tables.errors.loc["C10H16", "S1"] == 0.9
    # metadata keeps the first occurrence
    assert tables.metadata.loc["C10H16", "CalcMZ"] == 137.1
    assert tables.metadata.loc["C10H16", "DBE"] == 3


def test_run_batch_end_to_end(sample_dir, write_sample):
    write_sample(sample_dir / "broken.xlsx", [["C1H4", 1, 16.0]], header=["Formula", "DBE", "Calc m/z"])

    result = run_batch(sample_dir, settings={"max_workers": 2})

    assert [r.sample_id for r in result.reports] == ["broken", "S1", "S2"]
    assert [r.path.name for r in result.skipped_files] == ["broken.xlsx"]
    s1 = next(r for r in result.reports if r.sample_id == "S1")
    assert s1.header_echo_dropped == 1
    assert s1.rows_kept == 3

    tables = result.tables
    assert tables.samples == ["S1", "S2"]
    assert "Formula" not in tables.intensities.index
    assert not (tables.metadata["DBE"].astype(str) == "DBE").any()
    # every intensity formula has exactly one metadata row
    assert tables.metadata.index.is_unique
    assert set(tables.intensities.index) == set(tables.metadata.index)

    meta = tables.metadata
    assert meta.loc["C20H30O2", "DBE"] == 4.5
    assert meta.loc["C20H30O2", "Class"] == "O2"
    assert meta.loc["C15H24", "Class"] == "CH"

    summary = result.summary_text()
    assert "Loaded 2 of 3" in summary
    assert "broken.xlsx" in summary


def test_parallel_and_serial_loads_agree(sample_dir):
    paths = sorted(sample_dir.iterdir())
    serial = load_samples(paths, max_workers=1)
    threaded = load_samples(paths, max_workers=4)

    assert [r.sample_id for r, _ in serial] == [r.sample_id for r, _ in threaded]
    for (_, a), (_, b) in zip(serial, threaded):
        pd.testing.assert_frame_equal(a, b)


def test_progress_is_reported(sample_dir):
    seen = []
    run_batch(sample_dir, on_progress=lambda done, total: seen.append((done, total)))
    assert seen == [(1, 2), (2, 2)]


def test_batch_collects_pipeline_warnings(tmp_path, write_sample):
    write_sample(
        tmp_path / "S1.xlsx",
        [
            ["C10H16", 3, 137.1, 0.2, 100, 0.1, None],
            ["C10H16", 3, 137.1, 0.2, 120, 0.1, None],
            ["???", 1, 10.0, 0.1, 5, 0.0, None],
        ],
    )
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        result = run_batch(tmp_path)

    assert any("C10H16" in w for w in result.warnings)
    assert any("???" in w for w in result.warnings)
    assert result.tables.intensities.loc["C10H16", "S1"] == 120


def test_batch_with_only_bad_files(tmp_path, write_sample):
    write_sample(tmp_path / "bad.xlsx", [["C1H4"]], header=["Formula"])
    result = run_batch(tmp_path)

    assert result.tables.n_formulas == 0
    assert len(result.skipped_files) == 1
    assert "Class" in result.tables.metadata.columns
