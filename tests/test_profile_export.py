from __future__ import annotations

import pandas as pd
import pytest

from ftms_lab.peak_pipeline import run_batch
from ftms_lab.profile_aggregate import aggregate_profile
from ftms_lab.profile_export import export_profile, export_tables


@pytest.fixture
def tables(sample_dir):
    return run_batch(sample_dir).tables


def test_export_csv_tables(tables, tmp_path):
    paths = export_tables(tables, tmp_path / "out", fmt="csv")

    assert sorted(p.name for p in paths) == ["Errors.csv", "FormulaMetadata.csv", "Intensities.csv"]
    inty = pd.read_csv(tmp_path / "out" / "Intensities.csv", index_col=0)
    assert inty.loc["C20H30O2", "S2"] == 300
    meta = pd.read_csv(tmp_path / "out" / "FormulaMetadata.csv", index_col=0)
    assert meta.loc["C20H30O2", "DBE"] == 4.5
    assert meta.loc["C20H30O2", "Class"] == "O2"


def test_export_xlsx_workbook(tables, tmp_path):
    (path,) = export_tables(tables, tmp_path, fmt=".XLSX")

    sheets = pd.read_excel(path, sheet_name=None, index_col=0)
    assert set(sheets) == {"Intensities", "Errors", "FormulaMetadata"}
    assert sheets["Errors"].loc["C18H32O2S", "S2"] == pytest.approx(0.4)


def test_export_rejects_unknown_format(tables, tmp_path):
    with pytest.raises(ValueError):
        export_tables(tables, tmp_path, fmt="parquet")


def test_export_profile(tables, tmp_path):
    profile = aggregate_profile(tables.intensities, tables.metadata)

    csv_path = export_profile(profile, tmp_path / "profile.csv")
    back = pd.read_csv(csv_path)
    assert list(back.columns) == ["Parameter", "Sample", "Group", "Intensity"]
    assert back.shape[0] == profile.shape[0]

    xlsx_path = export_profile(profile, tmp_path / "nested" / "profile.xlsx")
    assert pd.read_excel(xlsx_path, sheet_name="Profile").shape[0] == profile.shape[0]
