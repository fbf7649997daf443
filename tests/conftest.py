from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

import pytest
from openpyxl import Workbook


HEADER = ["Formula", "DBE", "Calc m/z", "ppm Error", "Mono Inty", "Isotope frac", "Meas m/z"]


def _write_xlsx(path: Path, rows: Iterable[Sequence], *, header: Sequence = HEADER, meta_rows: int = 6) -> Path:
    wb = Workbook()
    ws = wb.active
    for i in range(meta_rows):
        ws.append([f"Instrument line {i + 1}", "info"])
    ws.append(list(header))
    for r in rows:
        ws.append(list(r))
    wb.save(path)
    return path


@pytest.fixture
def write_sample():
    """Factory writing an instrument-style xlsx: 6 metadata rows, header, data."""
    return _write_xlsx


@pytest.fixture
def sample_dir(tmp_path: Path) -> Path:
    d = tmp_path / "samples"
    d.mkdir()
    _write_xlsx(
        d / "S1.xlsx",
        [
            ["C20H30O2", 5, 301.2173, 0.3, 600.0, 0.22, 301.2174],
            ["C15H24", 4, 203.1805, -0.1, 300.0, 0.16, 203.1804],
            ["Formula", "DBE", "Calc m/z", "ppm Error", "Mono Inty", "Isotope frac", "Meas m/z"],
            ["C10H16NO2", 3, 182.1187, 0.5, 100.0, 0.11, 182.1188],
        ],
    )
    _write_xlsx(
        d / "S2.xlsx",
        [
            ["C20H30O2", 5, 301.2173, 0.2, 300.0, 0.22, 301.2174],
            [None, 2, 100.0, 0.1, 50.0, 0.05, 100.0],
            ["C18H32O2S", 3, 295.2101, 0.4, 100.0, 0.2, 295.2102],
        ],
    )
    return d
