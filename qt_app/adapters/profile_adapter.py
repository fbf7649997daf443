from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from ftms_lab.peak_io import load_sample_labels
from ftms_lab.peak_model import GROUP_DIMENSIONS, BatchResult, ProfileSelection
from ftms_lab.peak_pipeline import run_batch
from ftms_lab.profile_aggregate import aggregate_selection, observed_options
from ftms_lab.profile_export import export_profile, export_tables
from ftms_lab.settings import SettingsStore, default_settings, save_settings


_logger = logging.getLogger(__name__)


class ProfileAdapter:
    """UI-free state behind the formula profile tab.

    Holds the current batch and label table; every profile is recomputed from
    them on demand.
    """

    def __init__(self, settings: Optional[Dict[str, Any]] = None, *, store: Optional[SettingsStore] = None) -> None:
        # With a store, settings is the store's own dict, shared with other writers.
        self.store = store
        if store is not None:
            self.settings: Dict[str, Any] = store.data
        else:
            self.settings = dict(settings or default_settings())
        self.result: Optional[BatchResult] = None
        self.labels: Optional[pd.DataFrame] = None
        self.data_dir: Optional[Path] = None
        self.label_path: Optional[Path] = None

    def reset(self) -> None:
        self.result = None
        self.labels = None
        self.data_dir = None
        self.label_path = None

    def persist_settings(self) -> None:
        if self.store is not None:
            self.store.save()
        else:
            save_settings(self.settings)

    def set_group_dimension(self, dimension: str) -> None:
        if dimension not in GROUP_DIMENSIONS:
            raise ValueError(f"Unknown group dimension: {dimension!r}")
        if self.settings.get("group_dimension") == dimension:
            return
        self.settings["group_dimension"] = dimension
        self.persist_settings()

    @property
    def has_data(self) -> bool:
        return self.result is not None and self.result.tables.n_formulas > 0

    def load_batch(self, directory: Path, *, on_progress=None) -> BatchResult:
        # Runs in a worker thread; does not touch adapter state.
        return run_batch(Path(directory), settings=self.settings, on_progress=on_progress)

    def set_result(self, result: BatchResult, directory: Optional[Path] = None) -> None:
        self.result = result
        self.data_dir = None if directory is None else Path(directory)

    def load_labels(self, path: Path) -> pd.DataFrame:
        labels = load_sample_labels(Path(path), sheet_name=None)
        self.labels = labels
        self.label_path = Path(path)
        _logger.info("Loaded %d sample label(s) from %s", labels.shape[0], Path(path).name)
        return labels

    def options(self) -> Dict[str, List[Any]]:
        if self.result is None:
            return {"Class": [], "DBE": [], "C": []}
        return observed_options(self.result.tables.metadata)

    def unlabeled_samples(self) -> List[str]:
        if self.result is None:
            return []
        known = set() if self.labels is None else set(self.labels["Sample"].astype(str))
        return [s for s in self.result.tables.samples if s not in known]

    def build_profile(self, selection: ProfileSelection) -> pd.DataFrame:
        if self.result is None:
            raise ValueError("No sample tables loaded.")
        return aggregate_selection(self.result.tables, self.labels, selection)

    def export_tables(self, out_dir: Path, *, fmt: str = "csv") -> List[Path]:
        if self.result is None:
            raise ValueError("No sample tables loaded.")
        return export_tables(self.result.tables, Path(out_dir), fmt=fmt)

    def export_profile(self, selection: ProfileSelection, path: Path) -> Path:
        return export_profile(self.build_profile(selection), Path(path))
