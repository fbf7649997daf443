from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from PySide6.QtCore import Qt, QTimer
from PySide6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QPlainTextEdit,
    QPushButton,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from matplotlib.backends.backend_qtagg import FigureCanvasQTAgg
from matplotlib.backends.backend_qtagg import NavigationToolbar2QT as NavigationToolbar
from matplotlib.figure import Figure

from ftms_lab.peak_io import MalformedInputError
from ftms_lab.peak_model import GROUP_DIMENSIONS, BatchResult, ProfileSelection
from ftms_lab.profile_plot import draw_profile_bars
from qt_app.adapters import ProfileAdapter
from qt_app.services import DialogService, StatusService
from qt_app.services.worker import run_in_worker


_logger = logging.getLogger(__name__)

# Filter lists, keyed by the metadata column they select on.
FILTER_KEYS = ("Class", "DBE", "C")


class _FilterList(QGroupBox):
    """Multi-select list with All/None shortcuts."""

    def __init__(self, title: str, on_change) -> None:
        super().__init__(title)
        self._on_change = on_change
        self._values: List[Any] = []

        layout = QVBoxLayout(self)
        self.list = QListWidget()
        self.list.setSelectionMode(QAbstractItemView.MultiSelection)
        self.list.itemSelectionChanged.connect(self._on_change)
        layout.addWidget(self.list, 1)

        btns = QHBoxLayout()
        all_btn = QPushButton("All")
        all_btn.clicked.connect(self.select_all)
        btns.addWidget(all_btn)
        none_btn = QPushButton("None")
        none_btn.clicked.connect(self.select_none)
        btns.addWidget(none_btn)
        btns.addStretch(1)
        layout.addLayout(btns)

    def set_values(self, values: List[Any]) -> None:
        self.list.blockSignals(True)
        self.list.clear()
        self._values = list(values)
        for v in self._values:
            item = QListWidgetItem(_format_value(v))
            item.setData(Qt.UserRole, v)
            self.list.addItem(item)
            item.setSelected(True)
        self.list.blockSignals(False)

    def select_all(self) -> None:
        self.list.selectAll()

    def select_none(self) -> None:
        self.list.clearSelection()

    def selection(self) -> Optional[frozenset]:
        """Selected values; ``None`` when everything is selected."""
        chosen = [item.data(Qt.UserRole) for item in self.list.selectedItems()]
        if len(chosen) == len(self._values):
            return None
        return frozenset(chosen)


def _format_value(v: Any) -> str:
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


class ProfileTab(QWidget):
    def __init__(self, status: StatusService, dialogs: DialogService, worker_runner=None, adapter: ProfileAdapter | None = None) -> None:
        super().__init__()
        self.status = status
        self.dialogs = dialogs
        self.worker_runner = worker_runner or run_in_worker
        self.adapter = adapter or ProfileAdapter()
        self._last_profile = None

        self._refresh_timer = QTimer(self)
        self._refresh_timer.setSingleShot(True)
        self._refresh_timer.timeout.connect(self._refresh_profile)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(6, 6, 6, 6)
        layout.addWidget(self._build_ui())
        self._render_empty()

    def _build_ui(self) -> QWidget:
        root = QSplitter(Qt.Horizontal)
        root.setChildrenCollapsible(False)
        self._root_splitter = root

        root.addWidget(self._build_data_panel())
        root.addWidget(self._build_plot_panel())
        root.setStretchFactor(0, 1)
        root.setStretchFactor(1, 3)
        return root

    def reset_layout(self) -> None:
        self._root_splitter.setSizes([360, 980])

    def _build_data_panel(self) -> QWidget:
        panel = QWidget()
        layout = QVBoxLayout(panel)

        data = QGroupBox("Samples")
        data_layout = QVBoxLayout(data)
        btns = QHBoxLayout()
        open_btn = QPushButton("Open Folder…")
        open_btn.clicked.connect(self.open_data_dir)
        btns.addWidget(open_btn)
        labels_btn = QPushButton("Labels…")
        labels_btn.clicked.connect(self._choose_labels)
        btns.addWidget(labels_btn)
        reload_btn = QPushButton("Reload")
        reload_btn.clicked.connect(self._reload)
        btns.addWidget(reload_btn)
        btns.addStretch(1)
        data_layout.addLayout(btns)

        self._dir_label = QLabel("Folder: (none)")
        self._dir_label.setWordWrap(True)
        data_layout.addWidget(self._dir_label)
        self._labels_label = QLabel("Labels: (none)")
        self._labels_label.setWordWrap(True)
        data_layout.addWidget(self._labels_label)

        self._summary = QPlainTextEdit()
        self._summary.setReadOnly(True)
        self._summary.setMaximumHeight(140)
        data_layout.addWidget(self._summary)
        layout.addWidget(data)

        group_row = QHBoxLayout()
        group_row.addWidget(QLabel("Group by"))
        self._dim_cb = QComboBox()
        self._dim_cb.addItems(list(GROUP_DIMENSIONS))
        dim = str(self.adapter.settings.get("group_dimension", GROUP_DIMENSIONS[0]))
        self._dim_cb.setCurrentText(dim if dim in GROUP_DIMENSIONS else GROUP_DIMENSIONS[0])
        self._dim_cb.currentTextChanged.connect(self._on_dimension_changed)
        group_row.addWidget(self._dim_cb, 1)
        layout.addLayout(group_row)

        self._filters: Dict[str, _FilterList] = {
            "Class": _FilterList("Class", self._schedule_refresh),
            "DBE": _FilterList("DBE", self._schedule_refresh),
            "C": _FilterList("Carbon number", self._schedule_refresh),
        }
        for key in FILTER_KEYS:
            layout.addWidget(self._filters[key], 1)
        return panel

    def _build_plot_panel(self) -> QWidget:
        right = QWidget()
        layout = QVBoxLayout(right)

        top = QHBoxLayout()
        self._status_label = QLabel("Ready")
        top.addWidget(self._status_label)
        top.addStretch(1)
        export_tables_btn = QPushButton("Export Tables…")
        export_tables_btn.clicked.connect(self.export_tables)
        top.addWidget(export_tables_btn)
        export_profile_btn = QPushButton("Export Profile…")
        export_profile_btn.clicked.connect(self._export_profile)
        top.addWidget(export_profile_btn)
        save_plot_btn = QPushButton("Save Plot…")
        save_plot_btn.clicked.connect(self._save_plot)
        top.addWidget(save_plot_btn)
        layout.addLayout(top)

        self._fig = Figure(figsize=(10.5, 7.5), dpi=110)
        self._ax = self._fig.add_subplot(1, 1, 1)
        self._canvas = FigureCanvasQTAgg(self._fig)
        layout.addWidget(self._canvas, 1)
        self._toolbar = NavigationToolbar(self._canvas, self)
        layout.addWidget(self._toolbar)
        return right

    # ----------------------------------------------------------- loading

    def open_data_dir(self) -> Optional[str]:
        start = self.adapter.settings.get("last_data_dir")
        path = self.dialogs.pick_directory("Select sample folder", start)
        if not path:
            return None
        self.load_data_dir(path)
        return path

    def load_data_dir(self, path: str) -> None:
        directory = Path(path)
        self.adapter.settings["last_data_dir"] = str(directory)
        self._persist_settings()

        def _work(handle):
            return self.adapter.load_batch(directory, on_progress=handle.report_progress)

        def _done(result: BatchResult) -> None:
            self.adapter.set_result(result, directory)
            self._on_batch_loaded(result)

        def _err(msg: str) -> None:
            self.dialogs.error("Load samples", str(msg).strip().splitlines()[-1])

        self.worker_runner(
            _work,
            on_result=_done,
            on_error=_err,
            status=self.status,
            description=f"Loading sample tables from {directory.name}",
            group="profile_batch",
            cancel_previous=True,
        )

    def _reload(self) -> None:
        if self.adapter.data_dir is None:
            self.status.set_status("No sample folder loaded")
            return
        self.load_data_dir(str(self.adapter.data_dir))

    def _on_batch_loaded(self, result: BatchResult) -> None:
        self._dir_label.setText(f"Folder: {self.adapter.data_dir}")
        summary = result.summary_text()
        if result.warnings:
            summary += "\n" + "\n".join(result.warnings[:20])
        self._summary.setPlainText(summary)

        opts = self.adapter.options()
        for key in FILTER_KEYS:
            self._filters[key].set_values(opts.get(key, []))

        if result.skipped_files:
            names = ", ".join(r.path.name for r in result.skipped_files)
            self.dialogs.warn("Load samples", f"Skipped {len(result.skipped_files)} file(s): {names}")
        self.status.set_status(f"{result.tables.n_formulas} formulas in {len(result.tables.samples)} samples")
        self._refresh_profile()

    def _choose_labels(self) -> None:
        start = self.adapter.settings.get("last_label_path")
        path = self.dialogs.pick_table_file("Select sample label table", start)
        if not path:
            return
        try:
            self.adapter.load_labels(Path(path))
        except MalformedInputError as exc:
            self.dialogs.error("Sample labels", str(exc))
            return
        self.adapter.settings["last_label_path"] = str(path)
        self._persist_settings()
        self._labels_label.setText(f"Labels: {Path(path).name}")
        missing = self.adapter.unlabeled_samples()
        if missing:
            self.status.set_status(f"No group for: {', '.join(missing[:8])}")
        self._refresh_profile()

    def _persist_settings(self) -> None:
        try:
            self.adapter.persist_settings()
        except OSError as exc:
            _logger.warning("Could not save settings: %s", exc)

    # ----------------------------------------------------------- profile

    def current_selection(self) -> ProfileSelection:
        return ProfileSelection(
            class_filter=self._filters["Class"].selection(),
            dbe_filter=self._filters["DBE"].selection(),
            carbon_filter=self._filters["C"].selection(),
            group_dimension=str(self._dim_cb.currentText()),
        )

    def _on_dimension_changed(self, dimension: str) -> None:
        try:
            self.adapter.set_group_dimension(str(dimension))
        except (OSError, ValueError) as exc:
            _logger.warning("Could not store group dimension: %s", exc)
        self._schedule_refresh()

    def _schedule_refresh(self, *_args) -> None:
        # Coalesce bursts of selection signals into one recompute.
        self._refresh_timer.start(30)

    def _refresh_profile(self) -> None:
        if not self.adapter.has_data:
            self._render_empty()
            return
        selection = self.current_selection()
        try:
            profile = self.adapter.build_profile(selection)
        except ValueError as exc:
            self.dialogs.error("Profile", str(exc))
            return
        self._last_profile = profile
        draw_profile_bars(self._ax, profile, title=f"Relative intensity by {selection.group_dimension}", xlabel=selection.group_dimension)
        self._fig.tight_layout()
        self._canvas.draw_idle()
        self._status_label.setText(f"{profile.shape[0]} bars")

    def _render_empty(self) -> None:
        self._ax.clear()
        self._ax.text(0.5, 0.5, "Open a sample folder to begin", ha="center", va="center", transform=self._ax.transAxes)
        self._ax.set_xticks([])
        self._ax.set_yticks([])
        self._canvas.draw_idle()

    # ----------------------------------------------------------- export

    def export_tables(self) -> None:
        if not self.adapter.has_data:
            self.dialogs.info("Export", "Nothing loaded yet.")
            return
        out_dir = self.dialogs.pick_directory("Export tables to", self.adapter.settings.get("last_export_dir"))
        if not out_dir:
            return
        try:
            written = self.adapter.export_tables(Path(out_dir), fmt="csv")
        except (OSError, ValueError) as exc:
            self.dialogs.error("Export", f"Failed to export tables:\n{exc}")
            return
        self.adapter.settings["last_export_dir"] = str(out_dir)
        self._persist_settings()
        self.status.set_status(f"Exported {len(written)} file(s)")

    def _export_profile(self) -> None:
        if not self.adapter.has_data:
            self.dialogs.info("Export", "Nothing loaded yet.")
            return
        path = self.dialogs.pick_save_path("Export profile", self.adapter.settings.get("last_export_dir"), "Excel (*.xlsx);;CSV (*.csv)")
        if not path:
            return
        try:
            self.adapter.export_profile(self.current_selection(), Path(path))
        except (OSError, ValueError) as exc:
            self.dialogs.error("Export", f"Failed to export profile:\n{exc}")
            return
        self.status.set_status(f"Profile exported to {Path(path).name}")

    def _save_plot(self) -> None:
        path = self.dialogs.pick_save_path("Save plot", self.adapter.settings.get("last_export_dir"), "PNG (*.png);;PDF (*.pdf);;SVG (*.svg)")
        if not path:
            return
        try:
            self._fig.savefig(path)
        except (OSError, ValueError) as exc:
            self.dialogs.error("Save plot", f"Failed to save plot:\n{exc}")
