from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

from PySide6.QtGui import QAction
from PySide6.QtWidgets import (
    QLabel,
    QMainWindow,
    QMenu,
    QProgressBar,
    QStatusBar,
    QTabWidget,
)

from ftms_lab.settings import SettingsStore
from qt_app.adapters import ProfileAdapter
from qt_app.services import DialogService, RecentFilesService, StatusService
from qt_app.services.worker import run_in_worker
from qt_app.tabs import ProfileTab


class MainWindow(QMainWindow):
    def __init__(self, store: SettingsStore | None = None) -> None:
        super().__init__()
        self.settings_store = store or SettingsStore()
        self.setWindowTitle("FTMS formula profiles")
        self.resize(1400, 850)

        self._recent_menu: QMenu | None = None
        self._status_label = QLabel("Ready")
        self._progress = QProgressBar()
        self._progress.setRange(0, 0)
        self._progress.setVisible(False)

        self.status_service = StatusService(
            set_text=self._status_label.setText,
            set_busy=self._set_busy,
            set_progress=self._set_progress,
        )
        self.dialog_service = DialogService(self)
        self.recent_files = RecentFilesService(self.settings_store)

        self._init_ui()

    def _init_ui(self) -> None:
        tabs = QTabWidget()
        adapter = ProfileAdapter(store=self.settings_store)
        self._profile_tab = ProfileTab(self.status_service, self.dialog_service, run_in_worker, adapter)
        tabs.addTab(self._profile_tab, "Formula profiles")
        self.setCentralWidget(tabs)
        self._tabs = tabs

        self._build_menu()
        self._build_status_bar()

    def _build_menu(self) -> None:
        menu = self.menuBar()

        file_menu = menu.addMenu("File")
        open_action = QAction("Open Sample Folder…", self)
        open_action.triggered.connect(self._open_data_dir)
        file_menu.addAction(open_action)

        export_action = QAction("Export Tables…", self)
        export_action.triggered.connect(self._profile_tab.export_tables)
        file_menu.addAction(export_action)

        self._recent_menu = file_menu.addMenu("Recent Folders")
        self._refresh_recent_menu()

        reveal_action = QAction("Reveal Sample Folder", self)
        reveal_action.triggered.connect(self._reveal_in_explorer)
        file_menu.addAction(reveal_action)

        file_menu.addSeparator()
        exit_action = QAction("Exit", self)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        view_menu = menu.addMenu("View")
        reset_action = QAction("Reset Layout", self)
        reset_action.triggered.connect(self._reset_layout)
        view_menu.addAction(reset_action)

        help_menu = menu.addMenu("Help")
        about_action = QAction("About", self)
        about_action.triggered.connect(self._about)
        help_menu.addAction(about_action)

    def _build_status_bar(self) -> None:
        bar = QStatusBar()
        bar.addWidget(self._status_label, 1)
        bar.addPermanentWidget(self._progress)
        self.setStatusBar(bar)

    def _set_busy(self, busy: bool) -> None:
        self._progress.setVisible(bool(busy))
        if not busy:
            self._progress.setRange(0, 0)

    def _set_progress(self, value: int) -> None:
        self._progress.setVisible(True)
        if value <= 0:
            self._progress.setRange(0, 0)
        else:
            self._progress.setRange(0, 100)
            self._progress.setValue(int(value))

    def _open_data_dir(self) -> None:
        path = self._profile_tab.open_data_dir()
        if path:
            self.recent_files.add_recent(path)
            self._refresh_recent_menu()

    def _reset_layout(self) -> None:
        self._profile_tab.reset_layout()
        self.status_service.set_status("Layout reset")

    def _about(self) -> None:
        self.dialog_service.info(
            "About",
            "FTMS formula profiles\n\nCombines per-sample peak tables and compares heteroatom class, DBE and carbon number profiles.",
        )

    def _refresh_recent_menu(self) -> None:
        if self._recent_menu is None:
            return
        self._recent_menu.clear()
        items = self.recent_files.list_recent()
        if not items:
            self._recent_menu.addAction(QAction("(empty)", self))
            return
        for path in items:
            action = QAction(path, self)
            action.triggered.connect(lambda _checked=False, p=path: self._open_recent(p))
            self._recent_menu.addAction(action)
        self._recent_menu.addSeparator()
        clear_action = QAction("Clear Recent Folders", self)
        clear_action.triggered.connect(self._clear_recent)
        self._recent_menu.addAction(clear_action)

    def _clear_recent(self) -> None:
        self.recent_files.clear()
        self._refresh_recent_menu()
        self.status_service.set_status("Recent folders cleared")

    def _open_recent(self, path: str) -> None:
        if not Path(path).is_dir():
            self.dialog_service.warn("Recent Folders", f"Folder not found:\n{path}")
            return
        self._profile_tab.load_data_dir(path)
        self.recent_files.add_recent(path)
        self._refresh_recent_menu()

    def _reveal_in_explorer(self) -> None:
        path = self._profile_tab.adapter.data_dir
        if path is None:
            self.status_service.set_status("Reveal Sample Folder (nothing loaded)")
            return
        try:
            p = Path(str(path))
            if not p.exists():
                return
            if os.name == "nt":
                subprocess.Popen(["explorer", str(p)])
            elif sys.platform == "darwin":
                subprocess.Popen(["open", str(p)])
            else:
                subprocess.Popen(["xdg-open", str(p)])
        except OSError:
            self.status_service.set_status("Reveal Sample Folder failed")
