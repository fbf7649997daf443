from __future__ import annotations

from typing import Optional

from PySide6.QtWidgets import QFileDialog, QMessageBox, QWidget


TABLE_FILTER = "Tables (*.xlsx *.xlsm *.xls *.csv *.tsv *.txt);;All files (*.*)"


class DialogService:
    def __init__(self, parent: QWidget) -> None:
        self._parent = parent

    def info(self, title: str, message: str) -> None:
        QMessageBox.information(self._parent, str(title), str(message))

    def warn(self, title: str, message: str) -> None:
        QMessageBox.warning(self._parent, str(title), str(message))

    def error(self, title: str, message: str) -> None:
        QMessageBox.critical(self._parent, str(title), str(message))

    def confirm(self, title: str, message: str) -> bool:
        res = QMessageBox.question(self._parent, str(title), str(message))
        return res == QMessageBox.StandardButton.Yes

    def pick_directory(self, title: str, start_dir: Optional[str] = None) -> Optional[str]:
        path = QFileDialog.getExistingDirectory(self._parent, str(title), str(start_dir or ""))
        return path or None

    def pick_table_file(self, title: str, start_dir: Optional[str] = None) -> Optional[str]:
        path, _ = QFileDialog.getOpenFileName(self._parent, str(title), str(start_dir or ""), TABLE_FILTER)
        return path or None

    def pick_save_path(self, title: str, start_path: Optional[str] = None, file_filter: str = TABLE_FILTER) -> Optional[str]:
        path, _ = QFileDialog.getSaveFileName(self._parent, str(title), str(start_path or ""), file_filter)
        return path or None
