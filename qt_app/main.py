from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from PySide6.QtWidgets import QApplication

from ftms_lab.settings import SettingsStore, app_data_dir
from qt_app.main_window import MainWindow


LOG_FILENAME = "ftms_profiles.log"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"

# Settings that change how sample tables are read; echoed to the log at start-up.
_LOAD_KEYS = ("header_skip_rows", "column_match", "sheet_name", "decimal_comma", "max_workers", "group_dimension")


def _log_level() -> int:
    name = str(os.environ.get("FTMS_LOG_LEVEL", "INFO")).strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _init_logging(log_dir: Path) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME
    logging.basicConfig(
        level=_log_level(),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    logging.getLogger("matplotlib").setLevel(logging.WARNING)
    return log_file


def _install_excepthook() -> None:
    logger = logging.getLogger("qt_app")

    def _hook(exc_type, exc, tb) -> None:
        logger.exception("Unhandled exception", exc_info=(exc_type, exc, tb))
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _hook


def main() -> int:
    log_file = _init_logging(app_data_dir())
    _install_excepthook()
    logger = logging.getLogger("qt_app")

    store = SettingsStore()
    logger.info("Log file: %s", log_file)
    logger.info("Settings: %s", store.file)
    logger.info("Load options: %s", ", ".join(f"{k}={store.data.get(k)!r}" for k in _LOAD_KEYS))
    if store.recent_dirs():
        logger.info("%d recent sample folder(s)", len(store.recent_dirs()))

    app = QApplication(sys.argv)
    app.setApplicationName("FTMS formula profiles")
    win = MainWindow(store)
    win.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
