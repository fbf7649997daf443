from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .peak_io import COLUMN_MATCH_MODES, DEFAULT_HEADER_SKIP_ROWS
from .peak_model import DEFAULT_GROUP_DIMENSION, GROUP_DIMENSIONS


# Keep this stable; used for %APPDATA%\<APP_SETTINGS_DIRNAME>\settings.json
APP_SETTINGS_DIRNAME = "FTMS formula profiles"
SETTINGS_FILENAME = "settings.json"
MAX_RECENT_DIRS = 10

_PATH_KEYS = ("last_data_dir", "last_label_path", "last_export_dir")


def _appdata_dir() -> Path:
    # Windows: %APPDATA% (Roaming)
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata)

    # Fallbacks (best-effort)
    home = Path.home()
    candidate = home / "AppData" / "Roaming"
    return candidate if candidate.exists() else home


def app_data_dir() -> Path:
    return _appdata_dir() / APP_SETTINGS_DIRNAME


def settings_path() -> Path:
    return app_data_dir() / SETTINGS_FILENAME


def default_settings() -> Dict[str, Any]:
    return {
        "header_skip_rows": DEFAULT_HEADER_SKIP_ROWS,
        "column_match": "name",
        "sheet_name": None,
        "decimal_comma": False,
        "max_workers": 4,
        "group_dimension": DEFAULT_GROUP_DIMENSION,
        "last_data_dir": None,
        "last_label_path": None,
        "last_export_dir": None,
        "recent_data_dirs": [],
    }


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_int(value: Any, default: int, *, minimum: int) -> int:
    try:
        return max(minimum, int(value))
    except (TypeError, ValueError):
        return default


def sanitize_settings(data: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``data`` over the defaults, dropping anything invalid."""
    out = default_settings()
    if not isinstance(data, dict):
        return out

    out["header_skip_rows"] = _as_int(data.get("header_skip_rows"), DEFAULT_HEADER_SKIP_ROWS, minimum=0)
    out["max_workers"] = _as_int(data.get("max_workers"), 4, minimum=1)
    out["decimal_comma"] = _as_bool(data.get("decimal_comma"), False)

    mode = str(data.get("column_match", "name") or "name").strip().lower()
    out["column_match"] = mode if mode in COLUMN_MATCH_MODES else "name"

    sheet = data.get("sheet_name")
    out["sheet_name"] = None if sheet in (None, "") else str(sheet)

    dim = str(data.get("group_dimension", DEFAULT_GROUP_DIMENSION) or DEFAULT_GROUP_DIMENSION).strip()
    out["group_dimension"] = dim if dim in GROUP_DIMENSIONS else DEFAULT_GROUP_DIMENSION

    for k in _PATH_KEYS:
        v = data.get(k)
        out[k] = None if v in (None, "") else str(v)

    recent = data.get("recent_data_dirs") or []
    if isinstance(recent, list):
        out["recent_data_dirs"] = [str(p) for p in recent if p][:MAX_RECENT_DIRS]
    return out


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load persistent user settings; a missing or broken file gives the defaults."""
    p = Path(path) if path is not None else settings_path()
    try:
        if not p.exists() or not p.is_file():
            return default_settings()
        data = json.loads(p.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("settings.json must be an object")
    except (OSError, ValueError):
        return default_settings()
    return sanitize_settings(data)


def save_settings(settings: Dict[str, Any], path: Optional[Path] = None) -> None:
    """Persist settings to %APPDATA%\\<APP_SETTINGS_DIRNAME>\\settings.json."""
    p = Path(path) if path is not None else settings_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    safe = sanitize_settings(dict(settings or {}))
    p.write_text(json.dumps(safe, ensure_ascii=False, indent=2), encoding="utf-8")


def push_recent_dir(settings: Dict[str, Any], directory: str) -> List[str]:
    d = str(directory)
    items = [x for x in (settings.get("recent_data_dirs") or []) if x != d]
    items.insert(0, d)
    settings["recent_data_dirs"] = items[:MAX_RECENT_DIRS]
    return list(settings["recent_data_dirs"])


class SettingsStore:
    """The one in-memory settings dict of a running app and the file it saves to.

    Every writer (recent folders, last paths, defaults) mutates ``data`` and
    calls ``save``, so no writer overwrites keys another one changed.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else None
        self.data: Dict[str, Any] = load_settings(self.path)

    @property
    def file(self) -> Path:
        return self.path if self.path is not None else settings_path()

    def save(self) -> None:
        save_settings(self.data, self.path)

    def recent_dirs(self) -> List[str]:
        return list(self.data.get("recent_data_dirs") or [])

    def add_recent_dir(self, directory: str) -> List[str]:
        items = push_recent_dir(self.data, directory)
        self.save()
        return items

    def clear_recent_dirs(self) -> None:
        self.data["recent_data_dirs"] = []
        self.save()
