from __future__ import annotations

import os

from qt_app.main import main


def _maybe_run_formula_selfchecks() -> None:
    # Hidden developer hook; no UI changes.
    if str(os.environ.get("FTMS_RUN_SELFCHECKS", "")).strip() not in ("1", "true", "True", "yes", "YES"):
        return
    try:
        from ftms_lab.formula_decompose import run_formula_self_checks

        res = run_formula_self_checks()
        print("[formula-selfcheck]", res)
    except Exception as exc:
        print("[formula-selfcheck] failed:", exc)


if __name__ == "__main__":
    _maybe_run_formula_selfchecks()
    raise SystemExit(main())
