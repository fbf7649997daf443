"""Per-sample FT-MS peak tables -> aligned formula tables and class profiles.

The package holds the UI-free models, IO and pipeline so they can be imported
and tested without Qt; the desktop shell lives in ``qt_app``.
"""

from __future__ import annotations
