from __future__ import annotations

from typing import Any, Dict, List

import numpy as np
import pandas as pd
from matplotlib import colormaps
from matplotlib.patches import Patch

from .peak_model import GROUP_COL, SAMPLE_COL


UNLABELED_EDGE = "#9e9e9e"


def _label(value: Any) -> str:
    if value is None:
        return "NA"
    try:
        if pd.isna(value):
            return "NA"
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _palette(name: str, n: int) -> List[Any]:
    cmap = colormaps[name]
    size = int(getattr(cmap, "N", 10))
    return [cmap(i % size) for i in range(max(0, int(n)))]


def draw_profile_bars(ax, profile: pd.DataFrame, *, title: str = "", xlabel: str = "") -> Dict[str, Any]:
    """Grouped bar chart of an aggregated profile.

    x = Parameter, height = summed relative intensity, fill = Sample,
    outline = Group. Returns the color assignments used.
    """
    ax.clear()
    meta: Dict[str, Any] = {"sample_colors": {}, "group_colors": {}, "n_bars": 0}
    if profile is None or profile.shape[0] == 0:
        ax.text(0.5, 0.5, "No formulas match the current selection", ha="center", va="center", transform=ax.transAxes)
        ax.set_xticks([])
        ax.set_title(title)
        return meta

    params = list(pd.unique(profile["Parameter"]))
    samples = [str(s) for s in pd.unique(profile[SAMPLE_COL])]
    groups = sorted({_label(g) for g in profile[GROUP_COL] if _label(g) != "NA"})

    sample_colors = dict(zip(samples, _palette("tab20", len(samples))))
    group_colors = dict(zip(groups, _palette("Dark2", len(groups))))

    x = np.arange(len(params), dtype=float)
    width = 0.8 / max(1, len(samples))
    param_pos = {_label(p): i for i, p in enumerate(params)}

    n_bars = 0
    for j, sample in enumerate(samples):
        part = profile[profile[SAMPLE_COL].astype(str) == sample]
        offset = j * width - (len(samples) - 1) * width / 2
        for _, row in part.iterrows():
            g = _label(row[GROUP_COL])
            ax.bar(
                x[param_pos[_label(row["Parameter"])]] + offset,
                float(row["Intensity"]),
                width=width,
                color=sample_colors[sample],
                edgecolor=group_colors.get(g, UNLABELED_EDGE),
                linewidth=1.5,
            )
            n_bars += 1

    ax.set_xticks(x)
    ax.set_xticklabels([_label(p) for p in params], rotation=45, ha="right")
    ax.set_xlabel(xlabel)
    ax.set_ylabel("Relative intensity")
    ax.set_title(title)
    ax.grid(True, axis="y", alpha=0.25)

    handles = [Patch(facecolor=c, label=s) for s, c in sample_colors.items()]
    handles += [Patch(facecolor="white", edgecolor=c, linewidth=1.5, label=f"Group {g}") for g, c in group_colors.items()]
    if handles:
        ax.legend(handles=handles, loc="best", fontsize="small")

    meta["sample_colors"] = sample_colors
    meta["group_colors"] = group_colors
    meta["n_bars"] = n_bars
    return meta
