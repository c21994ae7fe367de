# src/mdw/plots/missingness.py
from __future__ import annotations

from pathlib import Path

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.cm import ScalarMappable
from matplotlib.colors import ListedColormap, Normalize
from matplotlib.figure import Figure
from statsmodels.graphics.mosaicplot import mosaic

from mdw.missing.patterns import (
    conditional_missingness,
    joint_missingness,
    missing_patterns,
    missing_proportions,
)

matplotlib.use("Agg")

_DPI: int = 120
_OBSERVED = "#1f77b4"
_MISSING = "#d62728"


def _rc() -> dict[str, object]:
    return {
        "figure.dpi": _DPI,
        "savefig.dpi": _DPI,
        "axes.grid": True,
        "grid.alpha": 0.3,
        "font.size": 10,
    }


def _ensure_parent(out_path: Path | None) -> None:
    if out_path is not None:
        out_path.parent.mkdir(parents=True, exist_ok=True)


def _finish(fig: Figure, out_path: Path | None) -> Figure:
    fig.tight_layout()
    if out_path is not None:
        _ensure_parent(out_path)
        fig.savefig(str(out_path))
    return fig


def plot_aggr(df: pd.DataFrame, out_path: Path | None = None) -> Figure:
    """
    Aggregation plot: missing proportion per field (left) and the grid of
    observed joint-missingness patterns with their proportions (right).
    """
    props = missing_proportions(df)
    pats = missing_patterns(df)
    fields = list(props.index)

    with plt.rc_context(_rc()):
        fig, (ax_bar, ax_grid) = plt.subplots(
            1, 2, figsize=(11, max(3.5, 0.35 * len(pats) + 1.5))
        )
        ax_bar.bar(fields, props.to_numpy(), color=_MISSING)
        ax_bar.set_ylim(0.0, max(0.05, float(props.max()) * 1.15))
        ax_bar.set_ylabel("Proportion of missings")
        ax_bar.set_title("Missing per field")
        ax_bar.tick_params(axis="x", rotation=45)

        grid = pats[fields].to_numpy()
        cmap = ListedColormap([_OBSERVED, _MISSING])
        ax_grid.imshow(grid, aspect="auto", cmap=cmap, vmin=0, vmax=1, interpolation="nearest")
        ax_grid.set_xticks(np.arange(len(fields)))
        ax_grid.set_xticklabels(fields, rotation=45)
        ax_grid.set_yticks(np.arange(len(pats)))
        ax_grid.set_yticklabels([f"{p:.3f}" for p in pats["proportion"]])
        ax_grid.set_ylabel("Pattern proportion")
        ax_grid.set_title("Combinations (red = missing)")
        ax_grid.grid(False)
    return _finish(fig, out_path)


def plot_spine(
    df: pd.DataFrame,
    predictor: str,
    outcome: str,
    out_path: Path | None = None,
) -> Figure:
    """
    Spinogram: bar widths are the predictor's level shares, the stacked heights
    the proportion of `outcome` observed (blue) vs missing (red) in each level.
    """
    tab = conditional_missingness(df, predictor, outcome)
    widths = tab["width"].to_numpy()
    lefts = np.concatenate([[0.0], np.cumsum(widths)[:-1]])

    with plt.rc_context(_rc()):
        fig, ax = plt.subplots(figsize=(7, 4))
        if tab.empty:
            ax.set_axis_off()
            ax.set_title(f"No observed levels of '{predictor}'")
            return _finish(fig, out_path)
        ax.bar(lefts, tab["prop_observed"], width=widths, align="edge",
               color=_OBSERVED, edgecolor="white", label="observed")
        ax.bar(lefts, tab["prop_missing"], width=widths, bottom=tab["prop_observed"],
               align="edge", color=_MISSING, edgecolor="white", label="missing")
        ax.set_xticks(lefts + widths / 2.0)
        ax.set_xticklabels([str(v) for v in tab.index])
        ax.set_xlim(0.0, 1.0)
        ax.set_ylim(0.0, 1.0)
        ax.set_xlabel(predictor)
        ax.set_ylabel(f"Proportion of '{outcome}' missing")
        ax.set_title(f"Missingness of {outcome} by {predictor}")
        ax.legend(loc="upper right", fontsize=8)
    return _finish(fig, out_path)


def plot_mosaic(
    df: pd.DataFrame,
    predictors: tuple[str, str],
    outcome: str,
    out_path: Path | None = None,
) -> Figure:
    """
    Mosaic of two categorical predictors: tile area is the cell size, tile
    colour the missing rate of `outcome` within the cell.
    """
    tab = joint_missingness(df, predictors, outcome)
    counts = {(str(a), str(b)): float(r.n) for (a, b), r in tab.iterrows()}
    rates = {(str(a), str(b)): float(r.prop_missing) for (a, b), r in tab.iterrows()}
    cmap = plt.get_cmap("Reds")
    norm = Normalize(vmin=0.0, vmax=max(0.01, max(rates.values(), default=0.0)))

    def _props(key: tuple[str, ...]) -> dict[str, object]:
        rate = rates.get(tuple(key))
        return {"color": "lightgrey" if rate is None else cmap(norm(rate))}

    def _label(key: tuple[str, ...]) -> str:
        rate = rates.get(tuple(key))
        return "" if rate is None else f"{rate:.0%}"

    with plt.rc_context(_rc()):
        fig, ax = plt.subplots(figsize=(7, 5))
        if not counts:
            ax.set_axis_off()
            ax.set_title("No complete predictor combinations")
            return _finish(fig, out_path)
        mosaic(counts, ax=ax, properties=_props, labelizer=_label, gap=0.02)
        ax.set_xlabel(predictors[0])
        ax.set_ylabel(predictors[1])
        ax.set_title(f"Missingness of {outcome} by {predictors[0]} x {predictors[1]}")
        fig.colorbar(ScalarMappable(norm=norm, cmap=cmap), ax=ax, label=f"{outcome} missing rate")
    return _finish(fig, out_path)
