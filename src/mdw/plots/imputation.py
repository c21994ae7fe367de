# src/mdw/plots/imputation.py
# -----------------------------------------------------------------------------
# Imputation-quality diagnostics for a MultipleImputation.
#
# Colour convention: observed values blue, imputed values red. Imputation 0 is
# the observed data; 1..m are the streams. Categorical fields are drawn on
# their level positions (1..L).
#
#   plot_box      observed vs imputed distributions per stream (boxplots)
#   plot_density  kernel densities, observed vs each stream
#   plot_strip    jittered values per stream
#   plot_xy       one field against another, one panel per stream
#   plot_trace    mean / sd of the imputed values per sweep, one line per stream
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from pandas.api.types import CategoricalDtype
from scipy.stats import gaussian_kde

from mdw.impute.mice import MultipleImputation

matplotlib.use("Agg")

_DPI: int = 120
_OBSERVED = "#1f77b4"
_IMPUTED = "#d62728"


def _rc() -> dict[str, object]:
    return {
        "figure.dpi": _DPI,
        "savefig.dpi": _DPI,
        "axes.grid": True,
        "grid.alpha": 0.3,
        "font.size": 10,
    }


def _nrows_ncols(n: int) -> tuple[int, int]:
    if n <= 0:
        return (1, 1)
    ncols = 3 if n >= 3 else n
    nrows = int(np.ceil(n / ncols))
    return (nrows, ncols)


def _flat_axes(axes: Axes | np.ndarray) -> list[Axes]:
    if isinstance(axes, Axes):
        return [axes]
    return [ax for row in np.atleast_2d(axes) for ax in row]


def _finish(fig: Figure, out_path: Path | None) -> Figure:
    fig.tight_layout()
    if out_path is not None:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(str(out_path))
    return fig


def _as_numeric(values: pd.Series, ref: pd.Series) -> np.ndarray:
    """Numeric view of field values; categoricals map to level positions 1..L."""
    if isinstance(ref.dtype, CategoricalDtype):
        cats = list(ref.cat.categories)
        pos = {c: i + 1 for i, c in enumerate(cats)}
        return np.array([pos.get(v, np.nan) for v in values], dtype=float)
    return values.to_numpy(dtype=float)


def _by_stream(mi: MultipleImputation, field: str) -> list[np.ndarray]:
    """[observed, imputed stream 1, ..., imputed stream m] as numeric arrays."""
    if field not in mi.data.columns:
        raise KeyError(f"Unknown field '{field}'")
    long = mi.imputed_long(field)
    ref = mi.data[field]
    return [
        _as_numeric(long.loc[long[".imp"] == i, "value"], ref) for i in range(0, mi.m + 1)
    ]


def plot_box(mi: MultipleImputation, field: str, out_path: Path | None = None) -> Figure:
    """Boxplots of observed (0) and imputed (1..m) values of `field`."""
    groups = _by_stream(mi, field)
    with plt.rc_context(_rc()):
        fig, ax = plt.subplots(figsize=(7, 4))
        positions = list(range(0, mi.m + 1))
        kept = [(p, g) for p, g in zip(positions, groups, strict=True) if g.size]
        if kept:
            bp = ax.boxplot(
                [g for _, g in kept], positions=[p for p, _ in kept], patch_artist=True, widths=0.6
            )
            for (p, _), patch in zip(kept, bp["boxes"], strict=True):
                patch.set_facecolor(_OBSERVED if p == 0 else _IMPUTED)
                patch.set_alpha(0.6)
        ax.set_xticks(positions)
        ax.set_xlabel("Imputation number (0 = observed)")
        ax.set_ylabel(field)
        ax.set_title(f"Observed vs imputed: {field}")
    return _finish(fig, out_path)


def plot_density(mi: MultipleImputation, field: str, out_path: Path | None = None) -> Figure:
    """Kernel density of the observed values (thick blue) and of each stream (red)."""
    groups = _by_stream(mi, field)
    with plt.rc_context(_rc()):
        fig, ax = plt.subplots(figsize=(7, 4))
        allv = np.concatenate([g for g in groups if g.size]) if any(g.size for g in groups) else np.array([])
        if allv.size == 0:
            ax.set_axis_off()
            ax.set_title(f"No values for '{field}'")
            return _finish(fig, out_path)
        pad = 0.1 * (float(allv.max() - allv.min()) or 1.0)
        grid = np.linspace(float(allv.min()) - pad, float(allv.max()) + pad, 200)
        for i, g in enumerate(groups):
            if g.size < 2 or np.ptp(g) == 0:
                continue
            dens = gaussian_kde(g)(grid)
            if i == 0:
                ax.plot(grid, dens, color=_OBSERVED, linewidth=2.0, label="observed")
            else:
                ax.plot(grid, dens, color=_IMPUTED, linewidth=1.0, alpha=0.7,
                        label="imputed" if i == 1 else None)
        ax.set_xlabel(field)
        ax.set_ylabel("Density")
        ax.set_title(f"Density: {field}")
        if ax.get_legend_handles_labels()[0]:
            ax.legend(fontsize=8)
    return _finish(fig, out_path)


def plot_strip(
    mi: MultipleImputation, field: str, out_path: Path | None = None, *, jitter: float = 0.15, seed: int = 0
) -> Figure:
    """Jittered strip plot of observed (0) and imputed (1..m) values."""
    groups = _by_stream(mi, field)
    rng = np.random.default_rng(seed)
    with plt.rc_context(_rc()):
        fig, ax = plt.subplots(figsize=(7, 4))
        for i, g in enumerate(groups):
            if not g.size:
                continue
            x = i + rng.uniform(-jitter, jitter, size=g.size)
            ax.scatter(x, g, s=10, alpha=0.6, color=_OBSERVED if i == 0 else _IMPUTED)
        ax.set_xticks(list(range(0, mi.m + 1)))
        ax.set_xlabel("Imputation number (0 = observed)")
        ax.set_ylabel(field)
        ax.set_title(f"Strip plot: {field}")
    return _finish(fig, out_path)


def plot_xy(
    mi: MultipleImputation,
    x: str,
    y: str,
    out_path: Path | None = None,
    *,
    jitter: float = 0.2,
    seed: int = 0,
) -> Figure:
    """
    `y` against `x` in every completed table, one panel per stream; points
    whose `y` was imputed are red. Jitter (categorical axes only) keeps the
    discrete scales readable.
    """
    for c in (x, y):
        if c not in mi.data.columns:
            raise KeyError(f"Unknown field '{c}'")
    rng = np.random.default_rng(seed)
    nrows, ncols = _nrows_ncols(mi.m)
    imputed_y = mi.where[y].to_numpy()
    with plt.rc_context(_rc()):
        fig, axes = plt.subplots(nrows=nrows, ncols=ncols, figsize=(4.5 * ncols, 3.5 * nrows))
        axes_arr = _flat_axes(axes)
        for ax in axes_arr[mi.m :]:
            ax.set_visible(False)
        for i, ax in enumerate(axes_arr[: mi.m], start=1):
            t = mi.complete(i)
            xv = _as_numeric(t[x], mi.data[x])
            yv = _as_numeric(t[y], mi.data[y])
            if isinstance(mi.data[x].dtype, CategoricalDtype):
                xv = xv + rng.uniform(-jitter, jitter, size=xv.size)
            if isinstance(mi.data[y].dtype, CategoricalDtype):
                yv = yv + rng.uniform(-jitter, jitter, size=yv.size)
            ax.scatter(xv[~imputed_y], yv[~imputed_y], s=8, alpha=0.5, color=_OBSERVED)
            ax.scatter(xv[imputed_y], yv[imputed_y], s=12, alpha=0.8, color=_IMPUTED)
            ax.set_title(f"Imputation {i}")
            ax.set_xlabel(x)
            ax.set_ylabel(y)
    return _finish(fig, out_path)


def plot_trace(
    mi: MultipleImputation,
    fields: Sequence[str] | None = None,
    out_path: Path | None = None,
) -> Figure:
    """
    Convergence traces: for every imputed field, the mean (left) and standard
    deviation (right) of its imputed values after each sweep, one line per
    stream. Healthy chains intermingle without a trend.
    """
    wanted = list(fields) if fields is not None else list(mi.visit_sequence)
    unknown = [f for f in wanted if f not in mi.visit_sequence]
    if unknown:
        raise KeyError(f"No imputation chains for fields: {unknown}")
    means = mi.chain_stats("mean")
    variances = mi.chain_stats("var")

    with plt.rc_context(_rc()):
        n = max(1, len(wanted))
        fig, axes = plt.subplots(nrows=n, ncols=2, figsize=(10, 2.6 * n), squeeze=False)
        if not wanted:
            for ax in axes.ravel():
                ax.set_axis_off()
            axes[0, 0].set_title("Nothing was imputed")
            return _finish(fig, out_path)
        for r, f in enumerate(wanted):
            for c, (label, frame, transform) in enumerate(
                (("mean", means, None), ("sd", variances, np.sqrt))
            ):
                ax = axes[r, c]
                sub = frame[frame["field"] == f]
                for s, chain in sub.groupby("imputation"):
                    vals = chain["value"].to_numpy()
                    if transform is not None:
                        vals = transform(vals)
                    ax.plot(chain["iteration"].to_numpy(), vals, marker="o", markersize=3,
                            label=str(s))
                ax.set_title(f"{label} {f}")
                ax.set_xlabel("Iteration")
        axes[0, 1].legend(title="imputation", fontsize=7, loc="best")
    return _finish(fig, out_path)
