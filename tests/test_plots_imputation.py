# tests/test_plots_imputation.py
from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory

import matplotlib
import pandas as pd
import pytest
from matplotlib.figure import Figure

matplotlib.use("Agg")

from mdw.impute.mice import mice
from mdw.plots.imputation import plot_box, plot_density, plot_strip, plot_trace, plot_xy


@pytest.fixture()
def mi(survey_table: pd.DataFrame):
    return mice(survey_table, m=3, maxit=3, seed=1234)


@pytest.mark.parametrize("plot", [plot_box, plot_density, plot_strip])
@pytest.mark.parametrize("field", ["jsat", "edu"])
def test_distribution_plots_smoke(mi, plot, field: str) -> None:
    with TemporaryDirectory() as td:
        out = Path(td) / f"{field}.png"
        fig = plot(mi, field, out_path=out)
        assert isinstance(fig, Figure)
        assert out.exists()


def test_plot_xy_one_panel_per_imputation(mi) -> None:
    with TemporaryDirectory() as td:
        out = Path(td) / "xy.png"
        fig = plot_xy(mi, "edu", "jsat", out_path=out)
        assert isinstance(fig, Figure)
        assert out.exists()
        assert sum(ax.get_visible() for ax in fig.axes) == mi.m


def test_plot_trace_rows_per_field(mi) -> None:
    with TemporaryDirectory() as td:
        out = Path(td) / "trace.png"
        fig = plot_trace(mi, out_path=out)
        assert isinstance(fig, Figure)
        assert out.exists()
        assert len(fig.axes) == 2 * len(mi.visit_sequence)


def test_plot_trace_subset_and_unknown(mi) -> None:
    fig = plot_trace(mi, fields=["jsat"])
    assert len(fig.axes) == 2
    with pytest.raises(KeyError):
        plot_trace(mi, fields=["income"])


def test_unknown_field_raises(mi) -> None:
    with pytest.raises(KeyError):
        plot_box(mi, "income")
    with pytest.raises(KeyError):
        plot_xy(mi, "edu", "income")
