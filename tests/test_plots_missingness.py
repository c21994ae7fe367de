# tests/test_plots_missingness.py
from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory

import matplotlib
import pandas as pd
from matplotlib.figure import Figure

matplotlib.use("Agg")

from mdw.plots.missingness import plot_aggr, plot_mosaic, plot_spine


def test_plot_aggr_smoke(survey_table: pd.DataFrame) -> None:
    with TemporaryDirectory() as td:
        out = Path(td) / "aggr.png"
        fig = plot_aggr(survey_table, out_path=out)
        assert isinstance(fig, Figure)
        assert out.exists()


def test_plot_spine_smoke(survey_table: pd.DataFrame) -> None:
    with TemporaryDirectory() as td:
        out = Path(td) / "nested" / "spine_edu_jsat.png"
        fig = plot_spine(survey_table, "edu", "jsat", out_path=out)
        assert isinstance(fig, Figure)
        assert out.exists()


def test_plot_spine_numeric_predictor_without_saving(survey_table: pd.DataFrame) -> None:
    fig = plot_spine(survey_table, "age", "jsat")
    assert isinstance(fig, Figure)


def test_plot_mosaic_smoke(survey_table: pd.DataFrame) -> None:
    with TemporaryDirectory() as td:
        out = Path(td) / "mosaic.png"
        fig = plot_mosaic(survey_table, ("gender", "race"), "jsat", out_path=out)
        assert isinstance(fig, Figure)
        assert out.exists()
