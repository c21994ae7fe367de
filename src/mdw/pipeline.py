# src/mdw/pipeline.py
# -----------------------------------------------------------------------------
# The whole workshop as one linear batch run:
#
#   load → normalize → missing (views) → impute → diagnose (plots) → diff
#
# Each stage takes the previous stage's output as an explicit argument and
# returns a new object; nothing is shared through module state. Any stage
# failure aborts the run: PipelineError subclasses propagate unchanged, other
# exceptions are re-raised as PipelineError tagged with the stage name.
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import matplotlib.pyplot as plt
import pandas as pd

from mdw.common.contracts import WorkshopSettings
from mdw.common.errors import PipelineError
from mdw.common.logging import RunLedger, RunRecord, Timed, log_stdout, sha256_file
from mdw.common.schema import SURVEY_SCHEMA
from mdw.diff.compare import DiffReport, check_imputation_positions
from mdw.impute.mice import MultipleImputation, mice
from mdw.ingest.reader import load_survey
from mdw.missing.patterns import (
    conditional_missingness,
    joint_missingness,
    missing_patterns,
    missing_proportions,
)
from mdw.normalize.types import normalize_types
from mdw.plots.imputation import plot_box, plot_density, plot_strip, plot_trace, plot_xy
from mdw.plots.missingness import plot_aggr, plot_mosaic, plot_spine

T = TypeVar("T")


@dataclass
class PipelineResult:
    raw: pd.DataFrame
    table: pd.DataFrame
    proportions: pd.Series
    patterns: pd.DataFrame
    conditional: pd.DataFrame
    joint: pd.DataFrame
    mi: MultipleImputation
    diff: DiffReport
    run_dir: Path
    figures: dict[str, Path] = field(default_factory=dict)
    timings: dict[str, float] = field(default_factory=dict)


def _stage(name: str, fn: Callable[[], T], timings: dict[str, float]) -> T:
    log_stdout("start", stage=name)
    with Timed(name) as t:
        try:
            out = fn()
        except PipelineError:
            raise
        except Exception as e:
            raise PipelineError(f"{type(e).__name__}: {e}", stage=name) from e
    timings[name] = t.elapsed or 0.0
    return out


def _save(fig: Any, path: Path, figures: dict[str, Path], key: str) -> None:
    figures[key] = path
    plt.close(fig)


def missingness_views(
    table: pd.DataFrame, settings: WorkshopSettings, plots_dir: Path, figures: dict[str, Path]
) -> tuple[pd.Series, pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    v = settings.views
    props = missing_proportions(table)
    pats = missing_patterns(table)
    cond = conditional_missingness(table, v.pair_predictor, v.outcome)
    joint = joint_missingness(table, v.joint_predictors, v.outcome)

    p = plots_dir / "aggr.png"
    _save(plot_aggr(table, out_path=p), p, figures, "aggr")
    p = plots_dir / f"spine_{v.pair_predictor}_{v.outcome}.png"
    _save(plot_spine(table, v.pair_predictor, v.outcome, out_path=p), p, figures, "spine")
    a, b = v.joint_predictors
    p = plots_dir / f"mosaic_{a}_{b}_{v.outcome}.png"
    _save(plot_mosaic(table, v.joint_predictors, v.outcome, out_path=p), p, figures, "mosaic")
    return props, pats, cond, joint


def imputation_diagnostics(
    mi: MultipleImputation, settings: WorkshopSettings, plots_dir: Path, figures: dict[str, Path]
) -> None:
    v = settings.views
    outcome = v.outcome
    if outcome in mi.visit_sequence:
        for name, fn in (("box", plot_box), ("density", plot_density), ("strip", plot_strip)):
            p = plots_dir / f"{name}_{outcome}.png"
            _save(fn(mi, outcome, out_path=p), p, figures, f"{name}_{outcome}")
        p = plots_dir / f"xy_{v.pair_predictor}_{outcome}.png"
        _save(plot_xy(mi, v.pair_predictor, outcome, out_path=p), p, figures, "xy")
    if mi.visit_sequence:
        p = plots_dir / "trace.png"
        _save(plot_trace(mi, out_path=p), p, figures, "trace")


def _append_ledger(
    settings: WorkshopSettings,
    *,
    raw: pd.DataFrame | None,
    timings: dict[str, float],
    status: str,
    error: str = "",
) -> None:
    if not settings.ledger_path:
        return
    in_path = Path(settings.input_path)
    imp = settings.impute
    try:
        RunLedger(Path(settings.ledger_path)).append(
            RunRecord(
                ts=datetime.now(),
                input_path=str(in_path),
                sha256_in=sha256_file(in_path)[:12] if in_path.is_file() else "",
                rows=None if raw is None else len(raw),
                n_incomplete_rows=None if raw is None else int(raw.isna().any(axis=1).sum()),
                m=imp.m,
                maxit=imp.maxit,
                seed=imp.seed,
                status=status,
                error=error,
                duration_s=sum(timings.values()),
            )
        )
    except OSError as e:
        log_stdout(f"ledger append failed ({type(e).__name__}: {e})", stage="pipeline")


def run_pipeline(settings: WorkshopSettings, run_dir: Path | None = None) -> PipelineResult:
    """
    Run all six stages once and return every intermediate product.

    Plots are written under `<run_dir>/plots/`, completed tables under
    `<run_dir>/completed/` (CSV, one file per imputation). Every run, aborted
    or not, appends one row to the ledger; an aborted run is recorded as
    "failed:<stage>" before its PipelineError is re-raised.
    """
    if run_dir is None:
        run_dir = Path(settings.output_dir) / datetime.now().strftime("%Y%m%d_%H%M%S")
    plots_dir = run_dir / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)
    timings: dict[str, float] = {}
    figures: dict[str, Path] = {}
    raw: pd.DataFrame | None = None

    try:
        raw = _stage(
            "load",
            lambda: load_survey(settings.input_path, sep=settings.sep, na_values=settings.na_values),
            timings,
        )
        res = _run_stages(settings, raw, run_dir, plots_dir, figures, timings)
    except PipelineError as e:
        _append_ledger(
            settings, raw=raw, timings=timings, status=f"failed:{e.stage}", error=str(e)
        )
        raise
    _append_ledger(settings, raw=raw, timings=timings, status="ok")
    return res


def _run_stages(
    settings: WorkshopSettings,
    raw: pd.DataFrame,
    run_dir: Path,
    plots_dir: Path,
    figures: dict[str, Path],
    timings: dict[str, float],
) -> PipelineResult:
    table = _stage(
        "normalize",
        lambda: normalize_types(raw, SURVEY_SCHEMA, na_values=settings.na_values),
        timings,
    )
    props, pats, cond, joint = _stage(
        "missing", lambda: missingness_views(table, settings, plots_dir, figures), timings
    )
    imp = settings.impute
    mi = _stage(
        "impute",
        lambda: mice(table, methods=imp.methods, m=imp.m, maxit=imp.maxit, seed=imp.seed),
        timings,
    )
    _stage("diagnose", lambda: imputation_diagnostics(mi, settings, plots_dir, figures), timings)

    def _diff() -> DiffReport:
        completed = mi.complete(settings.diff_imputation)
        out = run_dir / "completed"
        out.mkdir(parents=True, exist_ok=True)
        for i, t in enumerate(mi.complete_all(), start=1):
            t.to_csv(out / f"completed_{i}.csv", index=False)
        return check_imputation_positions(table, completed, fields=mi.visit_sequence)

    diff = _stage("diff", _diff, timings)

    return PipelineResult(
        raw=raw,
        table=table,
        proportions=props,
        patterns=pats,
        conditional=cond,
        joint=joint,
        mi=mi,
        diff=diff,
        run_dir=run_dir,
        figures=figures,
        timings=timings,
    )
