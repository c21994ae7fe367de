# src/mdw/cli.py
# -----------------------------------------------------------------------------
# Missing-data workshop – Command Line Interface (Typer)
#
# One command per pipeline stage plus the whole run:
#   simulate → load → normalize → missing → impute → diagnose → diff   |   run-all
#
# Design priorities:
# - Reproducibility: every command writes timestamped artefacts under reports/,
#   and imputation is fully determined by --seed.
# - Fail loudly: any stage error prints "[stage] field=...: message" and exits 1.
# -----------------------------------------------------------------------------
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import NoReturn, Optional

import matplotlib.pyplot as plt
import pandas as pd
import typer

from mdw.common.contracts import SEED, ImputeSettings, WorkshopSettings, load_settings
from mdw.common.errors import PipelineError
from mdw.diff.compare import compare_tables
from mdw.impute.mice import MultipleImputation, mice
from mdw.ingest.reader import load_survey
from mdw.ingest.reader import run as _ingest_run
from mdw.ingest.synth import make_survey
from mdw.missing.patterns import md_pattern
from mdw.normalize.types import level_sets, normalize_types
from mdw.pipeline import imputation_diagnostics, missingness_views, run_pipeline

# Typer application entry-point. Shell completion disabled for stability in CI.
app = typer.Typer(add_completion=False, no_args_is_help=True)


# ------------------------------ helpers ---------------------------------
def _ts() -> str:
    """Compact timestamp used for artefact folder naming (YYYYMMDD_HHMMSS)."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def _run_dir(base: str, stage: str) -> Path:
    d = Path(base) / stage / _ts()
    (d / "plots").mkdir(parents=True, exist_ok=True)
    return d


def _parse_methods(items: list[str] | None) -> dict[str, str] | None:
    """--method gender=logreg --method jsat=pmm → {"gender": "logreg", "jsat": "pmm"}."""
    if not items:
        return None
    out: dict[str, str] = {}
    for it in items:
        if "=" not in it:
            raise typer.BadParameter(f"--method expects FIELD=METHOD, got '{it}'")
        k, v = it.split("=", 1)
        out[k.strip()] = v.strip()
    return out


def _settings(
    config: Optional[str],
    input_path: Optional[str],
    **impute: object,
) -> WorkshopSettings:
    """Settings from YAML (if given) with CLI overrides applied, validated by pydantic."""
    if not config and not input_path:
        raise typer.BadParameter("provide --input or --config")
    overrides = {k: v for k, v in impute.items() if v is not None}
    try:
        if config:
            s = load_settings(Path(config), input_path=input_path)
        else:
            s = WorkshopSettings(input_path=input_path)
        if overrides:
            merged = s.impute.model_dump() | overrides
            s = s.model_copy(update={"impute": ImputeSettings.model_validate(merged)})
    except (OSError, ValueError) as e:
        raise typer.BadParameter(str(e)) from e
    return s


def _fail(e: Exception) -> NoReturn:
    typer.echo(f"[error] {e}", err=True)
    raise typer.Exit(code=1) from e


def _load_table(s: WorkshopSettings) -> pd.DataFrame:
    raw = load_survey(s.input_path, sep=s.sep, na_values=s.na_values)
    return normalize_types(raw, na_values=s.na_values)


def _impute(s: WorkshopSettings, table: pd.DataFrame) -> MultipleImputation:
    imp = s.impute
    return mice(table, methods=imp.methods, m=imp.m, maxit=imp.maxit, seed=imp.seed)


# ------------------------------ simulate --------------------------------
@app.command()
def simulate(
    out: str = typer.Option("data/raw/survey.csv", help="Where to write the synthetic survey"),
    n: int = typer.Option(200, min=1, help="Number of records"),
    seed: int = typer.Option(0, min=0, help="Generator seed"),
) -> None:
    """Write a synthetic survey with Missing-At-Random gaps (for demos and CI)."""
    out_p = Path(out)
    out_p.parent.mkdir(parents=True, exist_ok=True)
    df = make_survey(n, seed=seed)
    df.to_csv(out_p, index=False, na_rep="NA")
    typer.echo(f"[simulate] {len(df)} records -> {out_p}")


# -------------------------------- load ----------------------------------
@app.command()
def load(
    config: Optional[str] = typer.Option(None, help="Workshop YAML"),
    input: Optional[str] = typer.Option(None, "--input", help="Survey file (overrides config)"),
    out: str = typer.Option("data/interim/survey.parquet", help="Output parquet"),
) -> None:
    """Load the survey file, check its schema and write it to Parquet."""
    s = _settings(config, input)
    cfg = {"raw_csv_path": s.input_path, "sep": s.sep, "na_values": s.na_values}
    try:
        df = _ingest_run(cfg, Path(out))
    except PipelineError as e:
        _fail(e)
    typer.echo(f"[load] rows={len(df)} -> {out}")
    typer.echo(df.isna().sum().to_string())


# ------------------------------ normalize -------------------------------
@app.command()
def normalize(
    config: Optional[str] = typer.Option(None, help="Workshop YAML"),
    input: Optional[str] = typer.Option(None, "--input", help="Survey file (overrides config)"),
    out: str = typer.Option("data/interim/survey_typed.parquet", help="Output parquet"),
) -> None:
    """Load, recast categorical fields and write the typed table (levels printed)."""
    s = _settings(config, input)
    try:
        table = _load_table(s)
    except PipelineError as e:
        _fail(e)
    out_p = Path(out)
    out_p.parent.mkdir(parents=True, exist_ok=True)
    table.to_parquet(out_p, index=False)
    for field, levels in level_sets(table).items():
        kind = "ordered" if table[field].cat.ordered else "unordered"
        typer.echo(f"[normalize] {field} ({kind}): {levels}")
    typer.echo(f"[normalize] rows={len(table)} -> {out_p}")


# ------------------------------- missing --------------------------------
@app.command()
def missing(
    input: Optional[str] = typer.Option(None, "--input", help="Survey file"),
    config: Optional[str] = typer.Option(None, help="Workshop YAML"),
    reports: str = typer.Option("reports", help="Base directory for artefacts"),
) -> None:
    """Aggregate, spine and mosaic views of the missingness (tables + plots)."""
    s = _settings(config, input)
    run_dir = _run_dir(reports, "missing")
    figures: dict[str, Path] = {}
    try:
        table = _load_table(s)
        props, pats, cond, joint = missingness_views(table, s, run_dir / "plots", figures)
    except (KeyError, ValueError) as e:
        _fail(e)
    props.to_frame().to_csv(run_dir / "proportions.csv")
    pats.to_csv(run_dir / "patterns.csv", index=False)
    md_pattern(table).to_csv(run_dir / "md_pattern.csv")
    cond.to_csv(run_dir / "conditional.csv")
    joint.to_csv(run_dir / "joint.csv")
    typer.echo(pats.to_string(index=False))
    typer.echo(f"[missing] artefacts under: {run_dir}")


# ------------------------------- impute ---------------------------------
@app.command()
def impute(
    input: Optional[str] = typer.Option(None, "--input", help="Survey file"),
    config: Optional[str] = typer.Option(None, help="Workshop YAML"),
    m: Optional[int] = typer.Option(None, help="Number of completed tables"),
    maxit: Optional[int] = typer.Option(None, help="Sweeps per imputation stream"),
    seed: Optional[int] = typer.Option(None, help=f"Seed (default {SEED})"),
    method: Optional[list[str]] = typer.Option(None, help="FIELD=METHOD, repeatable"),
    reports: str = typer.Option("reports", help="Base directory for artefacts"),
) -> None:
    """Multiply impute the survey; write completed tables and chain statistics."""
    s = _settings(config, input, m=m, maxit=maxit, seed=seed, methods=_parse_methods(method))
    run_dir = _run_dir(reports, "impute")
    try:
        mi = _impute(s, _load_table(s))
    except PipelineError as e:
        _fail(e)
    mi.complete_long().to_parquet(run_dir / "completed_long.parquet", index=False)
    mi.chain_stats("mean").to_csv(run_dir / "chain_mean.csv", index=False)
    (run_dir / "methods.json").write_text(json.dumps(mi.method, indent=2), encoding="utf-8")
    typer.echo(mi.summary())
    typer.echo(f"[impute] artefacts under: {run_dir}")


# ------------------------------ diagnose --------------------------------
@app.command()
def diagnose(
    input: Optional[str] = typer.Option(None, "--input", help="Survey file"),
    config: Optional[str] = typer.Option(None, help="Workshop YAML"),
    m: Optional[int] = typer.Option(None, help="Number of completed tables"),
    maxit: Optional[int] = typer.Option(None, help="Sweeps per imputation stream"),
    seed: Optional[int] = typer.Option(None, help=f"Seed (default {SEED})"),
    reports: str = typer.Option("reports", help="Base directory for artefacts"),
) -> None:
    """Impute, then draw box/density/strip/xy plots and convergence traces."""
    s = _settings(config, input, m=m, maxit=maxit, seed=seed)
    run_dir = _run_dir(reports, "diagnose")
    figures: dict[str, Path] = {}
    try:
        mi = _impute(s, _load_table(s))
        imputation_diagnostics(mi, s, run_dir / "plots", figures)
    except (KeyError, ValueError) as e:
        _fail(e)
    finally:
        plt.close("all")
    for name, p in figures.items():
        typer.echo(f"[diagnose] {name}: {p}")


# -------------------------------- diff ----------------------------------
@app.command()
def diff(
    left: str = typer.Option(..., help="Left CSV (e.g. the original survey)"),
    right: str = typer.Option(..., help="Right CSV (e.g. a completed table)"),
    key: Optional[str] = typer.Option(None, help="Optional row key column"),
    out: Optional[str] = typer.Option(None, help="Write mismatching cells to this CSV"),
) -> None:
    """Report every differing (row, field) between two tables with the same columns."""
    for p in (left, right):
        if not Path(p).exists():
            raise typer.BadParameter(f"file not found: {p}")
    try:
        report = compare_tables(pd.read_csv(left), pd.read_csv(right), key=key)
    except (ValueError, KeyError) as e:
        _fail(e)
    typer.echo(report.summary())
    if out:
        Path(out).parent.mkdir(parents=True, exist_ok=True)
        report.mismatches.to_csv(out, index=False)
        typer.echo(f"[diff] mismatches -> {out}")


# ------------------------------- run-all --------------------------------
@app.command("run-all")
def run_all(
    config: Optional[str] = typer.Option(None, help="Workshop YAML"),
    input: Optional[str] = typer.Option(None, "--input", help="Survey file (overrides config)"),
    reports: Optional[str] = typer.Option(None, help="Override output_dir"),
) -> None:
    """Run load → normalize → missing → impute → diagnose → diff in one go."""
    s = _settings(config, input)
    if reports:
        s = s.model_copy(update={"output_dir": reports})
    try:
        res = run_pipeline(s, run_dir=Path(s.output_dir) / "run-all" / _ts())
    except PipelineError as e:
        _fail(e)
    finally:
        plt.close("all")
    typer.echo(res.mi.summary())
    typer.echo(res.diff.summary())
    typer.echo(f"[run-all] artefacts under: {res.run_dir}")


if __name__ == "__main__":
    app()
