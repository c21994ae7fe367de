# tests/test_pipeline.py
from __future__ import annotations

import csv
from pathlib import Path

import pandas as pd
import pytest

from mdw.common.contracts import WorkshopSettings
from mdw.common.errors import DataLoadError, PipelineError
from mdw.ingest.synth import make_survey
from mdw.pipeline import run_pipeline


def _settings(tmp_path: Path, **kw: object) -> WorkshopSettings:
    src = tmp_path / "survey.csv"
    make_survey(80, seed=4).to_csv(src, index=False, na_rep="NA")
    base = {
        "input_path": str(src),
        "output_dir": str(tmp_path / "reports"),
        "ledger_path": str(tmp_path / "ledger" / "runs.csv"),
        "impute": {"m": 2, "maxit": 2, "seed": 1234},
    }
    base.update(kw)
    return WorkshopSettings.model_validate(base)


def test_run_pipeline_end_to_end(tmp_path: Path) -> None:
    s = _settings(tmp_path, diff_imputation=2)
    res = run_pipeline(s, run_dir=tmp_path / "run")

    assert list(res.timings) == ["load", "normalize", "missing", "impute", "diagnose", "diff"]
    assert res.proportions["jsat"] > 0
    assert res.patterns["proportion"].sum() == pytest.approx(1.0)

    where = res.table.isna()
    assert res.diff.n_mismatches == int(where[res.mi.visit_sequence].sum().sum())

    for key in ("aggr", "spine", "mosaic", "trace", "xy"):
        assert res.figures[key].exists(), key
    completed = sorted((tmp_path / "run" / "completed").glob("completed_*.csv"))
    assert [p.name for p in completed] == ["completed_1.csv", "completed_2.csv"]
    assert not pd.read_csv(completed[0]).isna().any().any()

    with (tmp_path / "ledger" / "runs.csv").open(encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert rows[-1]["status"] == "ok"
    assert rows[-1]["seed"] == "1234"


def test_run_pipeline_is_reproducible(tmp_path: Path) -> None:
    s = _settings(tmp_path)
    a = run_pipeline(s, run_dir=tmp_path / "a")
    b = run_pipeline(s, run_dir=tmp_path / "b")
    pd.testing.assert_frame_equal(a.mi.complete(1), b.mi.complete(1))


def _ledger_rows(tmp_path: Path) -> list[dict[str, str]]:
    with (tmp_path / "ledger" / "runs.csv").open(encoding="utf-8") as f:
        return list(csv.DictReader(f))


def test_load_failure_aborts_with_stage(tmp_path: Path) -> None:
    s = _settings(tmp_path, input_path=str(tmp_path / "absent.csv"))
    with pytest.raises(DataLoadError) as ei:
        run_pipeline(s, run_dir=tmp_path / "run")
    assert ei.value.stage == "load"

    (row,) = _ledger_rows(tmp_path)
    assert row["status"] == "failed:load"
    assert "file not found" in row["error"]
    assert row["rows"] == ""
    assert row["sha256_in"] == ""


def test_unexpected_errors_are_tagged_with_stage(tmp_path: Path) -> None:
    s = _settings(tmp_path, views={"pair_predictor": "income"})
    with pytest.raises(PipelineError) as ei:
        run_pipeline(s, run_dir=tmp_path / "run")
    assert ei.value.stage == "missing"
    assert "KeyError" in str(ei.value)

    (row,) = _ledger_rows(tmp_path)
    assert row["status"] == "failed:missing"
    assert row["rows"] == "80"
    assert row["seed"] == "1234"


def test_ledger_keeps_one_row_per_run(tmp_path: Path) -> None:
    good = _settings(tmp_path)
    run_pipeline(good, run_dir=tmp_path / "a")
    bad = good.model_copy(update={"input_path": str(tmp_path / "absent.csv")})
    with pytest.raises(DataLoadError):
        run_pipeline(bad, run_dir=tmp_path / "b")

    assert [r["status"] for r in _ledger_rows(tmp_path)] == ["ok", "failed:load"]
