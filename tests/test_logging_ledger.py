# tests/test_logging_ledger.py
from __future__ import annotations

import csv
from datetime import datetime
from pathlib import Path

import pytest

from mdw.common.errors import ImputationError
from mdw.common.logging import RunLedger, RunRecord, Timed, log_stdout, sha256_file


def _record(status: str, **kw: object) -> RunRecord:
    base: dict[str, object] = dict(
        ts=datetime(2024, 1, 2, 3, 4, 5),
        input_path="data/raw/survey.csv",
        sha256_in="abc123",
        rows=40,
        n_incomplete_rows=12,
        m=5,
        maxit=5,
        seed=1234,
        status=status,
        duration_s=1.5,
    )
    base.update(kw)
    return RunRecord(**base)  # type: ignore[arg-type]


def test_ledger_appends_header_once_and_blanks_unknown_counts(tmp_path: Path) -> None:
    ledger = RunLedger(tmp_path / "ledger" / "runs.csv")
    ledger.append(_record("ok"))
    ledger.append(_record("failed:load", rows=None, n_incomplete_rows=None, error="file not found"))

    with ledger.ledger_path.open(encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [r["status"] for r in rows] == ["ok", "failed:load"]
    assert rows[0]["rows"] == "40"
    assert rows[1]["rows"] == "" and rows[1]["n_incomplete_rows"] == ""
    assert rows[1]["error"] == "file not found"
    assert rows[0]["ts"] == "2024-01-02T03:04:05"


def test_named_timer_logs_stage_outcome(capsys: pytest.CaptureFixture[str]) -> None:
    with Timed("impute") as t:
        pass
    assert t.elapsed is not None and t.elapsed >= 0.0
    assert "[impute] done (" in capsys.readouterr().out

    with pytest.raises(ImputationError):
        with Timed("impute"):
            raise ImputationError("no observed values", field="jsat")
    assert "[impute] failed after" in capsys.readouterr().out


def test_unnamed_timer_is_silent(capsys: pytest.CaptureFixture[str]) -> None:
    with Timed():
        pass
    assert capsys.readouterr().out == ""


def test_log_stdout_stage_tag(capsys: pytest.CaptureFixture[str]) -> None:
    log_stdout("rows=40", stage="load")
    log_stdout("plain")
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].endswith("] [load] rows=40")
    assert lines[1].endswith("] plain")


def test_sha256_file_matches_known_digest(tmp_path: Path) -> None:
    p = tmp_path / "x.txt"
    p.write_bytes(b"abc")
    assert sha256_file(p, chunk_size=1) == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )
