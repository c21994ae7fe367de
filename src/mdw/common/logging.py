# src/mdw/common/logging.py
# -----------------------------------------------------------------------------
# Console logging, provenance and the run ledger of the workshop pipeline.
# - log_stdout: timestamped console line, optionally tagged with its stage
# - sha256_file: content hash of the survey file for provenance
# - RunRecord / RunLedger: append-only CSV with one row per pipeline run,
#   successful ("ok") or aborted ("failed:<stage>")
# - Timed: stage timer; a named timer logs the stage outcome on exit
# -----------------------------------------------------------------------------
from __future__ import annotations

import csv
import hashlib
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import TracebackType

_LEDGER_HEADER = [
    "ts",
    "input_path",
    "sha256_in",
    "rows",
    "n_incomplete_rows",
    "m",
    "maxit",
    "seed",
    "status",
    "error",
    "duration_s",
]


@dataclass
class RunRecord:
    ts: datetime
    input_path: str
    sha256_in: str
    rows: int | None
    n_incomplete_rows: int | None
    m: int
    maxit: int
    seed: int
    status: str
    duration_s: float
    error: str = ""


class RunLedger:
    """Append-only CSV ledger of pipeline runs; unknown counts are left blank."""

    def __init__(self, ledger_path: Path) -> None:
        self.ledger_path = ledger_path
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, rec: RunRecord) -> None:
        write_header = not self.ledger_path.exists()
        with self.ledger_path.open("a", newline="", encoding="utf-8") as f:
            w = csv.writer(f)
            if write_header:
                w.writerow(_LEDGER_HEADER)
            w.writerow(
                [
                    rec.ts.isoformat(timespec="seconds"),
                    rec.input_path,
                    rec.sha256_in,
                    "" if rec.rows is None else rec.rows,
                    "" if rec.n_incomplete_rows is None else rec.n_incomplete_rows,
                    rec.m,
                    rec.maxit,
                    rec.seed,
                    rec.status,
                    rec.error,
                    f"{rec.duration_s:.3f}",
                ]
            )


def sha256_file(path: Path, chunk_size: int = 1 << 20) -> str:
    """Streaming SHA-256 of the survey file, recorded per run in the ledger."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for b in iter(lambda: f.read(chunk_size), b""):
            h.update(b)
    return h.hexdigest()


def log_stdout(msg: str, *, stage: str | None = None) -> None:
    """Timestamped line to stdout, prefixed with `[stage]` when given."""
    ts = datetime.now().isoformat(timespec="seconds")
    tag = f"[{stage}] " if stage else ""
    sys.stdout.write(f"[{ts}] {tag}{msg}\n")
    sys.stdout.flush()


class Timed:
    """
    Time one pipeline stage.

    With a stage name the outcome is logged on exit, "done (0.42s)" or
    "failed after 0.42s (ImputationError)"; exceptions always propagate.
    """

    def __init__(self, stage: str | None = None) -> None:
        self.stage = stage
        self.start: float | None = None
        self.elapsed: float | None = None

    def __enter__(self) -> Timed:
        self.start = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        end = time.perf_counter()
        self.elapsed = end - (self.start or end)
        if self.stage is None:
            return
        if exc_type is None:
            log_stdout(f"done ({self.elapsed:.2f}s)", stage=self.stage)
        else:
            log_stdout(
                f"failed after {self.elapsed:.2f}s ({exc_type.__name__})", stage=self.stage
            )
