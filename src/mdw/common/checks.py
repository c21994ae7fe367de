# src/mdw/common/checks.py
# -----------------------------------------------------------------------------
# Lightweight, reusable assertions for:
#  - proportion sanity (pattern/level proportions sum to 1),
#  - NA hygiene on completed tables,
#  - schema agreement between two tables before diffing.
#
# Small and side-effect free so they can be used inside the imputer, the
# differ, the pipeline, or tests.
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Iterable

import numpy as np
import pandas as pd


def assert_proportions_sum(
    props: pd.Series | Iterable[float],
    *,
    atol: float = 1e-9,
    label: str = "proportions",
) -> None:
    """Assert that a set of proportions sums to 1 ± atol."""
    vals = np.asarray(list(props), dtype=float)
    if vals.size == 0:
        raise ValueError(f"{label}: nothing to sum")
    if np.any(vals < 0.0) or np.any(vals > 1.0 + atol):
        raise ValueError(f"{label}: values outside [0, 1]")
    total = float(vals.sum())
    if not np.isclose(total, 1.0, rtol=0.0, atol=atol):
        raise AssertionError(f"{label} must sum to 1±{atol}; got {total:.12f}")


def assert_no_na(df: pd.DataFrame, *, subset: Iterable[str] | None = None) -> None:
    """
    Ensure there are no NA values in the DataFrame (or in a specified subset).

    Used on completed tables: every imputed field must be fully populated.
    """
    to_check = list(subset) if subset is not None else list(df.columns)
    missing = [c for c in to_check if c not in df]
    if missing:
        raise KeyError(f"assert_no_na: subset columns not in df: {missing}")

    na_any = df[to_check].isna().any()
    if na_any.any():
        bad_cols = sorted(na_any[na_any].index.tolist())
        raise ValueError(f"NA detected in columns: {bad_cols}")


def assert_same_schema(left: pd.DataFrame, right: pd.DataFrame) -> None:
    """Two tables must share column names (any order) and row count."""
    lcols, rcols = list(left.columns), list(right.columns)
    if set(lcols) != set(rcols):
        only_l = sorted(set(lcols) - set(rcols))
        only_r = sorted(set(rcols) - set(lcols))
        raise ValueError(f"Schema mismatch: only-left={only_l} only-right={only_r}")
    if len(left) != len(right):
        raise ValueError(f"Row count mismatch: left={len(left)} right={len(right)}")
