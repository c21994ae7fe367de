# src/mdw/missing/patterns.py
# -----------------------------------------------------------------------------
# Read-only missingness summaries behind the three descriptive views.
#
#   aggregate : per-field missing proportion + joint missingness patterns
#   pairwise  : missing rate of an outcome within each level of a predictor
#               (the numbers behind a spinogram)
#   joint     : the pairwise view crossed over two predictors, with a cell
#               weight (cell size / total) used to size mosaic tiles
#
# Conventions
#   - In `missing_patterns` a 1 means *missing* (aggr-style).
#   - In `md_pattern` a 1 means *observed* (mice md.pattern-style).
#   - No function mutates its input.
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import pandas as pd
from pandas.api.types import CategoricalDtype, is_numeric_dtype

from mdw.common.checks import assert_proportions_sum

__all__ = [
    "missing_proportions",
    "missing_patterns",
    "md_pattern",
    "conditional_missingness",
    "joint_missingness",
]


def _require(df: pd.DataFrame, cols: Sequence[str]) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise KeyError(f"columns not in table: {missing}")
    if df.empty:
        raise ValueError("cannot summarise missingness of an empty table")


def missing_proportions(df: pd.DataFrame) -> pd.Series:
    """Share of missing entries per field (index = field, in table order)."""
    _require(df, list(df.columns))
    out = df.isna().mean().astype(float)
    out.name = "missing_proportion"
    return out


def missing_patterns(df: pd.DataFrame) -> pd.DataFrame:
    """
    One row per observed joint-missingness pattern.

    Columns: one 0/1 column per field (1 = missing), `n_missing` (fields
    missing in the pattern), `count` and `proportion` (of all records).
    Zero-count patterns never appear; proportions sum to 1. Rows are ordered
    with the fully-observed pattern first, then by descending count.
    """
    cols = [str(c) for c in df.columns]
    _require(df, cols)
    mask = df.isna().astype(int)
    mask.columns = cols
    counts = mask.groupby(cols, sort=False).size().reset_index(name="count")
    counts["n_missing"] = counts[cols].sum(axis=1).astype(int)
    counts["proportion"] = counts["count"].astype(float) / float(len(df))
    counts = counts.sort_values(
        ["n_missing", "count"], ascending=[True, False], kind="mergesort"
    ).reset_index(drop=True)
    assert_proportions_sum(counts["proportion"], atol=1e-9, label="pattern proportions")
    return counts[[*cols, "n_missing", "count", "proportion"]]


def md_pattern(df: pd.DataFrame) -> pd.DataFrame:
    """
    Pattern matrix in the mice `md.pattern` layout.

    Fields are ordered by increasing missing count; each pattern row holds 1
    for observed / 0 for missing, its `count` and `n_missing`. A final row
    labelled "total" holds the per-field missing counts and, under
    `n_missing`, the total number of missing cells.
    """
    pats = missing_patterns(df)
    fields = [str(c) for c in df.columns]
    totals = df.isna().sum()
    totals.index = fields
    order = sorted(fields, key=lambda c: (int(totals[c]), fields.index(c)))
    body = 1 - pats[order]
    body.insert(0, "count", pats["count"].to_numpy())
    body["n_missing"] = pats["n_missing"].to_numpy()
    total_row = pd.DataFrame(
        [[int(len(df)), *[int(totals[c]) for c in order], int(totals.sum())]],
        columns=["count", *order, "n_missing"],
        index=["total"],
    )
    return pd.concat([body, total_row])


def _levels(series: pd.Series, bins: int) -> pd.Series:
    """Categorical-ish grouping key; numeric predictors are cut into `bins` intervals."""
    if isinstance(series.dtype, CategoricalDtype) or not is_numeric_dtype(series.dtype):
        return series
    if series.nunique(dropna=True) <= bins:
        return series
    return pd.cut(series, bins=bins)


def conditional_missingness(
    df: pd.DataFrame,
    predictor: str,
    outcome: str,
    *,
    bins: int = 8,
    dropna: bool = True,
) -> pd.DataFrame:
    """
    Missing vs observed rate of `outcome` within each level of `predictor`.

    Returns a frame indexed by predictor level with columns n, n_missing,
    n_observed, prop_missing, prop_observed and width (n / total counted),
    the latter being the bar width of a spinogram. Rows where the predictor
    itself is missing are dropped unless `dropna=False` (then they form a
    "<NA>" level).
    """
    _require(df, [predictor, outcome])
    key = _levels(df[predictor], bins)
    if not dropna:
        key = key.astype(object).where(key.notna(), "<NA>")
    miss = df[outcome].isna()
    grp = miss.groupby(key, observed=True, sort=True)
    out = pd.DataFrame({"n": grp.size(), "n_missing": grp.sum().astype(int)})
    out = out[out["n"] > 0]
    out["n_observed"] = out["n"] - out["n_missing"]
    out["prop_missing"] = out["n_missing"] / out["n"]
    out["prop_observed"] = 1.0 - out["prop_missing"]
    out["width"] = out["n"] / float(out["n"].sum())
    out.index.name = predictor
    return out


def joint_missingness(
    df: pd.DataFrame,
    predictors: tuple[str, str],
    outcome: str,
    *,
    dropna: bool = True,
) -> pd.DataFrame:
    """
    Missingness of `outcome` per cross-combination of two predictors.

    Indexed by (predictor_a, predictor_b); columns n, n_missing,
    prop_missing and weight (cell size / total), so that weights sum to 1
    and a mosaic tile's area is proportional to its cell size.
    """
    a, b = predictors
    if a == b:
        raise ValueError("joint_missingness needs two different predictors")
    _require(df, [a, b, outcome])
    miss = df[outcome].isna()
    grp = miss.groupby([df[a], df[b]], observed=True, sort=True, dropna=dropna)
    out = pd.DataFrame({"n": grp.size(), "n_missing": grp.sum().astype(int)})
    out = out[out["n"] > 0]
    out["prop_missing"] = out["n_missing"] / out["n"]
    out["weight"] = out["n"] / float(out["n"].sum())
    if not np.isclose(out["weight"].sum(), 1.0):
        raise AssertionError("mosaic weights must sum to 1")
    return out
