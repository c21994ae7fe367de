# src/mdw/diff/compare.py
# -----------------------------------------------------------------------------
# Cell-level comparison of two tables with the same schema.
#
# Used to show that a completed table differs from the original exactly where
# the original was missing. Semantics:
#   - rows are matched by position (or by a key column when given),
#   - NA vs NA is equal; NA vs a value is a difference,
#   - categoricals compare by level *value*, so two tables with different
#     level orders still compare equal cell by cell,
#   - numerics compare exactly (optionally with an absolute tolerance).
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd
from pandas.api.types import CategoricalDtype, is_numeric_dtype

from mdw.common.checks import assert_same_schema
from mdw.common.schema import ensure_required_columns

__all__ = ["DiffReport", "compare_tables", "check_imputation_positions"]


@dataclass(frozen=True)
class DiffReport:
    """
    mismatches : one row per differing cell: row, field, left, right.
    counts     : number of differing cells per field (every field listed).
    n_rows     : rows compared.
    fields     : fields compared (left table order).
    """

    mismatches: pd.DataFrame
    counts: pd.Series
    n_rows: int
    fields: list[str]

    @property
    def n_mismatches(self) -> int:
        return int(self.counts.sum())

    @property
    def identical(self) -> bool:
        return self.n_mismatches == 0

    def positions(self) -> set[tuple[object, str]]:
        """Set of (row, field) coordinates that differ."""
        return set(zip(self.mismatches["row"], self.mismatches["field"], strict=True))

    def summary(self) -> str:
        lines = [
            f"rows compared: {self.n_rows}",
            f"fields compared: {len(self.fields)}",
            f"differing cells: {self.n_mismatches}",
        ]
        for f in self.fields:
            n = int(self.counts[f])
            share = n / self.n_rows if self.n_rows else 0.0
            lines.append(f"  {f:<12} {n:>6} ({share:.1%} of rows)")
        return "\n".join(lines)


def _values(s: pd.Series) -> pd.Series:
    if isinstance(s.dtype, CategoricalDtype):
        return s.astype(object)
    return s


def _differs(a: pd.Series, b: pd.Series, atol: float) -> np.ndarray:
    a, b = _values(a), _values(b)
    na_a, na_b = a.isna().to_numpy(), b.isna().to_numpy()
    both = ~na_a & ~na_b
    out = na_a != na_b
    if is_numeric_dtype(a.dtype) and is_numeric_dtype(b.dtype):
        av, bv = a.to_numpy(dtype=float), b.to_numpy(dtype=float)
        neq = np.zeros(len(a), dtype=bool)
        neq[both] = np.abs(av[both] - bv[both]) > atol
    else:
        av, bv = a.to_numpy(dtype=object), b.to_numpy(dtype=object)
        neq = np.zeros(len(a), dtype=bool)
        neq[both] = np.array([x != y for x, y in zip(av[both], bv[both], strict=True)], dtype=bool)
    return out | neq


def compare_tables(
    left: pd.DataFrame,
    right: pd.DataFrame,
    *,
    key: str | None = None,
    atol: float = 0.0,
) -> DiffReport:
    """
    Report every (row, field) at which `left` and `right` differ.

    Raises
    ------
    ValueError
        Different column sets or row counts, or (with `key`) an absent key
        column or key values that are duplicated or not shared by both tables.
    """
    assert_same_schema(left, right)
    if key is not None:
        ensure_required_columns(left, [key])
        if left[key].duplicated().any() or right[key].duplicated().any():
            raise ValueError(f"key column '{key}' has duplicates")
        lft = left.set_index(key)
        rgt = right.set_index(key)
        if set(lft.index) != set(rgt.index):
            raise ValueError(f"key column '{key}' values differ between tables")
        rgt = rgt.loc[lft.index]
    else:
        lft = left
        rgt = right.set_axis(left.index, axis=0)

    fields = [str(c) for c in lft.columns]
    records: list[tuple[object, str, object, object]] = []
    counts: dict[str, int] = {}
    for f in fields:
        mask = _differs(lft[f], rgt[f], atol)
        counts[f] = int(mask.sum())
        rows = lft.index[mask]
        lv = _values(lft[f])[mask].tolist()
        rv = _values(rgt[f])[mask].tolist()
        records.extend(zip(rows, [f] * len(rows), lv, rv, strict=True))

    mismatches = pd.DataFrame(records, columns=["row", "field", "left", "right"])
    return DiffReport(
        mismatches=mismatches,
        counts=pd.Series(counts, name="n_different", dtype=int),
        n_rows=len(lft),
        fields=fields,
    )


def check_imputation_positions(
    original: pd.DataFrame,
    completed: pd.DataFrame,
    fields: Sequence[str] | None = None,
) -> DiffReport:
    """
    Diff `original` against one completed table and require that the
    differences sit exactly on the cells missing in `original` (restricted to
    the imputed `fields`, default all).

    Raises AssertionError listing unexpected or unfilled coordinates.
    """
    report = compare_tables(original, completed)
    where = original.isna()
    cols = [str(c) for c in (fields if fields is not None else where.columns)]
    expected = {(r, c) for c in cols for r in where.index[where[c].to_numpy()]}
    got = report.positions()
    extra = got - expected
    unfilled = expected - got
    if extra or unfilled:
        raise AssertionError(
            f"differences off the missing cells: extra={sorted(extra, key=str)[:10]} "
            f"unfilled={sorted(unfilled, key=str)[:10]}"
        )
    return report
