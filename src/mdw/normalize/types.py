# src/mdw/normalize/types.py
# -----------------------------------------------------------------------------
# Recast raw scalar columns to categorical semantics.
#
# The trap this module exists for: casting a column that still contains
# missing-marker *strings* ("NA", "", ".") straight to a categorical silently
# creates a level called "NA". We therefore
#   1) canonicalise every cell (strip text, collapse integral floats 1.0 -> 1),
#   2) turn every absence marker into a true NA,
#   3) only then build the level set from the observed values, in first-seen
#      order (ordinal fields keep that order as their ordering).
#
# Text codes of categorical fields stay text: "01" and "1" are two levels, and
# to_raw gives both back unchanged. Only numeric fields parse strings.
# -----------------------------------------------------------------------------
from __future__ import annotations

import math
from collections.abc import Iterable
from numbers import Number
from typing import Any

import numpy as np
import pandas as pd
from pandas.api.types import CategoricalDtype, is_numeric_dtype

from mdw.common.errors import TypeConversionError
from mdw.common.schema import DEFAULT_NA_VALUES, SURVEY_SCHEMA, FieldSpec, Schema

__all__ = ["normalize_types", "to_raw", "level_sets"]

_NON_SCALAR = (list, tuple, dict, set, frozenset, np.ndarray, pd.Series, pd.DataFrame)


def _canon(v: Any, markers: frozenset[str], field: str, *, parse_text: bool = False) -> Any:
    """Canonical scalar for one cell; None means absent."""
    if isinstance(v, _NON_SCALAR):
        raise TypeConversionError("cell is not a scalar", field=field, value=repr(v)[:40])
    if v is None or v is pd.NA or v is pd.NaT:
        return None
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, str):
        s = v.strip()
        if s in markers:
            return None
        if not parse_text:
            return s
        try:
            f = float(s)
        except ValueError:
            return s
        v = f
    if isinstance(v, Number):
        f = float(v)  # type: ignore[arg-type]
        if math.isnan(f):
            return None
        return int(f) if f.is_integer() else f
    raise TypeConversionError(f"unsupported cell type {type(v).__name__}", field=field, value=v)


def _to_categorical(
    series: pd.Series, spec: FieldSpec, markers: frozenset[str]
) -> pd.Series:
    values = [_canon(v, markers, spec.name) for v in series.tolist()]
    levels = list(dict.fromkeys(v for v in values if v is not None))
    if not levels:
        raise TypeConversionError("declared categorical has an empty level set", field=spec.name)
    if spec.kind == "binary" and len(levels) > 2:
        raise TypeConversionError(
            f"binary field has {len(levels)} observed levels", field=spec.name, value=levels[:5]
        )
    dtype = CategoricalDtype(categories=levels, ordered=spec.kind == "ordinal")
    cat = pd.Categorical([np.nan if v is None else v for v in values], dtype=dtype)
    return pd.Series(cat, index=series.index, name=spec.name)


def _to_numeric(series: pd.Series, spec: FieldSpec, markers: frozenset[str]) -> pd.Series:
    if is_numeric_dtype(series.dtype) and not isinstance(series.dtype, CategoricalDtype):
        return series.astype("float64")
    values = [_canon(v, markers, spec.name, parse_text=True) for v in series.tolist()]
    bad = [v for v in values if isinstance(v, str)]
    if bad:
        raise TypeConversionError("non-numeric value in numeric field", field=spec.name, value=bad[0])
    return pd.Series(
        [np.nan if v is None else float(v) for v in values],
        index=series.index,
        name=spec.name,
        dtype="float64",
    )


def normalize_types(
    df: pd.DataFrame,
    schema: Schema = SURVEY_SCHEMA,
    *,
    na_values: Iterable[str] = DEFAULT_NA_VALUES,
) -> pd.DataFrame:
    """
    Return a NEW table with binary/nominal/ordinal fields as pandas Categoricals
    and numeric fields as float64. The input is not modified.

    Raises
    ------
    TypeConversionError
        Field absent, non-scalar cell, empty level set, >2 levels in a binary
        field, or text in a numeric field.
    """
    markers = frozenset(str(m).strip() for m in na_values)
    out = df.copy()
    for spec in schema:
        if spec.name not in out.columns:
            raise TypeConversionError("field absent from table", field=spec.name)
        if spec.is_categorical:
            out[spec.name] = _to_categorical(out[spec.name], spec, markers)
        else:
            out[spec.name] = _to_numeric(out[spec.name], spec, markers)
    return out


def to_raw(series: pd.Series) -> pd.Series:
    """
    Inverse of the categorical recast: level values back to raw scalars.

    Numeric level sets come back as float64 (NaN for absence); text levels as
    object. Non-categorical input is returned unchanged.
    """
    if not isinstance(series.dtype, CategoricalDtype):
        return series
    raw = series.astype(object).where(series.notna(), np.nan)
    cats = list(series.cat.categories)
    if all(isinstance(c, Number) and not isinstance(c, bool) for c in cats):
        return raw.astype("float64")
    return raw


def level_sets(df: pd.DataFrame) -> dict[str, list[Any]]:
    """Level lists of every categorical column (in level order)."""
    return {
        str(c): list(df[c].cat.categories)
        for c in df.columns
        if isinstance(df[c].dtype, CategoricalDtype)
    }
