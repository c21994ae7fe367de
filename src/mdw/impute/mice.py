# src/mdw/impute/mice.py
# -----------------------------------------------------------------------------
# Multiple imputation by chained equations.
#
# Algorithm (per stream s = 1..m)
#   0) initialise every missing cell with a random draw from that field's
#      observed values;
#   1) for it = 1..maxit, for each incomplete field f (schema order):
#        fit a model predicting f from all other fields on the rows where f
#        is observed (other fields at their current filled-in values), then
#        redraw f's missing cells from the model's predictive distribution;
#   2) the state after the last sweep is completed table s.
#
# Reproducibility
#   Streams take independent generators spawned from SeedSequence(seed), so
#   the same seed gives identical imputations and streams never share random
#   state (running them in any order gives the same result).
#
# Convergence is not tested numerically: the per-iteration draw history is
# kept so an analyst can judge mixing from trace plots (mdw.plots.imputation).
# -----------------------------------------------------------------------------
from __future__ import annotations

import numbers
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from pandas.api.types import CategoricalDtype, is_numeric_dtype

from mdw.common.checks import assert_no_na
from mdw.common.errors import ImputationError
from mdw.common.logging import Timed, log_stdout
from mdw.common.schema import SURVEY_SCHEMA, Schema, schema_for
from mdw.impute.methods import DEFAULT_METHOD_BY_KIND, METHODS, check_method

__all__ = ["MultipleImputation", "mice", "default_methods"]


@dataclass
class MultipleImputation:
    """
    Result of `mice`: the original (normalized) table plus everything needed to
    materialise the M completed tables and inspect how the chains evolved.

    Attributes
    ----------
    data     : the incomplete input table (copy).
    where    : boolean frame, True where `data` is missing.
    method   : field -> method actually used ("" = not imputed).
    m, maxit, seed : request parameters.
    imp      : field -> frame of final draws (index = missing row labels,
               columns = imputation number 1..m), values on the field's scale.
    history  : field -> array (maxit, m, n_missing) of draws after every sweep
               (category codes for categorical fields).
    predictors : field -> predictor fields used in its conditional model.
    events   : notes about forced/no-op methods and dropped predictors.
    """

    data: pd.DataFrame
    where: pd.DataFrame
    method: dict[str, str]
    m: int
    maxit: int
    seed: int
    imp: dict[str, pd.DataFrame]
    history: dict[str, np.ndarray]
    predictors: dict[str, list[str]]
    visit_sequence: list[str]
    events: list[str] = field(default_factory=list)

    # ---------------------------- completed tables ----------------------------
    def complete(self, i: int = 1) -> pd.DataFrame:
        """
        Completed table `i` (1..m); `i=0` returns the incomplete data.

        Raises ValueError if an imputed field is still incomplete.
        """
        if not isinstance(i, numbers.Integral) or not 0 <= int(i) <= self.m:
            raise ValueError(f"imputation index must be in 0..{self.m}, got {i!r}")
        out = self.data.copy()
        if i == 0:
            return out
        for f in self.visit_sequence:
            col = self.imp[f][int(i)]
            if isinstance(out[f].dtype, CategoricalDtype):
                s = out[f].copy()
                s.loc[col.index] = col.to_numpy(dtype=object)
                out[f] = s
            else:
                out.loc[col.index, f] = col.to_numpy(dtype=float)
        assert_no_na(out, subset=self.visit_sequence)
        return out

    def complete_all(self) -> list[pd.DataFrame]:
        """All M completed tables, in imputation order."""
        return [self.complete(i) for i in range(1, self.m + 1)]

    def complete_long(self, include_original: bool = False) -> pd.DataFrame:
        """Completed tables stacked with `.imp` (imputation) and `.id` (row) columns."""
        start = 0 if include_original else 1
        frames = []
        for i in range(start, self.m + 1):
            t = self.complete(i)
            t.insert(0, ".id", t.index)
            t.insert(0, ".imp", i)
            frames.append(t)
        return pd.concat(frames, ignore_index=True)

    # ------------------------------ diagnostics -------------------------------
    def observed(self, f: str) -> pd.Series:
        """Observed (non-missing) values of field `f`."""
        return self.data.loc[~self.where[f], f]

    def imputed_long(self, f: str) -> pd.DataFrame:
        """
        Observed and imputed values of `f` in long form: `.imp` = 0 for observed
        values, 1..m for each stream's imputations; `.id` = row label.
        """
        obs = self.observed(f)
        parts = [pd.DataFrame({".imp": 0, ".id": obs.index, "value": obs.to_numpy(dtype=object)})]
        if f in self.visit_sequence:
            draws = self.imp[f]
            for i in range(1, self.m + 1):
                parts.append(
                    pd.DataFrame(
                        {".imp": i, ".id": draws.index, "value": draws[i].to_numpy(dtype=object)}
                    )
                )
        return pd.concat(parts, ignore_index=True)

    def chain_stats(self, stat: str | Callable[[np.ndarray], float] = "mean") -> pd.DataFrame:
        """
        Per field, per iteration, per stream summary of the imputed values.

        Returns long form: field, iteration (1..maxit), imputation (1..m),
        value. Categorical fields are summarised on their category codes.
        """
        fn: Callable[[np.ndarray], float]
        if stat == "mean":
            fn = np.mean
        elif stat == "var":
            fn = lambda a: float(np.var(a, ddof=1)) if a.size > 1 else float("nan")  # noqa: E731
        elif callable(stat):
            fn = stat
        else:
            raise ValueError("stat must be 'mean', 'var' or a callable")

        rows: list[tuple[str, int, int, float]] = []
        for f, hist in self.history.items():
            if hist.size == 0:
                continue
            for it in range(hist.shape[0]):
                for s in range(hist.shape[1]):
                    rows.append((f, it + 1, s + 1, float(fn(hist[it, s]))))
        return pd.DataFrame(rows, columns=["field", "iteration", "imputation", "value"])

    def summary(self) -> str:
        lines = [
            f"Multiply imputed data: m={self.m} maxit={self.maxit} seed={self.seed}",
            f"rows={len(self.data)} incomplete_rows={int(self.where.any(axis=1).sum())}",
            "method: " + ", ".join(f"{k}={v or '-'}" for k, v in self.method.items()),
        ]
        lines.extend(f"note: {e}" for e in self.events)
        return "\n".join(lines)


def default_methods(df: pd.DataFrame, schema: Schema = SURVEY_SCHEMA) -> dict[str, str]:
    """Method by field kind for incomplete fields, "" for complete ones."""
    out: dict[str, str] = {}
    for spec in schema:
        if spec.name not in df.columns:
            continue
        out[spec.name] = DEFAULT_METHOD_BY_KIND[spec.kind] if df[spec.name].isna().any() else ""
    return out


# ----------------------------------------------------------------------------
# internals
# ----------------------------------------------------------------------------


def _check_count(name: str, v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, numbers.Integral) or int(v) < 1:
        raise ImputationError(f"{name} must be a positive integer", value=v)
    return int(v)


def _check_seed(seed: Any) -> int:
    if isinstance(seed, bool) or not isinstance(seed, numbers.Integral) or int(seed) < 0:
        raise ImputationError("seed must be a non-negative integer", value=seed)
    return int(seed)


def _check_table(df: pd.DataFrame, schema: Schema) -> None:
    unknown = [c for c in df.columns if c not in schema]
    if unknown:
        raise ImputationError(f"fields not declared in the schema: {unknown}")
    for spec in schema:
        s = df[spec.name]
        if spec.is_categorical and not isinstance(s.dtype, CategoricalDtype):
            raise ImputationError(
                f"{spec.kind} field must be categorical; run normalize_types first",
                field=spec.name,
            )
        if spec.kind == "numeric" and not is_numeric_dtype(s.dtype):
            raise ImputationError("numeric field holds non-numeric data", field=spec.name)


def _resolve_methods(
    df: pd.DataFrame,
    schema: Schema,
    methods: Mapping[str, str] | None,
    events: list[str],
) -> dict[str, str]:
    resolved = default_methods(df, schema)
    for f, meth in (methods or {}).items():
        if f not in resolved:
            raise ImputationError("method given for a field not in the table", field=f, value=meth)
        resolved[f] = check_method(f, schema.kind(f), meth)

    for spec in schema:
        f = spec.name
        n_miss = int(df[f].isna().sum())
        if n_miss == 0 and resolved[f]:
            events.append(f"{f}: complete field, method '{resolved[f]}' replaced by ''")
            resolved[f] = ""
        if n_miss == len(df) and resolved[f]:
            raise ImputationError("field has no observed values to fit on", field=f)
        if n_miss and not resolved[f]:
            events.append(f"{f}: {n_miss} missing values left unimputed (method '')")
    return resolved


def _resolve_predictors(
    df: pd.DataFrame,
    method: Mapping[str, str],
    predictors: Mapping[str, Sequence[str]] | None,
    events: list[str],
) -> dict[str, list[str]]:
    cols = list(df.columns)
    # fields that stay incomplete cannot serve as predictors
    unusable = {c for c in cols if df[c].isna().any() and not method[c]}
    out: dict[str, list[str]] = {}
    for f in cols:
        if not method[f]:
            continue
        wanted = list(predictors[f]) if predictors and f in predictors else [c for c in cols if c != f]
        bad = [c for c in wanted if c not in cols or c == f]
        if bad:
            raise ImputationError(f"invalid predictors {bad}", field=f)
        dropped = [c for c in wanted if c in unusable]
        if dropped:
            events.append(f"{f}: dropped incomplete, unimputed predictors {dropped}")
        out[f] = [c for c in wanted if c not in unusable]
    return out


@dataclass
class _Column:
    values: np.ndarray  # float: codes for categoricals, NaN = missing
    n_levels: int  # 0 for numeric


def _encode(df: pd.DataFrame) -> dict[str, _Column]:
    cols: dict[str, _Column] = {}
    for c in df.columns:
        s = df[c]
        if isinstance(s.dtype, CategoricalDtype):
            codes = s.cat.codes.to_numpy().astype(float)
            codes[codes < 0] = np.nan
            cols[c] = _Column(codes, len(s.cat.categories))
        else:
            cols[c] = _Column(s.to_numpy(dtype=float, na_value=np.nan), 0)
    return cols


def _design(cols: Mapping[str, _Column], names: Sequence[str], n: int) -> np.ndarray:
    """Predictor matrix: z-scored numerics, drop-first one-hot categoricals."""
    blocks: list[np.ndarray] = []
    for c in names:
        col = cols[c]
        v = col.values
        if col.n_levels:
            for k in range(1, col.n_levels):
                blocks.append((v == k).astype(float))
        else:
            sd = float(np.std(v))
            blocks.append((v - float(np.mean(v))) / sd if sd > 0 else np.zeros(n))
    if not blocks:
        return np.zeros((n, 1))
    return np.column_stack(blocks)


def _run_stream(
    cols: dict[str, _Column],
    where: Mapping[str, np.ndarray],
    visit: Sequence[str],
    method: Mapping[str, str],
    predictors: Mapping[str, Sequence[str]],
    maxit: int,
    rng: np.random.Generator,
) -> tuple[dict[str, np.ndarray], dict[str, np.ndarray]]:
    n = len(next(iter(cols.values())).values)
    state = {c: _Column(col.values.copy(), col.n_levels) for c, col in cols.items()}

    for f in visit:
        miss = where[f]
        observed = state[f].values[~miss]
        state[f].values[miss] = rng.choice(observed, size=int(miss.sum()), replace=True)

    history = {f: np.empty((maxit, int(where[f].sum())), dtype=float) for f in visit}
    for it in range(maxit):
        for f in visit:
            miss = where[f]
            X = _design(state, predictors[f], n)
            draw = METHODS[method[f]]
            state[f].values[miss] = draw(
                state[f].values[~miss],
                X[~miss],
                X[miss],
                rng,
                n_levels=state[f].n_levels,
            )
            history[f][it] = state[f].values[miss]
    final = {f: state[f].values[where[f]].copy() for f in visit}
    return final, history


def _decode(values: np.ndarray, s: pd.Series) -> np.ndarray:
    if isinstance(s.dtype, CategoricalDtype):
        cats = np.asarray(s.cat.categories, dtype=object)
        return cats[values.astype(int)]
    return values


def mice(
    df: pd.DataFrame,
    *,
    methods: Mapping[str, str] | None = None,
    m: int = 5,
    maxit: int = 5,
    seed: int,
    schema: Schema = SURVEY_SCHEMA,
    predictors: Mapping[str, Sequence[str]] | None = None,
) -> MultipleImputation:
    """
    Multiply impute `df` (a normalized survey table) by chained equations.

    Parameters
    ----------
    df         : table whose categorical fields are pandas Categoricals.
    methods    : field -> method override ("logreg", "polr", "polyreg", "pmm",
                 or "" for no imputation); unspecified fields get defaults by
                 kind. Complete fields always use "".
    m          : number of completed tables.
    maxit      : chained-equations sweeps per stream.
    seed       : non-negative integer; same seed -> identical imputations.
    predictors : optional field -> predictor fields (default: all others).

    Raises
    ------
    ImputationError
        Invalid counts/seed, unknown or incompatible methods, un-normalized
        input, or a field without observed values.
    """
    m = _check_count("m", m)
    maxit = _check_count("maxit", maxit)
    seed = _check_seed(seed)
    if df.empty:
        raise ImputationError("cannot impute an empty table")
    sub = schema_for(list(df.columns), schema)
    _check_table(df, sub)

    events: list[str] = []
    data = df[sub.names()].copy()
    method = _resolve_methods(data, sub, methods, events)
    preds = _resolve_predictors(data, method, predictors, events)
    visit = [f for f in sub.names() if method[f]]
    where_df = data.isna()
    where = {c: where_df[c].to_numpy() for c in data.columns}
    cols = _encode(data)

    streams = np.random.SeedSequence(seed).spawn(m)
    finals: list[dict[str, np.ndarray]] = []
    histories: list[dict[str, np.ndarray]] = []
    with Timed() as t:
        for s, ss in enumerate(streams, start=1):
            try:
                final, hist = _run_stream(
                    cols, where, visit, method, preds, maxit, np.random.default_rng(ss)
                )
            except ImputationError:
                raise
            except (ValueError, np.linalg.LinAlgError) as e:
                raise ImputationError(f"model fit failed in stream {s}: {e}") from e
            finals.append(final)
            histories.append(hist)
    log_stdout(
        f"m={m} maxit={maxit} seed={seed} fields={visit} ({t.elapsed or 0.0:.2f}s)",
        stage="impute",
    )

    imp: dict[str, pd.DataFrame] = {}
    history: dict[str, np.ndarray] = {}
    for f in data.columns:
        rows = data.index[where[f]]
        if f not in visit:
            imp[f] = pd.DataFrame(index=rows, columns=pd.RangeIndex(1, m + 1))
            history[f] = np.empty((0, m, 0))
            continue
        imp[f] = pd.DataFrame(
            {s: _decode(finals[s - 1][f], data[f]) for s in range(1, m + 1)}, index=rows
        )
        history[f] = np.stack([h[f] for h in histories], axis=1)

    return MultipleImputation(
        data=data,
        where=where_df,
        method=method,
        m=m,
        maxit=maxit,
        seed=seed,
        imp=imp,
        history=history,
        predictors=preds,
        visit_sequence=visit,
        events=events,
    )
