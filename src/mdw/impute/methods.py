# src/mdw/impute/methods.py
# -----------------------------------------------------------------------------
# Univariate imputation methods used inside one chained-equations sweep.
#
# Every method has the same signature
#
#     draw(y_obs, X_obs, X_mis, rng, n_levels=...) -> np.ndarray
#
# and returns one *draw* per missing row (category codes for categorical
# targets, floats for numeric ones). Parameter uncertainty is propagated by
# fitting each model on a bootstrap resample of the observed rows before
# drawing from its predictive distribution, so repeated streams differ the way
# proper multiple imputations should.
#
#   logreg  : binary categorical  -> sklearn LogisticRegression
#   polyreg : any categorical     -> sklearn LogisticRegression (multinomial)
#   polr    : ordinal categorical -> statsmodels OrderedModel (proportional odds)
#   pmm     : numeric             -> sklearn LinearRegression + donor matching
# -----------------------------------------------------------------------------
from __future__ import annotations

import warnings
from collections.abc import Callable

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LinearRegression, LogisticRegression
from statsmodels.miscmodels.ordinal_model import OrderedModel

from mdw.common.errors import ImputationError
from mdw.common.logging import log_stdout
from mdw.common.schema import CATEGORICAL_KINDS, FieldKind

__all__ = [
    "METHODS",
    "COMPATIBLE_KINDS",
    "DEFAULT_METHOD_BY_KIND",
    "check_method",
    "draw_logreg",
    "draw_polyreg",
    "draw_polr",
    "draw_pmm",
]

PMM_DONORS: int = 5


def _bootstrap(n: int, rng: np.random.Generator) -> np.ndarray:
    return rng.integers(0, n, size=n)


def _draw_from_probs(probs: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """One category code per row of a (n_rows, n_levels) probability matrix."""
    cum = np.cumsum(probs, axis=1)
    cum[:, -1] = 1.0
    u = rng.uniform(size=(probs.shape[0], 1))
    return (cum < u).sum(axis=1).astype(float)


def _classifier_probs(
    y: np.ndarray, X: np.ndarray, X_mis: np.ndarray, n_levels: int
) -> np.ndarray:
    """Predictive probabilities over all `n_levels` codes (absent codes get 0)."""
    classes = np.unique(y)
    probs = np.zeros((X_mis.shape[0], n_levels), dtype=float)
    if classes.size == 1:
        probs[:, int(classes[0])] = 1.0
        return probs
    model = LogisticRegression(max_iter=1000)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=ConvergenceWarning)
        model.fit(X, y.astype(int))
    fitted = model.predict_proba(X_mis)
    for j, c in enumerate(model.classes_):
        probs[:, int(c)] = fitted[:, j]
    return probs


def draw_logreg(
    y_obs: np.ndarray,
    X_obs: np.ndarray,
    X_mis: np.ndarray,
    rng: np.random.Generator,
    *,
    n_levels: int = 2,
) -> np.ndarray:
    """Bootstrap logistic regression for a two-level field."""
    if n_levels > 2:
        raise ImputationError(f"logreg needs a binary target, got {n_levels} levels")
    idx = _bootstrap(len(y_obs), rng)
    probs = _classifier_probs(y_obs[idx], X_obs[idx], X_mis, max(n_levels, 2))
    return _draw_from_probs(probs, rng)


def draw_polyreg(
    y_obs: np.ndarray,
    X_obs: np.ndarray,
    X_mis: np.ndarray,
    rng: np.random.Generator,
    *,
    n_levels: int = 2,
) -> np.ndarray:
    """Bootstrap multinomial logistic regression for an unordered categorical."""
    idx = _bootstrap(len(y_obs), rng)
    probs = _classifier_probs(y_obs[idx], X_obs[idx], X_mis, n_levels)
    return _draw_from_probs(probs, rng)


def _non_constant(X: np.ndarray) -> np.ndarray:
    return np.ptp(X, axis=0) > 0 if X.shape[0] else np.zeros(X.shape[1], dtype=bool)


def draw_polr(
    y_obs: np.ndarray,
    X_obs: np.ndarray,
    X_mis: np.ndarray,
    rng: np.random.Generator,
    *,
    n_levels: int = 2,
) -> np.ndarray:
    """
    Bootstrap proportional-odds (ordered logit) draw.

    Falls back to `polyreg` when the ordered fit is impossible (no usable
    predictors, separation, singular Hessian); the fallback is logged.
    """
    idx = _bootstrap(len(y_obs), rng)
    y, X = y_obs[idx], X_obs[idx]
    classes = np.unique(y)
    if classes.size == 1:
        probs = np.zeros((X_mis.shape[0], n_levels), dtype=float)
        probs[:, int(classes[0])] = 1.0
        return _draw_from_probs(probs, rng)

    keep = _non_constant(X)
    try:
        if not keep.any():
            raise ValueError("no non-constant predictors")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            res = OrderedModel(y, X[:, keep], distr="logit").fit(method="bfgs", disp=False)
            fitted = np.asarray(res.model.predict(res.params, exog=X_mis[:, keep]))
        if not np.all(np.isfinite(fitted)):
            raise ValueError("non-finite predicted probabilities")
    except (ValueError, np.linalg.LinAlgError) as e:
        log_stdout(f"polr fit failed ({e}); falling back to polyreg", stage="impute")
        probs = _classifier_probs(y, X, X_mis, n_levels)
        return _draw_from_probs(probs, rng)

    probs = np.zeros((X_mis.shape[0], n_levels), dtype=float)
    for j, c in enumerate(classes):
        probs[:, int(c)] = fitted[:, j]
    return _draw_from_probs(probs, rng)


def draw_pmm(
    y_obs: np.ndarray,
    X_obs: np.ndarray,
    X_mis: np.ndarray,
    rng: np.random.Generator,
    *,
    n_levels: int = 0,
    donors: int = PMM_DONORS,
) -> np.ndarray:
    """
    Predictive mean matching.

    Observed rows are scored with the full-data fit, missing rows with a
    bootstrap fit; each missing row copies the observed value of one of its
    `donors` nearest neighbours in predicted-mean space, chosen at random.
    Imputed values are therefore always values that were actually observed.
    """
    full = LinearRegression().fit(X_obs, y_obs)
    idx = _bootstrap(len(y_obs), rng)
    boot = LinearRegression().fit(X_obs[idx], y_obs[idx])
    yhat_obs = full.predict(X_obs)
    yhat_mis = boot.predict(X_mis)

    k = max(1, min(donors, len(y_obs)))
    out = np.empty(X_mis.shape[0], dtype=float)
    for i, target in enumerate(yhat_mis):
        dist = np.abs(yhat_obs - target)
        pool = np.argpartition(dist, k - 1)[:k] if k < len(dist) else np.arange(len(dist))
        out[i] = y_obs[pool[rng.integers(0, pool.size)]]
    return out


METHODS: dict[str, Callable[..., np.ndarray]] = {
    "logreg": draw_logreg,
    "polyreg": draw_polyreg,
    "polr": draw_polr,
    "pmm": draw_pmm,
}

# Which field kinds each method is statistically valid for.
COMPATIBLE_KINDS: dict[str, frozenset[str]] = {
    "": frozenset({"binary", "nominal", "ordinal", "numeric"}),
    "logreg": frozenset({"binary"}),
    "polyreg": frozenset(CATEGORICAL_KINDS),
    "polr": frozenset({"ordinal"}),
    "pmm": frozenset({"numeric"}),
}

DEFAULT_METHOD_BY_KIND: dict[str, str] = {
    "binary": "logreg",
    "nominal": "polyreg",
    "ordinal": "polr",
    "numeric": "pmm",
}


def check_method(field: str, kind: FieldKind, method: str) -> str:
    """Validate a method string for a field kind; returns the normalised name."""
    name = str(method).strip().lower()
    if name not in COMPATIBLE_KINDS:
        raise ImputationError(
            f"unknown method; use one of {sorted(k for k in COMPATIBLE_KINDS if k)} or ''",
            field=field,
            value=method,
        )
    if kind not in COMPATIBLE_KINDS[name]:
        raise ImputationError(
            f"method '{name}' is not valid for a {kind} field",
            field=field,
            value=method,
        )
    return name
