# src/mdw/impute/pool.py
# -----------------------------------------------------------------------------
# Analyse every completed table and combine the estimates with Rubin's rules.
#
#   qbar   = mean of the M point estimates
#   ubar   = mean of the M squared standard errors (within variance)
#   b      = variance of the M point estimates      (between variance)
#   t      = ubar + (1 + 1/M) * b                   (total variance)
#   riv    = (1 + 1/M) * b / ubar                   (relative increase in var.)
#   lambda = (1 + 1/M) * b / t                      (share due to missingness)
#   df     = Barnard-Rubin small-sample degrees of freedom
#   fmi    = (riv + 2 / (df + 3)) / (1 + riv)       (fraction missing info)
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy import stats

from mdw.impute.mice import MultipleImputation

__all__ = ["fit_each", "pool"]


def fit_each(mi: MultipleImputation, formula: str) -> list[Any]:
    """Fit an OLS `formula` (patsy syntax) on each of the M completed tables."""
    return [smf.ols(formula, data=t).fit() for t in mi.complete_all()]


def pool(fits: Sequence[Any], *, alpha: float = 0.05) -> pd.DataFrame:
    """
    Rubin's-rules pooling of per-imputation regression fits.

    Returns one row per coefficient with estimate, ubar, b, t, se, df, riv,
    lambda, fmi, p_value, ci_low, ci_high.
    """
    m = len(fits)
    if m < 2:
        raise ValueError("pooling needs at least 2 imputations")
    params = pd.concat([f.params for f in fits], axis=1)
    variances = pd.concat([f.bse**2 for f in fits], axis=1)

    qbar = params.mean(axis=1)
    ubar = variances.mean(axis=1)
    b = params.var(axis=1, ddof=1)
    t = ubar + (1.0 + 1.0 / m) * b

    dfcom = float(fits[0].df_resid)
    with np.errstate(divide="ignore", invalid="ignore"):
        riv = (1.0 + 1.0 / m) * b / ubar
        lam = (1.0 + 1.0 / m) * b / t
        dfold = (m - 1) / lam**2
        dfobs = (dfcom + 1.0) / (dfcom + 3.0) * dfcom * (1.0 - lam)
        df = np.where(np.isfinite(dfold), dfold * dfobs / (dfold + dfobs), dfobs)
    df = pd.Series(df, index=qbar.index)
    fmi = (riv + 2.0 / (df + 3.0)) / (1.0 + riv)

    se = np.sqrt(t)
    tstat = qbar / se
    crit = stats.t.ppf(1.0 - alpha / 2.0, df)
    out = pd.DataFrame(
        {
            "estimate": qbar,
            "ubar": ubar,
            "b": b,
            "t": t,
            "se": se,
            "df": df,
            "riv": riv,
            "lambda": lam,
            "fmi": fmi,
            "p_value": 2.0 * stats.t.sf(np.abs(tstat), df),
            "ci_low": qbar - crit * se,
            "ci_high": qbar + crit * se,
        }
    )
    out.index.name = "term"
    return out
