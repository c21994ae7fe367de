# tests/test_pool.py
from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

from mdw.impute.mice import mice
from mdw.impute.pool import fit_each, pool


def _fit(est: float, se: float, df_resid: float = 100.0) -> SimpleNamespace:
    return SimpleNamespace(
        params=pd.Series({"x": est}), bse=pd.Series({"x": se}), df_resid=df_resid
    )


def test_rubins_rules_by_hand() -> None:
    out = pool([_fit(1.0, 0.5), _fit(3.0, 0.5)])
    row = out.loc["x"]
    assert row["estimate"] == pytest.approx(2.0)
    assert row["ubar"] == pytest.approx(0.25)
    assert row["b"] == pytest.approx(2.0)
    assert row["t"] == pytest.approx(0.25 + 1.5 * 2.0)
    assert row["se"] == pytest.approx(np.sqrt(3.25))
    assert row["riv"] == pytest.approx(1.5 * 2.0 / 0.25)
    assert row["lambda"] == pytest.approx(3.0 / 3.25)
    assert row["ci_low"] < row["estimate"] < row["ci_high"]
    assert 0.0 < row["df"] <= 100.0


def test_pool_needs_two_fits() -> None:
    with pytest.raises(ValueError):
        pool([_fit(1.0, 0.5)])


def test_pool_on_completed_tables(survey_table: pd.DataFrame) -> None:
    mi = mice(survey_table, m=3, maxit=2, seed=1234)
    fits = fit_each(mi, "jsat ~ age")
    assert len(fits) == 3
    out = pool(fits)
    assert list(out.index) == ["Intercept", "age"]
    assert (out["se"] > 0).all()
    assert ((out["p_value"] >= 0) & (out["p_value"] <= 1)).all()
    assert out.index.name == "term"
