# tests/test_missing_patterns.py
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from mdw.missing.patterns import (
    conditional_missingness,
    joint_missingness,
    md_pattern,
    missing_patterns,
    missing_proportions,
)


def _age_gap_table() -> pd.DataFrame:
    """100 complete records except `age`, missing in 9 of them."""
    rng = np.random.default_rng(0)
    age = rng.integers(18, 70, size=100).astype(float)
    age[[3, 10, 22, 31, 40, 55, 61, 77, 98]] = np.nan
    return pd.DataFrame(
        {
            "gender": pd.Categorical(rng.choice([1, 2], size=100)),
            "age": age,
            "race": pd.Categorical(rng.choice([1, 2, 3], size=100)),
            "edu": pd.Categorical(rng.choice([1, 2, 3, 4], size=100), ordered=True),
            "jsat": rng.integers(1, 8, size=100).astype(float),
        }
    )


def test_single_field_gap_proportions() -> None:
    df = _age_gap_table()
    props = missing_proportions(df)
    assert props["age"] == pytest.approx(0.09)
    assert (props.drop("age") == 0.0).all()
    assert props.name == "missing_proportion"


def test_single_field_gap_patterns() -> None:
    pats = missing_patterns(_age_gap_table())
    assert len(pats) == 2
    first, second = pats.iloc[0], pats.iloc[1]
    assert first["n_missing"] == 0 and first["count"] == 91
    assert second["age"] == 1 and second["count"] == 9
    assert second[["gender", "race", "edu", "jsat"]].sum() == 0
    assert pats["proportion"].sum() == pytest.approx(1.0)


def test_patterns_on_survey_sum_to_one(survey_table: pd.DataFrame) -> None:
    pats = missing_patterns(survey_table)
    assert pats["proportion"].sum() == pytest.approx(1.0)
    assert int(pats["count"].sum()) == len(survey_table)
    assert (pats["count"] > 0).all()
    assert not pats[["gender", "age", "race", "edu", "jsat"]].duplicated().any()
    assert pats["n_missing"].is_monotonic_increasing


def test_patterns_without_complete_rows() -> None:
    df = pd.DataFrame({"a": [np.nan, 1.0, 2.0], "b": [1.0, np.nan, np.nan]})
    pats = missing_patterns(df)
    assert (pats["n_missing"] > 0).all()
    assert pats["count"].tolist() == [2, 1]


def test_md_pattern_layout(survey_table: pd.DataFrame) -> None:
    mdp = md_pattern(survey_table)
    assert mdp.index[-1] == "total"
    assert mdp.loc["total", "n_missing"] == int(survey_table.isna().sum().sum())
    fields = [c for c in mdp.columns if c not in ("count", "n_missing")]
    totals = mdp.loc["total", fields].to_numpy()
    assert list(totals) == sorted(totals)
    body = mdp.drop(index="total")
    assert set(np.unique(body[fields].to_numpy())) <= {0, 1}


def test_conditional_missingness_by_level() -> None:
    df = pd.DataFrame(
        {
            "edu": pd.Categorical(["a", "a", "a", "a", "b", "b", None], categories=["a", "b"]),
            "jsat": [1.0, np.nan, np.nan, 4.0, 5.0, 6.0, np.nan],
        }
    )
    tab = conditional_missingness(df, "edu", "jsat")
    assert list(tab.index) == ["a", "b"]
    assert tab.loc["a", "prop_missing"] == pytest.approx(0.5)
    assert tab.loc["b", "prop_missing"] == 0.0
    assert tab["width"].sum() == pytest.approx(1.0)
    assert (tab["prop_missing"] + tab["prop_observed"]).eq(1.0).all()

    with_na = conditional_missingness(df, "edu", "jsat", dropna=False)
    assert with_na["n"].sum() == 7
    assert with_na.loc["<NA>", "n_missing"] == 1


def test_conditional_missingness_bins_numeric_predictor(survey_table: pd.DataFrame) -> None:
    tab = conditional_missingness(survey_table, "age", "jsat", bins=5)
    assert len(tab) <= 5
    assert isinstance(tab.index[0], pd.Interval)
    assert int(tab["n"].sum()) == int(survey_table["age"].notna().sum())


def test_joint_missingness_weights(survey_table: pd.DataFrame) -> None:
    tab = joint_missingness(survey_table, ("gender", "race"), "jsat")
    assert tab.index.nlevels == 2
    assert tab["weight"].sum() == pytest.approx(1.0)
    assert ((tab["prop_missing"] >= 0) & (tab["prop_missing"] <= 1)).all()
    with pytest.raises(ValueError):
        joint_missingness(survey_table, ("race", "race"), "jsat")
    with pytest.raises(KeyError):
        joint_missingness(survey_table, ("gender", "income"), "jsat")


def test_summaries_do_not_mutate(survey_table: pd.DataFrame) -> None:
    before = survey_table.copy()
    missing_patterns(survey_table)
    conditional_missingness(survey_table, "edu", "jsat")
    joint_missingness(survey_table, ("gender", "race"), "jsat")
    pd.testing.assert_frame_equal(survey_table, before)


def test_empty_table_rejected() -> None:
    with pytest.raises(ValueError):
        missing_proportions(pd.DataFrame({"a": []}))
