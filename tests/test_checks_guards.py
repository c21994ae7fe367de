# tests/test_checks_guards.py
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from mdw.common.checks import assert_no_na, assert_proportions_sum, assert_same_schema


def test_assert_proportions_sum_ok_and_fail() -> None:
    assert_proportions_sum(pd.Series([0.91, 0.09]))
    with pytest.raises(AssertionError):
        assert_proportions_sum([0.5, 0.4])
    with pytest.raises(ValueError):
        assert_proportions_sum([])
    with pytest.raises(ValueError):
        assert_proportions_sum([1.2, -0.2])


def test_assert_no_na_subset() -> None:
    df = pd.DataFrame({"a": [1.0, np.nan], "b": [1, 2]})
    assert_no_na(df, subset=["b"])
    with pytest.raises(ValueError, match="a"):
        assert_no_na(df)
    with pytest.raises(KeyError):
        assert_no_na(df, subset=["c"])


def test_assert_same_schema() -> None:
    a = pd.DataFrame({"x": [1, 2], "y": [3, 4]})
    assert_same_schema(a, a[["y", "x"]])
    with pytest.raises(ValueError):
        assert_same_schema(a, a.rename(columns={"y": "z"}))
    with pytest.raises(ValueError):
        assert_same_schema(a, a.iloc[:1])
