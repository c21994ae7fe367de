# tests/test_normalize_types.py
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from pandas.api.types import CategoricalDtype

from mdw.common.errors import TypeConversionError
from mdw.normalize.types import level_sets, normalize_types, to_raw


def _raw_text() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "gender": ["m", "NA", "f", " m "],
            "age": [30.0, np.nan, 41.0, 50.0],
            "race": ["a", "b", "", None],
            "edu": ["hs", "ba", "hs", "NA"],
            "jsat": [1.0, "NA", 3, "4"],
        }
    )


def test_markers_never_become_levels() -> None:
    out = normalize_types(_raw_text())
    assert list(out["gender"].cat.categories) == ["m", "f"]
    assert list(out["race"].cat.categories) == ["a", "b"]
    assert "NA" not in out["edu"].cat.categories
    assert out["gender"].isna().tolist() == [False, True, False, False]
    assert out["race"].isna().tolist() == [False, False, True, True]


def test_kinds_and_ordering() -> None:
    out = normalize_types(_raw_text())
    for c in ("gender", "race", "edu"):
        assert isinstance(out[c].dtype, CategoricalDtype)
    assert out["edu"].cat.ordered
    assert not out["race"].cat.ordered
    assert out["jsat"].dtype == np.float64
    assert out["jsat"].isna().tolist() == [False, True, False, False]
    assert out["jsat"].iloc[3] == 4.0


def test_input_not_mutated() -> None:
    raw = _raw_text()
    before = raw.copy()
    normalize_types(raw)
    pd.testing.assert_frame_equal(raw, before)


def test_integral_float_codes_collapse(survey_raw: pd.DataFrame) -> None:
    out = normalize_types(survey_raw)
    levels = level_sets(out)
    assert set(levels) == {"gender", "race", "edu"}
    assert all(isinstance(v, (int, np.integer)) for v in levels["race"])
    assert set(levels["gender"]) <= {1, 2}


def test_to_raw_round_trip(survey_raw: pd.DataFrame) -> None:
    out = normalize_types(survey_raw)
    for c in ("gender", "race", "edu"):
        pd.testing.assert_series_equal(to_raw(out[c]), survey_raw[c])
    pd.testing.assert_series_equal(to_raw(out["age"]), out["age"])


def test_to_raw_text_levels() -> None:
    out = normalize_types(_raw_text())
    back = to_raw(out["gender"])
    assert back.dtype == object
    assert back.iloc[0] == "m"
    assert pd.isna(back.iloc[1])


def test_text_codes_keep_distinct_levels_and_round_trip() -> None:
    raw = _raw_text()
    raw["gender"] = ["01", "1", "NA", "01"]
    raw["race"] = ["1", "a", "a", None]
    out = normalize_types(raw)

    assert list(out["gender"].cat.categories) == ["01", "1"]
    assert list(out["race"].cat.categories) == ["1", "a"]
    pd.testing.assert_series_equal(
        to_raw(out["gender"]),
        pd.Series(["01", "1", np.nan, "01"], name="gender", dtype=object),
    )
    pd.testing.assert_series_equal(
        to_raw(out["race"]),
        pd.Series(["1", "a", "a", np.nan], name="race", dtype=object),
    )


def test_empty_level_set_raises() -> None:
    raw = _raw_text()
    raw["race"] = ["NA", "", None, "."]
    with pytest.raises(TypeConversionError) as ei:
        normalize_types(raw)
    assert ei.value.field == "race"
    assert ei.value.stage == "normalize"


def test_binary_with_three_levels_raises() -> None:
    raw = _raw_text()
    raw["gender"] = ["m", "f", "x", "m"]
    with pytest.raises(TypeConversionError, match="binary"):
        normalize_types(raw)


def test_text_in_numeric_field_raises() -> None:
    raw = _raw_text()
    raw["jsat"] = ["high", 2, 3, 4]
    with pytest.raises(TypeConversionError) as ei:
        normalize_types(raw)
    assert ei.value.field == "jsat"


def test_non_scalar_cell_and_absent_field() -> None:
    raw = _raw_text()
    raw["edu"] = [["hs"], "ba", "hs", "ba"]
    with pytest.raises(TypeConversionError, match="scalar"):
        normalize_types(raw)
    with pytest.raises(TypeConversionError):
        normalize_types(_raw_text().drop(columns=["age"]))
