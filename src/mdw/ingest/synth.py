# src/mdw/ingest/synth.py
# -----------------------------------------------------------------------------
# Synthetic survey generator (used by `--dry-run` paths and tests).
#
# Complete data are drawn first, then cells are removed with a Missing-At-Random
# mechanism: the propensity of a field being missing depends only on *other*
# fields' complete values. The returned table has the same raw scalar typing as
# mdw.ingest.reader.load_survey (float64 codes, NaN for absence).
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Mapping

import numpy as np
import pandas as pd

# Baseline missing rates per field (before MAR tilting).
DEFAULT_MISSING_RATES: dict[str, float] = {
    "gender": 0.03,
    "age": 0.09,
    "race": 0.05,
    "edu": 0.06,
    "jsat": 0.15,
}


def _logistic(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


def make_complete_survey(n: int = 200, *, seed: int = 0) -> pd.DataFrame:
    """Draw `n` complete survey records with plausible dependencies."""
    if n < 1:
        raise ValueError("n must be >= 1")
    rng = np.random.default_rng(seed)
    gender = rng.choice([1.0, 2.0], size=n)
    age = np.clip(np.round(rng.normal(42.0, 11.0, size=n)), 18, 75)
    race = rng.choice([1.0, 2.0, 3.0, 4.0], size=n, p=[0.55, 0.2, 0.15, 0.1])
    edu_latent = 0.03 * (age - 42.0) + rng.normal(0.0, 1.0, size=n)
    edu = np.digitize(edu_latent, [-0.8, 0.2, 1.0]).astype(float) + 1.0
    jsat_latent = 4.0 + 0.45 * (edu - 2.5) + 0.02 * (age - 42.0) + rng.normal(0.0, 1.1, size=n)
    jsat = np.clip(np.round(jsat_latent), 1, 7)
    return pd.DataFrame(
        {"gender": gender, "age": age, "race": race, "edu": edu, "jsat": jsat}
    )


def make_survey(
    n: int = 200,
    *,
    seed: int = 0,
    missing_rates: Mapping[str, float] | None = None,
) -> pd.DataFrame:
    """
    Synthetic survey with MAR missingness.

    `jsat` is more often missing for lower education, `age` more often for
    gender == 2; other fields are removed at their baseline rate. Every field
    keeps at least one observed value.
    """
    df = make_complete_survey(n, seed=seed)
    rates = dict(DEFAULT_MISSING_RATES)
    if missing_rates:
        rates.update(missing_rates)
    rng = np.random.default_rng(np.random.SeedSequence(seed).spawn(1)[0])

    tilt = {
        "jsat": -0.6 * (df["edu"].to_numpy() - 2.5),
        "age": 0.8 * (df["gender"].to_numpy() - 1.5),
    }
    out = df.copy()
    for col, rate in rates.items():
        if col not in out.columns or rate <= 0.0:
            continue
        base = np.log(rate / (1.0 - rate))
        p = _logistic(base + tilt.get(col, 0.0))
        mask = rng.uniform(size=len(out)) < p
        if mask.all():
            mask[0] = False
        out.loc[mask, col] = np.nan
    return out
