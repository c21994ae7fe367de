# src/mdw/common/contracts.py
# -----------------------------------------------------------------------------
# Pydantic models describing the run "contract" loaded from configs/*.yaml:
#   - where the survey lives and how missing markers are spelled,
#   - which fields feed the pairwise / joint missingness views,
#   - the imputation request (methods, m, maxit, seed).
# Invalid settings fail early with a pydantic ValidationError (a ValueError).
# -----------------------------------------------------------------------------
from __future__ import annotations

from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import BaseModel, Field, StrictInt, StrictStr, field_validator, model_validator

from mdw.common.schema import DEFAULT_NA_VALUES

SEED: int = 1234  # central place to share a default seed for reproducibility

KNOWN_METHODS: frozenset[str] = frozenset({"", "logreg", "polr", "polyreg", "pmm"})


class ImputeSettings(BaseModel):
    """Chained-equations request: M streams of K sweeps from one seed."""

    m: StrictInt = Field(5, ge=1, description="number of completed tables")
    maxit: StrictInt = Field(5, ge=1, description="sweeps per stream")
    seed: StrictInt = Field(SEED, ge=0)
    methods: dict[str, str] | None = None

    @field_validator("methods")
    @classmethod
    def _known_methods(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        if v is None:
            return v
        out = {str(k).strip(): str(m).strip().lower() for k, m in v.items()}
        unknown = {k: m for k, m in out.items() if m not in KNOWN_METHODS}
        if unknown:
            raise ValueError(f"unknown imputation methods {unknown}; use {sorted(KNOWN_METHODS)}")
        return out


class ViewSettings(BaseModel):
    """Fields used by the pairwise (spine) and joint (mosaic) missingness views."""

    pair_predictor: StrictStr = "edu"
    outcome: StrictStr = "jsat"
    joint_predictors: tuple[StrictStr, StrictStr] = ("gender", "race")

    @model_validator(mode="after")
    def _distinct(self) -> ViewSettings:
        a, b = self.joint_predictors
        if a == b:
            raise ValueError("joint_predictors must name two different fields")
        if self.outcome in (self.pair_predictor, a, b):
            raise ValueError("outcome cannot also be a predictor of its own missingness")
        return self


class WorkshopSettings(BaseModel):
    """Top-level settings for one pipeline run."""

    input_path: StrictStr
    sep: StrictStr = ","
    na_values: list[str] = Field(default_factory=lambda: list(DEFAULT_NA_VALUES))
    output_dir: StrictStr = "reports"
    ledger_path: StrictStr | None = "data/ledger/pipeline_runs.csv"
    diff_imputation: StrictInt = Field(1, ge=1)
    impute: ImputeSettings = Field(default_factory=ImputeSettings)
    views: ViewSettings = Field(default_factory=ViewSettings)

    @field_validator("input_path")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("input_path is empty")
        return v

    @model_validator(mode="after")
    def _diff_in_range(self) -> WorkshopSettings:
        if self.diff_imputation > self.impute.m:
            raise ValueError(
                f"diff_imputation={self.diff_imputation} exceeds m={self.impute.m}"
            )
        return self


def load_settings(path: Path, **overrides: Any) -> WorkshopSettings:
    """Load YAML from `path` (empty docs are {}), apply overrides, validate."""
    with Path(path).open("r", encoding="utf-8") as f:
        data = cast(dict[str, Any], yaml.safe_load(f) or {})
    data.update({k: v for k, v in overrides.items() if v is not None})
    return WorkshopSettings.model_validate(data)
