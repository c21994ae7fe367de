# src/mdw/common/schema.py
# -----------------------------------------------------------------------------
# The survey schema, declared once.
#
# Every field carries a *kind* that drives the rest of the pipeline:
#   - the normalizer decides which fields become pandas Categoricals,
#   - the imputer picks default methods and rejects incompatible ones,
#   - the plots decide between numeric and categorical renderings.
#
# Kinds
#   binary   : nominal categorical with exactly two levels
#   nominal  : unordered categorical with any number of levels
#   ordinal  : ordered categorical (level order = first-seen order)
#   numeric  : raw scalar, kept as float64 with NaN for absence
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Literal

import pandas as pd

FieldKind = Literal["binary", "nominal", "ordinal", "numeric"]

CATEGORICAL_KINDS: frozenset[str] = frozenset({"binary", "nominal", "ordinal"})

# Markers treated as "absent" when reading raw text and when normalizing.
DEFAULT_NA_VALUES: tuple[str, ...] = ("", "NA", "N/A", "NaN", "nan", "NULL", "null", ".")


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind
    role: Literal["predictor", "outcome"] = "predictor"
    description: str = ""

    @property
    def is_categorical(self) -> bool:
        return self.kind in CATEGORICAL_KINDS


@dataclass(frozen=True)
class Schema:
    fields: tuple[FieldSpec, ...]

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __contains__(self, name: object) -> bool:
        return any(f.name == name for f in self.fields)

    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> FieldSpec:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(f"Unknown field '{name}'. Known: {self.names()}")

    def kind(self, name: str) -> FieldKind:
        return self.get(name).kind

    def categorical_cols(self) -> list[str]:
        return [f.name for f in self.fields if f.is_categorical]

    def numeric_cols(self) -> list[str]:
        return [f.name for f in self.fields if f.kind == "numeric"]


SURVEY_SCHEMA = Schema(
    fields=(
        FieldSpec("gender", "binary", description="respondent gender (2 levels)"),
        FieldSpec("age", "numeric", description="age in years"),
        FieldSpec("race", "nominal", description="race/ethnicity code"),
        FieldSpec("edu", "ordinal", description="highest education level"),
        FieldSpec("jsat", "numeric", role="outcome", description="job satisfaction, 1-7 scale"),
    )
)


def ensure_required_columns(df: pd.DataFrame, required: Iterable[str]) -> None:
    """Raise if any required columns are missing from df."""
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def schema_for(columns: Sequence[str], schema: Schema = SURVEY_SCHEMA) -> Schema:
    """Sub-schema restricted to `columns` (kept in schema order)."""
    wanted = set(columns)
    return Schema(fields=tuple(f for f in schema if f.name in wanted))
