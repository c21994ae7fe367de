# src/mdw/common/errors.py
# -----------------------------------------------------------------------------
# Error taxonomy for the pipeline. Every stage failure is fatal to the run; the
# message always names the failing stage and, when known, the offending
# field/value so the CLI can print something actionable.
#
#   PipelineError (ValueError)
#     ├── DataLoadError        stage "load"
#     ├── TypeConversionError  stage "normalize"
#     └── ImputationError      stage "impute"
# -----------------------------------------------------------------------------
from __future__ import annotations

__all__ = [
    "PipelineError",
    "DataLoadError",
    "TypeConversionError",
    "ImputationError",
]


class PipelineError(ValueError):
    """Base class for fatal stage failures."""

    stage: str = "pipeline"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: object = None,
        stage: str | None = None,
    ) -> None:
        if stage is not None:
            self.stage = stage
        self.field = field
        self.value = value
        self.message = message
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [f"[{self.stage}]"]
        if self.field is not None:
            parts.append(f"field={self.field!r}")
        if self.value is not None:
            parts.append(f"value={self.value!r}")
        return " ".join(parts) + f": {self.message}"


class DataLoadError(PipelineError):
    """Input file absent, unreadable, malformed or not matching the survey schema."""

    stage = "load"


class TypeConversionError(PipelineError):
    """Empty categorical level set, non-scalar cell, or impossible recast."""

    stage = "normalize"


class ImputationError(PipelineError):
    """Bad method/field pairing, invalid seed/counts, or a failed model fit."""

    stage = "impute"
