# -----------------------------------------------------------------------------
# Public surface of the ingest package.
# Kept small and explicit so downstream callers (CLI/tests) rely on stable
# function names.
# -----------------------------------------------------------------------------
from __future__ import annotations

from .reader import ingest_base, load_survey
from .synth import make_complete_survey, make_survey

__all__ = [
    "load_survey",
    "ingest_base",
    "make_survey",
    "make_complete_survey",
]
