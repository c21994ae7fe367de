# src/mdw/__init__.py
# -----------------------------------------------------------------------------
# Missing-data workshop: diagnose, visualise and multiply-impute missing values
# in a small survey table (gender, age, race, edu, jsat).
# -----------------------------------------------------------------------------
from __future__ import annotations

__version__ = "0.3.0"

__all__ = ["__version__"]
