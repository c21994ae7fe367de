from __future__ import annotations

from .compare import DiffReport, check_imputation_positions, compare_tables

__all__ = ["DiffReport", "compare_tables", "check_imputation_positions"]
