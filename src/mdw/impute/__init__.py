# -----------------------------------------------------------------------------
# Public surface of the imputation package.
# -----------------------------------------------------------------------------
from __future__ import annotations

from .methods import COMPATIBLE_KINDS, DEFAULT_METHOD_BY_KIND, check_method
from .mice import MultipleImputation, default_methods, mice
from .pool import fit_each, pool

__all__ = [
    "mice",
    "MultipleImputation",
    "default_methods",
    "check_method",
    "COMPATIBLE_KINDS",
    "DEFAULT_METHOD_BY_KIND",
    "fit_each",
    "pool",
]
