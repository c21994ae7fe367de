from __future__ import annotations

from .patterns import (
    conditional_missingness,
    joint_missingness,
    md_pattern,
    missing_patterns,
    missing_proportions,
)

__all__ = [
    "missing_proportions",
    "missing_patterns",
    "md_pattern",
    "conditional_missingness",
    "joint_missingness",
]
