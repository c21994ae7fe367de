from __future__ import annotations

from .types import level_sets, normalize_types, to_raw

__all__ = ["normalize_types", "to_raw", "level_sets"]
