# tests/conftest.py
from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pandas as pd
import pytest
import yaml

# Ensure src/ is on sys.path for test runtime
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from mdw.ingest.synth import make_survey  # noqa: E402
from mdw.normalize.types import normalize_types  # noqa: E402


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Repository root (one level above tests/)."""
    return ROOT


@pytest.fixture(scope="session")
def config_dir(project_root: Path) -> Path:
    """Path to configs/ directory."""
    return project_root / "configs"


@pytest.fixture(scope="session")
def config_files(config_dir: Path) -> list[Path]:
    """All YAML files in configs/."""
    return sorted(config_dir.glob("*.yaml"))


@pytest.fixture(scope="session")
def loaded_configs(config_files: list[Path]) -> dict[str, dict[str, Any]]:
    """Loaded YAML content keyed by filename."""
    out: dict[str, dict[str, Any]] = {}
    for p in config_files:
        with p.open("r", encoding="utf-8") as fh:
            out[p.name] = yaml.safe_load(fh) or {}
    return out


@pytest.fixture()
def survey_raw() -> pd.DataFrame:
    """120 synthetic records, raw scalar typing, MAR gaps in every field."""
    return make_survey(120, seed=3)


@pytest.fixture()
def survey_table(survey_raw: pd.DataFrame) -> pd.DataFrame:
    """`survey_raw` after the categorical recast."""
    return normalize_types(survey_raw)


@pytest.fixture()
def write_csv(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write text to tmp_path/<name> and return the path."""

    def _write(name: str, text: str) -> Path:
        p = tmp_path / name
        p.write_text(text, encoding="utf-8")
        return p

    return _write
