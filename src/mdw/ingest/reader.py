# src/mdw/ingest/reader.py
# -----------------------------------------------------------------------------
# Loading of the raw survey file into an in-memory table.
#
# Responsibilities
# - read a delimited text file (header row required),
# - map recognised absence markers to true NA,
# - enforce the survey schema: exactly the declared field names,
# - raw scalar typing only: numeric fields -> float64, categorical fields stay
#   raw (numeric-looking codes become float64, anything else stays text).
#
# Design notes
# - Everything is read as text first so that a junk token in a numeric field
#   is reported (DataLoadError with field + value) instead of silently NA'd.
# - Categorical semantics are *not* applied here; see mdw.normalize.types.
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, TypedDict, cast

import pandas as pd
import yaml

from mdw.common.errors import DataLoadError
from mdw.common.logging import log_stdout, sha256_file
from mdw.common.schema import DEFAULT_NA_VALUES, SURVEY_SCHEMA, Schema


class IngestConfig(TypedDict, total=False):
    """
    YAML-backed config shape for ingestion.

      raw_csv_path: str          # delimited survey file
      sep: str                   # delimiter (default ",")
      na_values: list[str]       # absence markers (default DEFAULT_NA_VALUES)
      output_parquet: str        # where `run` writes the loaded table
    """

    raw_csv_path: str
    sep: str
    na_values: list[str]
    output_parquet: str


def _load_config(path: Path) -> dict[str, Any]:
    """Load YAML from `path` (empty docs return {})."""
    with Path(path).open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return cast(dict[str, Any], data)


def _read_text_table(path: Path, sep: str, na_values: Sequence[str]) -> pd.DataFrame:
    try:
        df = pd.read_csv(
            path,
            sep=sep,
            dtype=str,
            keep_default_na=False,
            na_values=list(na_values),
            skipinitialspace=True,
        )
    except FileNotFoundError as e:
        raise DataLoadError("file not found", value=str(path)) from e
    except pd.errors.EmptyDataError as e:
        raise DataLoadError("file is empty", value=str(path)) from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise DataLoadError(f"malformed delimited file ({type(e).__name__}: {e})") from e
    except OSError as e:
        raise DataLoadError(f"cannot read file ({e})", value=str(path)) from e
    df.columns = [str(c).strip() for c in df.columns]
    return df


def _check_columns(df: pd.DataFrame, schema: Schema) -> None:
    expected = schema.names()
    missing = [c for c in expected if c not in df.columns]
    unexpected = [c for c in df.columns if c not in expected]
    if missing or unexpected:
        raise DataLoadError(
            f"header must be exactly {expected}; missing={missing} unexpected={unexpected}"
        )


def _to_scalar(series: pd.Series, numeric: bool) -> pd.Series:
    """
    Raw scalar typing for one column.

    numeric=True  : every non-NA token must parse as a number.
    numeric=False : numeric-looking columns become float64, others stay text.
    """
    s = series.str.strip()
    s = s.mask(s == "")
    parsed = pd.to_numeric(s, errors="coerce")
    bad = s.notna() & parsed.isna()
    if numeric and bad.any():
        first = s[bad].iloc[0]
        raise DataLoadError(
            f"non-numeric token in numeric field ({int(bad.sum())} cells)",
            field=str(series.name),
            value=first,
        )
    if not bad.any():
        return parsed.astype("float64")
    return s.astype(object)


def load_survey(
    path: Path | str,
    *,
    sep: str = ",",
    na_values: Sequence[str] = DEFAULT_NA_VALUES,
    schema: Schema = SURVEY_SCHEMA,
) -> pd.DataFrame:
    """
    Read the survey file at `path` and return it with columns in schema order.

    Raises
    ------
    DataLoadError
        If the file is absent/unreadable/empty/malformed, the header does not
        match the schema exactly, or a numeric field holds a non-numeric token.
    """
    p = Path(path).expanduser()
    if not p.is_file():
        raise DataLoadError("file not found", value=str(p))

    df = _read_text_table(p, sep, na_values)
    _check_columns(df, schema)
    if df.empty:
        raise DataLoadError("no records below the header", value=str(p))

    out = pd.DataFrame(index=pd.RangeIndex(len(df)))
    for spec in schema:
        out[spec.name] = _to_scalar(df[spec.name], numeric=spec.kind == "numeric")

    n_inc = int(out.isna().any(axis=1).sum())
    log_stdout(f"{p.name}: rows={len(out)} incomplete_rows={n_inc}", stage="load")
    return out


def run(cfg: Mapping[str, Any], out_path: Path) -> pd.DataFrame:
    """
    Config-driven ingest (used by the CLI `load` command).

    Loads the file named by `raw_csv_path`, writes the raw-typed table to
    Parquet at `out_path` and logs a provenance line.
    """
    raw = cfg.get("raw_csv_path")
    if not isinstance(raw, str) or not raw:
        raise DataLoadError("provide 'raw_csv_path' in the ingest config")
    in_path = Path(raw).expanduser()
    df = load_survey(
        in_path,
        sep=str(cfg.get("sep", ",")),
        na_values=cast(Sequence[str], cfg.get("na_values") or DEFAULT_NA_VALUES),
    )

    out_path = Path(out_path).expanduser()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(out_path, index=False)
    log_stdout(
        f"parquet written: rows={len(df)} sha_in={sha256_file(in_path)[:12]} "
        f"sha_out={sha256_file(out_path)[:12]} -> {out_path}",
        stage="load",
    )
    return df


def ingest_base(config_path: Path, output_parquet: Path | None = None) -> Path:
    """Load YAML from `config_path` and delegate to `run`."""
    raw_cfg = _load_config(Path(config_path))
    out_path = (
        Path(output_parquet).expanduser()
        if output_parquet is not None
        else Path(raw_cfg.get("output_parquet", "data/interim/survey.parquet")).expanduser()
    )
    run(raw_cfg, out_path)
    return out_path
