from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .config import DatasetSchema, load_schema

LOGGER = logging.getLogger(__name__)


def load_table(path: Path, id_column: str = "ID") -> pd.DataFrame:
    """Read a cohort table and key its rows by ``id_column``."""
    if not path.exists():
        raise FileNotFoundError(f"Cohort table not found: {path}")

    LOGGER.info("Loading cohort table from %s", path)
    sep = "\t" if path.suffix.lower() in {".tsv", ".txt"} else ","
    frame = pd.read_csv(path, sep=sep)
    frame.columns = [str(c).strip() for c in frame.columns]

    if id_column not in frame.columns:
        raise KeyError(f"Identifier column '{id_column}' not found in {path}")
    ids = frame[id_column].astype(str)
    duplicated = ids[ids.duplicated()].unique()
    if len(duplicated):
        raise ValueError(f"Duplicate identifiers in {path}: {', '.join(duplicated[:10])}")

    frame = frame.drop(columns=[id_column])
    frame.index = pd.Index(ids, name=id_column)
    return frame


def log2_transform(frame: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise KeyError(f"log2 columns missing from table: {', '.join(missing)}")
    out = frame.copy()
    for column in columns:
        out[column] = np.log2(out[column].astype(float) + 1.0)
    return out


def zscore(frame: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Center and scale ``columns`` with the sample standard deviation.

    ddof=1 matches R's ``scale()``; ``StandardScaler`` divides by the
    population standard deviation instead.

    Statistics are computed over the rows present in ``frame``; NaNs are skipped
    and stay NaN in the output.
    """
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise KeyError(f"Scale columns missing from table: {', '.join(missing)}")
    out = frame.copy()
    values = out[list(columns)].astype(float)
    mean = values.mean(axis=0)
    std = values.std(axis=0, ddof=1)
    flat = std.index[~(std > 0)].tolist()
    if flat:
        raise ValueError(f"Cannot standardize zero-variance columns: {', '.join(map(str, flat))}")
    out[list(columns)] = (values - mean) / std
    return out


def preprocess(frame: pd.DataFrame, schema: DatasetSchema) -> pd.DataFrame:
    """log2(x + 1) the schema's log columns once, then z-score every feature."""
    if not schema.log2_columns:
        raise ValueError(
            "No log2 columns configured; list them under log2_columns in the schema "
            "or pass --log2-columns"
        )
    features = schema.feature_columns(frame)
    LOGGER.info(
        "Preprocessing %d rows: log2 on %d columns, z-score on %d columns",
        len(frame),
        len(schema.log2_columns),
        len(features),
    )
    out = log2_transform(frame, schema.log2_columns)
    return zscore(out, features)


def summarize_standardization(frame: pd.DataFrame, columns: Sequence[str]) -> Dict[str, float]:
    subset = frame[list(columns)].astype(float)
    if subset.empty:
        return {"mean_abs_mean": float("nan"), "mean_std": float("nan")}
    mean_abs_mean = float(np.mean(np.abs(subset.mean(axis=0))))
    mean_std = float(np.mean(subset.std(axis=0, ddof=1)))
    return {"mean_abs_mean": mean_abs_mean, "mean_std": mean_std}


def add_schema_arguments(parser: argparse.ArgumentParser, prefix: str = "") -> None:
    """Register the schema file and per-column overrides on ``parser``."""
    flag = f"--{prefix}" if prefix else "--"
    parser.add_argument(
        f"{flag}schema",
        type=Path,
        default=None,
        help="JSON file describing id/label/status columns and transforms.",
    )
    parser.add_argument(f"{flag}id-column", type=str, default=None)
    parser.add_argument(
        f"{flag}log2-columns",
        type=str,
        nargs="*",
        default=None,
        help="Columns receiving log2(x + 1) before scaling.",
    )
    parser.add_argument(
        f"{flag}scale-columns",
        type=str,
        nargs="*",
        default=None,
        help="Feature columns to z-score (default: every numeric non-label column).",
    )


def schema_from_args(
    args: argparse.Namespace,
    prefix: str = "",
    label_column: Optional[str] = None,
    status_column: Optional[str] = None,
) -> DatasetSchema:
    key = prefix.replace("-", "_")
    schema_path = getattr(args, f"{key}schema")
    schema = load_schema(schema_path) if schema_path is not None else DatasetSchema()
    return schema.with_overrides(
        id_column=getattr(args, f"{key}id_column"),
        log2_columns=getattr(args, f"{key}log2_columns"),
        scale_columns=getattr(args, f"{key}scale_columns"),
        label_column=label_column,
        status_column=status_column,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="log2-transform and standardize a cohort table by column name."
    )
    parser.add_argument("--data", type=Path, required=True, help="Input CSV/TSV table.")
    add_schema_arguments(parser)
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("outputs/tables/standardized.csv"),
        help="Path to write the standardized table",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    schema = schema_from_args(args)
    frame = load_table(args.data, schema.id_column)
    standardized = preprocess(frame, schema)
    features = schema.feature_columns(frame)
    LOGGER.info("Standardization summary: %s", summarize_standardization(standardized, features))

    args.output.parent.mkdir(parents=True, exist_ok=True)
    standardized.to_csv(args.output)
    LOGGER.info(
        "Wrote standardized table: %s (N=%d, D=%d)", args.output, len(standardized), len(features)
    )


if __name__ == "__main__":
    main()
