"""Data audit utilities for the cohort tables.

Checks a raw cohort table before any transform is applied and produces:

- Per-column summary (dtype, missing count, min/max, and whether log2(x + 1)
  is defined for every value).
- Distribution of the class label and/or infection-status column.
- Duplicate identifier check.

Run directly as a script:

```
python -m immunoscreen.data_audit --data data/data2.csv --label-column Class
```
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

LOGGER = logging.getLogger(__name__)


@dataclass
class ColumnRecord:
    """Summary of one table column."""

    column: str
    dtype: str
    missing: int
    minimum: Optional[float]
    maximum: Optional[float]

    @property
    def log2_safe(self) -> bool:
        return self.minimum is not None and self.minimum > -1.0


@dataclass
class AuditSummary:
    n_rows: int
    n_columns: int
    duplicate_ids: List[str]
    columns: List[ColumnRecord]
    distributions: Dict[str, pd.Series]

    def columns_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "column": r.column,
                    "dtype": r.dtype,
                    "missing": r.missing,
                    "min": r.minimum,
                    "max": r.maximum,
                    "log2_safe": r.log2_safe,
                }
                for r in self.columns
            ]
        )


def summarize_columns(frame: pd.DataFrame) -> List[ColumnRecord]:
    records: List[ColumnRecord] = []
    for column in frame.columns:
        series = frame[column]
        numeric = pd.api.types.is_numeric_dtype(series)
        present = series.dropna()
        records.append(
            ColumnRecord(
                column=str(column),
                dtype=str(series.dtype),
                missing=int(series.isna().sum()),
                minimum=float(np.min(present)) if numeric and len(present) else None,
                maximum=float(np.max(present)) if numeric and len(present) else None,
            )
        )
    return records


def audit_table(
    raw: pd.DataFrame,
    id_column: str = "ID",
    categorical_columns: Sequence[str] = (),
) -> AuditSummary:
    """Audit a table that still holds its identifier column."""
    if id_column not in raw.columns:
        raise KeyError(f"Identifier column '{id_column}' not found")
    ids = raw[id_column].astype(str)
    duplicates = sorted(ids[ids.duplicated()].unique().tolist())

    distributions: Dict[str, pd.Series] = {}
    for column in categorical_columns:
        if column not in raw.columns:
            raise KeyError(f"Column '{column}' not found")
        distributions[column] = raw[column].value_counts(dropna=False).sort_index()

    body = raw.drop(columns=[id_column])
    return AuditSummary(
        n_rows=len(raw),
        n_columns=body.shape[1],
        duplicate_ids=duplicates,
        columns=summarize_columns(body),
        distributions=distributions,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audit a cohort table")
    parser.add_argument("--data", type=Path, required=True, help="Cohort CSV/TSV table")
    parser.add_argument("--id-column", type=str, default="ID")
    parser.add_argument(
        "--label-column",
        type=str,
        nargs="*",
        default=[],
        help="Categorical columns whose distribution is reported (class, status).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Optional CSV path for the per-column summary",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    if not args.data.exists():
        raise FileNotFoundError(f"Cohort table not found: {args.data}")
    sep = "\t" if args.data.suffix.lower() in {".tsv", ".txt"} else ","
    raw = pd.read_csv(args.data, sep=sep)

    summary = audit_table(raw, args.id_column, args.label_column)
    LOGGER.info("Rows=%d, columns=%d", summary.n_rows, summary.n_columns)
    if summary.duplicate_ids:
        LOGGER.warning("Duplicate identifiers: %s", ", ".join(summary.duplicate_ids))
    columns = summary.columns_frame()
    LOGGER.info("Column summary:\n%s", columns.to_string(index=False))
    for name, counts in summary.distributions.items():
        LOGGER.info("%s distribution:\n%s", name, counts.to_string())

    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        columns.to_csv(args.output, index=False)
        LOGGER.info("Wrote column summary to %s", args.output)


if __name__ == "__main__":
    main()
