"""Export the unaware-infected cohort from the consensus predictions.

Reads outputs/tables/predictions.csv (produced by immunoscreen.classification)
and writes the subjects whose outcome matches the requested category.

Default behavior:
- Select rows where outcome == "unaware-infected"
- Output columns: subject ID, self_status, per-model votes, consensus, outcome

Usage:
    python -m immunoscreen.export_unaware_cohort \
      --predictions outputs/tables/predictions.csv \
      --outcome unaware-infected \
      --output outputs/tables/unaware_infected.csv
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from .consensus import OUTCOMES


def select_cohort(predictions: pd.DataFrame, outcome: str) -> pd.DataFrame:
    if "outcome" not in predictions.columns:
        raise KeyError("Predictions table must contain an 'outcome' column")
    return predictions.loc[predictions["outcome"] == outcome].copy()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export subjects by consensus outcome")
    parser.add_argument(
        "--predictions",
        type=Path,
        default=Path("outputs/tables/predictions.csv"),
        help="Path to the predictions CSV",
    )
    parser.add_argument(
        "--outcome",
        type=str,
        default="unaware-infected",
        choices=list(OUTCOMES),
        help="Outcome category to export",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("outputs/tables/unaware_infected.csv"),
        help="Output CSV path",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    if not args.predictions.exists():
        raise FileNotFoundError(f"Predictions table not found: {args.predictions}")
    predictions = pd.read_csv(args.predictions, index_col=0)
    cohort = select_cohort(predictions, args.outcome)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    cohort.to_csv(args.output)
    print(f"Wrote cohort CSV with {len(cohort)} rows to {args.output}")


if __name__ == "__main__":
    main()
