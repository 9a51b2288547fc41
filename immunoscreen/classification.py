"""CLI for unaware-infection detection.

Trains k-NN, Random Forest and RBF-SVM classifiers on the labelled cohort,
reports their resampled performance and feature importance, then applies all
three to the unlabelled cohort and crosses the majority vote with the
self-reported infection status. Delegates to ``training.supervised`` and
``training.application``.

Usage:
    python -m immunoscreen.classification --train data/data2.csv --train-schema data2_schema.json \
        --apply data/data3.csv --apply-schema data3_schema.json
"""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

import pandas as pd

from .config import STATUS_COLUMN
from .consensus import tabulate_outcomes
from .importance import feature_importance
from .preprocessing import add_schema_arguments, load_table, preprocess, schema_from_args
from .training.application import apply_models
from .training.common import TrainingConfig
from .training.supervised import SupervisedResult, run_supervised

LOGGER = logging.getLogger(__name__)


@dataclass
class ClassificationResult:
    supervised: SupervisedResult
    importance: Dict[str, pd.DataFrame]
    predictions: pd.DataFrame
    outcome_counts: pd.Series


def parse_args(args: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument(
        "--train",
        type=Path,
        required=True,
        help="Labelled cohort table used for model construction.",
    )
    add_schema_arguments(parser, prefix="train-")
    parser.add_argument("--target-column", type=str, default="Class")
    parser.add_argument(
        "--apply",
        type=Path,
        required=True,
        help="Unlabelled cohort table the trained models are applied to.",
    )
    add_schema_arguments(parser, prefix="apply-")
    parser.add_argument(
        "--status-column",
        type=str,
        default=STATUS_COLUMN,
        help="Self-reported infection code in the unlabelled table (0 none, 1 pre-boost, 2 post-boost).",
    )
    parser.add_argument("--folds", type=int, default=5)
    parser.add_argument("--tune-length", type=int, default=5)
    parser.add_argument("--seed", type=int, default=1939)
    parser.add_argument("--rf-trees", type=int, default=500)
    parser.add_argument("--permutation-seed", type=int, default=306)
    parser.add_argument("--knn-permutations", type=int, default=30)
    parser.add_argument("--svm-permutations", type=int, default=10)
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=None,
        help="Workers for grid search and permutation importance (default: CPU count - 1).",
    )
    parser.add_argument(
        "--label-prefix",
        type=str,
        default="mc",
        help="Class-level prefix stripped from predictions before voting.",
    )
    parser.add_argument(
        "--output-root",
        type=Path,
        default=None,
        help="Optional base directory for result tables.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(args=args)


def config_from_args(parsed: argparse.Namespace) -> TrainingConfig:
    return TrainingConfig(
        target_column=parsed.target_column,
        n_splits=parsed.folds,
        tune_length=parsed.tune_length,
        seed=parsed.seed,
        rf_trees=parsed.rf_trees,
        permutation_seed=parsed.permutation_seed,
        permutation_repeats={"kNN": parsed.knn_permutations, "SVM": parsed.svm_permutations},
        n_jobs=parsed.n_jobs,
        label_prefix=parsed.label_prefix,
    )


def write_tables(result: ClassificationResult, output_root: Path) -> None:
    tables = output_root / "tables"
    tables.mkdir(parents=True, exist_ok=True)
    result.supervised.resamples.to_csv(tables / "resamples.csv", index=False)
    result.supervised.summary.to_csv(tables / "resample_summary.csv")
    for name, frame in result.importance.items():
        frame.to_csv(tables / f"importance_{name}.csv", index=False)
    result.predictions.to_csv(tables / "predictions.csv")
    result.outcome_counts.to_csv(tables / "outcome_counts.csv")
    LOGGER.info("Wrote classification tables under %s", tables)


def main(args: Optional[Sequence[str]] = None) -> ClassificationResult:
    parsed = parse_args(args)
    logging.basicConfig(
        level=getattr(logging, parsed.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    config = config_from_args(parsed)

    # Model construction
    train_schema = schema_from_args(parsed, prefix="train-", label_column=config.target_column)
    train_table = load_table(parsed.train, train_schema.id_column)
    train_features = train_schema.feature_columns(train_table)
    train_frame = preprocess(train_table, train_schema)[train_features + [config.target_column]]
    supervised = run_supervised(train_frame, config)
    importance = feature_importance(supervised.models, train_frame, config)

    # Model application
    apply_schema = schema_from_args(parsed, prefix="apply-", status_column=parsed.status_column)
    apply_table = load_table(parsed.apply, apply_schema.id_column)
    if apply_schema.status_column not in apply_table.columns:
        raise KeyError(f"Status column '{apply_schema.status_column}' not found in {parsed.apply}")
    self_status = apply_table[apply_schema.status_column]
    apply_features = apply_schema.feature_columns(apply_table)
    apply_frame = preprocess(apply_table, apply_schema)[apply_features]

    predictions = apply_models(
        supervised.models, apply_frame, self_status, label_prefix=config.label_prefix
    )
    outcome_counts = tabulate_outcomes(predictions["outcome"])
    LOGGER.info("Outcome counts:\n%s", outcome_counts.to_string())

    result = ClassificationResult(
        supervised=supervised,
        importance=importance,
        predictions=predictions,
        outcome_counts=outcome_counts,
    )
    if parsed.output_root is not None:
        write_tables(result, parsed.output_root)
    return result


if __name__ == "__main__":  # pragma: no cover
    main()
