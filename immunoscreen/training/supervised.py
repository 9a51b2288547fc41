"""Train and compare the infection classifiers on the labelled cohort.

Every model is tuned over the same stratified folds so their per-fold metrics
can be compared directly. No winner is picked here; the resample tables are
meant to be read side by side.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging

import pandas as pd

from .common import (
    MODEL_SPECS,
    TrainedClassifier,
    TrainingConfig,
    fit_model,
    make_folds,
    split_features,
)

LOGGER = logging.getLogger(__name__)

COMPARED_METRICS: Sequence[str] = ("Accuracy", "Precision", "Recall", "F1")


@dataclass
class SupervisedResult:
    models: Dict[str, TrainedClassifier]
    folds: List
    resamples: pd.DataFrame
    summary: pd.DataFrame


def train_classifiers(
    frame: pd.DataFrame,
    config: TrainingConfig,
    folds: Optional[List] = None,
) -> Dict[str, TrainedClassifier]:
    X, y = split_features(frame, config.target_column)
    if folds is None:
        folds = make_folds(y, n_splits=config.n_splits, seed=config.seed)
    models: Dict[str, TrainedClassifier] = {}
    for name in config.models:
        if name not in MODEL_SPECS:
            raise KeyError(f"Unknown model '{name}'. Available: {', '.join(MODEL_SPECS)}")
        models[name] = fit_model(MODEL_SPECS[name], X, y, folds, config)
    return models


def collect_resamples(
    models: Dict[str, TrainedClassifier],
    metrics: Sequence[str] = COMPARED_METRICS,
) -> pd.DataFrame:
    """Long table of per-fold values for metrics whose name contains any of ``metrics``."""
    frames = []
    for name, model in models.items():
        selected = [c for c in model.fold_metrics.columns if any(m in c for m in metrics)]
        long = (
            model.fold_metrics[selected]
            .reset_index()
            .melt(id_vars="Resample", var_name="metric", value_name="value")
        )
        long.insert(0, "model", name)
        frames.append(long)
    if not frames:
        return pd.DataFrame(columns=["model", "Resample", "metric", "value"])
    return pd.concat(frames, ignore_index=True)


def summarize_resamples(resamples: pd.DataFrame) -> pd.DataFrame:
    grouped = resamples.groupby(["metric", "model"], sort=True)["value"]
    summary = pd.DataFrame(
        {
            "Min": grouped.min(),
            "1st Qu.": grouped.quantile(0.25),
            "Median": grouped.median(),
            "Mean": grouped.mean(),
            "3rd Qu.": grouped.quantile(0.75),
            "Max": grouped.max(),
        }
    )
    return summary


def run_supervised(frame: pd.DataFrame, config: TrainingConfig) -> SupervisedResult:
    """Train every configured model on shared folds and tabulate their resamples."""
    _, y = split_features(frame, config.target_column)
    LOGGER.info(
        "Training on %d rows, class counts: %s", len(frame), y.value_counts().to_dict()
    )
    folds = make_folds(y, n_splits=config.n_splits, seed=config.seed)
    models = train_classifiers(frame, config, folds=folds)
    resamples = collect_resamples(models)
    summary = summarize_resamples(resamples)
    LOGGER.info("Resampled performance:\n%s", summary.to_string())
    return SupervisedResult(models=models, folds=folds, resamples=resamples, summary=summary)
