"""Apply the trained classifiers to the unlabelled cohort.

Predictions from every model are cleaned of the class-level prefix, combined
by majority vote and crossed with the collapsed self-reported status.
"""
from __future__ import annotations

from typing import Dict, List, Sequence
import logging

import pandas as pd

from ..consensus import (
    classify_outcome,
    collapse_self_report,
    majority_vote,
    strip_label_prefix,
)
from .common import Classifier

LOGGER = logging.getLogger(__name__)


def align_features(frame: pd.DataFrame, feature_names: Sequence[str]) -> pd.DataFrame:
    """Keep the columns shared with training, in training order."""
    extra = [c for c in frame.columns if c not in feature_names]
    if extra:
        LOGGER.info("Dropping columns absent from training: %s", ", ".join(map(str, extra)))
    missing = [c for c in feature_names if c not in frame.columns]
    if missing:
        raise KeyError(f"Training features missing from table: {', '.join(missing)}")
    return frame[list(feature_names)]


def predict_all(
    models: Dict[str, Classifier],
    frame: pd.DataFrame,
    label_prefix: str = "mc",
) -> pd.DataFrame:
    columns: List[pd.Series] = []
    for name, model in models.items():
        predictions = model.predict(align_features(frame, model.feature_names))
        predictions = strip_label_prefix(predictions, label_prefix)
        LOGGER.info("%s predictions: %s", name, predictions.value_counts().to_dict())
        columns.append(predictions.rename(name))
    return pd.concat(columns, axis=1)


def build_consensus(predictions: pd.DataFrame, self_status: pd.Series) -> pd.DataFrame:
    """Add ``self_status``, ``consensus`` and ``outcome`` to per-model predictions."""
    result = pd.DataFrame(index=predictions.index)
    result["self_status"] = self_status.reindex(predictions.index).map(collapse_self_report)
    result = result.join(predictions)
    result["consensus"] = [majority_vote(row) for row in predictions.itertuples(index=False)]
    result["outcome"] = [
        classify_outcome(s, c) for s, c in zip(result["self_status"], result["consensus"])
    ]
    return result


def apply_models(
    models: Dict[str, Classifier],
    frame: pd.DataFrame,
    self_status: pd.Series,
    label_prefix: str = "mc",
) -> pd.DataFrame:
    predictions = predict_all(models, frame, label_prefix=label_prefix)
    return build_consensus(predictions, self_status)
