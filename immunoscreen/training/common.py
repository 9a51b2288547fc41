"""Common utilities for training and applying the infection classifiers.

This module centralizes the pieces shared by model construction and model
application: the training configuration, the cross-validation folds reused
by every model, the summary metrics computed on each fold, the per-model
candidate grids, and the fitted-classifier container.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import logging

import numpy as np
import pandas as pd
from sklearn.base import ClassifierMixin
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import (
    accuracy_score,
    balanced_accuracy_score,
    cohen_kappa_score,
    f1_score,
    make_scorer,
    precision_score,
    recall_score,
)
from sklearn.model_selection import GridSearchCV, StratifiedKFold
from sklearn.neighbors import KNeighborsClassifier
from sklearn.svm import SVC

LOGGER = logging.getLogger(__name__)

Fold = Tuple[np.ndarray, np.ndarray]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class TrainingConfig:
    target_column: str = "Class"
    n_splits: int = 5
    tune_length: int = 5
    seed: int = 1939
    models: Tuple[str, ...] = ("kNN", "RF", "SVM")
    rf_trees: int = 500
    refit_metric: str = "Accuracy"
    permutation_seed: int = 306
    permutation_repeats: Dict[str, int] = field(
        default_factory=lambda: {"kNN": 30, "SVM": 10}
    )
    n_jobs: Optional[int] = None
    label_prefix: str = "mc"


# ---------------------------------------------------------------------------
# Folds and metrics
# ---------------------------------------------------------------------------

def make_folds(y: Sequence[Any], n_splits: int = 5, seed: int = 1939) -> List[Fold]:
    """Stratified folds, materialized once so every model sees the same split."""
    cv = StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=seed)
    labels = np.asarray(y)
    placeholder = np.zeros((labels.shape[0], 1))
    return [(np.asarray(train), np.asarray(test)) for train, test in cv.split(placeholder, labels)]


def _specificity(y_true, y_pred, negative_label: Any) -> float:
    return float(recall_score(y_true, y_pred, pos_label=negative_label, average="binary", zero_division=0))


def build_scorers(classes: Sequence[Any]) -> Dict[str, Callable]:
    """Accuracy/Kappa/Precision/Recall/F1 family, keyed the way fold tables report them.

    With two classes the first sorted level is the positive one; with more,
    precision/recall/F1 are macro-averaged and specificity is omitted.
    """
    levels = sorted(classes)
    scorers: Dict[str, Callable] = {
        "Accuracy": make_scorer(accuracy_score),
        "Kappa": make_scorer(cohen_kappa_score),
        "Balanced_Accuracy": make_scorer(balanced_accuracy_score),
    }
    if len(levels) == 2:
        positive, negative = levels
        common = {"pos_label": positive, "average": "binary", "zero_division": 0}
        scorers["Precision"] = make_scorer(precision_score, **common)
        scorers["Recall"] = make_scorer(recall_score, **common)
        scorers["F1"] = make_scorer(f1_score, **common)
        scorers["Specificity"] = make_scorer(_specificity, negative_label=negative)
    else:
        common = {"average": "macro", "zero_division": 0}
        scorers["Mean_Precision"] = make_scorer(precision_score, **common)
        scorers["Mean_Recall"] = make_scorer(recall_score, **common)
        scorers["Mean_F1"] = make_scorer(f1_score, **common)
    return scorers


# ---------------------------------------------------------------------------
# Model specifications
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelSpec:
    name: str
    build_estimator: Callable[[int, TrainingConfig], ClassifierMixin]
    candidate_grid: Callable[[int, int], Dict[str, List[Any]]]
    importance: str  # "permutation" | "intrinsic"


def knn_grid(n_features: int, tune_length: int) -> Dict[str, List[Any]]:
    return {"n_neighbors": [5 + 2 * i for i in range(tune_length)]}


def rf_grid(n_features: int, tune_length: int) -> Dict[str, List[Any]]:
    if n_features < 2:
        return {"max_features": [1]}
    values = np.unique(np.floor(np.linspace(2, n_features, tune_length)).astype(int))
    return {"max_features": [int(v) for v in values]}


def svm_grid(n_features: int, tune_length: int) -> Dict[str, List[Any]]:
    return {"C": [float(2.0 ** p) for p in range(-2, tune_length - 2)]}


MODEL_SPECS: Dict[str, ModelSpec] = {
    "kNN": ModelSpec(
        name="kNN",
        build_estimator=lambda seed, cfg: KNeighborsClassifier(),
        candidate_grid=knn_grid,
        importance="permutation",
    ),
    "RF": ModelSpec(
        name="RF",
        build_estimator=lambda seed, cfg: RandomForestClassifier(
            n_estimators=cfg.rf_trees, random_state=seed
        ),
        candidate_grid=rf_grid,
        importance="intrinsic",
    ),
    "SVM": ModelSpec(
        name="SVM",
        build_estimator=lambda seed, cfg: SVC(kernel="rbf", gamma="scale", random_state=seed),
        candidate_grid=svm_grid,
        importance="permutation",
    ),
}


# ---------------------------------------------------------------------------
# Fitted classifiers
# ---------------------------------------------------------------------------

class Classifier(Protocol):
    name: str
    feature_names: List[str]

    def predict(self, frame: pd.DataFrame) -> pd.Series:
        ...


@dataclass
class TrainedClassifier:
    name: str
    estimator: ClassifierMixin
    best_params: Dict[str, Any]
    feature_names: List[str]
    classes: List[Any]
    fold_metrics: pd.DataFrame

    def predict(self, frame: pd.DataFrame) -> pd.Series:
        """Predict with columns reordered to the training order."""
        missing = [c for c in self.feature_names if c not in frame.columns]
        if missing:
            raise KeyError(
                f"{self.name} requires features missing from the table: {', '.join(missing)}"
            )
        predictions = self.estimator.predict(frame[self.feature_names])
        return pd.Series(predictions, index=frame.index, name=self.name)


def split_features(frame: pd.DataFrame, target_column: str) -> Tuple[pd.DataFrame, pd.Series]:
    if target_column not in frame.columns:
        raise KeyError(f"Target column '{target_column}' not found in training table")
    y = frame[target_column].astype(str)
    X = frame.drop(columns=[target_column])
    return X, y


def fit_model(
    spec: ModelSpec,
    X: pd.DataFrame,
    y: pd.Series,
    folds: List[Fold],
    config: TrainingConfig,
) -> TrainedClassifier:
    grid = spec.candidate_grid(X.shape[1], config.tune_length)
    classes = sorted(y.unique().tolist())
    scorers = build_scorers(classes)
    search = GridSearchCV(
        spec.build_estimator(config.seed, config),
        grid,
        cv=folds,
        scoring=scorers,
        refit=config.refit_metric,
        n_jobs=config.n_jobs,
        error_score="raise",
    )
    LOGGER.info("Training %s over %s", spec.name, grid)
    search.fit(X, y)

    best = int(search.best_index_)
    results = search.cv_results_
    rows = []
    for fold_idx in range(len(folds)):
        row = {
            metric: float(results[f"split{fold_idx}_test_{metric}"][best])
            for metric in scorers
        }
        rows.append(row)
    fold_metrics = pd.DataFrame(rows, index=[f"Fold{i + 1}" for i in range(len(folds))])
    fold_metrics.index.name = "Resample"

    LOGGER.info(
        "%s best params %s (mean %s=%.3f)",
        spec.name,
        search.best_params_,
        config.refit_metric,
        float(fold_metrics[config.refit_metric].mean()),
    )
    return TrainedClassifier(
        name=spec.name,
        estimator=search.best_estimator_,
        best_params=dict(search.best_params_),
        feature_names=list(X.columns),
        classes=classes,
        fold_metrics=fold_metrics,
    )
