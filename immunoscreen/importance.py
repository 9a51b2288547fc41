"""Feature importance for the trained classifiers.

k-NN and SVM have no built-in importance, so each feature is scored by how
much accuracy drops when its values are resampled. The Random Forest reports
its impurity importance, rescaled to 0-100.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, cpu_count, delayed

from .training.common import MODEL_SPECS, TrainedClassifier, TrainingConfig

LOGGER = logging.getLogger(__name__)


def _accuracy(model: Any, X: pd.DataFrame, y: np.ndarray) -> float:
    predictions = np.asarray(model.predict(X)).astype(str)
    return float(np.mean(predictions == y))


def _permuted_drops(
    model: Any,
    X: pd.DataFrame,
    y: np.ndarray,
    feature: str,
    n_permutations: int,
    seed: np.random.SeedSequence,
    baseline: float,
) -> Dict[str, Any]:
    rng = np.random.default_rng(seed)
    observed = X[feature].dropna().to_numpy()
    drops = np.empty(n_permutations, dtype=float)
    for i in range(n_permutations):
        permuted = X.copy()
        permuted[feature] = rng.choice(observed, size=len(X), replace=True)
        drops[i] = baseline - _accuracy(model, permuted, y)
    return {"Feature": feature, "Importance": float(np.median(drops))}


def permutation_importance(
    model: Any,
    data: pd.DataFrame,
    target_column: str,
    n_permutations: int = 10,
    seed: int = 306,
    n_jobs: Optional[int] = None,
    min_rows: int = 10,
) -> pd.DataFrame:
    """Median accuracy drop per feature when that feature is resampled.

    Each feature gets its own child seed spawned from ``seed``, so the result
    does not depend on ``n_jobs``. ``data`` must hold more than ``min_rows``
    rows and the target column.
    """
    if not isinstance(data, pd.DataFrame):
        raise TypeError(f"data must be a pandas DataFrame, got {type(data).__name__}")
    if target_column not in data.columns:
        raise KeyError(f"Target column '{target_column}' not found in data")
    if len(data) <= min_rows:
        raise ValueError(
            f"Permutation importance needs more than {min_rows} rows, got {len(data)}"
        )
    if n_permutations < 1:
        raise ValueError("n_permutations must be at least 1")

    y = data[target_column].astype(str).to_numpy()
    X = data.drop(columns=[target_column])
    baseline = _accuracy(model, X, y)

    if n_jobs is None:
        n_jobs = max(1, cpu_count() - 1)
    LOGGER.info(
        "Permutation importance: %d features x %d permutations (baseline accuracy %.3f, n_jobs=%d)",
        X.shape[1],
        n_permutations,
        baseline,
        n_jobs,
    )

    seeds = np.random.SeedSequence(seed).spawn(X.shape[1])
    rows = Parallel(n_jobs=n_jobs)(
        delayed(_permuted_drops)(model, X, y, feature, n_permutations, child, baseline)
        for feature, child in zip(X.columns, seeds)
    )
    result = pd.DataFrame(rows, columns=["Feature", "Importance"])
    return result.sort_values("Importance", ascending=False, kind="mergesort").reset_index(drop=True)


def intrinsic_importance(model: TrainedClassifier) -> pd.DataFrame:
    """Impurity importance min-max rescaled to 0-100."""
    raw = getattr(model.estimator, "feature_importances_", None)
    if raw is None:
        raise TypeError(f"{model.name} does not expose feature_importances_")
    values = np.asarray(raw, dtype=float)
    span = values.max() - values.min()
    scaled = (values - values.min()) / span * 100.0 if span > 0 else np.zeros_like(values)
    result = pd.DataFrame({"Feature": model.feature_names, "Importance": scaled})
    return result.sort_values("Importance", ascending=False, kind="mergesort").reset_index(drop=True)


def feature_importance(
    models: Dict[str, TrainedClassifier],
    data: pd.DataFrame,
    config: TrainingConfig,
) -> Dict[str, pd.DataFrame]:
    results: Dict[str, pd.DataFrame] = {}
    for name, model in models.items():
        if MODEL_SPECS[name].importance == "intrinsic":
            results[name] = intrinsic_importance(model)
        else:
            results[name] = permutation_importance(
                model,
                data,
                config.target_column,
                n_permutations=config.permutation_repeats.get(name, 10),
                seed=config.permutation_seed,
                n_jobs=config.n_jobs,
            )
        LOGGER.info("%s importance:\n%s", name, results[name].to_string(index=False))
    return results
