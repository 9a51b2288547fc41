"""Tests for permutation and intrinsic feature importance."""

from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest
from sklearn.neighbors import KNeighborsClassifier

from immunoscreen.importance import (
    feature_importance,
    intrinsic_importance,
    permutation_importance,
)
from immunoscreen.training.common import TrainedClassifier, TrainingConfig
from immunoscreen.training.supervised import train_classifiers


class SignModel:
    """Predicts ``A`` when ``x`` is positive and records every frame it sees."""

    def __init__(self):
        self.seen = []

    def predict(self, frame):
        self.seen.append(frame.copy())
        return np.where(frame["x"] > 0, "A", "B")


@pytest.fixture
def tiny_frame():
    return pd.DataFrame({"x": [1.0, 1.0, -1.0], "z": [5.0, 6.0, 7.0], "Class": ["A", "A", "B"]})


def test_single_permutation_scores_one_trial(tiny_frame):
    model = SignModel()
    result = permutation_importance(
        model, tiny_frame, "Class", n_permutations=1, seed=306, n_jobs=1, min_rows=2
    )

    assert sorted(result["Feature"]) == ["x", "z"]
    assert len(result) == 2

    y = tiny_frame["Class"].to_numpy()
    baseline_frame, x_trial, z_trial = model.seen
    baseline = np.mean(model.predict(baseline_frame) == y)
    assert baseline == 1.0
    permuted = np.mean(np.where(x_trial["x"] > 0, "A", "B") == y)
    scores = result.set_index("Feature")["Importance"]
    assert scores["x"] == pytest.approx(baseline - permuted)
    assert scores["z"] == 0.0
    assert set(x_trial["x"]) <= {1.0, -1.0}
    pd.testing.assert_series_equal(x_trial["z"], tiny_frame["z"])


def test_resampling_draws_only_observed_values():
    frame = pd.DataFrame(
        {
            "x": [1.0, np.nan, -1.0, 2.0, np.nan, -3.0, 1.5, -0.5, 4.0, -2.0, 0.5, -1.5],
            "Class": ["A", "B", "B", "A", "B", "B", "A", "B", "A", "B", "A", "B"],
        }
    )
    model = SignModel()
    permutation_importance(model, frame, "Class", n_permutations=5, n_jobs=1)

    observed = set(frame["x"].dropna())
    for trial in model.seen[1:]:
        assert not trial["x"].isna().any()
        assert set(trial["x"]) <= observed


def test_preconditions_fail_fast(tiny_frame):
    model = SignModel()
    with pytest.raises(TypeError):
        permutation_importance(model, tiny_frame.to_numpy(), "Class")
    with pytest.raises(KeyError, match="Outcome"):
        permutation_importance(model, tiny_frame, "Outcome")
    with pytest.raises(ValueError, match="more than 10 rows"):
        permutation_importance(model, tiny_frame, "Class")
    assert model.seen == []


def test_result_independent_of_worker_count(separable_frame):
    X = separable_frame.drop(columns=["Class"])
    estimator = KNeighborsClassifier(n_neighbors=5).fit(X, separable_frame["Class"])
    model = TrainedClassifier(
        name="kNN",
        estimator=estimator,
        best_params={"n_neighbors": 5},
        feature_names=list(X.columns),
        classes=["I", "NI"],
        fold_metrics=pd.DataFrame(),
    )

    serial = permutation_importance(model, separable_frame, "Class", n_permutations=4, n_jobs=1)
    parallel = permutation_importance(model, separable_frame, "Class", n_permutations=4, n_jobs=2)

    pd.testing.assert_frame_equal(serial, parallel)
    assert (serial["Importance"].diff().dropna() <= 0).all()


def test_intrinsic_importance_scaled_to_hundred():
    model = SimpleNamespace(
        name="RF",
        estimator=SimpleNamespace(feature_importances_=np.array([0.1, 0.6, 0.3])),
        feature_names=["a", "b", "c"],
    )
    result = intrinsic_importance(model)

    assert result["Feature"].tolist() == ["b", "c", "a"]
    np.testing.assert_allclose(result["Importance"], [100.0, 40.0, 0.0])


def test_intrinsic_importance_requires_attribute():
    model = SimpleNamespace(name="kNN", estimator=object(), feature_names=["a"])
    with pytest.raises(TypeError):
        intrinsic_importance(model)


def test_feature_importance_dispatch(separable_frame):
    config = TrainingConfig(rf_trees=25, n_jobs=1, permutation_repeats={"kNN": 2, "SVM": 2})
    models = train_classifiers(separable_frame, config)
    results = feature_importance(models, separable_frame, config)

    assert set(results) == {"kNN", "RF", "SVM"}
    for frame in results.values():
        assert list(frame.columns) == ["Feature", "Importance"]
        assert sorted(frame["Feature"]) == ["f0", "f1", "f2", "f3"]
    assert results["RF"]["Importance"].max() == pytest.approx(100.0)
    assert results["RF"]["Importance"].min() == pytest.approx(0.0)
