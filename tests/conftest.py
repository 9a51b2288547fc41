"""Pytest configuration and fixtures."""

import json

import numpy as np
import pandas as pd
import pytest

from immunoscreen.config import DatasetSchema

MARKERS = [f"marker_{i}" for i in range(1, 7)]
LOG_MARKERS = MARKERS[:4]


def make_cohort(n_per_class=30, seed=0, label_column="Class", status_column=None):
    """Positive-valued markers with infected subjects shifted upwards."""
    rng = np.random.default_rng(seed)
    rows = []
    for label, shift in (("I", 3.0), ("NI", 0.0)):
        for _ in range(n_per_class):
            values = rng.lognormal(mean=1.0 + shift, sigma=0.3, size=len(MARKERS))
            rows.append((label, values))

    frame = pd.DataFrame([values for _, values in rows], columns=MARKERS)
    frame.insert(0, "ID", [f"S{i:03d}" for i in range(len(rows))])
    labels = [label for label, _ in rows]
    if label_column:
        frame[label_column] = labels
    if status_column:
        frame[status_column] = [
            int(rng.choice([1, 2])) if label == "I" else 0 for label in labels
        ]
    return frame


@pytest.fixture
def labelled_table():
    return make_cohort()


@pytest.fixture
def schema():
    return DatasetSchema(
        id_column="ID",
        log2_columns=tuple(LOG_MARKERS),
        scale_columns=tuple(MARKERS),
        label_column="Class",
    )


@pytest.fixture
def separable_frame():
    """Standardized-looking features plus a Class column, easy to classify."""
    rng = np.random.default_rng(42)
    n = 30
    X = np.vstack([rng.normal(2.0, 0.5, size=(n, 4)), rng.normal(-2.0, 0.5, size=(n, 4))])
    frame = pd.DataFrame(
        X,
        columns=[f"f{i}" for i in range(4)],
        index=pd.Index([f"S{i:03d}" for i in range(2 * n)], name="ID"),
    )
    frame["Class"] = ["I"] * n + ["NI"] * n
    return frame


@pytest.fixture
def schema_file(tmp_path):
    def _write(name, **payload):
        path = tmp_path / name
        path.write_text(json.dumps(payload))
        return path

    return _write
