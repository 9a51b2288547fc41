"""Tests for embeddings, Gaussian-mixture selection and cluster statistics."""

import numpy as np
import pandas as pd
import pytest
from sklearn.metrics import silhouette_score

from immunoscreen.clustering import (
    GaussianMixtureClusterer,
    average_silhouette,
    compare_clusterings,
    run_unsupervised,
    within_cluster_ss,
)
from immunoscreen.embedding import EMBEDDING_COLUMNS, EmbeddingResult, TSNEEmbedder, UMAPEmbedder


def _coords(points, index=None):
    return pd.DataFrame(np.asarray(points, dtype=float), columns=EMBEDDING_COLUMNS, index=index)


@pytest.fixture
def three_blobs():
    rng = np.random.default_rng(7)
    centers = [(0.0, 0.0), (12.0, 0.0), (0.0, 12.0)]
    points = np.vstack([rng.normal(c, 0.3, size=(30, 2)) for c in centers])
    index = pd.Index([f"S{i:03d}" for i in range(len(points))], name="ID")
    return EmbeddingResult(name="toy", coordinates=_coords(points, index))


@pytest.fixture
def marker_features():
    rng = np.random.default_rng(3)
    X = np.vstack([rng.normal(2.0, 0.4, size=(25, 12)), rng.normal(-2.0, 0.4, size=(25, 12))])
    return pd.DataFrame(
        X,
        columns=[f"m{i}" for i in range(12)],
        index=pd.Index([f"S{i:03d}" for i in range(50)], name="ID"),
    )


def test_within_cluster_ss_hand_computed():
    coords = _coords([(0, 0), (2, 0), (10, 10)])
    labels = pd.Series([1, 1, 2])
    assert within_cluster_ss(coords, labels) == pytest.approx(2.0)


def test_average_silhouette_matches_sklearn():
    coords = _coords([(0, 0), (0, 1), (5, 5), (5, 6), (6, 5)])
    labels = pd.Series([1, 1, 2, 2, 2])
    expected = silhouette_score(coords.to_numpy(), labels.to_numpy())
    assert average_silhouette(coords, labels) == pytest.approx(expected)


def test_average_silhouette_single_cluster_is_nan():
    coords = _coords([(0, 0), (1, 1), (2, 2)])
    assert np.isnan(average_silhouette(coords, pd.Series([1, 1, 1])))


def test_gmm_selects_component_count_by_bic(three_blobs):
    result = GaussianMixtureClusterer(max_components=6, seed=0).fit(three_blobs)

    assert result.n_components == 3
    assert result.covariance_type in {"full", "tied", "diag", "spherical"}
    assert result.labels.index.equals(three_blobs.coordinates.index)
    assert result.labels.nunique() == 3
    # each blob maps to a single cluster
    for start in (0, 30, 60):
        assert result.labels.iloc[start:start + 30].nunique() == 1


def test_gmm_is_seeded(three_blobs):
    first = GaussianMixtureClusterer(max_components=4, seed=11).fit(three_blobs)
    second = GaussianMixtureClusterer(max_components=4, seed=11).fit(three_blobs)
    pd.testing.assert_series_equal(first.labels, second.labels)
    assert first.bic == second.bic


@pytest.mark.parametrize(
    "kwargs, match",
    [
        ({"covariance_types": ()}, "At least one covariance type"),
        ({"covariance_types": ("full", "VVV")}, "VVV"),
        ({"max_components": 0}, "max_components"),
    ],
)
def test_gmm_rejects_empty_search_space(three_blobs, kwargs, match):
    with pytest.raises(ValueError, match=match):
        GaussianMixtureClusterer(**kwargs).fit(three_blobs)


def test_compare_clusterings_table(three_blobs):
    result = GaussianMixtureClusterer(max_components=4).fit(three_blobs)
    table = compare_clusterings({"UMAP": (three_blobs, result), "t-SNE": (three_blobs, result)})

    assert list(table.index) == ["UMAP", "t-SNE"]
    assert {"within_cluster_ss", "avg_silwidth", "n_components"} <= set(table.columns)
    assert table.loc["UMAP", "avg_silwidth"] > 0.8


def test_tsne_rejects_large_perplexity(marker_features):
    with pytest.raises(ValueError, match="perplexity"):
        TSNEEmbedder(perplexity=50).embed(marker_features)


def test_tsne_reproducible_with_seed(marker_features):
    embedder = TSNEEmbedder(perplexity=10, seed=5, max_iter=300)
    first = embedder.embed(marker_features)
    second = embedder.embed(marker_features)

    assert list(first.coordinates.columns) == EMBEDDING_COLUMNS
    assert first.coordinates.index.equals(marker_features.index)
    np.testing.assert_allclose(
        first.coordinates.to_numpy(), second.coordinates.to_numpy(), rtol=1e-4, atol=1e-4
    )


def test_umap_reproducible_with_seed(marker_features):
    embedder = UMAPEmbedder(min_dist=0.5, n_neighbors=10, seed=1778)
    first = embedder.embed(marker_features)
    second = embedder.embed(marker_features)

    assert first.coordinates.shape == (50, 2)
    assert first.params["min_dist"] == 0.5
    np.testing.assert_allclose(
        first.coordinates.to_numpy(), second.coordinates.to_numpy(), rtol=1e-4, atol=1e-4
    )


def test_group_is_attached_without_affecting_layout(marker_features):
    group = pd.Series([0] * 25 + [2] * 25, index=marker_features.index, name="status")
    embedding = TSNEEmbedder(perplexity=10, seed=5, max_iter=300).embed(marker_features)
    grouped = embedding.with_group(group)

    pd.testing.assert_frame_equal(embedding.coordinates, grouped.coordinates)
    assert grouped.to_frame()["group"].tolist() == group.tolist()


def test_run_unsupervised_end_to_end(marker_features):
    group = pd.Series([0] * 25 + [1] * 25, index=marker_features.index)
    result = run_unsupervised(
        marker_features,
        group=group,
        umap_embedder=UMAPEmbedder(n_neighbors=10),
        tsne_embedder=TSNEEmbedder(perplexity=10, max_iter=300),
        clusterer=GaussianMixtureClusterer(max_components=4),
    )

    assert list(result.statistics.index) == ["UMAP", "t-SNE"]
    assert (result.statistics["within_cluster_ss"] >= 0).all()
    assignments = result.assignments()
    assert list(assignments.columns) == [
        "group",
        "umap_dim1",
        "umap_dim2",
        "umap_cluster",
        "tsne_dim1",
        "tsne_dim2",
        "tsne_cluster",
    ]
    assert len(assignments) == 50
