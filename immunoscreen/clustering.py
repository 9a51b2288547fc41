"""Dimensionality reduction and Gaussian-mixture clustering of immune profiles.

This module runs the unsupervised half of the analysis on the first cohort:

* log2-transform and standardize the marker table (``immunoscreen.preprocessing``).
* Embed the standardized markers in 2D with UMAP and with t-SNE.
* Fit a Gaussian mixture on each embedding, letting BIC choose both the number
  of components and the covariance structure.
* Score each partition with the within-cluster sum of squares and the average
  silhouette width, and tabulate UMAP against t-SNE side by side.

Run the module directly as a script to execute the pipeline::

    python -m immunoscreen.clustering --data data/data1.csv --schema data1_schema.json

The schema is a JSON object naming the ID column and the marker columns that
receive log2(x + 1), e.g. ``{"id_column": "ID", "log2_columns": ["marker_1", ...]}``;
running without any log2 columns is an error. The status column defaults to
``Infection_0_1pre_2post``.

The statistics are a comparison aid only: which embedding gives the more
convincing subgroups is decided by the analyst, not by this code. The
infection-status column is carried along so the assignments table can be
read against known history, but it never enters the embedding or the fit.
"""

from __future__ import annotations

import argparse
import itertools
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import silhouette_score
from sklearn.mixture import GaussianMixture

from .config import STATUS_COLUMN
from .embedding import EMBEDDING_COLUMNS, EmbeddingResult, TSNEEmbedder, UMAPEmbedder
from .preprocessing import (
    add_schema_arguments,
    load_table,
    preprocess,
    schema_from_args,
    summarize_standardization,
)

LOGGER = logging.getLogger(__name__)

COVARIANCE_TYPES: Tuple[str, ...] = ("full", "tied", "diag", "spherical")

# ----------------------------------------------------------------------------
# Data containers
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class ClusteringResult:
    space: str
    labels: pd.Series
    n_components: int
    covariance_type: str
    bic: float
    params: Dict[str, object] = field(default_factory=dict)


class Clusterer(Protocol):
    def fit(self, embedding: EmbeddingResult) -> ClusteringResult:
        ...


# ----------------------------------------------------------------------------
# Gaussian mixture with BIC model selection
# ----------------------------------------------------------------------------


@dataclass
class GaussianMixtureClusterer:
    """Fit every (components, covariance) pair and keep the lowest BIC."""

    max_components: int = 9
    covariance_types: Sequence[str] = COVARIANCE_TYPES
    n_init: int = 1
    seed: int = 0

    def fit(self, embedding: EmbeddingResult) -> ClusteringResult:
        if not self.covariance_types:
            raise ValueError("At least one covariance type is required")
        unknown = [c for c in self.covariance_types if c not in COVARIANCE_TYPES]
        if unknown:
            raise ValueError(f"Unknown covariance types: {', '.join(unknown)}")
        if self.max_components < 1:
            raise ValueError(f"max_components must be at least 1, got {self.max_components}")
        data = embedding.coordinates[EMBEDDING_COLUMNS].to_numpy(dtype=float)
        upper = max(1, min(int(self.max_components), data.shape[0]))
        best: Optional[Tuple[float, int, str, GaussianMixture]] = None
        for n_components, covariance_type in itertools.product(
            range(1, upper + 1), self.covariance_types
        ):
            model = GaussianMixture(
                n_components=n_components,
                covariance_type=covariance_type,
                n_init=int(self.n_init),
                random_state=self.seed,
            )
            model.fit(data)
            bic = float(model.bic(data))
            LOGGER.debug(
                "GMM on %s: k=%d covariance=%s BIC=%.3f",
                embedding.name,
                n_components,
                covariance_type,
                bic,
            )
            if best is None or bic < best[0]:
                best = (bic, n_components, covariance_type, model)

        bic, n_components, covariance_type, model = best
        labels = pd.Series(
            model.predict(data) + 1, index=embedding.coordinates.index, name="cluster"
        )
        LOGGER.info(
            "Selected GMM for %s: %d components, %s covariance (BIC=%.3f)",
            embedding.name,
            n_components,
            covariance_type,
            bic,
        )
        return ClusteringResult(
            space=embedding.name,
            labels=labels,
            n_components=n_components,
            covariance_type=covariance_type,
            bic=bic,
            params={"max_components": upper, "n_init": int(self.n_init), "seed": self.seed},
        )


# ----------------------------------------------------------------------------
# Cluster statistics
# ----------------------------------------------------------------------------


def within_cluster_ss(coordinates: pd.DataFrame, labels: pd.Series) -> float:
    """Sum of squared Euclidean distances of each point to its cluster mean."""
    data = coordinates[EMBEDDING_COLUMNS].astype(float)
    grouped = data.groupby(labels.reindex(data.index).to_numpy())
    centered = data - grouped.transform("mean")
    return float((centered ** 2).to_numpy().sum())


def average_silhouette(coordinates: pd.DataFrame, labels: pd.Series) -> float:
    data = coordinates[EMBEDDING_COLUMNS].to_numpy(dtype=float)
    values = labels.reindex(coordinates.index).to_numpy()
    n_labels = np.unique(values).size
    if n_labels < 2 or n_labels > data.shape[0] - 1:
        return float("nan")
    return float(silhouette_score(data, values, metric="euclidean"))


def cluster_statistics(embedding: EmbeddingResult, result: ClusteringResult) -> Dict[str, object]:
    return {
        "within_cluster_ss": within_cluster_ss(embedding.coordinates, result.labels),
        "avg_silwidth": average_silhouette(embedding.coordinates, result.labels),
        "n_components": result.n_components,
        "covariance_type": result.covariance_type,
        "bic": result.bic,
    }


def compare_clusterings(
    runs: Mapping[str, Tuple[EmbeddingResult, ClusteringResult]],
) -> pd.DataFrame:
    """One row of statistics per embedding method, in insertion order."""
    rows = {name: cluster_statistics(embedding, result) for name, (embedding, result) in runs.items()}
    frame = pd.DataFrame.from_dict(rows, orient="index")
    frame.index.name = "method"
    return frame


# ----------------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class UnsupervisedResult:
    embeddings: Dict[str, EmbeddingResult]
    clusterings: Dict[str, ClusteringResult]
    statistics: pd.DataFrame

    def assignments(self) -> pd.DataFrame:
        parts = []
        group = None
        for name, embedding in self.embeddings.items():
            if embedding.group is not None and group is None:
                group = embedding.group.rename("group")
            slug = name.lower().replace("-", "")
            frame = embedding.coordinates.add_prefix(f"{slug}_")
            frame[f"{slug}_cluster"] = self.clusterings[name].labels
            parts.append(frame)
        if group is not None:
            parts.insert(0, group.to_frame())
        return pd.concat(parts, axis=1)


def run_unsupervised(
    features: pd.DataFrame,
    group: Optional[pd.Series] = None,
    umap_embedder: Optional[UMAPEmbedder] = None,
    tsne_embedder: Optional[TSNEEmbedder] = None,
    clusterer: Optional[GaussianMixtureClusterer] = None,
) -> UnsupervisedResult:
    """Embed ``features`` with UMAP and t-SNE and cluster both embeddings."""
    embedders = [umap_embedder or UMAPEmbedder(), tsne_embedder or TSNEEmbedder()]
    clusterer = clusterer or GaussianMixtureClusterer()

    embeddings: Dict[str, EmbeddingResult] = {}
    clusterings: Dict[str, ClusteringResult] = {}
    for embedder in embedders:
        embedding = embedder.embed(features)
        if group is not None:
            embedding = embedding.with_group(group)
        embeddings[embedding.name] = embedding
        clusterings[embedding.name] = clusterer.fit(embedding)

    statistics = compare_clusterings(
        {name: (embeddings[name], clusterings[name]) for name in embeddings}
    )
    return UnsupervisedResult(embeddings=embeddings, clusterings=clusterings, statistics=statistics)


def write_tables(result: UnsupervisedResult, output_root: Path) -> None:
    tables = output_root / "tables"
    tables.mkdir(parents=True, exist_ok=True)
    result.statistics.to_csv(tables / "cluster_statistics.csv")
    result.assignments().to_csv(tables / "cluster_assignments.csv")
    params = {
        name: {**embedding.params, **result.clusterings[name].params}
        for name, embedding in result.embeddings.items()
    }
    (tables / "cluster_params.json").write_text(json.dumps(params, indent=2, sort_keys=True))
    LOGGER.info("Wrote clustering tables under %s", tables)


# ----------------------------------------------------------------------------
# Command-line interface
# ----------------------------------------------------------------------------


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="UMAP / t-SNE + GMM clustering of immune profiles")
    parser.add_argument(
        "--data",
        type=Path,
        required=True,
        help="Path to the cohort table (CSV/TSV).",
    )
    add_schema_arguments(parser)
    parser.add_argument(
        "--status-column",
        type=str,
        default=None,
        help=(
            "Ground-truth infection status column, excluded from the features "
            f"(default: schema value, else {STATUS_COLUMN})."
        ),
    )
    parser.add_argument("--umap-min-dist", type=float, default=0.5)
    parser.add_argument("--umap-neighbors", type=int, default=15)
    parser.add_argument("--umap-seed", type=int, default=1778)
    parser.add_argument("--tsne-perplexity", type=float, default=37.0)
    parser.add_argument("--tsne-seed", type=int, default=1848)
    parser.add_argument(
        "--gmm-max-components",
        type=int,
        default=9,
        help="Largest mixture size considered by BIC selection.",
    )
    parser.add_argument("--gmm-seed", type=int, default=983)
    parser.add_argument(
        "--output-root",
        type=Path,
        default=None,
        help="Optional root directory for the statistics and assignment tables.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> UnsupervisedResult:
    args = parse_args(argv)
    configure_logging(args.log_level)

    schema = schema_from_args(args, status_column=args.status_column)
    table = load_table(args.data, schema.id_column)
    if schema.status_column is None:
        schema = schema.with_overrides(status_column=STATUS_COLUMN)
        if STATUS_COLUMN not in table.columns:
            LOGGER.warning(
                "No status column %s in %s; assignments carry no group", STATUS_COLUMN, args.data
            )
    elif schema.status_column not in table.columns:
        raise KeyError(f"Status column '{schema.status_column}' not found in {args.data}")
    features = schema.feature_columns(table)
    standardized = preprocess(table, schema)
    LOGGER.info(
        "Standardization summary: %s", summarize_standardization(standardized, features)
    )
    group = table[schema.status_column] if schema.status_column in table.columns else None

    result = run_unsupervised(
        standardized[features],
        group=group,
        umap_embedder=UMAPEmbedder(
            min_dist=args.umap_min_dist, n_neighbors=args.umap_neighbors, seed=args.umap_seed
        ),
        tsne_embedder=TSNEEmbedder(perplexity=args.tsne_perplexity, seed=args.tsne_seed),
        clusterer=GaussianMixtureClusterer(
            max_components=args.gmm_max_components, seed=args.gmm_seed
        ),
    )
    LOGGER.info("Clustering statistics:\n%s", result.statistics.to_string())

    if args.output_root is not None:
        write_tables(result, args.output_root)
    return result


if __name__ == "__main__":
    main()
