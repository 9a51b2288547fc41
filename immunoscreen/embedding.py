"""Two-dimensional embeddings of the standardized marker table.

Both embedders are seeded explicitly and never see label or status columns;
the ground-truth group is attached afterwards for reporting only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import numpy as np
import pandas as pd
from sklearn.manifold import TSNE
import umap  # type: ignore

LOGGER = logging.getLogger(__name__)

EMBEDDING_COLUMNS = ["dim1", "dim2"]


@dataclass(frozen=True)
class EmbeddingResult:
    name: str
    coordinates: pd.DataFrame
    params: Dict[str, object] = field(default_factory=dict)
    group: Optional[pd.Series] = None

    def with_group(self, group: pd.Series) -> "EmbeddingResult":
        aligned = group.reindex(self.coordinates.index)
        return EmbeddingResult(self.name, self.coordinates, dict(self.params), aligned)

    def to_frame(self) -> pd.DataFrame:
        frame = self.coordinates.copy()
        if self.group is not None:
            frame["group"] = self.group
        return frame


class Embedder(Protocol):
    name: str

    def embed(self, features: pd.DataFrame) -> EmbeddingResult:
        ...


def _as_result(name: str, features: pd.DataFrame, layout: np.ndarray, params: Dict[str, object]) -> EmbeddingResult:
    coordinates = pd.DataFrame(
        np.asarray(layout, dtype=float), index=features.index, columns=EMBEDDING_COLUMNS
    )
    return EmbeddingResult(name=name, coordinates=coordinates, params=params)


@dataclass
class UMAPEmbedder:
    min_dist: float = 0.5
    n_neighbors: int = 15
    seed: int = 1778
    name: str = "UMAP"

    def embed(self, features: pd.DataFrame) -> EmbeddingResult:
        LOGGER.info(
            "Running UMAP (n_neighbors=%s, min_dist=%.2f, seed=%s)",
            self.n_neighbors,
            self.min_dist,
            self.seed,
        )
        reducer = umap.UMAP(
            n_components=2,
            n_neighbors=int(self.n_neighbors),
            min_dist=float(self.min_dist),
            random_state=self.seed,
            metric="euclidean",
        )
        layout = reducer.fit_transform(features.to_numpy(dtype=float))
        return _as_result(
            self.name,
            features,
            layout,
            {"n_neighbors": int(self.n_neighbors), "min_dist": float(self.min_dist), "seed": self.seed},
        )


@dataclass
class TSNEEmbedder:
    """t-SNE on already-scaled data; no normalization happens here."""

    perplexity: float = 37.0
    seed: int = 1848
    init: str = "random"
    max_iter: int = 1000
    name: str = "t-SNE"

    def embed(self, features: pd.DataFrame) -> EmbeddingResult:
        n_samples = features.shape[0]
        if self.perplexity >= n_samples:
            raise ValueError(
                f"perplexity ({self.perplexity}) must be smaller than the number of rows ({n_samples})"
            )
        LOGGER.info("Running t-SNE (perplexity=%s, seed=%s)", self.perplexity, self.seed)
        tsne = TSNE(
            n_components=2,
            perplexity=float(self.perplexity),
            init=self.init,
            random_state=self.seed,
            learning_rate="auto",
            max_iter=int(self.max_iter),
            metric="euclidean",
        )
        layout = tsne.fit_transform(features.to_numpy(dtype=float))
        return _as_result(
            self.name,
            features,
            layout,
            {"perplexity": float(self.perplexity), "init": self.init, "seed": self.seed},
        )
