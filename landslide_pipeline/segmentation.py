"""
Unsupervised K-means segmentation of change images.

Training pixels are sampled from a sub-region; the fitted model then labels
every defined pixel of the full image.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from sklearn.cluster import KMeans

from .raster import Raster, SchemaMismatchError

logger = logging.getLogger(__name__)

LABEL_BAND = "cluster"


class DegenerateTrainingError(ValueError):
    """Raised when the training sample cannot support k clusters."""


# =============================================================================
# Sampling
# =============================================================================

def sample_pixels(
    image: Raster,
    region: Optional[Any] = None,
    num_pixels: int = 5000,
    seed: Optional[int] = None
) -> np.ndarray:
    """
    Draw random pixel vectors from an image.

    Pixels undefined in any band are never drawn. When fewer valid pixels
    than ``num_pixels`` exist, all of them are returned.

    Args:
        image: Change image
        region: Training geometry (GeoJSON dict or shapely), None for whole image
        num_pixels: Maximum sample size
        seed: Random seed

    Returns:
        Array of shape (n, bands)

    Raises:
        DegenerateTrainingError: If the region holds no valid pixel
    """
    if num_pixels < 1:
        raise ValueError(f"num_pixels must be positive, got {num_pixels}")

    clipped = image.clip(region)
    valid = clipped.valid_mask
    vectors = clipped.data.data[:, valid].T.astype(np.float64)

    if len(vectors) == 0:
        raise DegenerateTrainingError("Training region contains no valid pixels")

    if len(vectors) > num_pixels:
        rng = np.random.default_rng(seed)
        vectors = vectors[np.sort(rng.choice(len(vectors), size=num_pixels, replace=False))]

    logger.info(f"Sampled {len(vectors):,} / {int(valid.sum()):,} valid training pixels")
    return vectors


# =============================================================================
# Model
# =============================================================================

class ClusterModel:
    """Fitted K-means partition of pixel vectors. Read-only after training."""

    def __init__(self, estimator: KMeans, band_names: Sequence[str] = ()):
        self._estimator = estimator
        self._centroids = np.array(estimator.cluster_centers_, dtype=np.float64)
        self._centroids.setflags(write=False)
        self._band_names = tuple(band_names)

    def __repr__(self) -> str:
        return f"ClusterModel(n_clusters={self.n_clusters}, bands={self.band_names})"

    @property
    def band_names(self) -> Tuple[str, ...]:
        """Feature names the model was trained on (empty if unnamed)."""
        return self._band_names

    @property
    def n_clusters(self) -> int:
        return self._centroids.shape[0]

    @property
    def n_features(self) -> int:
        return self._centroids.shape[1]

    @property
    def centroids(self) -> np.ndarray:
        return self._centroids

    @property
    def inertia(self) -> float:
        return float(self._estimator.inertia_)

    def predict(self, vectors: np.ndarray) -> np.ndarray:
        """Label of the nearest centroid for each row, as int32."""
        vectors = np.asarray(vectors, dtype=np.float64)
        if vectors.ndim != 2 or vectors.shape[1] != self.n_features:
            raise SchemaMismatchError(
                f"Expected vectors with {self.n_features} features, got shape {vectors.shape}"
            )
        if len(vectors) == 0:
            return np.empty(0, dtype=np.int32)
        return self._estimator.predict(vectors).astype(np.int32)


def train_kmeans(
    samples: np.ndarray,
    n_clusters: int = 8,
    seed: Optional[int] = 0,
    max_iter: int = 300,
    band_names: Sequence[str] = ()
) -> ClusterModel:
    """
    Fit K-means (Lloyd's algorithm, k-means++ initialization).

    Args:
        samples: Training vectors (n, features)
        n_clusters: Number of clusters k
        seed: Seed for centroid initialization
        max_iter: Iteration cap per run
        band_names: Feature names carried on the model

    Returns:
        Fitted ClusterModel

    Raises:
        DegenerateTrainingError: If samples are empty or hold fewer than k
            distinct vectors
    """
    if n_clusters < 1:
        raise ValueError(f"n_clusters must be positive, got {n_clusters}")

    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim != 2 or len(samples) == 0:
        raise DegenerateTrainingError(f"Empty training sample (shape {samples.shape})")

    distinct = len(np.unique(samples, axis=0))
    if distinct < n_clusters:
        raise DegenerateTrainingError(
            f"Training sample has {distinct} distinct vectors, fewer than k={n_clusters}"
        )

    estimator = KMeans(
        n_clusters=n_clusters,
        init="k-means++",
        n_init=10,
        max_iter=max_iter,
        algorithm="lloyd",
        random_state=seed
    )
    estimator.fit(samples)

    model = ClusterModel(estimator, band_names)
    logger.info(
        f"Trained K-means: k={n_clusters}, samples={len(samples):,}, "
        f"iterations={estimator.n_iter_}, inertia={model.inertia:.4f}"
    )
    return model


# =============================================================================
# Inference
# =============================================================================

def cluster_image(image: Raster, model: ClusterModel) -> Raster:
    """
    Label every pixel of an image with its cluster id.

    Pixels undefined in any band stay undefined.

    Returns:
        Single-band int32 raster named "cluster"
    """
    if image.count != model.n_features:
        raise SchemaMismatchError(
            f"Image has {image.count} bands {list(image.band_names)}, "
            f"model expects {model.n_features}"
        )
    if model.band_names and tuple(image.band_names) != model.band_names:
        raise SchemaMismatchError(
            f"Image bands {list(image.band_names)} do not match model bands {list(model.band_names)}"
        )

    valid = image.valid_mask
    labels = np.zeros(image.shape, dtype=np.int32)
    labels[valid] = model.predict(image.data.data[:, valid].T)

    return Raster(
        np.ma.MaskedArray(labels[np.newaxis, ...], mask=~valid[np.newaxis, ...]),
        (LABEL_BAND,),
        image.transform,
        image.crs
    )


def cluster_summary(labels: Raster) -> Dict[int, int]:
    """Pixel count per cluster label (defined pixels only)."""
    values = labels.band(LABEL_BAND).compressed()
    counts = np.bincount(values) if values.size else np.array([], dtype=np.int64)
    return {int(label): int(count) for label, count in enumerate(counts) if count}
