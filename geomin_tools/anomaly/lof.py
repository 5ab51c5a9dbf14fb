"""
Density-based local outlier scoring (Local Outlier Factor).

The brute-force scorer computes exact k-nearest neighbours over all valid
pixel vectors, so it costs O(N^2) distance evaluations and is limited to
``max_pixels`` vectors. Larger scenes should go through a classifier backend
(see geomin_tools.anomaly.classifier); LocalOutlierDetector does that first
and drops back to the brute-force scorer if the backend fails.

Reference:
    Breunig, M.M., Kriegel, H.-P., Ng, R.T., & Sander, J. (2000). LOF:
        Identifying density-based local outliers. SIGMOD, 93-104.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from geomin_tools.anomaly.classifier import (
    ClassifierAdapter, ClassifierOptions, SklearnLocalOutlierFactor, detect_with_classifier,
)
from geomin_tools.exceptions import AlgorithmError, DataError
from geomin_tools.raster import BandKey, Raster
from geomin_tools.results import DEFAULT_TOP_N, AnomalyResult, build_anomaly_result, percentile_threshold
from geomin_tools.utils.linalg import pairwise_distances
from geomin_tools.utils.parallel import map_row_chunks

logger = logging.getLogger(__name__)

METHOD = 'local_outlier_factor'
DENSITY_EPSILON = 1e-10


@dataclass(frozen=True)
class LOFOptions:
    neighbors: int = 20
    contamination: float = 0.01
    bands: Optional[Sequence[BandKey]] = None
    top_n: int = DEFAULT_TOP_N
    max_pixels: int = 5000
    n_workers: Optional[int] = 1
    parallel_min_pixels: int = 4096


def _nearest_neighbours(start: int, end: int, population: np.ndarray,
                        k: int) -> Tuple[np.ndarray, np.ndarray]:
    """Indices and distances of the k nearest other vectors for rows [start, end)."""
    distances = pairwise_distances(population[start:end], population)
    distances[np.arange(end - start), np.arange(start, end)] = np.inf
    order = np.argsort(distances, axis=1, kind='stable')[:, :k]
    return order, np.take_along_axis(distances, order, axis=1)


def lof_scores(samples: np.ndarray, neighbors: int, n_workers: Optional[int] = 1) -> np.ndarray:
    """
    Raw LOF value for every row of ``samples``.

    k is capped at N - 1. The local reachability density of a point is
    k / (sum of reachability distances + 1e-10), with reachability distance
    max(d(p, o), k-distance(o)). LOF is the mean neighbour density divided by
    the point's own density, or 1.0 where that density is zero.
    """
    n = len(samples)
    k = min(int(neighbors), n - 1)
    if k < 1:
        return np.ones(n)

    chunks = map_row_chunks(
        _nearest_neighbours, n,
        args=(samples, k),
        n_workers=n_workers,
        row_shape=(n,),
        description="LOF neighbour search",
    )
    indices = np.vstack([c[0] for c in chunks])
    distances = np.vstack([c[1] for c in chunks])

    k_distance = distances[:, -1]
    reachability = np.maximum(distances, k_distance[indices])
    lrd = k / (reachability.sum(axis=1) + DENSITY_EPSILON)

    neighbour_lrd = lrd[indices].mean(axis=1)
    lof = np.ones(n)
    np.divide(neighbour_lrd, lrd, out=lof, where=lrd > 0)
    return lof


def local_outlier_factor(raster: Raster, options: Optional[LOFOptions] = None) -> AnomalyResult:
    """
    Brute-force LOF over the valid pixels of ``raster``.

    Scores are divided by their maximum and capped at 1. Pixels above the
    (1 - contamination) percentile score are anomalous.

    Raises:
        DataError: No valid pixels, or more than ``max_pixels`` of them
    """
    options = options or LOFOptions()
    cube = raster.select(options.bands, algorithm='lof')
    valid = np.all(np.isfinite(cube), axis=2)
    if not valid.any():
        raise DataError.empty_population('lof')

    samples = cube[valid]
    n = len(samples)
    if n > options.max_pixels:
        raise DataError(
            f"Brute-force LOF is limited to {options.max_pixels} pixels, got {n}. "
            f"Use a classifier backend (e.g. SklearnLocalOutlierFactor) for larger scenes",
            {'algorithm': 'lof', 'pixels': n, 'max_pixels': options.max_pixels},
        )

    logger.warning(f"Using brute-force LOF on {n} pixels (O(N^2) neighbour search)")
    n_workers = options.n_workers if n >= options.parallel_min_pixels else 1
    lof = lof_scores(samples, options.neighbors, n_workers=n_workers)

    max_score = float(lof.max())
    if max_score > 0:
        lof = np.minimum(1.0, lof / max_score)

    scores = np.zeros(valid.shape)
    scores[valid] = lof
    threshold = percentile_threshold(lof, 1 - options.contamination)
    mask = (scores > threshold) & valid

    return build_anomaly_result(
        scores, mask, valid, threshold, METHOD, top_n=options.top_n,
        implementation='brute_force',
        neighbors=min(int(options.neighbors), max(n - 1, 0)),
        contamination=options.contamination,
    )


class LocalOutlierDetector:
    """
    Engine entry point for LOF scoring.

    Runs the classifier backend when ``use_backend`` is set (scikit-learn by
    default) and falls back to the brute-force scorer if it fails.
    """

    name = 'lof'

    def __init__(self, classifier: Optional[ClassifierAdapter] = None,
                 options: Optional[LOFOptions] = None, use_backend: bool = True):
        self.classifier = classifier
        self.options = options or LOFOptions()
        self.use_backend = use_backend

    def operate(self, raster: Raster, options: Optional[LOFOptions] = None) -> AnomalyResult:
        options = options or self.options
        if not self.use_backend:
            return local_outlier_factor(raster, options)

        classifier = self.classifier or SklearnLocalOutlierFactor(
            neighbors=options.neighbors, contamination=options.contamination,
        )
        try:
            return detect_with_classifier(
                raster, classifier,
                ClassifierOptions(bands=options.bands, top_n=options.top_n),
            )
        except AlgorithmError as e:
            logger.error(f"LOF backend failed, falling back to brute force: {e}")
            return local_outlier_factor(raster, options)
