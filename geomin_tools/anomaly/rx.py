"""
RX (Reed-Xiaoli) anomaly detection.

Scores every pixel by its Mahalanobis distance from a background model:

    - Global RX: one mean / covariance over all valid pixels.
    - Local RX: mean / covariance of the pixels in a square window around
      each pixel (centre excluded, clipped at the raster edges).

Scores are normalized by their maximum; a pixel is anomalous when its
normalized score exceeds the score found at the threshold percentile.

Reference:
    Reed, I.S., & Yu, X. (1990). Adaptive multiple-band CFAR detection of an
        optical pattern with unknown spectral distribution. IEEE TASSP,
        38(10), 1760-1770.
"""

import time
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from geomin_tools.exceptions import DataError
from geomin_tools.raster import BandKey, Raster
from geomin_tools.results import (
    DEFAULT_TOP_N, AnomalyResult, build_anomaly_result, normalize_by_max,
    percentile_threshold,
)
from geomin_tools.utils.linalg import (
    gauss_jordan_inverse, mahalanobis, mean_and_covariance, regularize_covariance,
)
from geomin_tools.utils.parallel import map_row_chunks

logger = logging.getLogger(__name__)

METHOD = 'rx_anomaly_detector'


@dataclass(frozen=True)
class RXOptions:
    """
    Attributes:
        threshold: Percentile (0-1) of normalized scores used as the cut-off
        window_size: Side of the local window in pixels; None runs global RX
        bands: Band names/offsets to use (None = all bands)
        top_n: Number of ranked locations to return
        n_workers: Processes for local RX (1 = run in the calling process)
        parallel_min_pixels: Pixel count at which local RX goes parallel
    """
    threshold: float = 0.99
    window_size: Optional[int] = None
    bands: Optional[Sequence[BandKey]] = None
    top_n: int = DEFAULT_TOP_N
    n_workers: Optional[int] = 1
    parallel_min_pixels: int = 4096


def _prepare(raster: Raster, options: RXOptions) -> Tuple[np.ndarray, np.ndarray]:
    cube = raster.select(options.bands, algorithm='rx')
    valid = np.all(np.isfinite(cube), axis=2)
    if not valid.any():
        raise DataError.empty_population('rx')
    return cube, valid


# =============================================================================
# Global RX
# =============================================================================

def global_rx(raster: Raster, options: Optional[RXOptions] = None) -> AnomalyResult:
    """
    Global RX over all valid pixels.

    The covariance is regularized before inversion. If the inversion still
    skips a pivot, scores are computed anyway and the statistics report
    ``degenerate_covariance = True``.

    Returns:
        AnomalyResult with normalized scores, anomaly mask, labels and ranked
        locations; extras hold the background mean vector and covariance.
    """
    options = options or RXOptions()
    cube, valid = _prepare(raster, options)
    n_rows, n_cols, n_bands = cube.shape

    samples = cube[valid]
    mean, cov = mean_and_covariance(samples)
    cov = regularize_covariance(cov)
    cov_inv, skipped = gauss_jordan_inverse(cov)
    if skipped:
        logger.warning(f"Global RX covariance is near-singular ({skipped} pivots skipped)")

    scores = np.zeros((n_rows, n_cols))
    scores[valid] = mahalanobis(samples, mean, cov_inv)
    scores = normalize_by_max(scores)

    threshold = percentile_threshold(scores[valid], options.threshold)
    mask = (scores > threshold) & valid

    logger.info(f"Global RX: {int(mask.sum())} anomalies in {n_rows}x{n_cols} pixels")
    return build_anomaly_result(
        scores, mask, valid, threshold, METHOD, top_n=options.top_n,
        extras={'mean_vector': mean, 'covariance_matrix': cov},
        type='global',
        degenerate_covariance=bool(skipped),
    )


# =============================================================================
# Local RX
# =============================================================================

def _local_rx_rows(start: int, end: int, cube: np.ndarray, valid: np.ndarray,
                   half: int) -> Tuple[np.ndarray, np.ndarray]:
    """Raw local RX scores and degenerate flags for rows [start, end)."""
    n_rows, n_cols, _ = cube.shape
    scores = np.zeros((end - start, n_cols))
    degenerate = np.zeros((end - start, n_cols), dtype=bool)

    for row in range(start, end):
        r0, r1 = max(0, row - half), min(n_rows, row + half + 1)
        for col in range(n_cols):
            if not valid[row, col]:
                continue
            c0, c1 = max(0, col - half), min(n_cols, col + half + 1)

            neighbours = valid[r0:r1, c0:c1].copy()
            neighbours[row - r0, col - c0] = False
            if neighbours.sum() < 2:
                continue

            mean, cov = mean_and_covariance(cube[r0:r1, c0:c1][neighbours])
            cov_inv, skipped = gauss_jordan_inverse(regularize_covariance(cov))
            degenerate[row - start, col] = skipped > 0
            scores[row - start, col] = mahalanobis(cube[row, col], mean, cov_inv)[0]

    return scores, degenerate


def local_rx(raster: Raster, options: Optional[RXOptions] = None) -> AnomalyResult:
    """
    Local (sliding-window) RX.

    Pixels with fewer than two valid neighbours score 0. Pixels whose local
    covariance inverse skipped a pivot are flagged in ``result.degenerate``
    and counted in ``statistics['degenerate_pixels']``. Rows are processed in
    parallel chunks once the raster has ``parallel_min_pixels`` pixels.
    """
    options = options or RXOptions(window_size=3)
    window_size = options.window_size
    if window_size is None or int(window_size) < 1:
        raise DataError(f"Local RX needs a positive window size, got {window_size}",
                        {'window_size': window_size})
    window_size = int(window_size)

    cube, valid = _prepare(raster, options)
    n_rows, n_cols, n_bands = cube.shape

    n_workers = options.n_workers if raster.n_pixels >= options.parallel_min_pixels else 1
    logger.info(f"Local RX: {n_cols}x{n_rows} pixels, window {window_size}")
    start_time = time.time()

    chunks = map_row_chunks(
        _local_rx_rows, n_rows,
        args=(cube, valid, window_size // 2),
        n_workers=n_workers,
        row_shape=(n_cols, n_bands),
        description="Local RX",
    )
    scores = np.vstack([c[0] for c in chunks])
    degenerate = np.vstack([c[1] for c in chunks])
    logger.debug(f"Local RX finished in {time.time() - start_time:.1f}s")

    scores = normalize_by_max(scores)
    threshold = percentile_threshold(scores[valid], options.threshold)
    mask = (scores > threshold) & valid

    n_degenerate = int(degenerate.sum())
    if n_degenerate:
        logger.warning(f"Local RX: {n_degenerate} pixels had a near-singular local covariance")

    return build_anomaly_result(
        scores, mask, valid, threshold, METHOD, top_n=options.top_n,
        degenerate=degenerate,
        type='local',
        window_size=window_size,
        degenerate_pixels=n_degenerate,
    )


class RXDetector:
    """Engine entry point: global RX, or local RX when a window size is set."""

    name = 'rx'

    def __init__(self, options: Optional[RXOptions] = None):
        self.options = options or RXOptions()

    def operate(self, raster: Raster, options: Optional[RXOptions] = None) -> AnomalyResult:
        options = options or self.options
        if options.window_size:
            return local_rx(raster, options)
        return global_rx(raster, options)
