"""
Cloud detection and masking.

Algorithms:
    - threshold: fixed reflectance tests on blue, NIR and the SWIR ratio
    - sentinel2: five additive criteria producing a cloud probability; a
      pixel is cloud if any criterion fires
    - landsat_qa: decodes the Landsat QA_PIXEL cloud / shadow / cirrus bits

Reflectances are expected in 0-1 units. Non-finite pixels never fire a
criterion.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import numpy as np

from geomin_tools.exceptions import DataError
from geomin_tools.raster import Raster
from geomin_tools.results import CloudMaskResult, interpolated_percentile, mask_statistics

logger = logging.getLogger(__name__)


THRESHOLD_DEFAULTS = MappingProxyType({
    'blue_threshold': 0.3,
    'nir_threshold': 0.4,
    'swir_ratio_threshold': 0.75,
})

SENTINEL2_THRESHOLDS = MappingProxyType({
    'blue_threshold': 0.3,
    'nir_threshold': 0.4,
    'swir_ratio_threshold': 0.75,
    'cloud_confidence': 0.4,
    'cirrus_threshold': 0.01,
    'whiteness_threshold': 0.15,
})

# Landsat Collection 2 QA_PIXEL bits
LANDSAT_QA_FLAGS = MappingProxyType({
    'dilated_cloud': 1 << 1,
    'cirrus': 1 << 2,
    'cloud': 1 << 3,
    'cloud_shadow': 1 << 4,
})

ALGORITHMS = ('threshold', 'sentinel2', 'landsat_qa')


@dataclass(frozen=True)
class CloudMaskOptions:
    algorithm: str = 'sentinel2'
    thresholds: Mapping[str, float] = field(default_factory=dict)
    fill_value: float = 0.0


def _swir_ratio(swir1: np.ndarray, swir2: np.ndarray) -> np.ndarray:
    """swir1 / swir2 where swir2 > 0, else 0."""
    ratio = np.zeros_like(swir1)
    np.divide(swir1, swir2, out=ratio, where=swir2 > 0)
    return ratio


# =============================================================================
# Algorithms
# =============================================================================

def threshold_mask(raster: Raster, thresholds: Optional[Mapping[str, float]] = None) -> CloudMaskResult:
    """Cloud where blue is bright, NIR is dark, or swir1/swir2 is high."""
    t = dict(THRESHOLD_DEFAULTS, **(thresholds or {}))
    blue = raster.band('blue', algorithm='threshold')
    nir = raster.band('nir', algorithm='threshold')
    swir1 = raster.band('swir1', algorithm='threshold')
    swir2 = raster.band('swir2', algorithm='threshold')

    mask = (
        (blue > t['blue_threshold'])
        | (nir < t['nir_threshold'])
        | ((swir2 > 0) & (_swir_ratio(swir1, swir2) > t['swir_ratio_threshold']))
    )
    return _format(mask, 'threshold', t)


def sentinel2_mask(raster: Raster, thresholds: Optional[Mapping[str, float]] = None) -> CloudMaskResult:
    """
    Probabilistic Sentinel-2 cloud detection.

    Criteria and their probability weights:
        1. blue > blue_threshold: 0.4 * min(1, blue / 0.6)
        2. cirrus > t_c: 0.4 * min(1, cirrus / (3 * t_c)), where
           t_c = max(0.5 * P95(cirrus), cirrus_threshold)
        3. whiteness, when mean visible > 0.2 and the relative std of
           blue/green/red < whiteness_threshold: 0.2 * (1 - rs / whiteness_threshold)
        4. swir1 / swir2 > swir_ratio_threshold: 0.2
        5. red > 0.01, nir / red < 0.8 and blue > 0.25: 0.2

    The cirrus test is skipped when the raster has no cirrus band.
    """
    t = dict(SENTINEL2_THRESHOLDS, **(thresholds or {}))
    blue = raster.band('blue', algorithm='sentinel2')
    green = raster.band('green', algorithm='sentinel2')
    red = raster.band('red', algorithm='sentinel2')
    nir = raster.band('nir', algorithm='sentinel2')
    swir1 = raster.band('swir1', algorithm='sentinel2')
    swir2 = raster.band('swir2', algorithm='sentinel2')

    probability = np.zeros(blue.shape)

    # 1. High blue reflectance
    fired = blue > t['blue_threshold']
    probability += np.where(fired, 0.4 * np.minimum(1.0, blue / 0.6), 0.0)
    mask = fired

    # 2. Cirrus
    if raster.band_index.has('cirrus'):
        cirrus = raster.band('cirrus')
        cirrus_threshold = max(interpolated_percentile(cirrus, 95) * 0.5, t['cirrus_threshold'])
        fired = cirrus > cirrus_threshold
        probability += np.where(fired, 0.4 * np.minimum(1.0, cirrus / (cirrus_threshold * 3)), 0.0)
        mask = mask | fired
        t['adaptive_cirrus_threshold'] = cirrus_threshold
    else:
        logger.debug("No cirrus band, skipping cirrus test")

    # 3. Whiteness
    visible = np.stack([blue, green, red])
    mean_vis = visible.mean(axis=0)
    relative_std = visible.std(axis=0) / (mean_vis + 1e-6)
    fired = (mean_vis > 0.2) & (relative_std < t['whiteness_threshold'])
    probability += np.where(fired, 0.2 * (1 - relative_std / t['whiteness_threshold']), 0.0)
    mask = mask | fired

    # 4. SWIR ratio
    fired = (swir2 > 0) & (_swir_ratio(swir1, swir2) > t['swir_ratio_threshold'])
    probability += np.where(fired, 0.2, 0.0)
    mask = mask | fired

    # 5. NIR/red contrast (vegetation has high NIR/red, clouds don't)
    nir_red = np.zeros_like(nir)
    np.divide(nir, red, out=nir_red, where=red > 0.01)
    fired = (red > 0.01) & (nir_red < 0.8) & (blue > 0.25)
    probability += np.where(fired, 0.2, 0.0)
    mask = mask | fired

    probability = np.clip(np.nan_to_num(probability, nan=0.0), 0.0, 1.0)
    return _format(mask, 'sentinel2', t, probability)


def landsat_qa_mask(raster: Raster) -> CloudMaskResult:
    """Cloud where any of the dilated-cloud, cirrus, cloud or shadow bits is set."""
    qa = raster.band('qa', algorithm='landsat_qa')
    qa = np.nan_to_num(qa, nan=0.0, posinf=0.0, neginf=0.0).astype(np.int64)

    flags = 0
    for bit in LANDSAT_QA_FLAGS.values():
        flags |= bit
    mask = (qa & flags) != 0
    return _format(mask, 'landsat_qa')


def _format(mask: np.ndarray, algorithm: str, thresholds: Optional[Dict[str, Any]] = None,
            probability: Optional[np.ndarray] = None) -> CloudMaskResult:
    mask = np.asarray(mask, dtype=bool)
    statistics = mask_statistics(mask)
    statistics['algorithm'] = algorithm
    if thresholds:
        statistics['thresholds'] = dict(thresholds)
    logger.info(f"Cloud mask ({algorithm}): {statistics['cloud_percentage']:.1f}% cloud")
    return CloudMaskResult(statistics=statistics, mask=mask, probability=probability)


# =============================================================================
# Mask Application
# =============================================================================

def apply_mask(raster: Raster, mask: np.ndarray, fill_value: float = 0.0) -> Raster:
    """New raster with every band of masked pixels set to ``fill_value``."""
    mask = np.asarray(mask, dtype=bool)
    if mask.shape != raster.shape[:2]:
        raise DataError.shape_mismatch('Cloud mask', raster.shape[:2], mask.shape)
    data = raster.data.copy()
    data[mask] = fill_value
    return raster.replace(data)


def clear_pixels(mask: np.ndarray) -> np.ndarray:
    """Inverse of a cloud mask."""
    return ~np.asarray(mask, dtype=bool)


class CloudMasker:
    """Engine entry point dispatching to a cloud masking algorithm by name."""

    name = 'cloud_mask'

    def __init__(self, options: Optional[CloudMaskOptions] = None):
        self.options = options or CloudMaskOptions()

    def operate(self, raster: Raster, options: Optional[CloudMaskOptions] = None) -> CloudMaskResult:
        options = options or self.options
        algorithm = options.algorithm
        logger.info(f"Applying cloud masking: {algorithm}, {raster.n_rows}x{raster.n_cols}")

        if algorithm == 'threshold':
            return threshold_mask(raster, options.thresholds)
        if algorithm == 'sentinel2':
            return sentinel2_mask(raster, options.thresholds)
        if algorithm == 'landsat_qa':
            return landsat_qa_mask(raster)
        raise DataError.unknown_name('cloud masking algorithm', algorithm, ALGORITHMS)

    def mask_and_apply(self, raster: Raster, options: Optional[CloudMaskOptions] = None):
        """Tuple of (CloudMaskResult, raster with cloudy pixels filled)."""
        options = options or self.options
        result = self.operate(raster, options)
        return result, apply_mask(raster, result.mask, options.fill_value)
