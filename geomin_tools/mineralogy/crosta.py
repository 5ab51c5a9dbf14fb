"""
Crosta technique (feature-oriented / directed principal components).

Principal components are extracted from a band-selected pixel population and
their loadings inspected for the contrast expected from an alteration target:

    hydroxyl: |L(2.19 um) - L(1.61 um)| > 0.3   (Al/Mg-OH absorption in SWIR2)
    iron:     L(0.665 um) < -0.3                (Fe3+ absorption in red)
    silica:   mean loading beyond 1.5 um > 0.3

Each diagnostic wavelength is matched to the nearest band within 0.1 um; a
component cannot qualify for a target whose wavelength has no band.

Reference:
    Crosta, A.P., & Moore, J.McM. (1989). Enhancement of Landsat Thematic
        Mapper imagery for residual soil mapping in SW Minas Gerais State,
        Brazil. Proc. 7th Thematic Conference on Remote Sensing for
        Exploration Geology, 1173-1187.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Optional, Sequence

import numpy as np

from geomin_tools.exceptions import DataError
from geomin_tools.raster import BandKey, Raster, band_wavelength
from geomin_tools.results import DEFAULT_TOP_N, MineralogyResult, normalize_by_max, rank_locations
from geomin_tools.utils.linalg import mean_and_covariance, power_iteration

logger = logging.getLogger(__name__)

DEFAULT_BANDS = ('B02', 'B03', 'B04', 'B08', 'B11', 'B12')
WAVELENGTH_TOLERANCE = 0.1
LOADING_THRESHOLD = 0.3

# Target name -> key used in the mineral component record
TARGETS = MappingProxyType({
    'hydroxyl': 'hydroxyl_alteration',
    'iron': 'iron_oxide',
    'silica': 'silica',
})


@dataclass(frozen=True)
class CrostaOptions:
    target: str = 'hydroxyl'
    n_components: int = 4
    bands: Sequence[BandKey] = DEFAULT_BANDS
    top_n: int = DEFAULT_TOP_N


def nearest_wavelength_index(wavelengths: Sequence[float], target: float,
                             tolerance: float = WAVELENGTH_TOLERANCE) -> Optional[int]:
    """Index of the wavelength closest to ``target``, or None if none is within tolerance."""
    wavelengths = np.asarray(wavelengths, dtype=np.float64)
    diffs = np.abs(wavelengths - target)
    diffs[~np.isfinite(diffs)] = np.inf
    if diffs.size == 0:
        return None
    idx = int(np.argmin(diffs))
    return idx if diffs[idx] < tolerance else None


def identify_components(loadings: np.ndarray, wavelengths: Sequence[float],
                        target: str) -> Dict[str, List[int]]:
    """
    Components whose loadings show the target's diagnostic contrast.

    Returns:
        {target key: [component indices]}, empty if no component qualifies
    """
    if target not in TARGETS:
        raise DataError.unknown_name('target mineral', target, TARGETS)

    wavelengths = np.asarray(wavelengths, dtype=np.float64)
    matches = []

    if target == 'hydroxyl':
        swir1 = nearest_wavelength_index(wavelengths, 1.610)
        swir2 = nearest_wavelength_index(wavelengths, 2.190)
        if swir1 is not None and swir2 is not None:
            matches = [i for i, loading in enumerate(loadings)
                       if abs(loading[swir2] - loading[swir1]) > LOADING_THRESHOLD]

    elif target == 'iron':
        red = nearest_wavelength_index(wavelengths, 0.665)
        if red is not None:
            matches = [i for i, loading in enumerate(loadings)
                       if loading[red] < -LOADING_THRESHOLD]

    elif target == 'silica':
        swir = np.isfinite(wavelengths) & (wavelengths > 1.5)
        if swir.any():
            matches = [i for i, loading in enumerate(loadings)
                       if loading[swir].mean() > LOADING_THRESHOLD]

    return {TARGETS[target]: matches} if matches else {}


def crosta_pca(raster: Raster, options: Optional[CrostaOptions] = None) -> MineralogyResult:
    """
    Directed PCA for alteration mapping.

    Components are projections of the mean-centred valid pixels onto the
    loadings (invalid pixels are 0), returned as maps ``PC1`` .. ``PCk``.
    Explained variance ratios are relative to the total variance (the
    covariance trace). Top locations rank pixels by normalized absolute
    value of the first identified component.

    Raises:
        DataError: Unknown target, unresolvable band or no valid pixels
    """
    options = options or CrostaOptions()
    if options.target not in TARGETS:
        raise DataError.unknown_name('target mineral', options.target, TARGETS)

    bands = list(options.bands)
    cube = raster.select(bands, algorithm='crosta_pca')
    valid = np.all(np.isfinite(cube), axis=2)
    if not valid.any():
        raise DataError.empty_population('crosta_pca')

    samples = cube[valid]
    logger.info(f"Crosta PCA: target={options.target}, {options.n_components} components, "
                f"{len(samples)} pixels")

    mean, cov = mean_and_covariance(samples)
    eigenvalues, loadings = power_iteration(cov, options.n_components)

    total_variance = float(np.trace(cov))
    if total_variance > 0:
        explained = eigenvalues / total_variance
    else:
        explained = np.zeros_like(eigenvalues)

    projected = (samples - mean) @ loadings.T
    maps = {}
    for i in range(len(eigenvalues)):
        grid = np.zeros(valid.shape)
        grid[valid] = projected[:, i]
        maps[f'PC{i + 1}'] = grid

    wavelengths = [band_wavelength(b) for b in bands]
    mineral_components = identify_components(loadings, wavelengths, options.target)

    top_locations = []
    if mineral_components:
        component = next(iter(mineral_components.values()))[0]
        strength = normalize_by_max(np.abs(maps[f'PC{component + 1}']))
        top_locations = rank_locations(strength, options.top_n, valid)
    else:
        logger.info(f"No component matched target '{options.target}'")

    statistics = {
        'method': 'crosta_pca',
        'n_components': int(len(eigenvalues)),
        'bands': [str(b) for b in bands],
        'eigenvalues': eigenvalues,
        'explained_variance_ratio': explained,
        'cumulative_variance': float(explained.sum()),
        'target_mineral': options.target,
        'mineral_components': mineral_components,
        'valid_pixels': int(valid.sum()),
        'total_pixels': int(valid.size),
    }
    return MineralogyResult(
        statistics=statistics,
        maps=maps,
        top_locations=top_locations,
        extras={'loadings': loadings, 'wavelengths': wavelengths},
    )


class CrostaPCA:
    """Engine entry point for directed PCA."""

    name = 'crosta_pca'

    def __init__(self, options: Optional[CrostaOptions] = None):
        self.options = options or CrostaOptions()

    def operate(self, raster: Raster, options: Optional[CrostaOptions] = None) -> MineralogyResult:
        return crosta_pca(raster, options or self.options)
