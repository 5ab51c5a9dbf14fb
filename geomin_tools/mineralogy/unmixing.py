"""
Linear spectral unmixing.

Each pixel is modelled as x = E a, with E the (bands, endmembers) matrix of
reference spectra and a the abundance fractions, solved with the left
pseudo-inverse a = E+ x. Optional constraints are applied afterwards in a
fixed order: negative abundances clipped to zero, then rescaling to sum to
one (when the sum is positive).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence, Union

import numpy as np

from geomin_tools.exceptions import DataError
from geomin_tools.mineralogy.spectral_library import DEFAULT_LIBRARY, ReferenceLibrary
from geomin_tools.raster import Raster
from geomin_tools.results import MineralogyResult
from geomin_tools.utils.linalg import pseudo_inverse

logger = logging.getLogger(__name__)

Endmembers = Union[Mapping[str, Sequence[float]], Iterable[str]]

# Map key of the reconstruction error grid; not usable as an endmember name
RESIDUAL_MAP = 'residual'


@dataclass(frozen=True)
class UnmixingOptions:
    sum_to_one: bool = True
    non_negative: bool = True


def apply_constraints(abundances: np.ndarray, sum_to_one: bool = True,
                      non_negative: bool = True) -> np.ndarray:
    """Clip negatives (if enabled), then rescale rows with a positive sum to 1 (if enabled)."""
    a = np.array(abundances, dtype=np.float64)
    if non_negative:
        a = np.maximum(a, 0.0)
    if sum_to_one:
        totals = a.sum(axis=1, keepdims=True)
        positive = totals[:, 0] > 0
        a[positive] = a[positive] / totals[positive]
    return a


def _endmember_table(endmembers: Endmembers, library: ReferenceLibrary) -> dict:
    if isinstance(endmembers, Mapping):
        return {str(k): np.asarray(v, dtype=np.float64).ravel() for k, v in endmembers.items()}
    return library.endmembers(endmembers)


def unmix(raster: Raster, endmembers: Endmembers, options: Optional[UnmixingOptions] = None,
          library: Optional[ReferenceLibrary] = None) -> MineralogyResult:
    """
    Abundance maps for each endmember.

    Parameters:
        raster: Input raster; every band is used
        endmembers: {name: spectrum} or a list of library mineral names
        options: Constraint switches
        library: Reference library used to resolve names

    Returns:
        MineralogyResult with one abundance map per endmember (0 at invalid
        pixels) plus ``residual``, the per-pixel sum of squared
        reconstruction errors (NaN at invalid pixels). Statistics hold the
        RMSE over valid pixels and bands and the mean abundance per
        endmember over valid pixels.

    Raises:
        DataError: Endmember length differs from the band count, more
            endmembers than bands, an unknown mineral name
            or an endmember named 'residual'
    """
    options = options or UnmixingOptions()
    library = library or DEFAULT_LIBRARY
    table = _endmember_table(endmembers, library)
    if not table:
        raise DataError("At least one endmember is required")
    if RESIDUAL_MAP in table:
        raise DataError(f"'{RESIDUAL_MAP}' is reserved for the residual map and cannot name an endmember",
                        {'endmember': RESIDUAL_MAP})

    n_rows, n_cols, n_bands = raster.shape
    for name, spectrum in table.items():
        if spectrum.size != n_bands:
            raise DataError(
                f"Endmember '{name}' has wrong number of bands. Expected {n_bands}, got {spectrum.size}",
                {'endmember': name, 'expected': n_bands, 'got': int(spectrum.size)},
            )

    names = list(table)
    logger.info(f"Linear spectral unmixing: {names}, {n_cols}x{n_rows}")

    matrix = np.column_stack([table[n] for n in names])
    pinv = pseudo_inverse(matrix)

    pixels = raster.pixels()
    valid = np.all(np.isfinite(pixels), axis=1)
    samples = pixels[valid]

    abundances = apply_constraints(samples @ pinv.T, options.sum_to_one, options.non_negative)
    residual = ((samples - abundances @ matrix.T) ** 2).sum(axis=1)

    n_valid = int(valid.sum())
    rmse = float(np.sqrt(residual.sum() / (n_valid * n_bands))) if n_valid else 0.0

    maps = {}
    mean_abundances = {}
    for j, name in enumerate(names):
        grid = np.zeros(n_rows * n_cols)
        grid[valid] = abundances[:, j]
        maps[name] = grid.reshape(n_rows, n_cols)
        mean_abundances[name] = float(abundances[:, j].mean()) if n_valid else 0.0

    residual_grid = np.full(n_rows * n_cols, np.nan)
    residual_grid[valid] = residual
    maps[RESIDUAL_MAP] = residual_grid.reshape(n_rows, n_cols)

    statistics = {
        'method': 'linear_spectral_unmixing',
        'endmembers': names,
        'sum_to_one': options.sum_to_one,
        'non_negative': options.non_negative,
        'valid_pixels': n_valid,
        'total_pixels': int(valid.size),
        'rmse': rmse,
        'mean_abundances': mean_abundances,
    }
    return MineralogyResult(
        statistics=statistics,
        maps=maps,
        extras={'endmembers': {n: table[n] for n in names}},
    )


class SpectralUnmixer:
    """Engine entry point for unmixing against a fixed endmember set."""

    name = 'unmix'

    def __init__(self, endmembers: Endmembers, library: Optional[ReferenceLibrary] = None):
        self.endmembers = endmembers
        self.library = library or DEFAULT_LIBRARY

    def operate(self, raster: Raster, options: Optional[UnmixingOptions] = None) -> MineralogyResult:
        return unmix(raster, self.endmembers, options, self.library)
