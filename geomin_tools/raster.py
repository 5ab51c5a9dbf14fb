"""
In-memory raster model and band-name resolution.

A raster is a float array indexed [row, col, band]. Band names are resolved
through a BandIndex built from one of the known naming conventions or from an
explicit mapping. Semantic names (``blue``, ``nir``, ...) and Sentinel-2 band
codes (``B02``, ``B08``, ...) are aliases of each other, so the same physical
band resolves to the same offset whichever convention the caller speaks.

Non-finite values mark missing data. They are kept in place so that result
grids line up with the input, and excluded from every statistic.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence, Union

import numpy as np

from geomin_tools.exceptions import DataError


BandKey = Union[str, int]


# =============================================================================
# Naming Conventions
# =============================================================================

BAND_CONVENTIONS = MappingProxyType({
    'standard': MappingProxyType({
        'blue': 0, 'green': 1, 'red': 2, 'nir': 3,
        'swir1': 4, 'swir2': 5, 'cirrus': 6,
    }),
    'sentinel2': MappingProxyType({
        'B02': 0, 'B03': 1, 'B04': 2, 'B08': 3,
        'B11': 4, 'B12': 5, 'B10': 6,
    }),
    'landsat': MappingProxyType({
        'blue': 0, 'green': 1, 'red': 2, 'nir': 3,
        'swir1': 4, 'swir2': 5, 'qa': 6,
    }),
})

# Semantic name <-> Sentinel-2 band code
BAND_ALIASES = MappingProxyType({
    'blue': 'b02', 'green': 'b03', 'red': 'b04', 'nir': 'b08',
    'swir1': 'b11', 'swir2': 'b12', 'cirrus': 'b10',
    'b02': 'blue', 'b03': 'green', 'b04': 'red', 'b08': 'nir',
    'b11': 'swir1', 'b12': 'swir2', 'b10': 'cirrus',
})

# Band centre wavelengths (micrometers)
SENTINEL2_WAVELENGTHS = MappingProxyType({
    'B01': 0.443,
    'B02': 0.492,
    'B03': 0.560,
    'B04': 0.665,
    'B05': 0.705,
    'B06': 0.740,
    'B07': 0.783,
    'B08': 0.842,
    'B8A': 0.865,
    'B09': 0.945,
    'B10': 1.375,
    'B11': 1.610,
    'B12': 2.190,
})

_WAVELENGTH_LOOKUP = MappingProxyType({k.lower(): v for k, v in SENTINEL2_WAVELENGTHS.items()})


def default_convention(n_bands: int) -> str:
    """Convention inferred from band count when no mapping is supplied."""
    if n_bands == 7:
        return 'sentinel2'
    if n_bands == 6:
        return 'landsat'
    return 'standard'


def band_wavelength(name: BandKey) -> float:
    """
    Centre wavelength of a named band in micrometers.

    Returns NaN for names without a known wavelength (integer offsets,
    ``qa``, custom names).
    """
    if not isinstance(name, str):
        return float('nan')
    key = name.lower()
    if key in _WAVELENGTH_LOOKUP:
        return _WAVELENGTH_LOOKUP[key]
    alias = BAND_ALIASES.get(key)
    if alias is not None and alias in _WAVELENGTH_LOOKUP:
        return _WAVELENGTH_LOOKUP[alias]
    return float('nan')


# =============================================================================
# Band Index
# =============================================================================

class BandIndex:
    """Resolves band names (or integer offsets) to offsets on the band axis."""

    def __init__(self, mapping: Mapping[str, int], n_bands: int,
                 convention: Optional[str] = None):
        self.n_bands = int(n_bands)
        self.convention = convention
        self._names = MappingProxyType({str(k): int(v) for k, v in mapping.items()})
        self._lookup = MappingProxyType({str(k).lower(): int(v) for k, v in mapping.items()})

    @property
    def names(self) -> Mapping[str, int]:
        return self._names

    def _find(self, name: BandKey) -> Optional[int]:
        if isinstance(name, (int, np.integer)) and not isinstance(name, bool):
            return int(name)
        key = str(name).lower()
        if key in self._lookup:
            return self._lookup[key]
        alias = BAND_ALIASES.get(key)
        if alias is not None and alias in self._lookup:
            return self._lookup[alias]
        return None

    def resolve(self, name: BandKey, algorithm: Optional[str] = None) -> int:
        """Offset for ``name``; raises DataError if it does not fit the raster."""
        offset = self._find(name)
        if offset is None or not 0 <= offset < self.n_bands:
            raise DataError.missing_band(name, self._names, algorithm=algorithm,
                                         n_bands=self.n_bands)
        return offset

    def resolve_many(self, names: Iterable[BandKey], algorithm: Optional[str] = None) -> list:
        return [self.resolve(n, algorithm=algorithm) for n in names]

    def has(self, name: BandKey) -> bool:
        offset = self._find(name)
        return offset is not None and 0 <= offset < self.n_bands

    def __contains__(self, name) -> bool:
        return self.has(name)

    def __repr__(self):
        return f"BandIndex({dict(self._names)}, n_bands={self.n_bands}, convention={self.convention!r})"


# =============================================================================
# Raster
# =============================================================================

@dataclass(frozen=True, eq=False)
class Raster:
    """Multi-band image, data shaped (rows, cols, bands)."""
    data: np.ndarray
    band_index: BandIndex

    @property
    def shape(self):
        return self.data.shape

    @property
    def n_rows(self) -> int:
        return self.data.shape[0]

    @property
    def n_cols(self) -> int:
        return self.data.shape[1]

    @property
    def n_bands(self) -> int:
        return self.data.shape[2]

    @property
    def n_pixels(self) -> int:
        return self.n_rows * self.n_cols

    def offsets(self, bands: Optional[Sequence[BandKey]] = None,
                algorithm: Optional[str] = None) -> list:
        if bands is None:
            return list(range(self.n_bands))
        return self.band_index.resolve_many(bands, algorithm=algorithm)

    def select(self, bands: Optional[Sequence[BandKey]] = None,
               algorithm: Optional[str] = None) -> np.ndarray:
        """(rows, cols, len(bands)) array for the requested bands."""
        if bands is None:
            return self.data
        return self.data[:, :, self.offsets(bands, algorithm=algorithm)]

    def band(self, name: BandKey, algorithm: Optional[str] = None) -> np.ndarray:
        """Single (rows, cols) band grid."""
        return self.data[:, :, self.band_index.resolve(name, algorithm=algorithm)]

    def pixels(self, bands: Optional[Sequence[BandKey]] = None,
               algorithm: Optional[str] = None) -> np.ndarray:
        """Row-major (n_pixels, n_selected_bands) view of pixel vectors."""
        cube = self.select(bands, algorithm=algorithm)
        return cube.reshape(-1, cube.shape[2])

    def valid_mask(self, bands: Optional[Sequence[BandKey]] = None,
                   algorithm: Optional[str] = None) -> np.ndarray:
        """(rows, cols) mask of pixels whose selected bands are all finite."""
        return np.all(np.isfinite(self.select(bands, algorithm=algorithm)), axis=2)

    def replace(self, data: np.ndarray) -> "Raster":
        """New raster with the same band index and different values."""
        if data.shape != self.data.shape:
            raise DataError.shape_mismatch('Replacement data', self.data.shape, data.shape)
        return Raster(data=data, band_index=self.band_index)


def build_raster(data, band_mapping: Union[None, str, Mapping[str, int]] = None,
                 required_bands: Iterable[BandKey] = ()) -> Raster:
    """
    Build a Raster and its BandIndex from raw data.

    Parameters:
        data: Nested sequence or array shaped (rows, cols, bands)
        band_mapping: Explicit {name: offset} mapping, a convention name
            ('standard', 'sentinel2', 'landsat'), or None to infer from the
            band count (7 -> sentinel2, 6 -> landsat, otherwise standard)
        required_bands: Names that must resolve, checked up front

    Returns:
        Raster with float64 data
    """
    try:
        array = np.array(data, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise DataError(f"Raster data is not a regular numeric array: {e}") from e

    if array.ndim != 3:
        raise DataError.shape_mismatch('Raster data', '(rows, cols, bands)', array.shape)
    n_bands = array.shape[2]
    if n_bands < 1:
        raise DataError("Raster must have at least one band", {'shape': array.shape})

    if band_mapping is None:
        convention = default_convention(n_bands)
        mapping = BAND_CONVENTIONS[convention]
    elif isinstance(band_mapping, str):
        convention = band_mapping
        if convention not in BAND_CONVENTIONS:
            raise DataError.unknown_name('band convention', convention, BAND_CONVENTIONS)
        mapping = BAND_CONVENTIONS[convention]
    else:
        convention = None
        mapping = band_mapping

    band_index = BandIndex(mapping, n_bands, convention=convention)
    for name in required_bands:
        band_index.resolve(name)

    return Raster(data=array, band_index=band_index)
