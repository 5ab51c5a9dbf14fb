"""
Spectral index calculator.

Band-math indices used in mineral exploration and land-cover screening:
vegetation and water (NDVI, NDWI, NDMI, MNDWI), iron and clay ratios, snow,
a broadband brightness mean and simple ratios. Bands are looked up by
semantic name through the raster's BandIndex, so Sentinel-2 codes work too.

References:
    Rouse, J.W., et al. (1974). Monitoring vegetation systems in the Great Plains
        with ERTS. NASA SP-351, 309-317.

    Gao, B.C. (1996). NDWI - A normalized difference water index for remote
        sensing of vegetation liquid water from space. RSE, 58(3), 257-266.

    Xu, H. (2006). Modification of normalised difference water index (NDWI) to
        enhance open water features in remotely sensed imagery. IJRS, 27(14),
        3025-3033.

    Sabins, F.F. (1999). Remote sensing for mineral exploration. Ore Geology
        Reviews, 14(3-4), 157-183.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from geomin_tools.exceptions import DataError
from geomin_tools.indices.utils import band_mean, normalized_difference, safe_ratio
from geomin_tools.raster import Raster
from geomin_tools.results import IndexResult, describe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpectralIndex:
    """Registry entry: formula metadata plus the band arithmetic."""
    key: str
    name: str
    formula: str
    bands: Tuple[str, ...]
    valid_range: Tuple[float, float]
    description: str
    compute: Callable[..., np.ndarray]

    def info(self) -> Dict:
        return {
            'name': self.name,
            'formula': self.formula,
            'bands': list(self.bands),
            'range': list(self.valid_range),
            'description': self.description,
        }


def _index(key, name, formula, bands, valid_range, description, compute) -> Tuple[str, SpectralIndex]:
    return key, SpectralIndex(key, name, formula, tuple(bands), tuple(valid_range), description, compute)


# =============================================================================
# Index Registry
# =============================================================================

INDICES = MappingProxyType(dict([
    _index('ndvi', 'Normalized Difference Vegetation Index',
           '(nir - red) / (nir + red)', ('nir', 'red'), (-1, 1),
           'Measures vegetation health and density',
           normalized_difference),
    _index('ndwi', 'Normalized Difference Water Index',
           '(green - nir) / (green + nir)', ('green', 'nir'), (-1, 1),
           'Detects water bodies and moisture content',
           normalized_difference),
    _index('ndmi', 'Normalized Difference Moisture Index',
           '(nir - swir1) / (nir + swir1)', ('nir', 'swir1'), (-1, 1),
           'Measures vegetation liquid water content',
           normalized_difference),
    _index('iron_oxide', 'Iron Oxide Ratio',
           'red / blue', ('red', 'blue'), (0, 5),
           'Highlights iron oxide minerals (hematite, goethite)',
           safe_ratio),
    _index('clay', 'Clay Ratio',
           'swir1 / swir2', ('swir1', 'swir2'), (0, 5),
           'Detects clay minerals (kaolinite, alunite)',
           safe_ratio),
    _index('ferrous', 'Ferrous Iron Index',
           '(nir - swir1) / (nir + swir1)', ('nir', 'swir1'), (-1, 1),
           'Detects ferrous iron in rocks and soils',
           normalized_difference),
    _index('gosi', 'Ground/Soil Index',
           '(red - nir) / (red + nir)', ('red', 'nir'), (-1, 1),
           'Differentiates soil from vegetation',
           normalized_difference),
    _index('ndsi', 'Normalized Difference Snow Index',
           '(green - swir1) / (green + swir1)', ('green', 'swir1'), (-1, 1),
           'Snow detection and mapping',
           normalized_difference),
    _index('mndwi', 'Modified NDWI',
           '(green - swir1) / (green + swir1)', ('green', 'swir1'), (-1, 1),
           'Enhanced water body detection',
           normalized_difference),
    _index('awesh', 'Automated Water Exclusion Index',
           '(blue + green + red + nir + swir1 + swir2) / 6',
           ('blue', 'green', 'red', 'nir', 'swir1', 'swir2'), (0, 1),
           'Broadband brightness used for water exclusion',
           band_mean),
    _index('swir_ratio', 'SWIR Ratio',
           'swir1 / swir2', ('swir1', 'swir2'), (0, 3),
           'General SWIR ratio for material discrimination',
           safe_ratio),
    _index('nir_red_ratio', 'NIR/Red Ratio',
           'nir / red', ('nir', 'red'), (0, 10),
           'Vegetation stress indicator',
           safe_ratio),
]))


def available_indices() -> Dict[str, Dict]:
    """{key: metadata} for every registered index."""
    return {key: index.info() for key, index in INDICES.items()}


def get_index(name: str) -> SpectralIndex:
    key = str(name).lower()
    if key not in INDICES:
        raise DataError.unknown_name('spectral index', name, INDICES)
    return INDICES[key]


def calculate_index(raster: Raster, name: str) -> IndexResult:
    """
    Compute a named index over the whole raster.

    Raises:
        DataError: Unknown index, or a required band missing from the raster
    """
    index = get_index(name)
    logger.info(f"Calculating {index.key}: {index.formula}")

    bands = [raster.band(b, algorithm=index.key) for b in index.bands]
    values = index.compute(*bands)

    statistics = {
        'index': index.key,
        'name': index.name,
        'formula': index.formula,
        **describe(values),
        'description': index.description,
    }
    return IndexResult(statistics=statistics, values=values, index_info=index.info())


def calculate_multiple(raster: Raster, names: Iterable[str]) -> Dict[str, IndexResult]:
    return {str(name).lower(): calculate_index(raster, name) for name in names}


class SpectralCalculator:
    """Engine entry point computing one or more indices."""

    name = 'index'

    def __init__(self, indices: Optional[List[str]] = None):
        self.indices = list(indices or ['ndvi'])

    def operate(self, raster: Raster, options: Optional[List[str]] = None) -> Dict[str, IndexResult]:
        return calculate_multiple(raster, options or self.indices)
