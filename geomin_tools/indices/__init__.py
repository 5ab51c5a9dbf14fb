"""
Spectral index calculations.

Usage:
    from geomin_tools.indices import calculate_index, available_indices

    result = calculate_index(raster, 'ndvi')
    print(result.statistics['mean'])
"""

from geomin_tools.indices.calculator import (
    INDICES,
    SpectralCalculator,
    available_indices,
    calculate_index,
    calculate_multiple,
    get_index,
)
from geomin_tools.indices.utils import band_mean, normalized_difference, safe_ratio

__all__ = [
    'INDICES', 'SpectralCalculator', 'available_indices', 'calculate_index',
    'calculate_multiple', 'get_index',
    'band_mean', 'normalized_difference', 'safe_ratio',
]
