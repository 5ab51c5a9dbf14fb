"""
Shared fixtures for geomin_tools tests.

Synthetic rasters use reflectance-like values (0-1) in the six-band
blue, green, red, nir, swir1, swir2 layout unless noted otherwise.
"""

import numpy as np
import pytest

from geomin_tools.raster import build_raster

# Typical vegetated surface
VEGETATION = np.array([0.05, 0.08, 0.04, 0.45, 0.15, 0.30])

ANOMALY_PIXEL = (5, 2)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def background_raster(rng):
    """8x8 vegetated scene with small noise."""
    data = VEGETATION + rng.normal(0, 0.01, size=(8, 8, 6))
    return build_raster(data)


@pytest.fixture
def anomaly_raster(rng):
    """8x8 vegetated scene with one strongly deviating pixel at ANOMALY_PIXEL."""
    data = VEGETATION + rng.normal(0, 0.01, size=(8, 8, 6))
    data[ANOMALY_PIXEL] += 0.5
    return build_raster(data)


@pytest.fixture
def sentinel2_raster(rng):
    """6x6 seven-band Sentinel-2 scene (B02, B03, B04, B08, B11, B12, B10)."""
    data = np.concatenate([
        VEGETATION + rng.normal(0, 0.01, size=(6, 6, 6)),
        rng.uniform(0.0, 0.005, size=(6, 6, 1)),
    ], axis=2)
    return build_raster(data)
