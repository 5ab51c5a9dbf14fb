"""
Tests for the raster model and band resolution.

Run with: pytest tests/test_raster.py -v
"""

import math

import numpy as np
import pytest

from geomin_tools.exceptions import DataError
from geomin_tools.raster import band_wavelength, build_raster, default_convention


class TestConventions:
    """Test band naming conventions."""

    def test_convention_from_band_count(self):
        assert default_convention(7) == 'sentinel2'
        assert default_convention(6) == 'landsat'
        assert default_convention(4) == 'standard'

    def test_sentinel2_codes_resolve_on_semantic_raster(self):
        """B08 and nir name the same band whichever convention the raster uses."""
        raster = build_raster(np.zeros((2, 2, 6)))
        assert raster.band_index.resolve('B08') == raster.band_index.resolve('nir') == 3

    def test_semantic_names_resolve_on_sentinel2_raster(self):
        raster = build_raster(np.zeros((2, 2, 7)))
        assert raster.band_index.convention == 'sentinel2'
        assert raster.band_index.resolve('swir2') == 5
        assert raster.band_index.resolve('cirrus') == 6

    def test_names_are_case_insensitive(self):
        raster = build_raster(np.zeros((1, 1, 7)))
        assert raster.band_index.resolve('b04') == raster.band_index.resolve('RED') == 2

    def test_offset_beyond_band_count(self):
        """Landsat 'qa' is offset 6, which a six-band raster does not have."""
        raster = build_raster(np.zeros((1, 1, 6)))
        assert not raster.band_index.has('qa')
        with pytest.raises(DataError) as excinfo:
            raster.band('qa', algorithm='landsat_qa')
        assert excinfo.value.context['algorithm'] == 'landsat_qa'
        assert excinfo.value.context['n_bands'] == 6

    def test_unknown_band(self):
        raster = build_raster(np.zeros((1, 1, 4)))
        with pytest.raises(DataError, match="swir1"):
            raster.band('swir1')

    def test_integer_offsets(self):
        raster = build_raster(np.arange(12, dtype=float).reshape(1, 2, 6))
        np.testing.assert_array_equal(raster.band(1), [[1.0, 7.0]])

    def test_explicit_mapping(self):
        raster = build_raster(np.zeros((1, 1, 2)), {'vnir': 0, 'swir': 1})
        assert raster.band_index.convention is None
        assert raster.band_index.resolve('SWIR') == 1

    def test_wavelengths(self):
        assert band_wavelength('nir') == pytest.approx(0.842)
        assert band_wavelength('B12') == pytest.approx(2.190)
        assert math.isnan(band_wavelength('qa'))
        assert math.isnan(band_wavelength(3))


class TestBuildRaster:
    """Test raster construction and validation."""

    def test_nested_lists(self):
        raster = build_raster([[[0.1, 0.2], [0.3, 0.4]]])
        assert raster.shape == (1, 2, 2)
        assert raster.data.dtype == np.float64

    def test_wrong_dimensions(self):
        with pytest.raises(DataError):
            build_raster(np.zeros((4, 4)))

    def test_ragged_data(self):
        with pytest.raises(DataError):
            build_raster([[[0.1, 0.2], [0.3]]])

    def test_unknown_convention(self):
        with pytest.raises(DataError, match="band convention"):
            build_raster(np.zeros((1, 1, 6)), 'modis')

    def test_required_bands_checked_up_front(self):
        with pytest.raises(DataError):
            build_raster(np.zeros((1, 1, 6)), required_bands=['cirrus'])

    def test_valid_mask_and_pixels(self):
        data = np.ones((2, 3, 4))
        data[1, 2, 0] = np.nan
        raster = build_raster(data)
        assert raster.n_pixels == 6
        assert raster.pixels().shape == (6, 4)
        assert raster.valid_mask().sum() == 5
        assert raster.valid_mask(bands=[1, 2]).all()

    def test_replace_keeps_band_index(self):
        raster = build_raster(np.zeros((2, 2, 6)))
        replaced = raster.replace(np.ones((2, 2, 6)))
        assert replaced.band_index is raster.band_index
        with pytest.raises(DataError):
            raster.replace(np.ones((3, 2, 6)))
