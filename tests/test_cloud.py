"""
Tests for cloud detection and masking.

Run with: pytest tests/test_cloud.py -v
"""

import numpy as np
import pytest

from geomin_tools.cloud.masker import (
    CloudMasker, CloudMaskOptions, apply_mask, clear_pixels, landsat_qa_mask,
    sentinel2_mask, threshold_mask,
)
from geomin_tools.exceptions import DataError
from geomin_tools.raster import build_raster

# blue, green, red, nir, swir1, swir2
CLEAR = [0.05, 0.08, 0.04, 0.45, 0.20, 0.30]
BRIGHT_CLOUD = [0.60, 0.60, 0.60, 0.60, 0.50, 0.40]


class TestThresholdMask:
    """Test the fixed-threshold algorithm."""

    def test_each_rule_fires(self):
        raster = build_raster([[
            [0.10, 0.1, 0.1, 0.50, 0.20, 0.40],   # clear
            [0.35, 0.1, 0.1, 0.50, 0.20, 0.40],   # bright blue
            [0.10, 0.1, 0.1, 0.30, 0.20, 0.40],   # dark NIR
            [0.10, 0.1, 0.1, 0.50, 0.40, 0.40],   # SWIR ratio 1.0
        ]])
        result = threshold_mask(raster)
        np.testing.assert_array_equal(result.mask, [[False, True, True, True]])
        assert result.statistics['cloud_pixels'] == 3
        assert result.statistics['algorithm'] == 'threshold'

    def test_threshold_overrides(self):
        raster = build_raster([[[0.35, 0.1, 0.1, 0.50, 0.20, 0.40]]])
        result = threshold_mask(raster, {'blue_threshold': 0.5})
        assert not result.mask.any()
        assert result.statistics['thresholds']['blue_threshold'] == 0.5

    def test_zero_swir2_never_fires_ratio(self):
        raster = build_raster([[[0.10, 0.1, 0.1, 0.50, 0.20, 0.0]]])
        assert not threshold_mask(raster).mask.any()


class TestSentinel2Mask:
    """Test the probabilistic Sentinel-2 algorithm."""

    def test_clear_vegetation(self):
        result = sentinel2_mask(build_raster([[CLEAR]]))
        assert not result.mask.any()
        assert result.probability[0, 0] == 0.0

    def test_bright_white_cloud_probability(self):
        """Blue (0.4) + whiteness (0.2) + SWIR ratio (0.2)."""
        result = sentinel2_mask(build_raster([[BRIGHT_CLOUD, CLEAR]]))
        np.testing.assert_array_equal(result.mask, [[True, False]])
        assert result.probability[0, 0] == pytest.approx(0.8)

    def test_probability_clipped(self):
        result = sentinel2_mask(build_raster([[[0.9, 0.9, 0.9, 0.5, 0.5, 0.4]]]))
        assert result.probability.max() <= 1.0

    def test_cirrus_skipped_without_band(self):
        result = sentinel2_mask(build_raster([[CLEAR]]))
        assert 'adaptive_cirrus_threshold' not in result.statistics['thresholds']

    def test_adaptive_cirrus(self, sentinel2_raster):
        data = sentinel2_raster.data.copy()
        data[0, 0, 6] = 0.2
        result = sentinel2_mask(sentinel2_raster.replace(data))
        thresholds = result.statistics['thresholds']
        assert thresholds['adaptive_cirrus_threshold'] >= 0.01
        assert result.mask[0, 0]
        assert result.probability[0, 0] == pytest.approx(0.4)

    def test_nan_pixels_clear(self):
        raster = build_raster([[[np.nan] * 6, CLEAR]])
        result = sentinel2_mask(raster)
        assert not result.mask.any()
        assert np.all(np.isfinite(result.probability))


class TestLandsatQA:
    """Test QA bit decoding."""

    def test_cloud_bits(self):
        qa = [0, 2, 4, 8, 16, 1, 32]
        data = np.zeros((1, len(qa), 7))
        data[0, :, 6] = qa
        result = landsat_qa_mask(build_raster(data, 'landsat'))
        np.testing.assert_array_equal(result.mask[0], [False, True, True, True, True, False, False])

    def test_missing_qa_band(self):
        with pytest.raises(DataError, match="qa"):
            landsat_qa_mask(build_raster(np.zeros((1, 1, 6))))


class TestMaskApplication:
    """Test masking helpers and the engine."""

    def test_apply_mask(self):
        raster = build_raster(np.ones((2, 2, 6)))
        mask = np.array([[True, False], [False, False]])
        masked = apply_mask(raster, mask, fill_value=-1.0)
        assert np.all(masked.data[0, 0] == -1.0)
        assert np.all(masked.data[1, 1] == 1.0)
        assert np.all(raster.data == 1.0)

    def test_apply_mask_shape_mismatch(self):
        with pytest.raises(DataError):
            apply_mask(build_raster(np.ones((2, 2, 6))), np.zeros((3, 3), dtype=bool))

    def test_clear_pixels(self):
        np.testing.assert_array_equal(clear_pixels(np.array([True, False])), [False, True])

    def test_unknown_algorithm(self):
        with pytest.raises(DataError, match="cloud masking algorithm"):
            CloudMasker(CloudMaskOptions(algorithm='fmask')).operate(build_raster([[CLEAR]]))

    def test_mask_and_apply(self):
        raster = build_raster([[BRIGHT_CLOUD, CLEAR]])
        result, masked = CloudMasker().mask_and_apply(raster)
        assert result.clear.tolist() == [[False, True]]
        assert np.all(masked.data[0, 0] == 0.0)
        np.testing.assert_allclose(masked.data[0, 1], CLEAR)


class TestSentinel2Scene:
    """Seven-band Sentinel-2 scene with a cloud region and a vegetation region."""

    def test_cloud_region_flagged(self):
        data = np.zeros((4, 6, 7))
        data[:, :3] = [0.45, 0.42, 0.40, 0.30, 0.25, 0.20, 0.002]   # bright, low NIR
        data[:, 3:] = [0.04, 0.07, 0.04, 0.40, 0.15, 0.25, 0.002]   # vegetation
        raster = build_raster(data)
        assert raster.band_index.convention == 'sentinel2'

        result = CloudMasker(CloudMaskOptions(algorithm='sentinel2')).operate(raster)
        assert result.mask[:, :3].all()
        assert not result.mask[:, 3:].any()
        assert result.statistics['cloud_percentage'] == pytest.approx(50.0)
