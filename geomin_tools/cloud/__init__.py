"""Cloud detection and masking."""

from geomin_tools.cloud.masker import (
    CloudMasker,
    CloudMaskOptions,
    apply_mask,
    clear_pixels,
    landsat_qa_mask,
    sentinel2_mask,
    threshold_mask,
)

__all__ = [
    'CloudMasker', 'CloudMaskOptions', 'apply_mask', 'clear_pixels',
    'landsat_qa_mask', 'sentinel2_mask', 'threshold_mask',
]
