"""
GeoMin Tools
============

Anomaly detection, cloud masking and alteration mineral mapping for
multispectral satellite rasters.

Modules:
    anomaly: RX, Local Outlier Factor and classifier-backed (Isolation Forest) detection
    cloud: Threshold, Sentinel-2 probabilistic and Landsat QA cloud masks
    mineralogy: Crosta PCA, Spectral Angle Mapper, linear unmixing, reference library
    indices: Spectral band-math indices
    utils: Configuration, memory, parallel execution and linear algebra

Usage:
    from geomin_tools import load_raster, detect_anomalies, mask_clouds

    raster = load_raster('scene.npy')
    result = detect_anomalies(raster, algorithm='rx')
    print(result.statistics['anomaly_pixels'], result.top_locations[:5])

    clouds = mask_clouds(raster, algorithm='sentinel2')
    minerals = map_minerals(raster, target='iron')
"""

__version__ = '0.3.0'

from geomin_tools.exceptions import AlgorithmError, DataError, GeoMinError
from geomin_tools.raster import BandIndex, Raster, build_raster
from geomin_tools.io import load_raster, save_document
from geomin_tools.engines import detect_anomalies, exploration_workflow, run
from geomin_tools.indices.calculator import calculate_index


# Convenience functions
def mask_clouds(raster, algorithm='sentinel2', **thresholds):
    """Cloud mask for ``raster`` using the named algorithm."""
    from geomin_tools.cloud.masker import CloudMasker, CloudMaskOptions
    return CloudMasker(CloudMaskOptions(algorithm=algorithm, thresholds=thresholds)).operate(raster)


def map_minerals(raster, target='hydroxyl', n_components=4):
    """Crosta PCA for one alteration target ('hydroxyl', 'iron', 'silica')."""
    from geomin_tools.mineralogy.crosta import CrostaOptions, crosta_pca
    return crosta_pca(raster, CrostaOptions(target=target, n_components=n_components))


__all__ = [
    'GeoMinError', 'DataError', 'AlgorithmError',
    'BandIndex', 'Raster', 'build_raster',
    'load_raster', 'save_document',
    'detect_anomalies', 'exploration_workflow', 'run',
    'calculate_index', 'mask_clouds', 'map_minerals',
]
