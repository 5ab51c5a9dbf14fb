"""
Raster file loading and result document output.

Supported raster formats:
    .json  nested [row][col][band] arrays
    .npy   NumPy array saved with numpy.save, shaped (rows, cols, bands)
    .csv   one image row per line, cols * bands values in pixel-major order
           (requires n_bands)
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np

from geomin_tools.exceptions import DataError
from geomin_tools.raster import Raster, build_raster
from geomin_tools.results import to_serializable

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ('.json', '.npy', '.csv')


def _load_csv(path: Path, n_bands: Optional[int]) -> np.ndarray:
    if not n_bands:
        raise DataError("CSV rasters need the band count (n_bands)", {'path': str(path)})
    table = np.loadtxt(path, delimiter=',', dtype=np.float64, ndmin=2)
    n_rows, n_values = table.shape
    if n_values % n_bands:
        raise DataError(
            f"CSV row length {n_values} is not a multiple of {n_bands} bands",
            {'path': str(path), 'values_per_row': n_values, 'n_bands': n_bands},
        )
    return table.reshape(n_rows, n_values // n_bands, n_bands)


def load_raster(path: Union[str, Path],
                band_mapping: Union[None, str, Mapping[str, int]] = None,
                n_bands: Optional[int] = None) -> Raster:
    """
    Load a raster file.

    Parameters:
        path: .json, .npy or .csv file
        band_mapping: Passed to build_raster (explicit mapping, convention
            name, or None to infer from the band count)
        n_bands: Band count, required for .csv

    Returns:
        Raster

    Raises:
        FileNotFoundError: Path does not exist
        DataError: Unsupported extension or malformed content
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == '.json':
        with open(path) as f:
            data = json.load(f)
    elif suffix == '.npy':
        data = np.load(path, allow_pickle=False)
    elif suffix == '.csv':
        data = _load_csv(path, n_bands)
    else:
        raise DataError.unknown_name('raster format', suffix or '(none)', SUPPORTED_FORMATS)

    raster = build_raster(data, band_mapping)
    logger.info(f"Loaded {path.name}: {raster.n_rows}x{raster.n_cols}, {raster.n_bands} bands "
                f"({raster.band_index.convention or 'custom'} bands)")
    return raster


def save_document(document: Dict[str, Any], path: Union[str, Path]) -> Path:
    """Write a result document (or anything to_serializable accepts) as JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(to_serializable(document), f, indent=2)
    logger.info(f"Saved results to: {path}")
    return path
