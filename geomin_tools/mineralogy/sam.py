"""
Spectral Angle Mapper.

The angle between a pixel spectrum and a reference, acos of the dot product
of the unit vectors, is insensitive to overall brightness. Smaller angles
mean more similar spectra.

Reference:
    Kruse, F.A., et al. (1993). The Spectral Image Processing System (SIPS).
        Remote Sensing of Environment, 44, 145-163.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from geomin_tools.exceptions import DataError
from geomin_tools.mineralogy.spectral_library import DEFAULT_LIBRARY, ReferenceLibrary
from geomin_tools.raster import BandKey, Raster
from geomin_tools.results import DEFAULT_TOP_N, MineralogyResult, rank_locations
from geomin_tools.utils.linalg import normalize, normalize_rows, vector_angle

logger = logging.getLogger(__name__)

MAX_ANGLE = np.pi / 2


@dataclass(frozen=True)
class SAMOptions:
    threshold: float = 0.1        # radians
    bands: Optional[Sequence[BandKey]] = None
    top_n: int = DEFAULT_TOP_N


def _reference_vector(reference: Union[str, Sequence[float]],
                      library: ReferenceLibrary) -> np.ndarray:
    if isinstance(reference, str):
        return library.spectrum(reference)
    return np.asarray(reference, dtype=np.float64).ravel()


def spectral_angle_mapper(raster: Raster, reference: Union[str, Sequence[float]],
                          options: Optional[SAMOptions] = None,
                          library: Optional[ReferenceLibrary] = None) -> MineralogyResult:
    """
    Per-pixel spectral angle to ``reference``.

    Parameters:
        raster: Input raster
        reference: Reference spectrum, or the name of a library mineral
        options: Threshold, band selection and ranking size
        library: Reference library used to resolve names

    Returns:
        MineralogyResult with maps ``angle`` (radians, pi/2 for invalid
        pixels) and ``matches`` (angle < threshold). Top locations rank the
        similarity 1 - angle / (pi/2) over valid pixels.
    """
    options = options or SAMOptions()
    library = library or DEFAULT_LIBRARY
    ref = _reference_vector(reference, library)

    cube = raster.select(options.bands, algorithm='sam')
    if ref.size != cube.shape[2]:
        raise DataError.shape_mismatch('Reference spectrum', cube.shape[2], ref.size)

    logger.info(f"Spectral Angle Mapper: threshold={options.threshold}, {ref.size} bands")

    valid = np.all(np.isfinite(cube), axis=2)
    angles = np.full(valid.shape, MAX_ANGLE)
    cos = normalize_rows(cube[valid]) @ normalize(ref)
    angles[valid] = np.arccos(np.clip(cos, -1.0, 1.0))

    matches = angles < options.threshold
    total = int(angles.size)
    n_matches = int(matches.sum())

    statistics = {
        'method': 'spectral_angle_mapper',
        'reference': reference if isinstance(reference, str) else 'custom',
        'threshold': options.threshold,
        'total_pixels': total,
        'valid_pixels': int(valid.sum()),
        'matches': n_matches,
        'match_percentage': (n_matches / total * 100) if total else 0.0,
        'min_angle': float(angles.min()) if total else 0.0,
        'max_angle': float(angles.max()) if total else 0.0,
        'mean_angle': float(angles.mean()) if total else 0.0,
    }
    similarity = 1.0 - angles / MAX_ANGLE
    return MineralogyResult(
        statistics=statistics,
        maps={'angle': angles, 'matches': matches},
        top_locations=rank_locations(similarity, options.top_n, valid),
    )


def match_spectrum(spectrum: Sequence[float], library: Optional[ReferenceLibrary] = None,
                   top_n: int = 5, method: str = 'sam') -> List[Dict]:
    """
    Match a single spectrum against the library.

    Parameters
    ----------
    spectrum : sequence of float
        Spectrum in the library band order
    library : ReferenceLibrary
        Library to search (default library if None)
    top_n : int
        Number of top matches to return
    method : str
        'sam' (spectral angle), 'correlation', or 'euclidean'

    Returns
    -------
    List of dicts with 'name', 'score', 'category' keys, best first
    """
    library = library or DEFAULT_LIBRARY
    if method not in ('sam', 'correlation', 'euclidean'):
        raise DataError.unknown_name('matching method', method, ('sam', 'correlation', 'euclidean'))

    unknown = np.nan_to_num(np.asarray(spectrum, dtype=np.float64), nan=0)
    matches = []
    for name in library.names():
        ref = library.spectrum(name)
        if ref.size != unknown.size:
            raise DataError.shape_mismatch('Spectrum', ref.size, unknown.size)

        if method == 'sam':
            # lower = more similar
            score = vector_angle(unknown, ref)
        elif method == 'correlation':
            # higher = more similar
            score = float(np.corrcoef(unknown, ref)[0, 1])
            if np.isnan(score):
                score = 0.0
        else:
            score = float(np.linalg.norm(unknown - ref))
        matches.append((name, score))

    if method == 'correlation':
        matches.sort(key=lambda x: -x[1])
    else:
        matches.sort(key=lambda x: x[1])

    results = []
    for name, score in matches[:top_n]:
        if name in library.alteration_minerals():
            category = library.signature(name).mineral_type
        else:
            category = 'reference'
        results.append({'name': name, 'score': score, 'category': category})
    return results


class SpectralAngleMapper:
    """Engine entry point for SAM against a fixed reference."""

    name = 'sam'

    def __init__(self, reference: Union[str, Sequence[float]],
                 library: Optional[ReferenceLibrary] = None):
        self.reference = reference
        self.library = library or DEFAULT_LIBRARY

    def operate(self, raster: Raster, options: Optional[SAMOptions] = None) -> MineralogyResult:
        return spectral_angle_mapper(raster, self.reference, options, self.library)
