"""
Band arithmetic helpers for spectral index calculations.

Divisions are guarded the same way everywhere: where the denominator is
exactly zero the result is 0. Non-finite inputs propagate so that they can
be excluded from statistics downstream.
"""

import numpy as np


def safe_ratio(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """
    Simple band ratio: numerator / denominator, 0 where the denominator is 0.

    Parameters:
        numerator: Band values
        denominator: Band values, same shape

    Returns:
        Ratio values
    """
    numerator = np.asarray(numerator, dtype=np.float64)
    denominator = np.asarray(denominator, dtype=np.float64)
    result = np.zeros(np.broadcast(numerator, denominator).shape)
    nonzero = denominator != 0
    np.divide(numerator, denominator, out=result, where=nonzero)
    # NaN != 0, so missing denominators reach np.divide and stay NaN
    return result


def normalized_difference(band1: np.ndarray, band2: np.ndarray) -> np.ndarray:
    """
    Normalized difference index: (B1 - B2) / (B1 + B2)

    Parameters:
        band1: First band values
        band2: Second band values

    Returns:
        Normalized difference values (-1 to 1 for non-negative input),
        0 where B1 + B2 == 0
    """
    band1 = np.asarray(band1, dtype=np.float64)
    band2 = np.asarray(band2, dtype=np.float64)
    return safe_ratio(band1 - band2, band1 + band2)


def band_mean(*bands: np.ndarray) -> np.ndarray:
    """Pixelwise mean of several bands."""
    return np.mean(np.stack([np.asarray(b, dtype=np.float64) for b in bands]), axis=0)
