"""
Small dense linear-algebra kernel used by the anomaly and mineralogy engines.

Matrices here are band-by-band (n rarely exceeds a few tens), so the routines
favour predictable behaviour on degenerate input over speed:

    - Gauss-Jordan inversion skips near-zero pivots instead of failing.
    - Covariances are regularized by a fraction of their mean variance.
    - Eigenpairs come from power iteration with deflation, which is an
      approximation adequate for small matrices whose leading eigenvalues
      are well separated. It is not an exact symmetric eigensolver.

References:
    Reed, I.S., & Yu, X. (1990). Adaptive multiple-band CFAR detection of an
        optical pattern with unknown spectral distribution. IEEE TASSP,
        38(10), 1760-1770.
"""

import logging
from typing import Tuple

import numpy as np
from scipy.spatial.distance import cdist

from geomin_tools.exceptions import DataError

logger = logging.getLogger(__name__)

PIVOT_EPSILON = 1e-10
REGULARIZATION_FACTOR = 0.01
POWER_ITERATIONS = 100


# =============================================================================
# Inversion
# =============================================================================

def gauss_jordan_inverse(matrix: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Invert a square matrix by Gauss-Jordan elimination on [A | I].

    For each column the row with the largest absolute value in that column
    (at or below the diagonal) is swapped into the pivot position. Pivots
    smaller than 1e-10 are skipped, leaving that row degenerate; callers
    should regularize beforehand.

    Parameters:
        matrix: (n, n) array

    Returns:
        Tuple of (inverse, number of skipped pivots)
    """
    a = np.array(matrix, dtype=np.float64)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise DataError.shape_mismatch('Matrix to invert', '(n, n)', a.shape)

    n = a.shape[0]
    augmented = np.hstack([a, np.eye(n)])
    skipped = 0

    for col in range(n):
        max_row = col + int(np.argmax(np.abs(augmented[col:, col])))
        if max_row != col:
            augmented[[col, max_row]] = augmented[[max_row, col]]

        pivot = augmented[col, col]
        if abs(pivot) < PIVOT_EPSILON:
            skipped += 1
            continue

        augmented[col] /= pivot
        factors = augmented[:, col].copy()
        factors[col] = 0.0
        augmented -= np.outer(factors, augmented[col])

    return augmented[:, n:], skipped


def matrix_inverse(matrix: np.ndarray) -> np.ndarray:
    """Inverse of ``matrix``; see gauss_jordan_inverse for degenerate input."""
    inverse, _ = gauss_jordan_inverse(matrix)
    return inverse


def pseudo_inverse(matrix: np.ndarray) -> np.ndarray:
    """
    Left pseudo-inverse (E^T E)^-1 E^T via the normal equations.

    Parameters:
        matrix: (bands, endmembers) array with endmembers <= bands

    Returns:
        (endmembers, bands) array
    """
    e = np.asarray(matrix, dtype=np.float64)
    if e.ndim != 2:
        raise DataError.shape_mismatch('Endmember matrix', '(bands, endmembers)', e.shape)
    n_bands, n_members = e.shape
    if n_members > n_bands:
        raise DataError(
            f"Cannot unmix {n_members} endmembers with only {n_bands} bands",
            {'endmembers': n_members, 'bands': n_bands},
        )
    return matrix_inverse(e.T @ e) @ e.T


# =============================================================================
# Covariance
# =============================================================================

def mean_and_covariance(samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Mean vector and sample covariance (n - 1 denominator) of row vectors.

    Fewer than two samples give a zero covariance.
    """
    samples = np.asarray(samples, dtype=np.float64)
    n, n_features = samples.shape
    mean = samples.mean(axis=0) if n else np.zeros(n_features)
    if n < 2:
        return mean, np.zeros((n_features, n_features))
    centered = samples - mean
    return mean, centered.T @ centered / (n - 1)


def regularize_covariance(cov: np.ndarray, factor: float = REGULARIZATION_FACTOR) -> np.ndarray:
    """Add (trace / n) * factor to every diagonal entry."""
    cov = np.array(cov, dtype=np.float64)
    n = cov.shape[0]
    cov[np.diag_indices(n)] += np.trace(cov) / n * factor
    return cov


def mahalanobis(samples: np.ndarray, mean: np.ndarray, cov_inv: np.ndarray) -> np.ndarray:
    """sqrt(max(0, d^T S^-1 d)) for every row of ``samples``."""
    diff = np.atleast_2d(samples) - mean
    md = np.einsum('ij,jk,ik->i', diff, cov_inv, diff)
    return np.sqrt(np.maximum(md, 0.0))


# =============================================================================
# Eigen-extraction
# =============================================================================

def power_iteration(cov: np.ndarray, n_components: int,
                    n_iter: int = POWER_ITERATIONS) -> Tuple[np.ndarray, np.ndarray]:
    """
    Leading eigenpairs of a symmetric matrix by power iteration and deflation.

    Each component starts from a uniform unit vector, iterates
    v <- normalize(C v) for ``n_iter`` steps, takes the Rayleigh quotient as
    its eigenvalue and deflates C <- C - lambda v v^T. The extracted pairs
    are returned in non-increasing eigenvalue order.

    Parameters:
        cov: (n, n) symmetric matrix
        n_components: Number of pairs to extract (capped at n)
        n_iter: Fixed iteration budget per component

    Returns:
        Tuple of (eigenvalues (k,), loadings (k, n)) with unit-norm rows
    """
    work = np.array(cov, dtype=np.float64)
    n = work.shape[0]
    k = max(0, min(int(n_components), n))

    eigenvalues = np.zeros(k)
    vectors = np.zeros((k, n))

    for comp in range(k):
        vector = np.full(n, 1.0 / np.sqrt(n))
        for step in range(n_iter):
            new_vector = work @ vector
            norm = np.linalg.norm(new_vector)
            if norm > 0:
                vector = new_vector / norm
            elif step == 0 and np.any(work):
                # Start vector lies in the null space; the loading stays uniform
                logger.warning(f"Power iteration: uniform start is orthogonal to the remaining "
                               f"eigenvectors at component {comp + 1}; loading is degenerate")

        eigenvalue = float(vector @ work @ vector)
        work -= eigenvalue * np.outer(vector, vector)

        eigenvalues[comp] = eigenvalue
        vectors[comp] = vector

    order = np.argsort(-eigenvalues, kind='stable')
    return eigenvalues[order], vectors[order]


# =============================================================================
# Vector Operations
# =============================================================================

def normalize(vector: np.ndarray) -> np.ndarray:
    """Unit-length copy of ``vector``; zero vectors are returned unchanged."""
    vector = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(vector)
    return vector / norm if norm > 0 else vector.copy()


def normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """Row-wise normalize; zero rows stay zero."""
    vectors = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(norms > 0, norms, 1.0)
    return vectors / safe


def dot(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.dot(a, b))


def vector_angle(a: np.ndarray, b: np.ndarray) -> float:
    """Angle in radians between two vectors (pi/2 if either is zero)."""
    cos = np.clip(dot(normalize(a), normalize(b)), -1.0, 1.0)
    return float(np.arccos(cos))


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def pairwise_distances(block: np.ndarray, population: np.ndarray) -> np.ndarray:
    """Euclidean distances from every row of ``block`` to every row of ``population``."""
    return cdist(block, population, metric='euclidean')
