"""
Tests for the dense linear-algebra kernel.

Run with: pytest tests/test_linalg.py -v
"""

import logging

import numpy as np
import pytest

from geomin_tools.exceptions import DataError
from geomin_tools.utils.linalg import (
    gauss_jordan_inverse, mahalanobis, mean_and_covariance, normalize,
    normalize_rows, power_iteration, pseudo_inverse, regularize_covariance,
    vector_angle,
)


class TestInversion:
    """Test Gauss-Jordan inversion."""

    def test_inverse_matches_numpy(self):
        """Well-conditioned matrices invert exactly."""
        matrix = np.array([[4.0, 7.0, 1.0], [2.0, 6.0, 0.5], [1.0, 0.0, 3.0]])
        inverse, skipped = gauss_jordan_inverse(matrix)
        assert skipped == 0
        np.testing.assert_allclose(inverse, np.linalg.inv(matrix), atol=1e-10)

    def test_singular_matrix_skips_pivot(self):
        """A rank-deficient matrix reports the skipped pivot instead of failing."""
        _, skipped = gauss_jordan_inverse(np.array([[1.0, 2.0], [2.0, 4.0]]))
        assert skipped == 1

    def test_zero_matrix(self):
        """All pivots of a zero matrix are skipped."""
        inverse, skipped = gauss_jordan_inverse(np.zeros((3, 3)))
        assert skipped == 3
        assert np.all(np.isfinite(inverse))

    def test_non_square_rejected(self):
        with pytest.raises(DataError):
            gauss_jordan_inverse(np.ones((2, 3)))

    def test_pseudo_inverse_recovers_abundances(self):
        """E+ (E a) == a for a full-rank endmember matrix."""
        e = np.array([[0.1, 0.5], [0.2, 0.4], [0.3, 0.3], [0.4, 0.1]])
        a = np.array([0.7, 0.3])
        np.testing.assert_allclose(pseudo_inverse(e) @ (e @ a), a, atol=1e-10)

    def test_pseudo_inverse_too_many_endmembers(self):
        with pytest.raises(DataError):
            pseudo_inverse(np.ones((2, 3)))


class TestCovariance:
    """Test covariance estimation and regularization."""

    def test_sample_covariance(self, rng):
        """Covariance uses the n - 1 denominator."""
        samples = rng.normal(size=(50, 4))
        mean, cov = mean_and_covariance(samples)
        np.testing.assert_allclose(mean, samples.mean(axis=0))
        np.testing.assert_allclose(cov, np.cov(samples, rowvar=False))

    def test_single_sample_zero_covariance(self):
        mean, cov = mean_and_covariance(np.array([[1.0, 2.0]]))
        np.testing.assert_allclose(mean, [1.0, 2.0])
        assert not cov.any()

    def test_regularization_adds_mean_variance_fraction(self):
        """Each diagonal entry grows by trace / n * 0.01."""
        cov = np.array([[2.0, 0.5], [0.5, 4.0]])
        reg = regularize_covariance(cov)
        np.testing.assert_allclose(np.diag(reg), [2.03, 4.03])
        assert reg[0, 1] == 0.5
        # Input untouched
        assert cov[0, 0] == 2.0

    def test_mahalanobis_identity_is_euclidean(self):
        samples = np.array([[3.0, 4.0], [0.0, 0.0]])
        d = mahalanobis(samples, np.zeros(2), np.eye(2))
        np.testing.assert_allclose(d, [5.0, 0.0])


class TestPowerIteration:
    """Test eigen-extraction by power iteration."""

    def test_diagonal_matrix(self):
        """Eigenvalues of a diagonal matrix come back in descending order."""
        values, vectors = power_iteration(np.diag([2.0, 5.0, 1.0]), 3)
        np.testing.assert_allclose(values, [5.0, 2.0, 1.0], atol=1e-6)
        np.testing.assert_allclose(np.abs(vectors[0]), [0.0, 1.0, 0.0], atol=1e-6)

    def test_unit_loadings(self, rng):
        samples = rng.normal(size=(200, 4)) * [3.0, 2.0, 1.0, 0.5]
        _, cov = mean_and_covariance(samples)
        _, vectors = power_iteration(cov, 2)
        np.testing.assert_allclose(np.linalg.norm(vectors, axis=1), 1.0)

    def test_components_capped_at_dimension(self):
        values, vectors = power_iteration(np.eye(2), 5)
        assert values.shape == (2,)
        assert vectors.shape == (2, 2)

    def test_start_orthogonal_to_eigenvector_warns(self, caplog):
        """A uniform start in the null space cannot move and is reported."""
        with caplog.at_level(logging.WARNING, logger='geomin_tools.utils.linalg'):
            values, vectors = power_iteration(np.array([[1.0, -1.0], [-1.0, 1.0]]), 1)
        assert values[0] == pytest.approx(0.0)
        np.testing.assert_allclose(vectors[0], [np.sqrt(0.5)] * 2)
        assert 'degenerate' in caplog.text

    def test_zero_matrix_does_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger='geomin_tools.utils.linalg'):
            power_iteration(np.zeros((3, 3)), 2)
        assert not caplog.records


class TestVectors:
    """Test vector helpers."""

    def test_normalize_zero_vector(self):
        """Zero vectors are returned unchanged."""
        assert not normalize(np.zeros(3)).any()

    def test_normalize_rows(self):
        rows = normalize_rows(np.array([[3.0, 4.0], [0.0, 0.0]]))
        np.testing.assert_allclose(rows, [[0.6, 0.8], [0.0, 0.0]])

    def test_orthogonal_angle(self):
        assert vector_angle(np.array([1.0, 0.0]), np.array([0.0, 2.0])) == pytest.approx(np.pi / 2)

    def test_scaled_vectors_parallel(self):
        a = np.array([0.1, 0.2, 0.3])
        assert vector_angle(a, 5 * a) == pytest.approx(0.0, abs=1e-6)


class TestProperties:
    """Numerical properties the engines rely on."""

    def test_inverse_round_trip(self, rng):
        """A @ inverse(A) is the identity within 1e-6 for n <= 8."""
        for n in range(1, 9):
            a = rng.normal(size=(n, n)) + n * np.eye(n)
            inverse, skipped = gauss_jordan_inverse(a)
            assert skipped == 0
            np.testing.assert_allclose(a @ inverse, np.eye(n), atol=1e-6)

    def test_pca_loadings_two_band(self, rng):
        """Known principal axes at 30 degrees are recovered as unit, orthogonal loadings."""
        angle = np.radians(30)
        axes = np.array([[np.cos(angle), -np.sin(angle)], [np.sin(angle), np.cos(angle)]])
        samples = (rng.normal(size=(2000, 2)) * [2.0, 0.5]) @ axes.T
        _, cov = mean_and_covariance(samples)
        values, vectors = power_iteration(cov, 2)

        assert values[0] > values[1] > 0
        np.testing.assert_allclose(np.linalg.norm(vectors, axis=1), 1.0, atol=1e-9)
        assert abs(vectors[0] @ vectors[1]) < 1e-6
        assert abs(vectors[0] @ axes[:, 0]) == pytest.approx(1.0, abs=1e-2)
