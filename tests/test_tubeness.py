"""
Tests for the tubeness ridge filter.
"""

import numpy as np
import pytest

from circleskinner.hessian.tubeness import tubeness, tubeness_from_eigenvalues


class TestTubenessFromEigenvalues:
    """Tests for the eigenvalue combination."""

    def test_2d_uses_smallest_eigenvalue(self):
        eigenvalues = np.array([[0.1, -4.0]])
        result = tubeness_from_eigenvalues(eigenvalues, sigma=2.0)
        assert result[0] == pytest.approx(4.0 * 4.0)

    def test_3d_geometric_mean(self):
        eigenvalues = np.array([[0.0, -2.0, -8.0]])
        result = tubeness_from_eigenvalues(eigenvalues, sigma=1.0)
        assert result[0] == pytest.approx(4.0)

    def test_non_ridge_is_zero(self):
        """Any non-negative cross-section eigenvalue means no ridge."""
        eigenvalues = np.array([[0.0, 1.0, -3.0], [2.0, 1.0, 0.5]])
        result = tubeness_from_eigenvalues(eigenvalues, sigma=1.0)
        np.testing.assert_array_equal(result, [0.0, 0.0])

    def test_1d(self):
        eigenvalues = np.array([[-3.0], [3.0]])
        result = tubeness_from_eigenvalues(eigenvalues, sigma=1.0)
        np.testing.assert_allclose(result, [3.0, 0.0])


class TestTubeness:
    """Tests for tubeness of images."""

    def test_bright_line_peaks_on_line(self):
        """A vertical bright line gives maximal response on its column."""
        image = np.zeros((41, 41))
        image[:, 20] = 100.0

        result = tubeness(image, sigma=2.0, n_workers=2)

        row = result[20]
        assert np.argmax(row) == 20
        assert row[20] > 0
        assert row[0] == pytest.approx(0.0, abs=1e-6)

    def test_flat_image(self):
        result = tubeness(np.full((16, 16), 3.0), sigma=1.5)
        np.testing.assert_allclose(result, 0.0, atol=1e-10)

    def test_non_negative_and_read_only(self):
        rng = np.random.default_rng(0)
        result = tubeness(rng.normal(size=(24, 24)), sigma=1.0)
        assert np.all(result >= 0)
        assert not result.flags.writeable

    def test_calibration_arity(self):
        with pytest.raises(ValueError):
            tubeness(np.zeros((8, 8)), sigma=1.0, calibration=[1.0])
