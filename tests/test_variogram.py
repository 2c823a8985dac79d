"""Tests for empirical semivariograms and semivariogram fitting."""

import numpy as np
import pytest

from spatialsmith.objects.spcov import CovarianceParams
from spatialsmith.primitives.variogram import (
    EmpiricalSemivariogram,
    compute_empirical_semivariogram,
    fit_semivariogram_wls,
    semivariogram,
    semivariogram_from_distances,
    semivariogram_model,
)
from spatialsmith.primitives.distance import pairwise_distances
from spatialsmith.utils.errors import InvalidInputError, ParameterError

SQUARE = np.array([[1.0, 1.0], [1.0, 2.0], [2.0, 1.0], [2.0, 2.0]])
SQUARE_VALUES = np.array([9.0, 7.0, 6.0, 1.0])


class TestEmpiricalSemivariogram:
    """Tests for compute_empirical_semivariogram."""

    def test_four_point_example(self):
        """Test the unit-square example bin by bin."""
        esv = compute_empirical_semivariogram(SQUARE_VALUES, SQUARE)
        bins = list(esv)

        assert len(bins) == 2
        assert bins[0].dist == pytest.approx(1.0)
        assert bins[0].gamma == pytest.approx(9.25)
        assert bins[0].n_pairs == 4
        assert bins[1].dist == pytest.approx(np.sqrt(2.0))
        assert bins[1].gamma == pytest.approx(16.25)
        assert bins[1].n_pairs == 2

    def test_alias(self):
        """Test that semivariogram is the same function."""
        assert semivariogram is compute_empirical_semivariogram

    def test_empty_bins_omitted(self):
        """Test explicit bin edges with an empty first bin."""
        esv = compute_empirical_semivariogram(
            SQUARE_VALUES, SQUARE, bin_edges=np.array([0.0, 0.5, 1.0, 1.5])
        )
        assert esv.bins == ("(0.5, 1]", "(1, 1.5]")
        np.testing.assert_array_equal(esv.n_pairs, [4, 2])

    def test_first_bin_closed_on_left(self):
        """Test that the first bin label includes its lower edge."""
        esv = compute_empirical_semivariogram(
            SQUARE_VALUES, SQUARE, bin_edges=np.array([0.0, 1.2, 1.5])
        )
        assert esv.bins == ("[0, 1.2]", "(1.2, 1.5]")

    def test_cutoff_excludes_far_pairs(self):
        """Test that pairs beyond the cutoff are dropped."""
        esv = compute_empirical_semivariogram(SQUARE_VALUES, SQUARE, n_bins=2, cutoff=1.2)
        assert int(esv.n_pairs.sum()) == 4

    def test_missing_values_dropped(self):
        """Test that NaN responses are excluded from all pairs."""
        coords = np.vstack([SQUARE, [[10.0, 10.0]]])
        values = np.append(SQUARE_VALUES, np.nan)
        esv = compute_empirical_semivariogram(values, coords, cutoff=np.sqrt(2.0))
        np.testing.assert_allclose(esv.gamma, [9.25, 16.25])

    def test_predictors_remove_trend(self):
        """Test that an exact linear trend leaves zero semivariance."""
        rng = np.random.default_rng(0)
        coords = rng.uniform(0, 10, size=(30, 2))
        trend = 3.0 + 2.0 * coords[:, 0]
        esv = compute_empirical_semivariogram(trend, coords, predictors=coords[:, 0])
        np.testing.assert_allclose(esv.gamma, 0.0, atol=1e-12)

    def test_single_observation_is_empty(self):
        """Test that a single observation gives an empty semivariogram."""
        esv = compute_empirical_semivariogram(np.array([1.0]), np.array([[0.0, 0.0]]))
        assert len(esv) == 0

    def test_length_mismatch(self):
        """Test that mismatched lengths raise InvalidInputError."""
        with pytest.raises(InvalidInputError, match="same length"):
            compute_empirical_semivariogram(np.arange(3.0), SQUARE)

    def test_invalid_bin_edges(self):
        """Test that decreasing bin edges are rejected."""
        with pytest.raises(InvalidInputError, match="bin_edges"):
            compute_empirical_semivariogram(
                SQUARE_VALUES, SQUARE, bin_edges=np.array([1.0, 0.5])
            )

    def test_to_frame(self):
        """Test the DataFrame view."""
        frame = compute_empirical_semivariogram(SQUARE_VALUES, SQUARE).to_frame()
        assert list(frame.columns) == ["bin", "dist", "gamma", "n_pairs"]
        assert len(frame) == 2

    def test_from_distance_matrix(self):
        """Test that a precomputed distance matrix gives the same bins."""
        esv = semivariogram_from_distances(SQUARE_VALUES, pairwise_distances(SQUARE))
        np.testing.assert_allclose(esv.gamma, [9.25, 16.25])


def exact_semivariogram(params, distances, n_pairs=100):
    """Empirical semivariogram that matches a model exactly."""
    gamma = semivariogram_model(params, distances)
    edges = np.concatenate([[0.0], distances + 0.05])
    return EmpiricalSemivariogram(
        bins=tuple(f"b{i}" for i in range(len(distances))),
        dist=distances,
        gamma=gamma,
        n_pairs=np.full(len(distances), n_pairs),
        bin_edges=edges,
    )


class TestSemivariogramFit:
    """Tests for fit_semivariogram_wls."""

    def test_semivariogram_model(self):
        """Test gamma(h) = ie + de - C(h)."""
        params = CovarianceParams("exponential", de=2.0, ie=0.5, range=1.0)
        gamma = semivariogram_model(params, np.array([0.0, 1.0]))
        np.testing.assert_allclose(gamma, [0.5, 0.5 + 2.0 * (1.0 - np.exp(-1.0))])

    def test_recovers_exponential_parameters(self):
        """Test that an exact exponential semivariogram is recovered."""
        truth = CovarianceParams("exponential", de=1.0, ie=0.5, range=2.0)
        esv = exact_semivariogram(truth, np.linspace(0.25, 6.0, 12))
        fit = fit_semivariogram_wls(esv, "exponential")

        assert fit.params.de == pytest.approx(1.0, rel=0.05)
        assert fit.params.ie == pytest.approx(0.5, rel=0.1)
        assert fit.params.range == pytest.approx(2.0, rel=0.05)

    def test_known_parameters_are_kept(self):
        """Test that fixed parameters are not changed."""
        truth = CovarianceParams("spherical", de=1.0, ie=0.2, range=3.0)
        esv = exact_semivariogram(truth, np.linspace(0.25, 5.0, 10))
        fit = fit_semivariogram_wls(esv, "spherical", known={"ie": 0.2})
        assert fit.params.ie == 0.2
        assert fit.params.range == pytest.approx(3.0, rel=0.05)

    def test_none_family_is_flat(self):
        """Test that the independent-error fit is the pair-weighted mean."""
        esv = EmpiricalSemivariogram(
            bins=("a", "b"),
            dist=np.array([1.0, 2.0]),
            gamma=np.array([1.0, 4.0]),
            n_pairs=np.array([3, 1]),
            bin_edges=np.array([0.0, 1.5, 2.5]),
        )
        fit = fit_semivariogram_wls(esv, "none")
        assert fit.params.ie == pytest.approx(1.75)
        assert fit.params.de == 0.0

    def test_car_family_rejected(self):
        """Test that areal families cannot be fit to a semivariogram."""
        esv = compute_empirical_semivariogram(SQUARE_VALUES, SQUARE)
        with pytest.raises(ParameterError):
            fit_semivariogram_wls(esv, "car")

    def test_too_few_bins(self):
        """Test that fewer bins than free parameters is rejected."""
        esv = compute_empirical_semivariogram(SQUARE_VALUES, SQUARE)
        with pytest.raises(InvalidInputError, match="non-empty bins"):
            fit_semivariogram_wls(esv, "exponential")

    def test_zero_semivariogram(self):
        """Test that an identically zero semivariogram is rejected."""
        esv = compute_empirical_semivariogram(np.ones(4), SQUARE)
        with pytest.raises(InvalidInputError, match="identically zero"):
            fit_semivariogram_wls(esv, "exponential")
