"""Tests for neighborhood weights, row standardization and CAR bounds."""

import numpy as np
import pytest

from spatialsmith.objects.polygonset import PolygonSet
from spatialsmith.objects.spatialweights import SpatialWeights
from spatialsmith.primitives.neighborhood import (
    SHAPELY_AVAILABLE,
    as_weights,
    car_rho_bounds,
    row_standardize,
    weights_from_adjacency,
    weights_from_matrix,
    weights_from_polygons,
)
from spatialsmith.utils.errors import InvalidInputError, IsolatedUnitWarning, ParameterError


class TestWeightsFromAdjacency:
    """Tests for weights_from_adjacency."""

    def test_list_input(self):
        """Test a path graph given as a list."""
        weights = weights_from_adjacency([[1], [0, 2], [1]])
        np.testing.assert_array_equal(
            weights.weights, [[0, 1, 0], [1, 0, 1], [0, 1, 0]]
        )
        assert weights.neighbors == {0: [1], 1: [0, 2], 2: [1]}
        assert weights.weights_type == "adjacency"

    def test_mapping_with_missing_units(self):
        """Test that units absent from a mapping have no neighbors."""
        weights = weights_from_adjacency({0: [1], 1: [0]}, n=3)
        assert weights.n_observations == 3
        np.testing.assert_array_equal(weights.isolated, [2])
        assert weights.has_isolated

    def test_asymmetric(self):
        """Test that one-sided adjacency is rejected."""
        with pytest.raises(InvalidInputError, match="not symmetric"):
            weights_from_adjacency([[1], []])

    def test_self_neighbor(self):
        """Test that a unit cannot neighbor itself."""
        with pytest.raises(InvalidInputError, match="itself"):
            weights_from_adjacency([[0]])

    def test_out_of_range(self):
        """Test that indices beyond n are rejected."""
        with pytest.raises(InvalidInputError, match="out of range"):
            weights_from_adjacency([[5], [0]])


class TestWeightsFromMatrix:
    """Tests for weights_from_matrix and SpatialWeights validation."""

    def test_valid_matrix(self):
        """Test wrapping a symmetric matrix."""
        weights = weights_from_matrix(np.array([[0.0, 1.0], [1.0, 0.0]]))
        assert weights.neighbors == {0: [1], 1: [0]}
        np.testing.assert_array_equal(weights.neighbor_counts, [1, 1])

    @pytest.mark.parametrize(
        "matrix",
        [
            np.zeros((2, 3)),
            np.array([[0.0, 1.0], [0.0, 0.0]]),
            np.array([[1.0, 0.0], [0.0, 0.0]]),
            np.array([[0.0, -1.0], [-1.0, 0.0]]),
        ],
    )
    def test_invalid_matrix(self, matrix):
        """Test that malformed matrices raise InvalidInputError."""
        with pytest.raises(InvalidInputError, match="Invalid weight matrix"):
            weights_from_matrix(matrix)

    def test_weights_are_read_only(self):
        """Test that the stored matrix is a read-only copy."""
        matrix = np.array([[0.0, 1.0], [1.0, 0.0]])
        weights = SpatialWeights(matrix, {0: [1], 1: [0]}, "matrix")
        matrix[0, 1] = 5.0
        assert weights.weights[0, 1] == 1.0
        with pytest.raises(ValueError):
            weights.weights[0, 1] = 2.0


class TestAsWeights:
    """Tests for as_weights coercion."""

    def test_passthrough(self):
        """Test that SpatialWeights are returned unchanged."""
        weights = weights_from_adjacency([[1], [0]])
        assert as_weights(weights) is weights

    def test_array_and_list(self):
        """Test coercion of matrices and adjacency lists."""
        from_matrix = as_weights(np.array([[0.0, 1.0], [1.0, 0.0]]))
        from_list = as_weights([[1], [0]])
        np.testing.assert_array_equal(from_matrix.weights, from_list.weights)

    def test_unit_count_mismatch(self):
        """Test that the unit count must match the observations."""
        with pytest.raises(InvalidInputError, match="one unit per observation"):
            as_weights(np.array([[0.0, 1.0], [1.0, 0.0]]), n=3)


class TestRowStandardize:
    """Tests for row_standardize."""

    def test_rows_sum_to_one(self):
        """Test that standardized rows sum to one."""
        weights = weights_from_adjacency([[1, 2], [0], [0]])
        standardized, m_diag = row_standardize(weights)
        np.testing.assert_allclose(standardized.sum(axis=1), 1.0)
        np.testing.assert_allclose(m_diag, [0.5, 1.0, 1.0])

    def test_symmetry_condition(self):
        """Test that diag(m)^-1 (I - rho W_st) is symmetric."""
        weights = weights_from_adjacency([[1, 2, 3], [0, 2], [0, 1], [0]])
        standardized, m_diag = row_standardize(weights)
        precision = (np.eye(4) - 0.4 * standardized) / m_diag[:, None]
        np.testing.assert_allclose(precision, precision.T)

    def test_isolated_warning(self):
        """Test that an isolated unit triggers IsolatedUnitWarning."""
        weights = weights_from_adjacency([[1], [0], []])
        with pytest.warns(IsolatedUnitWarning, match="no neighbors"):
            standardized, m_diag = row_standardize(weights)
        np.testing.assert_array_equal(standardized[2], 0.0)
        assert m_diag[2] == 0.0


class TestCarRhoBounds:
    """Tests for car_rho_bounds."""

    STAR = [[1, 2, 3], [0], [0], [0]]

    def test_standardized_bounds(self):
        """Test that row-standardized bounds on a bipartite graph are (-1, 1)."""
        lower, upper = car_rho_bounds(weights_from_adjacency(self.STAR))
        assert lower == pytest.approx(-1.0)
        assert upper == pytest.approx(1.0)

    def test_unstandardized_bounds(self):
        """Test bounds from the eigenvalues +-sqrt(3) of a 3-leaf star."""
        lower, upper = car_rho_bounds(
            weights_from_adjacency(self.STAR), row_standardized=False
        )
        assert lower == pytest.approx(-1.0 / np.sqrt(3.0))
        assert upper == pytest.approx(1.0 / np.sqrt(3.0))

    def test_isolated_units_ignored(self):
        """Test that isolated units do not change the bounds."""
        weights = weights_from_adjacency(self.STAR + [[]])
        lower, upper = car_rho_bounds(weights)
        assert lower == pytest.approx(-1.0)
        assert upper == pytest.approx(1.0)

    def test_no_neighbors(self):
        """Test that a graph without edges raises InvalidInputError."""
        with pytest.raises(InvalidInputError, match="at least one pair"):
            car_rho_bounds(weights_from_adjacency([[], []]))


@pytest.mark.skipif(not SHAPELY_AVAILABLE, reason="shapely not installed")
class TestPolygonContiguity:
    """Tests for contiguity weights from polygons."""

    def test_queen_grid(self):
        """Test that queen contiguity links corner neighbors."""
        weights = weights_from_polygons(PolygonSet.from_grid(2, 2), contiguity="queen")
        np.testing.assert_array_equal(weights.neighbor_counts, [3, 3, 3, 3])
        assert weights.weights_type == "queen"

    def test_rook_grid(self):
        """Test that rook contiguity needs a shared edge."""
        weights = weights_from_polygons(PolygonSet.from_grid(2, 2), contiguity="rook")
        np.testing.assert_array_equal(weights.neighbor_counts, [2, 2, 2, 2])
        assert weights.weights[0, 3] == 0.0

    def test_disjoint_polygon_is_isolated(self):
        """Test that a separate polygon has no neighbors."""
        rings = PolygonSet.from_grid(1, 2).rings + [
            np.array([[10.0, 10.0], [11.0, 10.0], [11.0, 11.0], [10.0, 11.0]])
        ]
        weights = weights_from_polygons(PolygonSet(rings, ids=["a", "b", "c"]))
        np.testing.assert_array_equal(weights.isolated, [2])
        assert weights.ids == ["a", "b", "c"]

    def test_invalid_contiguity(self):
        """Test that unknown contiguity rules are rejected."""
        with pytest.raises(ParameterError, match="contiguity"):
            weights_from_polygons(PolygonSet.from_grid(1, 2), contiguity="bishop")

    def test_as_weights_from_polygons(self):
        """Test that polygon sets are coerced with queen contiguity."""
        weights = as_weights(PolygonSet.from_grid(2, 2), n=4)
        assert weights.weights_type == "queen"
