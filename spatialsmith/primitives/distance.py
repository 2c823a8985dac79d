"""Pairwise Euclidean distances between point locations."""

from typing import Optional, Union

import numpy as np
from scipy.spatial.distance import cdist

from spatialsmith.objects.pointset import PointSet, as_pointset
from spatialsmith.utils.errors import raise_validation_error

Locations = Union[PointSet, np.ndarray]


def pairwise_distances(
    locations: Locations, other: Optional[Locations] = None
) -> np.ndarray:
    """Compute Euclidean distances between locations.

    Duplicate coordinates give a distance of exactly zero; they are valid
    (repeated sampling at one site) and do not raise.

    Args:
        locations: PointSet or (n, 2) array.
        other: Optional second PointSet or (m, 2) array. When omitted the
            symmetric (n, n) matrix among ``locations`` is returned.

    Returns:
        Distance matrix of shape (n, n) or (n, m).
    """
    points_a = as_pointset(locations)
    if other is None:
        distances = cdist(points_a.coordinates, points_a.coordinates)
        np.fill_diagonal(distances, 0.0)
        # cdist can differ in the last bit between (i, j) and (j, i)
        return np.maximum(distances, distances.T)
    points_b = as_pointset(other)
    return cdist(points_a.coordinates, points_b.coordinates)


def validate_distance_matrix(distances: np.ndarray) -> np.ndarray:
    """Check that a matrix is a valid symmetric distance matrix.

    Args:
        distances: Candidate (n, n) distance matrix.

    Returns:
        The matrix as a float array.

    Raises:
        InvalidInputError: If the matrix is not square, not finite, has
            negative entries, a non-zero diagonal, or is asymmetric.
    """
    distances = np.asarray(distances, dtype=float)
    if distances.ndim != 2 or distances.shape[0] != distances.shape[1]:
        raise_validation_error(
            "Distance matrix must be square",
            expected="(n, n)",
            received=str(distances.shape),
        )
    if not np.all(np.isfinite(distances)):
        raise_validation_error("Distance matrix contains non-finite values")
    if np.any(distances < 0):
        raise_validation_error(
            "Distance matrix contains negative distances",
            received=f"min={distances.min():.4g}",
        )
    if np.any(np.diag(distances) != 0):
        raise_validation_error("Distance matrix must have a zero diagonal")
    if not np.allclose(distances, distances.T):
        raise_validation_error("Distance matrix must be symmetric")
    return distances
