"""Shared simulated datasets for spatial model tests."""

import numpy as np
import pytest

from spatialsmith.objects.spcov import CovarianceParams
from spatialsmith.primitives.covariance import car_covariance_matrix, covariance_matrix
from spatialsmith.primitives.distance import pairwise_distances
from spatialsmith.primitives.neighborhood import weights_from_adjacency


def grid_adjacency(n_rows, n_cols):
    """Rook adjacency of a row-major lattice."""
    adjacency = []
    for r in range(n_rows):
        for c in range(n_cols):
            nbrs = []
            if r > 0:
                nbrs.append((r - 1) * n_cols + c)
            if r < n_rows - 1:
                nbrs.append((r + 1) * n_cols + c)
            if c > 0:
                nbrs.append(r * n_cols + c - 1)
            if c < n_cols - 1:
                nbrs.append(r * n_cols + c + 1)
            adjacency.append(nbrs)
    return adjacency


@pytest.fixture
def exponential_data():
    """Exponential-covariance process with a linear trend in x."""
    rng = np.random.default_rng(42)
    n = 80
    coords = rng.uniform(0.0, 10.0, size=(n, 2))
    params = CovarianceParams("exponential", de=2.0, ie=0.2, range=2.0)
    sigma = covariance_matrix(params, pairwise_distances(coords))
    errors = np.linalg.cholesky(sigma) @ rng.standard_normal(n)
    x = rng.normal(size=n)
    y = 1.0 + 0.5 * x + errors
    return {"coords": coords, "x": x, "y": y, "params": params}


@pytest.fixture
def car_data():
    """CAR process on a 6 x 6 rook lattice with a linear trend in x."""
    rng = np.random.default_rng(7)
    weights = weights_from_adjacency(grid_adjacency(6, 6))
    params = CovarianceParams("car", de=1.5, ie=0.0, rho=0.6)
    sigma = car_covariance_matrix(weights, params)
    n = weights.n_observations
    errors = np.linalg.cholesky(sigma) @ rng.standard_normal(n)
    x = rng.normal(size=n)
    y = 2.0 - x + errors
    return {"weights": weights, "adjacency": grid_adjacency(6, 6), "x": x, "y": y}


@pytest.fixture
def strong_car_data():
    """Strongly dependent CAR process on a 10 x 10 rook lattice."""
    rng = np.random.default_rng(0)
    adjacency = grid_adjacency(10, 10)
    weights = weights_from_adjacency(adjacency)
    params = CovarianceParams("car", de=1.0, ie=0.0, rho=0.9)
    sigma = car_covariance_matrix(weights, params)
    n = weights.n_observations
    errors = np.linalg.cholesky(sigma) @ rng.standard_normal(n)
    x = rng.normal(size=n)
    y = 1.0 + 0.5 * x + errors
    return {"weights": weights, "adjacency": adjacency, "x": x, "y": y}
