"""Example: CAR model for areal data.

Demonstrates contiguity weights, a conditional autoregressive fit with an
island unit and prediction of a unit with a missing response.
"""

import warnings

import numpy as np

from spatialsmith import (
    CovarianceParams,
    IsolatedUnitWarning,
    PolygonSet,
    fit_areal,
    predict,
    weights_from_adjacency,
)
from spatialsmith.primitives.covariance import car_covariance_matrix
from spatialsmith.primitives.neighborhood import SHAPELY_AVAILABLE, weights_from_polygons


def lattice_weights(n_rows: int, n_cols: int):
    """Queen weights from polygons when shapely is present, else rook adjacency."""
    if SHAPELY_AVAILABLE:
        return weights_from_polygons(PolygonSet.from_grid(n_rows, n_cols))
    adjacency = []
    for r in range(n_rows):
        for c in range(n_cols):
            nbrs = [
                rr * n_cols + cc
                for rr, cc in ((r - 1, c), (r + 1, c), (r, c - 1), (r, c + 1))
                if 0 <= rr < n_rows and 0 <= cc < n_cols
            ]
            adjacency.append(nbrs)
    return weights_from_adjacency(adjacency)


def main():
    """Run areal model example."""
    print("=" * 60)
    print("CAR Model Example")
    print("=" * 60)

    print("\n1. Building neighborhood structure...")
    lattice = lattice_weights(7, 7)
    print(f"Lattice weights: {lattice}")

    # Append one island unit with no neighbors
    weights_matrix = np.zeros((50, 50))
    weights_matrix[:49, :49] = lattice.weights
    adjacency = {i: np.flatnonzero(weights_matrix[i]).tolist() for i in range(50)}
    weights = weights_from_adjacency(adjacency, n=50)
    print(f"With island: {weights}")

    print("\n2. Simulating unit-level response...")
    rng = np.random.default_rng(3)
    params = CovarianceParams("car", de=1.0, ie=0.0, rho=0.7, extra=1.0)
    sigma = car_covariance_matrix(weights, params)
    income = rng.normal(size=50)
    rate = 5.0 + 0.8 * income + np.linalg.cholesky(sigma) @ rng.standard_normal(50)
    rate[10] = np.nan
    print("Unit 10 has no recorded rate and will be predicted")

    print("\n3. Fitting CAR model by REML...")
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", IsolatedUnitWarning)
        model = fit_areal(income, rate, weights, coefficient_names=["income"])
    for warning in caught:
        print(f"  Warning: {warning.message}")
    print(model.summary())

    print("\n4. Predicting the unit with a missing rate...")
    print(predict(model, interval="prediction", level=0.95, se_fit=True).round(3))

    print("\n5. Predicting a new unit bordering units 0 and 1...")
    print(predict(model, np.array([0.5]), [[0, 1]], interval="prediction").round(3))

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
